"""Seed the course catalog from a JSON file of course documents.

Each document is a course with its pricing and module/lesson tree (see
``scripts/data/courses.json``). Seeding is an upsert by course id, so the
script can be re-run after editing the file.

Usage:
    python -m scripts.seed_courses [path/to/courses.json]
"""

import asyncio
import sys
from pathlib import Path

import orjson
import structlog

from src.config.settings import get_settings
from src.core.context import RequestContext
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.errors import ValidationError
from src.courses.models import Course
from src.courses.repository import CassandraCourseRepository


logger = structlog.get_logger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "data" / "courses.json"


def load_courses(path: Path) -> list[Course]:
    """Parse course documents, rejecting invalid structures."""
    documents = orjson.loads(path.read_bytes())
    courses = []
    for document in documents:
        try:
            courses.append(Course.from_document(document))
        except (KeyError, ValueError, ValidationError) as e:
            logger.error("course_document_invalid", course_id=document.get("id"), error=str(e))
            raise
    return courses


async def seed(path: Path) -> int:
    settings = get_settings()
    courses = load_courses(path)

    session = await init_async_cassandra()
    try:
        repository = CassandraCourseRepository(session, settings.cassandra_keyspace)
        for course in courses:
            await repository.save(course)
            logger.info(
                "course_seeded",
                course_id=str(course.id),
                title=course.title,
                lessons=course.total_lessons(),
            )
    finally:
        await shutdown_async_cassandra()

    return len(courses)


if __name__ == "__main__":
    data_file = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_DATA_FILE
    with RequestContext(correlation_id="seed_courses"):
        count = asyncio.run(seed(data_file))
        logger.info("seed_completed", courses=count, source=str(data_file))
