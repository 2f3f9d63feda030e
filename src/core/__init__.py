# Core infrastructure
from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_request_id,
    get_user_id,
    set_correlation_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from src.core.errors import (
    ConflictError,
    DomainError,
    ExternalVerificationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "ConflictError",
    "DomainError",
    "ExternalVerificationError",
    "ForbiddenError",
    "NotFoundError",
    "RequestContext",
    "RequestContextMiddleware",
    "ValidationError",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_user_id",
    "set_correlation_id",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
