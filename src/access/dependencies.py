"""FastAPI dependencies for access evaluation."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import AccessEvaluator


async def get_access_evaluator(request: Request) -> AccessEvaluator:
    """Get access evaluator from app state."""
    app_state = request.app.state
    if not getattr(app_state, "access_evaluator", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Access service not available",
        )
    return app_state.access_evaluator


AccessEvaluatorDep = Annotated[AccessEvaluator, Depends(get_access_evaluator)]
