"""FastAPI dependencies for payments."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import PaymentService


async def get_payment_service(request: Request) -> PaymentService:
    """Get payment service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "payment_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment service not available",
        )
    return app_state.payment_service


PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
