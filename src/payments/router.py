"""Payment API endpoints.

Provides routes for:
- Checkout orders for courses, content items and subscriptions
- Public checkout key
- Checkout verification callback and gateway webhook
- Payment history
- Admin payment overview and refunds
"""

from uuid import UUID

from fastapi import APIRouter, Header, Query, Request, status

from src.auth.dependencies import AdminUser, CurrentUser
from src.core.context import set_correlation_id

from .dependencies import PaymentServiceDep
from .models import PaymentStatus, PaymentType
from .schemas import (
    CheckoutKeyResponse,
    CreateContentOrderRequest,
    CreateCourseOrderRequest,
    CreateSubscriptionOrderRequest,
    OrderResponse,
    PaymentApplicationResponse,
    PaymentListResponse,
    PaymentOverviewResponse,
    PaymentResponse,
    RefundRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookResponse,
)


router = APIRouter(prefix="/v1/payments", tags=["payments"])
admin_router = APIRouter(prefix="/v1/admin/payments", tags=["admin-payments"])


# ==============================================================================
# Checkout Endpoints
# ==============================================================================


@router.post(
    "/orders/course",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create course order",
)
async def create_course_order(
    data: CreateCourseOrderRequest,
    payment_service: PaymentServiceDep,
    user: CurrentUser,
) -> OrderResponse:
    """Open a gateway order for a paid or premium course."""
    payment, order = await payment_service.create_course_order(user, data.course_id)
    return OrderResponse.from_entities(payment, order)


@router.get(
    "/key",
    response_model=CheckoutKeyResponse,
    summary="Get checkout key",
)
async def get_checkout_key(payment_service: PaymentServiceDep) -> CheckoutKeyResponse:
    """Public gateway key for the client checkout widget (no authentication)."""
    return CheckoutKeyResponse(key_id=payment_service.checkout_key_id)


@router.post(
    "/orders/content",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create content order",
)
async def create_content_order(
    data: CreateContentOrderRequest,
    payment_service: PaymentServiceDep,
    user: CurrentUser,
) -> OrderResponse:
    payment, order = await payment_service.create_content_order(user, data.content_id)
    return OrderResponse.from_entities(payment, order)


@router.post(
    "/orders/subscription",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create subscription order",
)
async def create_subscription_order(
    data: CreateSubscriptionOrderRequest,
    payment_service: PaymentServiceDep,
    user: CurrentUser,
) -> OrderResponse:
    payment, order = await payment_service.create_subscription_order(
        user, data.plan, data.duration
    )
    return OrderResponse.from_entities(payment, order)


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    summary="Verify checkout payment",
)
async def verify_payment(
    data: VerifyPaymentRequest,
    payment_service: PaymentServiceDep,
    user: CurrentUser,
) -> VerifyPaymentResponse:
    """Verify the checkout signature and apply the payment.

    Safe to retry: a payment that is already verified returns the recorded
    result.
    """
    set_correlation_id(data.gateway_order_id)
    payment, application = await payment_service.verify_payment(
        user,
        data.payment_id,
        data.gateway_order_id,
        data.gateway_payment_id,
        data.signature,
    )
    return VerifyPaymentResponse(
        payment=PaymentResponse.from_entity(payment),
        application=PaymentApplicationResponse.from_entity(application),
    )


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    summary="Gateway webhook",
)
async def payment_webhook(
    request: Request,
    payment_service: PaymentServiceDep,
    x_razorpay_signature: str = Header(..., alias="X-Razorpay-Signature"),
) -> WebhookResponse:
    """Gateway event delivery. Signature-verified, no user authentication."""
    body = await request.body()
    application = await payment_service.handle_webhook(body, x_razorpay_signature)
    return WebhookResponse(outcome=application.outcome if application else None)


# ==============================================================================
# History Endpoints
# ==============================================================================


@router.get(
    "/my",
    response_model=PaymentListResponse,
    summary="Get my payments",
)
async def get_my_payments(
    payment_service: PaymentServiceDep,
    user: CurrentUser,
    status_filter: PaymentStatus | None = Query(None, alias="status"),
    payment_type: PaymentType | None = Query(None, alias="type"),
) -> PaymentListResponse:
    payments = await payment_service.list_payments(user, status_filter, payment_type)
    return PaymentListResponse(
        items=[PaymentResponse.from_entity(p) for p in payments],
        total=len(payments),
    )


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get payment",
)
async def get_payment(
    payment_id: UUID,
    payment_service: PaymentServiceDep,
    user: CurrentUser,
) -> PaymentResponse:
    payment = await payment_service.get_payment(user, payment_id)
    return PaymentResponse.from_entity(payment)


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.get(
    "",
    response_model=PaymentOverviewResponse,
    summary="List all payments",
)
async def list_all_payments(
    payment_service: PaymentServiceDep,
    admin: AdminUser,
    status_filter: PaymentStatus | None = Query(None, alias="status"),
    payment_type: PaymentType | None = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> PaymentOverviewResponse:
    """Payments of every user with per-status totals (ADMIN only)."""
    overview = await payment_service.list_all_payments(
        admin, status_filter, payment_type, page, limit
    )
    return PaymentOverviewResponse.from_overview(overview)


@admin_router.post(
    "/{payment_id}/refund",
    response_model=PaymentResponse,
    summary="Refund payment",
)
async def refund_payment(
    payment_id: UUID,
    data: RefundRequest,
    payment_service: PaymentServiceDep,
    admin: AdminUser,
) -> PaymentResponse:
    """Refund a completed payment (ADMIN only). Enrollment progress is kept."""
    payment = await payment_service.refund(admin, payment_id, data.reason)
    return PaymentResponse.from_entity(payment)
