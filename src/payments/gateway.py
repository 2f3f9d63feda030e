"""Payment gateway client.

The gateway is an external verifier: it creates checkout orders and
confirms the signatures it issues for completed payments and webhooks.

SECURITY: key_secret and webhook_secret stay server-side; clients only ever
receive the public key id and the order id.
"""

import hashlib
import hmac
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx
import structlog

from src.config.settings import Settings
from src.core.errors import ExternalVerificationError


logger = structlog.get_logger(__name__)


@dataclass
class GatewayOrder:
    """Checkout order created at the gateway."""

    order_id: str
    amount: Decimal
    currency: str
    receipt: str
    key_id: str | None = None


class PaymentGateway(Protocol):
    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder: ...

    async def verify_signature(
        self, order_id: str, payment_id: str, signature: str
    ) -> bool: ...

    async def verify_webhook(self, body: bytes, signature: str) -> bool: ...


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def to_minor_units(amount: Decimal) -> int:
    """Gateway amounts are integers in the smallest currency unit (paise)."""
    return int((amount * 100).to_integral_value())


class RazorpayGateway:
    """Razorpay-shaped gateway.

    - Orders: ``POST {api_base_url}/orders`` with HTTP basic auth
    - Checkout signature: HMAC-SHA256 of ``"{order_id}|{payment_id}"`` with
      the key secret
    - Webhook signature: HMAC-SHA256 of the raw body with the webhook secret
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._key_id = settings.razorpay_key_id
        self._key_secret = settings.razorpay_key_secret
        self._webhook_secret = settings.razorpay_webhook_secret
        self._base_url = settings.razorpay_api_base_url.rstrip("/")
        self._timeout = settings.payment_gateway_timeout_seconds

    @property
    def is_configured(self) -> bool:
        return self.settings.razorpay_configured

    def _require_configured(self) -> None:
        if not self.is_configured:
            msg = "Payment gateway is not configured"
            raise ExternalVerificationError(msg)

    async def create_order(
        self,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        """Create a checkout order.

        Raises:
            ExternalVerificationError: If the gateway is unreachable, times out
                or rejects the request
        """
        self._require_configured()
        payload: dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                auth=(self._key_id or "", self._key_secret or ""),
            ) as client:
                response = await client.post(f"{self._base_url}/orders", json=payload)
        except httpx.TimeoutException as e:
            logger.error("payment_gateway_timeout", error=str(e))
            msg = "Payment gateway timeout"
            raise ExternalVerificationError(msg) from e
        except httpx.RequestError as e:
            logger.error("payment_gateway_request_error", error=str(e))
            msg = f"Payment gateway request error: {e}"
            raise ExternalVerificationError(msg) from e

        if response.status_code != httpx.codes.OK:
            logger.error(
                "payment_gateway_order_failed",
                status_code=response.status_code,
                response=response.text[:500],
            )
            msg = f"Payment gateway rejected the order: {response.status_code}"
            raise ExternalVerificationError(msg)

        data = response.json()
        logger.info("payment_gateway_order_created", order_id=data["id"], receipt=receipt)
        return GatewayOrder(
            order_id=data["id"],
            amount=amount,
            currency=data.get("currency", currency),
            receipt=receipt,
            key_id=self._key_id,
        )

    async def verify_signature(
        self, order_id: str, payment_id: str, signature: str
    ) -> bool:
        self._require_configured()
        expected = _hmac_sha256(
            self._key_secret or "", f"{order_id}|{payment_id}".encode()
        )
        return hmac.compare_digest(expected, signature)

    async def verify_webhook(self, body: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            msg = "Payment webhook secret is not configured"
            raise ExternalVerificationError(msg)
        expected = _hmac_sha256(self._webhook_secret, body)
        return hmac.compare_digest(expected, signature)
