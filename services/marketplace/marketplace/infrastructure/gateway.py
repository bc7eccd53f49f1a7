"""Client for the payment gateway's REST API (Razorpay-compatible).

Amounts are always passed in minor units (paise for INR).
"""

from typing import Optional
import httpx

from marketplace.core_settings import Settings, get_settings
from marketplace.errors import PaymentGatewayError
from shared.core import get_logger

logger = get_logger(__name__)

class PaymentGateway:
    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings or get_settings()
        # Tests hand in an httpx.MockTransport
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.settings.PAYMENT_GATEWAY_KEY_ID and self.settings.PAYMENT_GATEWAY_KEY_SECRET)

    def _client(self) -> httpx.Client:
        if not self.configured:
            raise PaymentGatewayError("Payment service not configured")
        return httpx.Client(
            base_url=self.settings.PAYMENT_GATEWAY_URL,
            auth=(self.settings.PAYMENT_GATEWAY_KEY_ID, self.settings.PAYMENT_GATEWAY_KEY_SECRET),
            timeout=self.settings.GATEWAY_TIMEOUT_SECONDS,
            transport=self.transport,
        )

    def _post(self, path: str, payload: dict) -> dict:
        try:
            with self._client() as client:
                response = client.post(path, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Payment gateway rejected {path}",
                extra={'extra_fields': {'path': path, 'status_code': e.response.status_code}}
            )
            raise PaymentGatewayError(f"Payment gateway returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Payment gateway unreachable: {e}")
            raise PaymentGatewayError("Payment gateway unavailable") from e

    def create_order(self, amount_minor: int, receipt: str) -> dict:
        """Create a gateway-side order; returns the gateway payload (``id``, ``amount``, ``currency``)."""
        return self._post("/orders", {
            "amount": amount_minor,
            "currency": self.settings.PAYMENT_CURRENCY,
            "receipt": receipt,
            "payment_capture": 1,
        })

    def refund(self, payment_id: str, amount_minor: int) -> dict:
        return self._post(f"/payments/{payment_id}/refund", {"amount": amount_minor})

def get_gateway() -> PaymentGateway:
    return PaymentGateway()
