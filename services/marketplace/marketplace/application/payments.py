from sqlalchemy.orm import Session
from typing import Optional
import hashlib
import hmac

from marketplace.core_settings import Settings, get_settings
from marketplace.domain.models import Order, OrderStatus, PaymentStatus
from marketplace.errors import OrderNotFound, SignatureMismatch
from marketplace.infrastructure.gateway import PaymentGateway
from shared.core import get_logger
from .pricing import to_minor_units

logger = get_logger(__name__)
# Signature failures go to their own logger so they can be alerted on
security_logger = get_logger("marketplace.security")

SETTLEABLE_PAYMENT_STATUSES = {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value}

def compute_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()

def signature_matches(secret: str, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    expected = compute_signature(secret, gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode(), (signature or "").encode())

class PaymentService:
    """Trust boundary for gateway callbacks.

    An order only becomes ``paid`` after the callback's HMAC has been checked
    against the server-held gateway secret.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.gateway = gateway or PaymentGateway(self.settings)

    def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> Order:
        try:
            order = (
                self.db.query(Order)
                .filter(Order.gateway_order_id == gateway_order_id)
                .execution_options(populate_existing=True)
                .with_for_update()
                .first()
            )
            if order is None:
                raise OrderNotFound(gateway_order_id)

            if not signature_matches(self.settings.PAYMENT_GATEWAY_KEY_SECRET, gateway_order_id, gateway_payment_id, signature):
                security_logger.warning(
                    "Payment signature mismatch",
                    extra={'extra_fields': {
                        'event': 'payment.signature_mismatch',
                        'order_id': order.order_id,
                        'gateway_order_id': gateway_order_id,
                        'gateway_payment_id': gateway_payment_id,
                    }}
                )
                raise SignatureMismatch()

            # Settled payments (paid or already refunded) never move again
            if order.payment_status not in SETTLEABLE_PAYMENT_STATUSES:
                if order.gateway_payment_id != gateway_payment_id:
                    logger.warning(
                        f"Order {order.order_id} already {order.payment_status} with another payment",
                        extra={'extra_fields': {
                            'order_id': order.order_id,
                            'payment_status': order.payment_status,
                            'stored_payment_id': order.gateway_payment_id,
                            'gateway_payment_id': gateway_payment_id,
                        }}
                    )
                self.db.commit()
                return order

            order.gateway_payment_id = gateway_payment_id
            if order.status == OrderStatus.CANCELLED.value:
                # Stock is already back on the shelf; hand the money back too
                self.gateway.refund(gateway_payment_id, to_minor_units(order.total))
                order.payment_status = PaymentStatus.REFUNDED.value
                self.db.commit()
                logger.warning(
                    f"Payment captured for cancelled order {order.order_id} was refunded",
                    extra={'extra_fields': {'order_id': order.order_id, 'gateway_payment_id': gateway_payment_id}}
                )
                return order

            order.payment_status = PaymentStatus.PAID.value
            if order.status == OrderStatus.PENDING.value:
                order.status = OrderStatus.CONFIRMED.value
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Payment verified for order {order.order_id}",
            extra={'extra_fields': {'order_id': order.order_id, 'gateway_payment_id': gateway_payment_id}}
        )
        return order
