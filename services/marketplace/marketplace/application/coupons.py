from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from marketplace.domain.models import Coupon, DiscountType, utcnow
from marketplace.errors import CouponNotFound, UsageExceeded, BelowMinimum
from .pricing import to_decimal, money, HUNDRED

def normalize_code(code: str) -> str:
    return code.strip().upper()

@dataclass(frozen=True)
class CouponEvaluation:
    coupon: Coupon
    discount: Decimal

class CouponService:
    """Validates coupons against a cart and consumes their usage.

    ``evaluate`` never changes the coupon; ``redeem`` is the only place
    ``used_count`` moves and is called from the order commit path.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_active(self, code: str, now: Optional[datetime] = None) -> Optional[Coupon]:
        now = now or utcnow()
        return self.db.query(Coupon).filter(
            Coupon.code == normalize_code(code),
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
        ).first()

    def evaluate(self, code: str, cart_subtotal, now: Optional[datetime] = None) -> CouponEvaluation:
        coupon = self.find_active(code, now)
        if coupon is None:
            raise CouponNotFound(normalize_code(code))

        if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
            raise UsageExceeded(coupon.code)

        subtotal = to_decimal(cart_subtotal)
        if subtotal < coupon.min_order_value:
            raise BelowMinimum(coupon.min_order_value)

        return CouponEvaluation(coupon=coupon, discount=self.compute_discount(coupon, subtotal))

    @staticmethod
    def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
        if coupon.discount_type == DiscountType.PERCENTAGE.value:
            discount = subtotal * to_decimal(coupon.discount_value) / HUNDRED
            if coupon.max_discount is not None:
                discount = min(discount, to_decimal(coupon.max_discount))
            return money(discount)
        # Fixed discounts are not capped here; the order builder clamps them
        return money(to_decimal(coupon.discount_value))

    def redeem(self, coupon: Coupon) -> None:
        """Atomically consume one use, failing once the usage limit is reached."""
        result = self.db.execute(
            update(Coupon)
            .where(
                Coupon.id == coupon.id,
                or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
            )
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise UsageExceeded(coupon.code)
        self.db.expire(coupon, ["used_count"])
