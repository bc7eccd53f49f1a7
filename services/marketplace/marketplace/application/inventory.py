from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.domain.models import ProductVariant, OrderItem
from marketplace.errors import OutOfStock
from shared.core import get_logger

logger = get_logger(__name__)

class InventoryLedger:
    """Per-variant stock counters.

    Stock only moves through ``reserve`` and ``restore``. Both run inside the
    caller's transaction and never commit, so an order that fails half way
    releases every reservation on rollback.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_variant(self, product_id: int, size: str, color: str) -> Optional[ProductVariant]:
        return self.db.query(ProductVariant).filter(
            ProductVariant.product_id == product_id,
            ProductVariant.size == size,
            ProductVariant.color == color,
        ).first()

    def available(self, product_id: int, size: str, color: str) -> int:
        variant = self.get_variant(product_id, size, color)
        if variant is None:
            return 0
        self.db.refresh(variant, ["stock"])
        return variant.stock

    def reserve(self, product_id: int, size: str, color: str, quantity: int) -> ProductVariant:
        variant = self.get_variant(product_id, size, color)
        if variant is None or quantity <= 0:
            raise OutOfStock(product_id, size, color, quantity)

        # Compare-and-decrement in one statement; concurrent reservations for
        # the same row serialize on the row lock and re-check the floor.
        result = self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant.id, ProductVariant.stock >= quantity)
            .values(stock=ProductVariant.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise OutOfStock(product_id, size, color, quantity)

        self.db.expire(variant, ["stock"])
        logger.debug(
            f"Reserved {quantity} of variant {variant.sku}",
            extra={'extra_fields': {'product_id': product_id, 'size': size, 'color': color, 'quantity': quantity}}
        )
        return variant

    def restore(self, product_id: int, size: str, color: str, quantity: int) -> bool:
        """Put stock back. Returns False when the variant no longer exists."""
        variant = self.get_variant(product_id, size, color)
        if variant is None:
            logger.warning(
                "Variant missing on stock restore",
                extra={'extra_fields': {'product_id': product_id, 'size': size, 'color': color, 'quantity': quantity}}
            )
            return False

        self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant.id)
            .values(stock=ProductVariant.stock + quantity)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(variant, ["stock"])
        return True

    def restore_item(self, item: OrderItem) -> bool:
        # stock_restored makes a second cancellation path a no-op
        if item.stock_restored:
            return False
        self.restore(item.product_id, item.size, item.color, item.quantity)
        item.stock_restored = True
        return True
