"""Per-item fulfillment lifecycle and the order status derived from it.

Items move forward along ``ITEM_FLOW``; ``cancelled`` is reachable only
before shipment, ``rto`` and ``lost`` from any non-terminal state. The order
level status is never set by hand here: it is recomputed from the full item
list after every item write.
"""

from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.domain.models import Order, OrderItem, Vendor, ItemStatus, OrderStatus, utcnow
from marketplace.errors import OrderNotFound, OrderItemNotFound, InvalidTransition, InvalidStatus, NotAuthorized
from shared.core import get_logger
from .inventory import InventoryLedger

logger = get_logger(__name__)

ITEM_FLOW = [
    ItemStatus.PENDING.value,
    ItemStatus.CONFIRMED.value,
    ItemStatus.PACKAGING.value,
    ItemStatus.READY_TO_PICKUP.value,
    ItemStatus.PICKED_UP.value,
    ItemStatus.IN_TRANSIT.value,
    ItemStatus.DELIVERED.value,
]
TERMINAL_ITEM_STATUSES = {
    ItemStatus.DELIVERED.value,
    ItemStatus.RTO.value,
    ItemStatus.LOST.value,
    ItemStatus.CANCELLED.value,
}
PRE_SHIPMENT_ITEM_STATUSES = {
    ItemStatus.PENDING.value,
    ItemStatus.CONFIRMED.value,
    ItemStatus.PACKAGING.value,
    ItemStatus.READY_TO_PICKUP.value,
}
SHIPPED_ITEM_STATUSES = {ItemStatus.PICKED_UP.value, ItemStatus.IN_TRANSIT.value}
CARRIER_EXCEPTION_STATUSES = {ItemStatus.RTO.value, ItemStatus.LOST.value}

def can_transition(current: str, requested: str) -> bool:
    if current in TERMINAL_ITEM_STATUSES:
        return False
    if requested == ItemStatus.CANCELLED.value:
        return current in PRE_SHIPMENT_ITEM_STATUSES
    if requested in CARRIER_EXCEPTION_STATUSES:
        return True
    return ITEM_FLOW.index(requested) > ITEM_FLOW.index(current)

def derive_order_status(current: str, item_statuses: Iterable[str]) -> str:
    statuses = list(item_statuses)
    if statuses and all(s == ItemStatus.DELIVERED.value for s in statuses):
        return OrderStatus.DELIVERED.value
    if any(s in SHIPPED_ITEM_STATUSES for s in statuses):
        return OrderStatus.SHIPPED.value
    return current

def load_order(db: Session, order_id: str, for_update: bool = False) -> Order:
    """Load an order by its public id, always re-reading the stored item rows."""
    query = db.query(Order).filter(Order.order_id == order_id).execution_options(populate_existing=True)
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if order is None:
        raise OrderNotFound(order_id)
    # Items are re-read too so the derived status never sees a stale list
    db.expire(order, ["items"])
    db.query(OrderItem).filter(OrderItem.order_id == order.id).execution_options(populate_existing=True).all()
    return order

class FulfillmentService:
    def __init__(self, db: Session):
        self.db = db
        self.inventory = InventoryLedger(db)

    def update_item_status(
        self,
        order_id: str,
        item_id: int,
        status: str,
        tracking_id: Optional[str] = None,
        vendor_id: Optional[int] = None,
    ) -> Order:
        try:
            requested = ItemStatus(status).value
        except ValueError:
            raise InvalidStatus(status) from None
        try:
            order = load_order(self.db, order_id, for_update=True)
            item = next((i for i in order.items if i.id == item_id), None)
            if item is None:
                raise OrderItemNotFound(order_id, item_id)
            if vendor_id is not None and item.vendor_id != vendor_id:
                raise NotAuthorized("Not authorized to update this order item")

            if tracking_id:
                item.tracking_id = tracking_id

            previous = item.status
            if previous == requested:
                # Repeated call (e.g. a second "delivered"): nothing fires again
                self.db.commit()
                return order
            if not can_transition(previous, requested):
                raise InvalidTransition(previous, requested)

            item.status = requested
            if requested == ItemStatus.DELIVERED.value:
                item.delivered_at = utcnow()
                self._credit_vendor(item)
            elif requested == ItemStatus.CANCELLED.value:
                self.inventory.restore_item(item)

            order.status = derive_order_status(order.status, [i.status for i in order.items])
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order item {item_id} moved from {previous} to {requested}",
            extra={'extra_fields': {
                'order_id': order_id,
                'item_id': item_id,
                'vendor_id': item.vendor_id,
                'order_status': order.status,
            }}
        )
        return order

    def _credit_vendor(self, item: OrderItem) -> None:
        vendor = self.db.get(Vendor, item.vendor_id)
        self.db.execute(
            update(Vendor)
            .where(Vendor.id == item.vendor_id)
            .values(
                total_orders=Vendor.total_orders + 1,
                total_revenue=Vendor.total_revenue + item.vendor_earning,
                pending_payment=Vendor.pending_payment + item.vendor_earning,
            )
            .execution_options(synchronize_session=False)
        )
        if vendor is not None:
            self.db.expire(vendor, ["total_orders", "total_revenue", "pending_payment"])
