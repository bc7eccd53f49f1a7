from sqlalchemy import update
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List
import secrets

from marketplace.core_settings import Settings, get_settings
from marketplace.domain.models import (
    Order, OrderItem, Product, Vendor, Cart,
    OrderStatus, PaymentStatus, PaymentMethod, ItemStatus, utcnow,
)
from marketplace.errors import (
    ProductNotFound, VendorNotFound, InsufficientStock, InvalidPricing, OutOfStock,
    CouponNotFound, UsageExceeded, BelowMinimum, CancellationNotAllowed, NotAuthorized,
)
from marketplace.infrastructure.gateway import PaymentGateway
from shared.core import get_logger
from .schemas import OrderCreate, OrderRead
from .pricing import calculate_line_price, discounts_exceed_price, to_decimal, to_minor_units
from .inventory import InventoryLedger
from .coupons import CouponService
from .fulfillment import load_order, TERMINAL_ITEM_STATUSES, SHIPPED_ITEM_STATUSES

logger = get_logger(__name__)

CANCELLABLE_ORDER_STATUSES = {
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
}
# Any item with the carrier or the customer blocks a whole-order cancel
HANDED_OVER_ITEM_STATUSES = SHIPPED_ITEM_STATUSES | {ItemStatus.DELIVERED.value}

class OrderService:
    def __init__(self, db: Session, gateway: Optional[PaymentGateway] = None, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.gateway = gateway or PaymentGateway(self.settings)
        self.inventory = InventoryLedger(db)
        self.coupons = CouponService(db)

    def _generate_order_id(self) -> str:
        """Generate an order id in format <PREFIX>YYMMNNNNN"""
        prefix = f"{self.settings.ORDER_ID_PREFIX}{utcnow():%y%m}"
        for _ in range(10):
            candidate = f"{prefix}{secrets.randbelow(100000):05d}"
            exists = self.db.query(Order.id).filter(Order.order_id == candidate).first()
            if not exists:
                return candidate
        # Month's 5-digit space is crowded; widen the suffix
        return f"{prefix}{secrets.token_hex(4).upper()}"

    def shipping_for(self, subtotal: Decimal) -> Decimal:
        if subtotal >= to_decimal(self.settings.FREE_SHIPPING_THRESHOLD):
            return Decimal("0.00")
        return to_decimal(self.settings.FLAT_SHIPPING_CHARGE)

    def get(self, order_id: str, customer_id: Optional[int] = None) -> Order:
        order = load_order(self.db, order_id)
        if customer_id is not None and order.customer_id != customer_id:
            raise NotAuthorized("Not authorized to view this order")
        return order

    def list(self, customer_id: Optional[int] = None, status: Optional[str] = None, page: int = 1, limit: int = 20) -> List[Order]:
        query = self.db.query(Order)
        if customer_id is not None:
            query = query.filter(Order.customer_id == customer_id)
        if status:
            query = query.filter(Order.status == status)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()

    def list_for_vendor(
        self,
        vendor_id: int,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20,
    ) -> List[dict]:
        """Orders containing the vendor's items, with other vendors' items left out.

        ``date_from``/``date_to`` bound the order creation time, both inclusive.
        """
        item_filter = [OrderItem.vendor_id == vendor_id]
        if status:
            item_filter.append(OrderItem.status == status)
        query = self.db.query(Order).filter(Order.items.any(*item_filter))
        if date_from is not None:
            query = query.filter(Order.created_at >= date_from)
        if date_to is not None:
            query = query.filter(Order.created_at <= date_to)
        orders = (
            query
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        views = []
        for order in orders:
            view = OrderRead.model_validate(order).model_dump()
            view["items"] = [i for i in view["items"] if i["vendor_id"] == vendor_id]
            views.append(view)
        return views

    def create(self, data: OrderCreate) -> tuple[Order, Optional[dict]]:
        """Build, price and persist an order from cart lines.

        Runs as one transaction: a failure on any line (or at the gateway)
        rolls back every stock reservation and the coupon redemption.
        Returns the order and, for gateway payments, the gateway order.
        """
        gateway_order = None
        try:
            order = self._build(data)
            self.db.add(order)
            self.db.flush()

            if data.payment_method == PaymentMethod.GATEWAY:
                gateway_order = self.gateway.create_order(to_minor_units(order.total), order.order_id)
                order.gateway_order_id = gateway_order["id"]

            self._clear_cart(data.customer_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order {order.order_id} created",
            extra={'extra_fields': {
                'order_id': order.order_id,
                'customer_id': order.customer_id,
                'items': len(order.items),
                'total': str(order.total),
                'payment_method': order.payment_method,
            }}
        )
        return order, gateway_order

    def _build(self, data: OrderCreate) -> Order:
        shipping_address = data.shipping_address.model_dump()
        billing_address = data.billing_address.model_dump() if data.billing_address else dict(shipping_address)
        order = Order(
            order_id=self._generate_order_id(),
            customer_id=data.customer_id,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=data.payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            estimated_delivery=utcnow() + timedelta(days=self.settings.ESTIMATED_DELIVERY_DAYS),
            notes=data.notes,
        )

        subtotal = Decimal("0.00")
        for line in data.items:
            product = self.db.get(Product, line.product_id)
            if product is None or not product.is_active:
                raise ProductNotFound(line.product_id)
            vendor = self.db.get(Vendor, product.vendor_id)
            if vendor is None or not vendor.is_active:
                raise VendorNotFound(product.vendor_id)
            if discounts_exceed_price(product.vendor_discount, product.website_discount):
                raise InvalidPricing(product.name)

            try:
                variant = self.inventory.reserve(product.id, line.size, line.color, line.quantity)
            except OutOfStock as e:
                raise InsufficientStock(product.name, product.id) from e

            price = calculate_line_price(
                product.selling_price,
                product.mrp,
                product.vendor_discount,
                product.website_discount,
                vendor.commission,
                line.quantity,
            )
            subtotal += price.line_total

            # Snapshot: later catalog or commission changes never touch this row
            order.items.append(OrderItem(
                product_id=product.id,
                vendor_id=vendor.id,
                name=product.name,
                image=product.images[0] if product.images else None,
                size=line.size,
                color=line.color,
                sku=variant.sku,
                quantity=line.quantity,
                mrp=price.mrp,
                selling_price=price.selling_price,
                vendor_discount=product.vendor_discount,
                website_discount=product.website_discount,
                final_price=price.final_unit_price,
                commission=price.commission,
                vendor_earning=price.vendor_earning,
                status=ItemStatus.PENDING.value,
            ))
            self.db.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(total_sold=Product.total_sold + line.quantity)
                .execution_options(synchronize_session=False)
            )

        shipping_charges = self.shipping_for(subtotal)
        coupon_code, coupon_discount = self._apply_coupon(data.coupon_code, subtotal)

        order.subtotal = subtotal
        order.shipping_charges = shipping_charges
        order.coupon_code = coupon_code
        order.coupon_discount = coupon_discount
        order.total = subtotal + shipping_charges - coupon_discount
        return order

    def _apply_coupon(self, code: Optional[str], subtotal: Decimal) -> tuple[Optional[str], Decimal]:
        if not code:
            return None, Decimal("0.00")
        try:
            evaluation = self.coupons.evaluate(code, subtotal)
            self.coupons.redeem(evaluation.coupon)
        except (CouponNotFound, UsageExceeded, BelowMinimum) as e:
            # A bad coupon never blocks checkout
            logger.info(
                f"Coupon {code} not applied: {e.message}",
                extra={'extra_fields': {'coupon_code': code, 'reason': e.code}}
            )
            return None, Decimal("0.00")
        # Fixed discounts can exceed the cart; never discount below zero
        return evaluation.coupon.code, min(evaluation.discount, subtotal)

    def _clear_cart(self, customer_id: int) -> None:
        cart = self.db.query(Cart).filter(Cart.customer_id == customer_id).first()
        if cart:
            self.db.delete(cart)

    def cancel(self, order_id: str, customer_id: Optional[int] = None) -> Order:
        try:
            order = load_order(self.db, order_id, for_update=True)
            if customer_id is not None and order.customer_id != customer_id:
                raise NotAuthorized("Not authorized to cancel this order")
            if order.status not in CANCELLABLE_ORDER_STATUSES:
                raise CancellationNotAllowed(order_id, order.status)
            # Order status can lag its items (e.g. one line delivered, one pending)
            handed_over = next((i.status for i in order.items if i.status in HANDED_OVER_ITEM_STATUSES), None)
            if handed_over:
                raise CancellationNotAllowed(order_id, handed_over)

            restored = 0
            for item in order.items:
                # Items already closed out (e.g. delivered) keep their status
                if item.status in TERMINAL_ITEM_STATUSES:
                    continue
                item.status = ItemStatus.CANCELLED.value
                if self.inventory.restore_item(item):
                    restored += 1
            order.status = OrderStatus.CANCELLED.value

            if (order.payment_status == PaymentStatus.PAID.value
                    and order.payment_method == PaymentMethod.GATEWAY.value
                    and order.gateway_payment_id):
                self.gateway.refund(order.gateway_payment_id, to_minor_units(order.total))
                order.payment_status = PaymentStatus.REFUNDED.value

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order {order_id} cancelled",
            extra={'extra_fields': {
                'order_id': order_id,
                'items_restored': restored,
                'payment_status': order.payment_status,
            }}
        )
        return order
