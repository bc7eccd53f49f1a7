from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace.application.inventory import InventoryLedger
from marketplace.application.orders import OrderService
from marketplace.application.fulfillment import FulfillmentService
from marketplace.application.payments import PaymentService, compute_signature
from marketplace.application.schemas import OrderCreate
from marketplace.domain.models import Cart, Coupon, Order, Product
from marketplace.errors import (
    InsufficientStock, InvalidPricing, ProductNotFound, CancellationNotAllowed,
    NotAuthorized, PaymentGatewayError,
)

from conftest import GATEWAY_SECRET, make_vendor, make_product, make_coupon, make_cart, address

def order_request(*lines, customer_id=1, payment_method="cod", coupon_code=None):
    return OrderCreate(
        customer_id=customer_id,
        items=[
            {"product_id": product.id, "size": size, "color": color, "quantity": quantity}
            for product, size, color, quantity in lines
        ],
        shipping_address=address(),
        payment_method=payment_method,
        coupon_code=coupon_code,
    )

@pytest.fixture
def service(db, gateway, settings):
    return OrderService(db, gateway=gateway, settings=settings)

@pytest.fixture
def shoe(db):
    return make_product(db, make_vendor(db), name="Runner", selling_price="500", mrp="800",
                        variants=[("9", "black", 5)])

class TestOrderCreation:
    """Pricing, coupon and stock effects of placing an order"""

    def test_totals_with_capped_coupon(self, db, service, shoe):
        make_coupon(db, "SAVE10", discount_value="10", max_discount="80")

        order, gateway_order = service.create(order_request((shoe, "9", "black", 2), coupon_code="save10"))

        assert gateway_order is None
        assert order.subtotal == Decimal("1000")
        assert order.shipping_charges == Decimal("0")
        assert order.coupon_code == "SAVE10"
        assert order.coupon_discount == Decimal("80")
        assert order.total == Decimal("920")
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert InventoryLedger(db).available(shoe.id, "9", "black") == 3
        assert db.get(Coupon, 1).used_count == 1
        db.refresh(shoe)
        assert shoe.total_sold == 2

    def test_flat_shipping_below_threshold(self, db, service):
        tee = make_product(db, make_vendor(db), name="Tee", selling_price="200", mrp="250",
                           variants=[("M", "white", 10)])
        order, _ = service.create(order_request((tee, "M", "white", 1)))
        assert order.shipping_charges == Decimal("49")
        assert order.total == Decimal("249")

    def test_line_snapshot_and_earning(self, db, service):
        vendor = make_vendor(db, commission="12.5")
        bag = make_product(db, vendor, name="Tote", selling_price="800", mrp="1000",
                           vendor_discount="10", website_discount="5", variants=[("OS", "tan", 4)])

        order, _ = service.create(order_request((bag, "OS", "tan", 2)))
        item = order.items[0]
        assert item.final_price == Decimal("680")
        assert item.commission == Decimal("170")
        assert item.vendor_earning == Decimal("1190")
        assert item.sku == "TOT-OS-tan"
        assert item.image == "https://cdn.example.com/tote-1.jpg"

        # Later catalog and commission changes never reach the stored item
        bag.selling_price = Decimal("100")
        vendor.commission = Decimal("50")
        db.commit()
        reloaded = service.get(order.order_id).items[0]
        assert reloaded.final_price == Decimal("680")
        assert reloaded.commission == Decimal("170")
        assert reloaded.vendor_earning == Decimal("1190")

    def test_order_id_format(self, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 1)))
        assert order.order_id.startswith("MKT")
        assert len(order.order_id) == 12
        assert order.order_id[3:].isdigit()

    def test_failed_line_rolls_back_whole_order(self, db, service, shoe):
        boot = make_product(db, make_vendor(db, name="Trail Co"), name="Boot", selling_price="900", mrp="900",
                            variants=[("10", "brown", 3)])

        with pytest.raises(InsufficientStock) as exc:
            service.create(order_request((shoe, "9", "black", 2), (boot, "10", "brown", 4)))

        assert exc.value.message == "Insufficient stock for Boot"
        ledger = InventoryLedger(db)
        assert ledger.available(shoe.id, "9", "black") == 5
        assert ledger.available(boot.id, "10", "brown") == 3
        assert db.query(Order).count() == 0
        assert db.get(Product, shoe.id).total_sold == 0

    def test_gateway_failure_releases_stock_and_coupon(self, db, service, gateway, shoe):
        make_coupon(db, "SAVE10", usage_limit=1)
        gateway.fail = True

        with pytest.raises(PaymentGatewayError):
            service.create(order_request((shoe, "9", "black", 2), payment_method="gateway", coupon_code="SAVE10"))

        assert InventoryLedger(db).available(shoe.id, "9", "black") == 5
        assert db.query(Coupon).filter(Coupon.code == "SAVE10").one().used_count == 0
        assert db.query(Order).count() == 0

    def test_discounts_over_hundred_percent_rejected(self, db, service):
        odd = make_product(db, make_vendor(db), name="Odd", vendor_discount="60", website_discount="50",
                           variants=[("S", "red", 2)])
        with pytest.raises(InvalidPricing):
            service.create(order_request((odd, "S", "red", 1)))
        assert InventoryLedger(db).available(odd.id, "S", "red") == 2

    def test_inactive_product_not_orderable(self, db, service, shoe):
        shoe.is_active = False
        db.commit()
        with pytest.raises(ProductNotFound):
            service.create(order_request((shoe, "9", "black", 1)))

    def test_bad_coupon_does_not_block_checkout(self, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 1), coupon_code="NOSUCH"))
        assert order.coupon_code is None
        assert order.coupon_discount == Decimal("0")
        assert order.total == Decimal("500")

    def test_fixed_coupon_clamped_to_subtotal(self, db, service):
        tee = make_product(db, make_vendor(db), name="Tee", selling_price="200", mrp="250",
                           variants=[("M", "white", 10)])
        make_coupon(db, "FLAT300", discount_type="fixed", discount_value="300")
        order, _ = service.create(order_request((tee, "M", "white", 1), coupon_code="FLAT300"))
        assert order.coupon_discount == Decimal("200")
        assert order.total == Decimal("49")

    def test_gateway_order_created_in_minor_units(self, service, gateway, shoe):
        order, gateway_order = service.create(order_request((shoe, "9", "black", 1), payment_method="gateway"))
        assert gateway_order["amount"] == 50000
        assert gateway_order["receipt"] == order.order_id
        assert order.gateway_order_id == gateway_order["id"]

    def test_cart_cleared_after_order(self, db, service, shoe):
        make_cart(db, 7, shoe)
        service.create(order_request((shoe, "9", "black", 1), customer_id=7))
        assert db.query(Cart).filter(Cart.customer_id == 7).first() is None

class TestOrderCancellation:
    """Cancellation restores stock and refunds captured payments"""

    def test_cancel_restores_every_line(self, db, service):
        vendor = make_vendor(db)
        a = make_product(db, vendor, name="Alpha", variants=[("9", "black", 5)])
        b = make_product(db, vendor, name="Bravo", variants=[("8", "white", 3)])
        order, _ = service.create(order_request((a, "9", "black", 2), (b, "8", "white", 1)))
        ledger = InventoryLedger(db)
        assert ledger.available(a.id, "9", "black") == 3
        assert ledger.available(b.id, "8", "white") == 2

        cancelled = service.cancel(order.order_id)

        assert cancelled.status == "cancelled"
        assert {i.status for i in cancelled.items} == {"cancelled"}
        assert ledger.available(a.id, "9", "black") == 5
        assert ledger.available(b.id, "8", "white") == 3

    def test_second_cancel_is_rejected_without_restoring_again(self, db, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 2)))
        service.cancel(order.order_id)
        with pytest.raises(CancellationNotAllowed):
            service.cancel(order.order_id)
        assert InventoryLedger(db).available(shoe.id, "9", "black") == 5

    def test_item_cancelled_earlier_is_not_restored_twice(self, db, service, shoe):
        other = make_product(db, make_vendor(db, name="Other"), name="Cap", variants=[("OS", "blue", 4)])
        order, _ = service.create(order_request((shoe, "9", "black", 2), (other, "OS", "blue", 1)))
        FulfillmentService(db).update_item_status(order.order_id, order.items[0].id, "cancelled")

        service.cancel(order.order_id)

        ledger = InventoryLedger(db)
        assert ledger.available(shoe.id, "9", "black") == 5
        assert ledger.available(other.id, "OS", "blue") == 4

    def test_cannot_cancel_once_shipped(self, db, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 1)))
        FulfillmentService(db).update_item_status(order.order_id, order.items[0].id, "picked_up")

        with pytest.raises(CancellationNotAllowed) as exc:
            service.cancel(order.order_id)
        assert exc.value.status == "shipped"
        assert InventoryLedger(db).available(shoe.id, "9", "black") == 4

    def test_only_owner_can_cancel(self, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 1), customer_id=3))
        with pytest.raises(NotAuthorized):
            service.cancel(order.order_id, customer_id=4)

    def test_paid_gateway_order_is_refunded(self, db, service, gateway, settings, shoe):
        make_coupon(db, "SAVE10", discount_value="10", max_discount="80")
        order, gateway_order = service.create(
            order_request((shoe, "9", "black", 2), payment_method="gateway", coupon_code="SAVE10")
        )
        signature = compute_signature(GATEWAY_SECRET, gateway_order["id"], "pay_001")
        PaymentService(db, settings).verify(gateway_order["id"], "pay_001", signature)

        cancelled = service.cancel(order.order_id)

        assert cancelled.payment_status == "refunded"
        assert gateway.refunds == [("pay_001", 92000)]

    def test_cannot_cancel_after_an_item_is_delivered(self, db, service, gateway, settings, shoe):
        cap = make_product(db, make_vendor(db, name="Other"), name="Cap", variants=[("OS", "blue", 4)])
        order, gateway_order = service.create(
            order_request((shoe, "9", "black", 1), (cap, "OS", "blue", 1), payment_method="gateway")
        )
        signature = compute_signature(GATEWAY_SECRET, gateway_order["id"], "pay_001")
        PaymentService(db, settings).verify(gateway_order["id"], "pay_001", signature)
        FulfillmentService(db).update_item_status(order.order_id, order.items[0].id, "delivered")
        assert service.get(order.order_id).status == "confirmed"

        with pytest.raises(CancellationNotAllowed) as exc:
            service.cancel(order.order_id)

        assert exc.value.status == "delivered"
        assert gateway.refunds == []
        stored = service.get(order.order_id)
        assert stored.status == "confirmed"
        assert stored.payment_status == "paid"
        assert [i.status for i in stored.items] == ["delivered", "pending"]
        assert InventoryLedger(db).available(cap.id, "OS", "blue") == 3

    def test_vendor_view_hides_other_vendors_items(self, db, service, shoe):
        other_vendor = make_vendor(db, name="Other")
        cap = make_product(db, other_vendor, name="Cap", variants=[("OS", "blue", 4)])
        service.create(order_request((shoe, "9", "black", 1), (cap, "OS", "blue", 1)))

        views = service.list_for_vendor(other_vendor.id)
        assert len(views) == 1
        assert [i["name"] for i in views[0]["items"]] == ["Cap"]

class TestOrderQueries:
    """Owner-scoped reads and vendor order listings"""

    def test_only_owner_can_view(self, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 1), customer_id=3))
        assert service.get(order.order_id, customer_id=3).order_id == order.order_id
        with pytest.raises(NotAuthorized):
            service.get(order.order_id, customer_id=4)

    def test_vendor_orders_filtered_by_creation_date(self, service, shoe):
        order, _ = service.create(order_request((shoe, "9", "black", 1)))
        vendor_id = shoe.vendor_id
        created = order.created_at

        in_range = service.list_for_vendor(vendor_id, date_from=created - timedelta(hours=1),
                                           date_to=created + timedelta(hours=1))
        assert [v["order_id"] for v in in_range] == [order.order_id]
        assert service.list_for_vendor(vendor_id, date_to=created - timedelta(days=1)) == []
        assert service.list_for_vendor(vendor_id, date_from=created + timedelta(days=1)) == []
