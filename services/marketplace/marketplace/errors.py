"""Error taxonomy for the marketplace order core.

Every error carries a stable ``code`` and a human readable message; the API
layer renders both with the error's ``status_code``.
"""

from typing import Optional


class MarketplaceError(Exception):
    """Base exception for all marketplace errors."""

    code = "MARKETPLACE_ERROR"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(MarketplaceError):
    code = "NOT_FOUND"
    status_code = 404


class ProductNotFound(NotFound):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class VendorNotFound(NotFound):
    code = "VENDOR_NOT_FOUND"

    def __init__(self, vendor_id: int):
        self.vendor_id = vendor_id
        super().__init__(f"Vendor {vendor_id} not found")


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__(f"Order {order_ref} not found")


class OrderItemNotFound(NotFound):
    code = "ORDER_ITEM_NOT_FOUND"

    def __init__(self, order_ref: str, item_id: int):
        self.order_ref = order_ref
        self.item_id = item_id
        super().__init__(f"Order item {item_id} not found in order {order_ref}")


class CouponNotFound(NotFound):
    code = "COUPON_NOT_FOUND"

    def __init__(self, code: str):
        self.coupon_code = code
        super().__init__(f"Invalid or expired coupon: {code}")


class VendorPaymentNotFound(NotFound):
    code = "VENDOR_PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Vendor payment {payment_id} not found")


class NothingToSettle(NotFound):
    code = "NOTHING_TO_SETTLE"

    def __init__(self, vendor_id: int):
        self.vendor_id = vendor_id
        super().__init__(f"No unsettled delivered items for vendor {vendor_id} in this period")


class OutOfStock(MarketplaceError):
    """Raised by the inventory ledger when a variant cannot cover a reservation."""

    code = "OUT_OF_STOCK"
    status_code = 409

    def __init__(self, product_id: int, size: str, color: str, quantity: int):
        self.product_id = product_id
        self.size = size
        self.color = color
        self.quantity = quantity
        super().__init__(
            f"Variant {size}/{color} of product {product_id} cannot cover quantity {quantity}"
        )


class InsufficientStock(MarketplaceError):
    """Raised by order creation; names the product for the customer."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, product_name: str, product_id: Optional[int] = None):
        self.product_name = product_name
        self.product_id = product_id
        super().__init__(f"Insufficient stock for {product_name}")


class BelowMinimum(MarketplaceError):
    code = "BELOW_MINIMUM"

    def __init__(self, min_order_value):
        self.min_order_value = min_order_value
        super().__init__(f"Minimum order value is {min_order_value}")


class UsageExceeded(MarketplaceError):
    code = "USAGE_EXCEEDED"
    status_code = 409

    def __init__(self, code: str):
        self.coupon_code = code
        super().__init__(f"Coupon usage limit reached: {code}")


class SignatureMismatch(MarketplaceError):
    code = "SIGNATURE_MISMATCH"

    def __init__(self):
        super().__init__("Invalid payment signature")


class CancellationNotAllowed(MarketplaceError):
    code = "CANCELLATION_NOT_ALLOWED"
    status_code = 409

    def __init__(self, order_ref: str, status: str):
        self.order_ref = order_ref
        self.status = status
        super().__init__(f"Order {order_ref} cannot be cancelled at this stage ({status})")


class InvalidTransition(MarketplaceError):
    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move order item from {current} to {requested}")


class InvalidStatus(MarketplaceError):
    code = "INVALID_STATUS"
    status_code = 422

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Unknown status: {status}")


class AlreadySettled(MarketplaceError):
    code = "ALREADY_SETTLED"
    status_code = 409

    def __init__(self, payment_id: int):
        self.payment_id = payment_id
        super().__init__(f"Vendor payment {payment_id} is already paid")


class InvalidPricing(MarketplaceError):
    code = "INVALID_PRICING"
    status_code = 422

    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Combined discounts for {product_name} exceed 100%")


class NotAuthorized(MarketplaceError):
    code = "NOT_AUTHORIZED"
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class PaymentGatewayError(MarketplaceError):
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = 502
