from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Optional

from marketplace.domain.models import PaymentMethod, ItemStatus, SettlementStatus

class Address(BaseModel):
    name: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str

class CartLine(BaseModel):
    product_id: int
    size: str
    color: str
    quantity: int = Field(gt=0)

class OrderCreate(BaseModel):
    customer_id: int
    items: list[CartLine] = Field(min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: PaymentMethod
    coupon_code: Optional[str] = None
    notes: Optional[str] = None

class OrderCancel(BaseModel):
    customer_id: Optional[int] = None

class ItemStatusUpdate(BaseModel):
    status: ItemStatus
    tracking_id: Optional[str] = None
    # Acting vendor; when given it must own the item
    vendor_id: Optional[int] = None

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    vendor_id: int
    name: str
    image: Optional[str] = None
    size: str
    color: str
    sku: Optional[str] = None
    quantity: int
    mrp: float
    selling_price: float
    vendor_discount: float
    website_discount: float
    final_price: float
    commission: float
    vendor_earning: float
    status: str
    tracking_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    id: int
    order_id: str
    customer_id: int
    shipping_address: Address
    billing_address: Address
    subtotal: float
    shipping_charges: float
    coupon_code: Optional[str] = None
    coupon_discount: float
    total: float
    payment_method: str
    payment_status: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    status: str
    estimated_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    items: list[OrderItemRead]
    class Config:
        from_attributes = True

class GatewayOrderRead(BaseModel):
    id: str
    amount: int
    currency: str

class OrderCreated(BaseModel):
    order: OrderRead
    gateway_order: Optional[GatewayOrderRead] = None

class PaymentVerify(BaseModel):
    gateway_order_id: str
    gateway_payment_id: str
    signature: str

class CouponValidate(BaseModel):
    code: str
    cart_total: float = Field(ge=0)

class CouponPreview(BaseModel):
    code: str
    description: str
    discount_type: str
    discount_value: float
    discount: float

class SettlementPeriod(BaseModel):
    period_from: datetime
    period_to: datetime

    @model_validator(mode="after")
    def check_period(self):
        if self.period_from > self.period_to:
            raise ValueError("period_from must not be after period_to")
        return self

class SettlementCreate(SettlementPeriod):
    vendor_id: int
    deductions: float = Field(default=0, ge=0)

class SettlementStatusUpdate(BaseModel):
    status: SettlementStatus
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None

class VendorPaymentRead(BaseModel):
    id: int
    vendor_id: int
    period_from: datetime
    period_to: datetime
    gross_amount: float
    commission: float
    deductions: float
    net_amount: float
    status: str
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    remarks: Optional[str] = None
    created_at: datetime
    order_ids: list[str] = []
    class Config:
        from_attributes = True

class FinanceSummary(BaseModel):
    total_gross: float = 0
    total_commission: float = 0
    total_net: float = 0
    total_paid: float = 0
    total_pending: float = 0

class VendorFinanceRead(BaseModel):
    payments: list[VendorPaymentRead]
    summary: FinanceSummary
