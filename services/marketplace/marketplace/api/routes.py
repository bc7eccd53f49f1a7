from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from marketplace.infrastructure.db import get_db
from marketplace.infrastructure.gateway import PaymentGateway, get_gateway
from marketplace.application.orders import OrderService
from marketplace.application.fulfillment import FulfillmentService
from marketplace.application.payments import PaymentService
from marketplace.application.coupons import CouponService
from marketplace.application.settlement import SettlementService
from marketplace.application.schemas import (
    OrderCreate, OrderCreated, OrderRead, OrderCancel, ItemStatusUpdate,
    PaymentVerify, CouponValidate, CouponPreview,
    SettlementCreate, SettlementPeriod, SettlementStatusUpdate,
    VendorPaymentRead, VendorFinanceRead,
)

orders_router = APIRouter(prefix="/orders", tags=["orders"])
vendors_router = APIRouter(prefix="/vendors", tags=["vendors"])
payments_router = APIRouter(prefix="/payments", tags=["payments"])
coupons_router = APIRouter(prefix="/coupons", tags=["coupons"])
settlements_router = APIRouter(prefix="/settlements", tags=["settlements"])

@orders_router.post("/", response_model=OrderCreated, status_code=201)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    order, gateway_order = OrderService(db, gateway=gateway).create(payload)
    response = {"order": order}
    if gateway_order:
        response["gateway_order"] = {
            "id": gateway_order["id"],
            "amount": gateway_order["amount"],
            "currency": gateway_order["currency"],
        }
    return response

@orders_router.get("/", response_model=list[OrderRead])
def list_orders(
    customer_id: Optional[int] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return OrderService(db).list(customer_id=customer_id, status=status, page=page, limit=limit)

@orders_router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: str, customer_id: Optional[int] = None, db: Session = Depends(get_db)):
    return OrderService(db).get(order_id, customer_id=customer_id)

@orders_router.put("/{order_id}/cancel", response_model=OrderRead)
def cancel_order(
    order_id: str,
    payload: Optional[OrderCancel] = None,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    customer_id = payload.customer_id if payload else None
    return OrderService(db, gateway=gateway).cancel(order_id, customer_id=customer_id)

@orders_router.put("/{order_id}/items/{item_id}/status", response_model=OrderRead)
def update_item_status(order_id: str, item_id: int, payload: ItemStatusUpdate, db: Session = Depends(get_db)):
    return FulfillmentService(db).update_item_status(
        order_id,
        item_id,
        payload.status.value,
        tracking_id=payload.tracking_id,
        vendor_id=payload.vendor_id,
    )

@vendors_router.get("/{vendor_id}/orders", response_model=list[OrderRead])
def list_vendor_orders(
    vendor_id: int,
    status: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return OrderService(db).list_for_vendor(
        vendor_id, status=status, date_from=date_from, date_to=date_to, page=page, limit=limit
    )

@vendors_router.get("/{vendor_id}/settlements", response_model=VendorFinanceRead)
def vendor_finance(vendor_id: int, db: Session = Depends(get_db)):
    return SettlementService(db).vendor_finance(vendor_id)

@payments_router.post("/verify", response_model=OrderRead)
def verify_payment(
    payload: PaymentVerify,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
):
    return PaymentService(db, gateway=gateway).verify(payload.gateway_order_id, payload.gateway_payment_id, payload.signature)

@coupons_router.post("/validate", response_model=CouponPreview)
def validate_coupon(payload: CouponValidate, db: Session = Depends(get_db)):
    """Cart-page preview; never consumes a use."""
    evaluation = CouponService(db).evaluate(payload.code, payload.cart_total)
    coupon = evaluation.coupon
    return {
        "code": coupon.code,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": coupon.discount_value,
        "discount": evaluation.discount,
    }

@settlements_router.post("/", response_model=VendorPaymentRead, status_code=201)
def create_settlement(payload: SettlementCreate, db: Session = Depends(get_db)):
    return SettlementService(db).create_batch(
        payload.vendor_id, payload.period_from, payload.period_to, deductions=payload.deductions
    )

@settlements_router.post("/run", response_model=list[VendorPaymentRead], status_code=201)
def run_settlement(payload: SettlementPeriod, db: Session = Depends(get_db)):
    return SettlementService(db).settle_period(payload.period_from, payload.period_to)

@settlements_router.put("/{payment_id}/status", response_model=VendorPaymentRead)
def update_settlement_status(payment_id: int, payload: SettlementStatusUpdate, db: Session = Depends(get_db)):
    return SettlementService(db).update_status(
        payment_id, payload.status.value, transaction_id=payload.transaction_id, remarks=payload.remarks
    )

routers = [orders_router, vendors_router, payments_router, coupons_router, settlements_router]
