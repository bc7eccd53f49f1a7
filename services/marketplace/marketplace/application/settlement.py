from sqlalchemy import update
from sqlalchemy.orm import Session
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from marketplace.domain.models import Vendor, VendorPayment, OrderItem, ItemStatus, SettlementStatus, utcnow
from marketplace.errors import VendorNotFound, VendorPaymentNotFound, NothingToSettle, AlreadySettled, InvalidStatus
from shared.core import get_logger
from .pricing import to_decimal, money

logger = get_logger(__name__)

class SettlementService:
    """Groups a vendor's delivered, unsettled items into payout batches."""

    def __init__(self, db: Session):
        self.db = db

    def eligible_items(self, vendor_id: int, period_from: datetime, period_to: datetime) -> List[OrderItem]:
        return (
            self.db.query(OrderItem)
            .filter(
                OrderItem.vendor_id == vendor_id,
                OrderItem.status == ItemStatus.DELIVERED.value,
                OrderItem.delivered_at >= period_from,
                OrderItem.delivered_at <= period_to,
                OrderItem.vendor_payment_id.is_(None),
            )
            .order_by(OrderItem.id)
            .with_for_update()
            .all()
        )

    def create_batch(
        self,
        vendor_id: int,
        period_from: datetime,
        period_to: datetime,
        deductions=0,
        remarks: Optional[str] = None,
    ) -> VendorPayment:
        try:
            if self.db.get(Vendor, vendor_id) is None:
                raise VendorNotFound(vendor_id)
            items = self.eligible_items(vendor_id, period_from, period_to)
            if not items:
                raise NothingToSettle(vendor_id)

            gross = sum((item.vendor_earning for item in items), Decimal("0.00"))
            commission = sum((item.commission for item in items), Decimal("0.00"))
            deductions = money(to_decimal(deductions))
            payment = VendorPayment(
                vendor_id=vendor_id,
                period_from=period_from,
                period_to=period_to,
                gross_amount=gross,
                commission=commission,
                deductions=deductions,
                net_amount=gross - deductions,
                status=SettlementStatus.PENDING.value,
                remarks=remarks,
            )
            self.db.add(payment)
            for item in items:
                item.vendor_payment = payment
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Settlement batch {payment.id} created for vendor {vendor_id}",
            extra={'extra_fields': {
                'vendor_id': vendor_id,
                'items': len(items),
                'gross_amount': str(payment.gross_amount),
                'net_amount': str(payment.net_amount),
            }}
        )
        return payment

    def settle_period(self, period_from: datetime, period_to: datetime) -> List[VendorPayment]:
        """Batch job: one pending payout per vendor with eligible items."""
        vendor_ids = [
            row[0] for row in
            self.db.query(OrderItem.vendor_id)
            .filter(
                OrderItem.status == ItemStatus.DELIVERED.value,
                OrderItem.delivered_at >= period_from,
                OrderItem.delivered_at <= period_to,
                OrderItem.vendor_payment_id.is_(None),
            )
            .distinct()
            .order_by(OrderItem.vendor_id)
            .all()
        ]
        batches = []
        for vendor_id in vendor_ids:
            try:
                batches.append(self.create_batch(vendor_id, period_from, period_to))
            except NothingToSettle:
                # Settled concurrently since the vendor list was read
                logger.info(f"Vendor {vendor_id} has nothing left to settle")
        return batches

    def get(self, payment_id: int) -> VendorPayment:
        payment = self.db.get(VendorPayment, payment_id)
        if payment is None:
            raise VendorPaymentNotFound(payment_id)
        return payment

    def update_status(
        self,
        payment_id: int,
        status: str,
        transaction_id: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> VendorPayment:
        """Record the outcome of the (external) payout."""
        try:
            requested = SettlementStatus(status).value
        except ValueError:
            raise InvalidStatus(status) from None
        try:
            payment = (
                self.db.query(VendorPayment)
                .filter(VendorPayment.id == payment_id)
                .execution_options(populate_existing=True)
                .with_for_update()
                .first()
            )
            if payment is None:
                raise VendorPaymentNotFound(payment_id)
            if payment.status == SettlementStatus.PAID.value:
                raise AlreadySettled(payment_id)

            payment.status = requested
            if transaction_id:
                payment.transaction_id = transaction_id
            if remarks:
                payment.remarks = remarks
            if requested == SettlementStatus.PAID.value:
                payment.paid_at = utcnow()
                self._release_pending(payment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Settlement batch {payment_id} marked {requested}",
            extra={'extra_fields': {'payment_id': payment_id, 'vendor_id': payment.vendor_id, 'transaction_id': transaction_id}}
        )
        return payment

    def _release_pending(self, payment: VendorPayment) -> None:
        vendor = self.db.get(Vendor, payment.vendor_id)
        self.db.execute(
            update(Vendor)
            .where(Vendor.id == payment.vendor_id)
            .values(pending_payment=Vendor.pending_payment - payment.gross_amount)
            .execution_options(synchronize_session=False)
        )
        if vendor is not None:
            self.db.expire(vendor, ["pending_payment"])

    def vendor_finance(self, vendor_id: int) -> dict:
        if self.db.get(Vendor, vendor_id) is None:
            raise VendorNotFound(vendor_id)
        payments = (
            self.db.query(VendorPayment)
            .filter(VendorPayment.vendor_id == vendor_id)
            .order_by(VendorPayment.created_at.desc(), VendorPayment.id.desc())
            .all()
        )
        summary = {
            "total_gross": Decimal("0.00"),
            "total_commission": Decimal("0.00"),
            "total_net": Decimal("0.00"),
            "total_paid": Decimal("0.00"),
            "total_pending": Decimal("0.00"),
        }
        for payment in payments:
            summary["total_gross"] += payment.gross_amount
            summary["total_commission"] += payment.commission
            summary["total_net"] += payment.net_amount
            if payment.status == SettlementStatus.PAID.value:
                summary["total_paid"] += payment.net_amount
            elif payment.status == SettlementStatus.PENDING.value:
                summary["total_pending"] += payment.net_amount
        return {"payments": payments, "summary": summary}
