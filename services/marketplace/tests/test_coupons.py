import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace.application.coupons import CouponService
from marketplace.domain.models import Coupon, utcnow
from marketplace.errors import CouponNotFound, UsageExceeded, BelowMinimum

from conftest import make_coupon

def test_percentage_discount_capped_by_max_discount(db):
    make_coupon(db, "SAVE10", discount_value="10", max_discount="80")
    evaluation = CouponService(db).evaluate("SAVE10", Decimal("1000"))
    assert evaluation.discount == Decimal("80.00")

def test_percentage_discount_under_cap(db):
    make_coupon(db, "SAVE10", discount_value="10", max_discount="80")
    evaluation = CouponService(db).evaluate("SAVE10", Decimal("600"))
    assert evaluation.discount == Decimal("60.00")

def test_fixed_discount_is_not_capped(db):
    make_coupon(db, "FLAT150", discount_type="fixed", discount_value="150", max_discount="50")
    evaluation = CouponService(db).evaluate("FLAT150", Decimal("100"))
    assert evaluation.discount == Decimal("150.00")

def test_code_lookup_is_case_insensitive(db):
    make_coupon(db, "WELCOME")
    evaluation = CouponService(db).evaluate("  welcome ", 200)
    assert evaluation.coupon.code == "WELCOME"

def test_unknown_inactive_and_expired_codes(db):
    make_coupon(db, "OFF", is_active=False)
    now = utcnow()
    db.add(Coupon(
        code="OLD",
        discount_type="percentage",
        discount_value=Decimal("5"),
        valid_from=now - timedelta(days=10),
        valid_until=now - timedelta(days=1),
    ))
    db.commit()

    service = CouponService(db)
    for code in ["NOPE", "OFF", "OLD"]:
        with pytest.raises(CouponNotFound) as exc:
            service.evaluate(code, 1000)
        assert exc.value.code == "COUPON_NOT_FOUND"

def test_below_minimum_order_value(db):
    make_coupon(db, "BIG", min_order_value="999")
    with pytest.raises(BelowMinimum) as exc:
        CouponService(db).evaluate("BIG", Decimal("998.99"))
    assert "999" in exc.value.message

def test_evaluate_does_not_consume_usage(db):
    coupon = make_coupon(db, "ONCE", usage_limit=1)
    service = CouponService(db)
    for _ in range(3):
        service.evaluate("ONCE", 500)
    db.refresh(coupon)
    assert coupon.used_count == 0

def test_usage_limit_allows_exactly_n_redemptions(db):
    coupon = make_coupon(db, "TWICE", usage_limit=2)
    service = CouponService(db)

    service.redeem(coupon)
    service.redeem(coupon)
    db.commit()
    with pytest.raises(UsageExceeded):
        service.redeem(coupon)

    db.rollback()
    db.refresh(coupon)
    assert coupon.used_count == 2
    with pytest.raises(UsageExceeded):
        service.evaluate("TWICE", 500)

def test_unlimited_coupon_keeps_counting(db):
    coupon = make_coupon(db, "ALWAYS", usage_limit=None)
    service = CouponService(db)
    for _ in range(5):
        service.redeem(coupon)
    db.commit()
    assert coupon.used_count == 5

def test_concurrent_redemptions_stop_at_the_limit(session_factory):
    setup = session_factory()
    coupon_id = make_coupon(setup, "RUSH", usage_limit=3).id
    setup.close()

    outcomes = []
    lock = threading.Lock()

    def checkout():
        db = session_factory()
        try:
            CouponService(db).redeem(db.get(Coupon, coupon_id))
            db.commit()
            outcome = "redeemed"
        except UsageExceeded:
            db.rollback()
            outcome = "exceeded"
        finally:
            db.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=checkout) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    check = session_factory()
    assert outcomes.count("redeemed") == 3
    assert outcomes.count("exceeded") == 5
    assert check.get(Coupon, coupon_id).used_count == 3
    check.close()
