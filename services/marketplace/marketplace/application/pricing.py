"""Line pricing: discounts, platform commission and vendor earning.

All arithmetic is done in ``Decimal`` in a fixed order; values are rounded to
two places only when the result is built.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary float expansion
    return Decimal(str(value))

def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

@dataclass(frozen=True)
class LinePrice:
    mrp: Decimal
    selling_price: Decimal
    vendor_discount_amount: Decimal
    website_discount_amount: Decimal
    final_unit_price: Decimal
    quantity: int
    line_total: Decimal
    commission: Decimal
    vendor_earning: Decimal

def discounts_exceed_price(vendor_discount_pct, website_discount_pct) -> bool:
    """True when the combined discounts would push the unit price below zero."""
    return to_decimal(vendor_discount_pct) + to_decimal(website_discount_pct) > HUNDRED

def calculate_line_price(
    selling_price,
    mrp,
    vendor_discount_pct,
    website_discount_pct,
    commission_pct,
    quantity: int,
) -> LinePrice:
    # Negative prices are not rejected here, see discounts_exceed_price
    selling_price = to_decimal(selling_price)
    vendor_discount_amount = selling_price * to_decimal(vendor_discount_pct) / HUNDRED
    website_discount_amount = selling_price * to_decimal(website_discount_pct) / HUNDRED
    final_unit_price = selling_price - vendor_discount_amount - website_discount_amount
    line_total = final_unit_price * quantity
    commission = line_total * to_decimal(commission_pct) / HUNDRED

    return LinePrice(
        mrp=money(to_decimal(mrp)),
        selling_price=money(selling_price),
        vendor_discount_amount=money(vendor_discount_amount),
        website_discount_amount=money(website_discount_amount),
        final_unit_price=money(final_unit_price),
        quantity=quantity,
        line_total=money(line_total),
        commission=money(commission),
        # Derived from the rounded parts so commission + earning == line_total
        vendor_earning=money(line_total) - money(commission),
    )

def to_minor_units(amount) -> int:
    """Gateway amounts are integers in the currency's minor unit (paise)."""
    return int((to_decimal(amount) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
