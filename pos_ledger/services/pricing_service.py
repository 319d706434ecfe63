from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from pos_ledger.models import DiscountType

ZERO = Decimal('0')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')


@dataclass(frozen=True)
class Discount:
    type: DiscountType = DiscountType.PERCENTAGE
    value: Decimal = ZERO


NO_DISCOUNT = Discount()


@dataclass(frozen=True)
class BillLine:
    product: str
    size: str
    mrp: Decimal
    quantity: int
    discount: Discount = NO_DISCOUNT


@dataclass(frozen=True)
class PricedLine:
    line: BillLine
    selling_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class BillTotals:
    lines: list[PricedLine]
    mrp_total: Decimal
    subtotal: Decimal
    item_discount_total: Decimal
    order_discount_amount: Decimal
    grand_total: Decimal


def money(value: Decimal | int | str) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(value, high))


def effective_unit_price(mrp: Decimal, discount: Discount) -> Decimal:
    mrp = Decimal(mrp)
    value = Decimal(discount.value)
    if discount.type == DiscountType.PERCENTAGE:
        percentage = _clamp(value, ZERO, HUNDRED)
        return mrp - (mrp * percentage / HUNDRED)
    if discount.type == DiscountType.FIXED:
        return max(ZERO, mrp - _clamp(value, ZERO, max(mrp, ZERO)))
    raise ValueError(f'Unsupported discount type: {discount.type}')


def price_line(line: BillLine) -> PricedLine:
    selling_price = effective_unit_price(line.mrp, line.discount)
    return PricedLine(line=line, selling_price=selling_price, line_total=selling_price * line.quantity)


def mrp_total(lines: list[BillLine]) -> Decimal:
    return sum((Decimal(line.mrp) * line.quantity for line in lines), ZERO)


def order_discount_amount(discount: Discount, *, mrp_total: Decimal, item_discount_total: Decimal) -> Decimal:
    value = Decimal(discount.value)
    if discount.type == DiscountType.FIXED:
        return value
    if discount.type == DiscountType.PERCENTAGE:
        return (mrp_total - item_discount_total) * value / HUNDRED
    raise ValueError(f'Unsupported discount type: {discount.type}')


def compute_bill(lines: list[BillLine], order_discount: Discount = NO_DISCOUNT) -> BillTotals:
    """
    Price every line and the whole bill from the current line and discount state.

    The order-level percentage discount is taken on (MRP total - item discounts) while the
    grand total subtracts it from the sum of line totals. The two bases are kept separate
    so stored order amounts match what the bill showed at checkout.
    """
    priced = [price_line(line) for line in lines]
    total_mrp = mrp_total(lines)
    subtotal = sum((p.line_total for p in priced), ZERO)
    item_discount_total = total_mrp - subtotal
    extra = order_discount_amount(order_discount, mrp_total=total_mrp, item_discount_total=item_discount_total)
    return BillTotals(
        lines=priced,
        mrp_total=total_mrp,
        subtotal=subtotal,
        item_discount_total=item_discount_total,
        order_discount_amount=extra,
        grand_total=max(ZERO, subtotal - extra),
    )
