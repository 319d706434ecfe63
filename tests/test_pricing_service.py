from __future__ import annotations

import unittest
from decimal import Decimal

from pos_ledger.models import DiscountType
from pos_ledger.services.pricing_service import (
    BillLine,
    Discount,
    compute_bill,
    effective_unit_price,
    money,
    order_discount_amount,
    price_line,
)


def _pct(value: str) -> Discount:
    return Discount(type=DiscountType.PERCENTAGE, value=Decimal(value))


def _fixed(value: str) -> Discount:
    return Discount(type=DiscountType.FIXED, value=Decimal(value))


class PricingServiceTests(unittest.TestCase):
    def test_percentage_discount_line_total(self) -> None:
        priced = price_line(BillLine(product='TEE', size='M', mrp=Decimal('1000'), quantity=2, discount=_pct('10')))
        self.assertEqual(priced.selling_price, Decimal('900'))
        self.assertEqual(priced.line_total, Decimal('1800'))

    def test_percentage_above_hundred_is_clamped(self) -> None:
        self.assertEqual(
            effective_unit_price(Decimal('499'), _pct('150')),
            effective_unit_price(Decimal('499'), _pct('100')),
        )
        self.assertEqual(effective_unit_price(Decimal('499'), _pct('150')), Decimal('0'))

    def test_fixed_discount_above_mrp_floors_at_zero(self) -> None:
        self.assertEqual(effective_unit_price(Decimal('300'), _fixed('450')), Decimal('0'))
        self.assertEqual(effective_unit_price(Decimal('300'), _fixed('50')), Decimal('250'))

    def test_order_percentage_discount_uses_mrp_less_item_discounts(self) -> None:
        amount = order_discount_amount(_pct('10'), mrp_total=Decimal('1800'), item_discount_total=Decimal('200'))
        self.assertEqual(amount, Decimal('160'))

    def test_order_fixed_discount_is_taken_as_is(self) -> None:
        amount = order_discount_amount(_fixed('75'), mrp_total=Decimal('1800'), item_discount_total=Decimal('200'))
        self.assertEqual(amount, Decimal('75'))

    def test_compute_bill_subtracts_order_discount_from_line_totals(self) -> None:
        lines = [
            BillLine(product='TEE', size='M', mrp=Decimal('1000'), quantity=1, discount=_fixed('200')),
            BillLine(product='CAP', size='FREE', mrp=Decimal('800'), quantity=1),
        ]
        totals = compute_bill(lines, _pct('10'))
        self.assertEqual(totals.mrp_total, Decimal('1800'))
        self.assertEqual(totals.subtotal, Decimal('1600'))
        self.assertEqual(totals.item_discount_total, Decimal('200'))
        self.assertEqual(totals.order_discount_amount, Decimal('160'))
        self.assertEqual(totals.grand_total, Decimal('1440'))

    def test_grand_total_never_negative(self) -> None:
        lines = [BillLine(product='TEE', size='M', mrp=Decimal('100'), quantity=1)]
        totals = compute_bill(lines, _fixed('500'))
        self.assertEqual(totals.grand_total, Decimal('0'))

    def test_compute_bill_is_repeatable(self) -> None:
        lines = [
            BillLine(product='TEE', size='M', mrp=Decimal('333.33'), quantity=3, discount=_pct('12.5')),
            BillLine(product='KURTA', size='L', mrp=Decimal('1499'), quantity=1, discount=_fixed('99')),
        ]
        first = compute_bill(lines, _pct('5'))
        second = compute_bill(lines, _pct('5'))
        self.assertEqual(first, second)

    def test_money_rounds_half_up_to_cents(self) -> None:
        self.assertEqual(money(Decimal('10.005')), Decimal('10.01'))
        self.assertEqual(money('7'), Decimal('7.00'))


if __name__ == '__main__':
    unittest.main()
