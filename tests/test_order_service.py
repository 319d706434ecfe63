from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

from ledger_fixtures import FailingLotUpdateStore

from pos_ledger.exceptions import (
    BalanceMismatchError,
    InsufficientStockError,
    PartialFailureWarning,
    PersistenceError,
    ValidationError,
)
from pos_ledger.models import DiscountType, MovementKind
from pos_ledger.services.inventory_service import DraftAllocation, available_quantity
from pos_ledger.services.ledger_store import Movement
from pos_ledger.services.memory_ledger_store import InMemoryLedgerStore
from pos_ledger.services.order_service import (
    CustomerInput,
    PaymentSplit,
    draft_available_quantity,
    next_order_no,
    place_order,
)
from pos_ledger.services.pricing_service import BillLine, Discount

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
ASHA = CustomerInput(phone='9876543210', name='Asha')


def _lot(qty: int, *, product: str = 'TEE', size: str = 'M', minutes: int = 0) -> Movement:
    return Movement(
        id=None,
        product=product,
        size=size,
        quantity=qty,
        kind=MovementKind.ADDED,
        occurred_at=T0 + timedelta(minutes=minutes),
    )


def _line(qty: int, *, mrp: str = '500', product: str = 'TEE', size: str = 'M', discount: Discount | None = None) -> BillLine:
    return BillLine(product=product, size=size, mrp=Decimal(mrp), quantity=qty, discount=discount or Discount())


class OrderServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryLedgerStore()
        self.store.insert_movements([_lot(3, minutes=0), _lot(5, minutes=10)])

    def test_first_order_gets_starting_number(self) -> None:
        placed = place_order(self.store, customer=ASHA, lines=[_line(1)], payment=PaymentSplit(cash=Decimal('500')), now=T0)
        self.assertEqual(placed.order_no, 123451)
        self.assertEqual(next_order_no(self.store), 123452)

    def test_order_numbers_follow_current_maximum(self) -> None:
        place_order(self.store, customer=ASHA, lines=[_line(1)], payment=PaymentSplit(upi=Decimal('500')), now=T0)
        second = place_order(self.store, customer=ASHA, lines=[_line(1)], payment=PaymentSplit(upi=Decimal('500')), now=T0)
        self.assertEqual(second.order_no, 123452)

    def test_sale_consumes_oldest_lot_first(self) -> None:
        place_order(self.store, customer=ASHA, lines=[_line(4)], payment=PaymentSplit(cash=Decimal('2000')), now=T0)
        lots = self.store.query_movements(kinds=[MovementKind.ADDED])
        self.assertEqual([lot.quantity for lot in lots], [0, 4])
        self.assertEqual(available_quantity(self.store.query_movements(), 'TEE', 'M'), 4)

    def test_sold_movement_records_order_and_selling_price(self) -> None:
        discount = Discount(type=DiscountType.PERCENTAGE, value=Decimal('10'))
        place_order(
            self.store,
            customer=ASHA,
            lines=[_line(2, discount=discount)],
            payment=PaymentSplit(upi=Decimal('500'), pay_later=Decimal('400')),
            now=T0,
        )
        sold = self.store.query_movements(kinds=[MovementKind.SOLD])
        self.assertEqual(len(sold), 1)
        self.assertEqual(sold[0].quantity, 2)
        self.assertEqual(sold[0].unit_price, Decimal('450.00'))
        self.assertEqual(sold[0].note, 'Order #123451 - Asha')

    def test_order_lines_replicate_order_level_fields(self) -> None:
        self.store.insert_movements([_lot(2, product='CAP')])
        place_order(
            self.store,
            customer=ASHA,
            lines=[_line(1), _line(1, product='CAP')],
            order_discount=Discount(type=DiscountType.FIXED, value=Decimal('100')),
            payment=PaymentSplit(cash=Decimal('400'), upi=Decimal('500')),
            now=T0,
        )
        lines = self.store.query_order_lines(order_no=123451)
        self.assertEqual(len(lines), 2)
        self.assertEqual({line.order_amount for line in lines}, {Decimal('900.00')})
        self.assertEqual({line.order_discount_type for line in lines}, {DiscountType.FIXED})
        self.assertEqual({(line.upi_amount, line.cash_amount, line.pay_later) for line in lines}, {
            (Decimal('500.00'), Decimal('400.00'), Decimal('0.00')),
        })

    def test_insufficient_stock_leaves_ledger_untouched(self) -> None:
        before = list(self.store.movements)
        with self.assertRaises(InsufficientStockError) as ctx:
            place_order(self.store, customer=ASHA, lines=[_line(9)], payment=PaymentSplit(cash=Decimal('4500')))
        self.assertEqual(ctx.exception.available, 8)
        self.assertEqual(self.store.movements, before)
        self.assertEqual(self.store.order_lines, [])
        self.assertEqual(self.store.customers, {})

    def test_quantity_is_checked_across_lines_of_same_bill(self) -> None:
        with self.assertRaises(InsufficientStockError):
            place_order(
                self.store,
                customer=ASHA,
                lines=[_line(5), _line(4)],
                payment=PaymentSplit(cash=Decimal('4500')),
            )
        self.assertEqual(self.store.order_lines, [])

    def test_payment_must_match_grand_total(self) -> None:
        with self.assertRaises(BalanceMismatchError) as ctx:
            place_order(self.store, customer=ASHA, lines=[_line(1)], payment=PaymentSplit(cash=Decimal('499.99')))
        self.assertEqual(ctx.exception.expected, Decimal('500.00'))
        self.assertEqual(self.store.order_lines, [])

    def test_invalid_input_rejected_before_any_write(self) -> None:
        cases = [
            (CustomerInput(phone='98765', name='Asha'), [_line(1)]),
            (CustomerInput(phone='9876543210', name='  '), [_line(1)]),
            (ASHA, []),
            (ASHA, [_line(0)]),
            (ASHA, [_line(1, size=' ')]),
        ]
        for customer, lines in cases:
            with self.subTest(customer=customer, lines=lines):
                with self.assertRaises(ValidationError):
                    place_order(self.store, customer=customer, lines=lines, payment=PaymentSplit(cash=Decimal('500')))
        with self.assertRaises(ValidationError):
            place_order(
                self.store,
                customer=ASHA,
                lines=[_line(1)],
                order_discount=Discount(type=DiscountType.PERCENTAGE, value=Decimal('120')),
                payment=PaymentSplit(),
            )
        self.assertEqual(self.store.order_lines, [])

    def test_existing_customer_name_is_kept(self) -> None:
        self.store.upsert_customer_if_absent('9876543210', 'Asha Rao')
        placed = place_order(
            self.store,
            customer=CustomerInput(phone='9876543210', name='A. Rao'),
            lines=[_line(1)],
            payment=PaymentSplit(cash=Decimal('500')),
        )
        self.assertEqual(placed.customer.name, 'Asha Rao')
        self.assertEqual(self.store.get_customer('9876543210').name, 'Asha Rao')

    def test_failure_after_writes_reports_partial_failure(self) -> None:
        store = FailingLotUpdateStore()
        store.insert_movements([_lot(3)])
        with patch('pos_ledger.services.order_service.logger') as logger:
            with self.assertRaises(PartialFailureWarning) as ctx:
                place_order(store, customer=ASHA, lines=[_line(1)], payment=PaymentSplit(cash=Decimal('500')))
        warning = ctx.exception
        self.assertEqual(warning.reference, 123451)
        self.assertEqual(warning.completed_steps, ['order number', 'customer', 'order lines'])
        self.assertEqual(warning.failed_step, 'stock allocation for TEE / M')
        self.assertIn('manual reconciliation', str(warning))
        self.assertIn('connection reset by peer', str(warning))
        logger.error.assert_called_once()
        # Nothing was compensated.
        self.assertEqual(len(store.order_lines), 1)
        self.assertIn('9876543210', store.customers)

    def test_failure_before_any_write_propagates_store_error(self) -> None:
        with patch.object(self.store, 'upsert_customer_if_absent', side_effect=PersistenceError('timeout')):
            with self.assertRaises(PersistenceError) as ctx:
                place_order(self.store, customer=ASHA, lines=[_line(1)], payment=PaymentSplit(cash=Decimal('500')))
        self.assertNotIsInstance(ctx.exception, PartialFailureWarning)
        self.assertEqual(str(ctx.exception), 'timeout')
        self.assertEqual(self.store.order_lines, [])

    def test_draft_available_quantity_excludes_current_line(self) -> None:
        lines = [
            DraftAllocation(product='TEE', size='M', quantity=3),
            DraftAllocation(product='TEE', size='M', quantity=2),
        ]
        self.assertEqual(draft_available_quantity(self.store, lines, 1), 5)
        self.assertEqual(draft_available_quantity(self.store, lines, 0), 6)


if __name__ == '__main__':
    unittest.main()
