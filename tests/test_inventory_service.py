from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from pos_ledger.exceptions import InsufficientStockError, ValidationError
from pos_ledger.models import MovementKind
from pos_ledger.services.inventory_service import (
    DraftAllocation,
    StockEntryInput,
    available_quantity,
    available_sizes,
    fifo_lots,
    list_movements,
    record_stock_entry,
    sellable_products,
    stock_summary,
)
from pos_ledger.services.ledger_store import Movement
from pos_ledger.services.memory_ledger_store import InMemoryLedgerStore

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def _movement(idx: int, kind: MovementKind, qty: int, *, product: str = 'TEE', size: str = 'M', minutes: int = 0) -> Movement:
    return Movement(
        id=idx,
        product=product,
        size=size,
        quantity=qty,
        kind=kind,
        occurred_at=T0 + timedelta(minutes=minutes),
    )


class InventoryServiceTests(unittest.TestCase):
    def test_available_is_remaining_lots_less_removals(self) -> None:
        movements = [
            _movement(1, MovementKind.ADDED, 4),
            _movement(2, MovementKind.ADDED, 6, minutes=5),
            _movement(3, MovementKind.REMOVED, 3, minutes=10),
            # Sold rows are history only; the lots above already hold what is left.
            _movement(4, MovementKind.SOLD, 2, minutes=15),
        ]
        self.assertEqual(available_quantity(movements, 'TEE', 'M'), 7)
        self.assertEqual(available_quantity(movements, 'TEE', 'L'), 0)

    def test_available_never_negative(self) -> None:
        movements = [_movement(1, MovementKind.ADDED, 1), _movement(2, MovementKind.REMOVED, 3)]
        self.assertEqual(available_quantity(movements, 'TEE', 'M'), 0)

    def test_draft_lines_hold_back_other_lines_only(self) -> None:
        movements = [_movement(1, MovementKind.ADDED, 5)]
        draft = [
            DraftAllocation(product='TEE', size='M', quantity=2),
            DraftAllocation(product='TEE', size='M', quantity=1),
            DraftAllocation(product='TEE', size='L', quantity=4),
        ]
        self.assertEqual(available_quantity(movements, 'TEE', 'M', draft_lines=draft, line_index=1), 3)
        self.assertEqual(available_quantity(movements, 'TEE', 'M', draft_lines=draft, line_index=0), 4)

    def test_sizes_follow_garment_order_then_alphabetical(self) -> None:
        movements = [
            _movement(i, MovementKind.ADDED, 1, size=size)
            for i, size in enumerate(['XXL', '32', 'M', 'XS', '30', 'L'], start=1)
        ]
        movements.append(_movement(99, MovementKind.REMOVED, 1, size='L'))
        self.assertEqual(available_sizes(movements, 'TEE'), ['XS', 'M', 'XXL', '30', '32'])

    def test_fifo_lots_oldest_first_and_skip_empty(self) -> None:
        movements = [
            _movement(3, MovementKind.ADDED, 2, minutes=30),
            _movement(1, MovementKind.ADDED, 0, minutes=0),
            _movement(2, MovementKind.ADDED, 5, minutes=10),
            _movement(4, MovementKind.REMOVED, 1, minutes=40),
        ]
        self.assertEqual([lot.id for lot in fifo_lots(movements, 'TEE', 'M')], [2, 3])

    def test_stock_summary_and_sellable_products(self) -> None:
        movements = [
            _movement(1, MovementKind.ADDED, 3, product='TEE', size='L'),
            _movement(2, MovementKind.ADDED, 2, product='TEE', size='S'),
            _movement(3, MovementKind.ADDED, 1, product='CAP', size='FREE'),
            _movement(4, MovementKind.REMOVED, 1, product='CAP', size='FREE'),
        ]
        summary = stock_summary(movements)
        self.assertEqual(len(summary), 1)
        self.assertEqual(summary[0].product, 'TEE')
        self.assertEqual(summary[0].sizes, [('S', 2), ('L', 3)])
        self.assertEqual(summary[0].total, 5)
        self.assertEqual(sellable_products(movements), ['TEE'])


class RecordStockEntryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryLedgerStore()

    def test_positive_adds_lot_and_negative_writes_off(self) -> None:
        record_stock_entry(self.store, product='TEE', entries=[StockEntryInput(size='M', quantity=5)], occurred_at=T0)
        inserted = record_stock_entry(
            self.store,
            product=' TEE ',
            entries=[StockEntryInput(size='M', quantity=-2, note='  damaged  ')],
            occurred_at=T0 + timedelta(hours=1),
        )
        self.assertEqual(inserted[0].kind, MovementKind.REMOVED)
        self.assertEqual(inserted[0].quantity, 2)
        self.assertEqual(inserted[0].note, 'damaged')
        self.assertEqual(available_quantity(self.store.query_movements(), 'TEE', 'M'), 3)
        self.assertEqual([m.kind for m in list_movements(self.store)], [MovementKind.REMOVED, MovementKind.ADDED])

    def test_over_removal_is_rejected_without_writing(self) -> None:
        record_stock_entry(self.store, product='TEE', entries=[StockEntryInput(size='M', quantity=2)], occurred_at=T0)
        with self.assertRaises(InsufficientStockError) as ctx:
            record_stock_entry(
                self.store,
                product='TEE',
                entries=[StockEntryInput(size='M', quantity=-1), StockEntryInput(size='M', quantity=-2)],
            )
        self.assertEqual(ctx.exception.requested, 3)
        self.assertEqual(ctx.exception.available, 2)
        self.assertEqual(len(self.store.movements), 1)

    def test_write_off_covered_by_lot_in_same_entry(self) -> None:
        inserted = record_stock_entry(
            self.store,
            product='TEE',
            entries=[StockEntryInput(size='M', quantity=5), StockEntryInput(size='M', quantity=-2)],
            occurred_at=T0,
        )
        self.assertEqual([m.kind for m in inserted], [MovementKind.ADDED, MovementKind.REMOVED])
        self.assertEqual(available_quantity(self.store.query_movements(), 'TEE', 'M'), 3)

    def test_write_off_beyond_existing_and_new_lots_rejected(self) -> None:
        record_stock_entry(self.store, product='TEE', entries=[StockEntryInput(size='M', quantity=1)], occurred_at=T0)
        with self.assertRaises(InsufficientStockError) as ctx:
            record_stock_entry(
                self.store,
                product='TEE',
                entries=[StockEntryInput(size='M', quantity=2), StockEntryInput(size='M', quantity=-4)],
            )
        self.assertEqual(ctx.exception.available, 3)
        self.assertEqual(len(self.store.movements), 1)

    def test_rejects_blank_product_zero_quantity_and_empty_entries(self) -> None:
        with self.assertRaises(ValidationError):
            record_stock_entry(self.store, product=' ', entries=[StockEntryInput(size='M', quantity=1)])
        with self.assertRaises(ValidationError):
            record_stock_entry(self.store, product='TEE', entries=[StockEntryInput(size='M', quantity=0)])
        with self.assertRaises(ValidationError):
            record_stock_entry(self.store, product='TEE', entries=[])
        self.assertEqual(self.store.movements, [])


if __name__ == '__main__':
    unittest.main()
