from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from pos_ledger.exceptions import InsufficientStockError, ValidationError
from pos_ledger.models import MovementKind
from pos_ledger.services.ledger_store import LedgerStore, Movement

logger = logging.getLogger(__name__)

SIZE_ORDER = ('XS', 'S', 'M', 'L', 'XL', 'XXL', 'XXXL')
_SIZE_RANK = {size: idx for idx, size in enumerate(SIZE_ORDER)}


@dataclass(frozen=True)
class DraftAllocation:
    product: str
    size: str
    quantity: int


@dataclass(frozen=True)
class StockEntryInput:
    size: str
    quantity: int
    note: str | None = None
    unit_price: Decimal | None = None
    image_ref: str | None = None


@dataclass(frozen=True)
class ProductStock:
    product: str
    sizes: list[tuple[str, int]]
    total: int


def size_sort_key(size: str) -> tuple[int, int, str]:
    rank = _SIZE_RANK.get(size)
    if rank is None:
        return (1, 0, size)
    return (0, rank, size)


def _matches(movement: Movement, product: str, size: str) -> bool:
    return movement.product == product and movement.size == size


def _signed_quantity(movement: Movement) -> int:
    if movement.kind == MovementKind.ADDED:
        return movement.quantity
    if movement.kind == MovementKind.REMOVED:
        return -movement.quantity
    if movement.kind == MovementKind.SOLD:
        # Sales already decremented the lots they consumed.
        return 0
    raise ValueError(f'Unsupported movement kind: {movement.kind}')


def on_hand_by_size(movements: Iterable[Movement]) -> dict[tuple[str, str], int]:
    totals: dict[tuple[str, str], int] = {}
    for movement in movements:
        key = (movement.product, movement.size)
        totals[key] = totals.get(key, 0) + _signed_quantity(movement)
    return totals


def available_quantity(
    movements: Iterable[Movement],
    product: str,
    size: str,
    *,
    draft_lines: list[DraftAllocation] | None = None,
    line_index: int | None = None,
) -> int:
    """
    Units of product/size that can still be sold.

    Sold rows count for nothing here: a sale already lowered the remaining quantity of
    the lots it consumed, so only ADDED remainders and REMOVED write-offs are summed.

    When a bill is being composed, pass its lines as `draft_lines` and the index of the line
    being edited as `line_index`: quantities already on the other lines for the same
    product/size are held back so one bill cannot oversell across its own lines.
    """
    on_hand = sum(_signed_quantity(m) for m in movements if _matches(m, product, size))
    held = 0
    for idx, draft in enumerate(draft_lines or []):
        if idx == line_index:
            continue
        if draft.product == product and draft.size == size:
            held += draft.quantity
    return max(0, on_hand - held)


def available_sizes(movements: Iterable[Movement], product: str) -> list[str]:
    totals = on_hand_by_size(m for m in movements if m.product == product)
    sizes = [size for (_, size), qty in totals.items() if qty > 0]
    return sorted(sizes, key=size_sort_key)


def fifo_lots(movements: Iterable[Movement], product: str, size: str) -> list[Movement]:
    lots = [
        m
        for m in movements
        if m.kind == MovementKind.ADDED and _matches(m, product, size) and m.quantity > 0
    ]
    return sorted(lots, key=lambda m: (m.occurred_at, m.id or 0))


def stock_summary(movements: Iterable[Movement]) -> list[ProductStock]:
    by_product: dict[str, list[tuple[str, int]]] = {}
    for (product, size), qty in on_hand_by_size(movements).items():
        if qty <= 0:
            continue
        by_product.setdefault(product, []).append((size, qty))

    return [
        ProductStock(
            product=product,
            sizes=sorted(sizes, key=lambda pair: size_sort_key(pair[0])),
            total=sum(qty for _, qty in sizes),
        )
        for product, sizes in sorted(by_product.items())
    ]


def sellable_products(movements: Iterable[Movement]) -> list[str]:
    return [row.product for row in stock_summary(movements)]


def list_movements(
    store: LedgerStore,
    *,
    product: str | None = None,
    size: str | None = None,
    kinds: list[MovementKind] | None = None,
) -> list[Movement]:
    rows = store.query_movements(product=product, size=size, kinds=kinds)
    return sorted(rows, key=lambda m: (m.occurred_at, m.id or 0), reverse=True)


def record_stock_entry(
    store: LedgerStore,
    *,
    product: str,
    entries: list[StockEntryInput],
    occurred_at: datetime | None = None,
) -> list[Movement]:
    """Positive quantities open a new lot, negative quantities write off stock."""
    product = product.strip()
    if not product:
        raise ValidationError('Product is required')
    if not entries:
        raise ValidationError('Add at least one size with a quantity')

    when = occurred_at or datetime.now(timezone.utc)
    movements = store.query_movements(product=product)
    additions: dict[str, int] = {}
    removals: dict[str, int] = {}
    new_movements: list[Movement] = []

    for entry in entries:
        size = entry.size.strip()
        if not size:
            raise ValidationError('Size is required for every stock entry')
        if entry.quantity == 0:
            raise ValidationError(f'Quantity for size {size} cannot be zero')

        if entry.quantity > 0:
            kind = MovementKind.ADDED
            additions[size] = additions.get(size, 0) + entry.quantity
        else:
            kind = MovementKind.REMOVED
            removals[size] = removals.get(size, 0) + abs(entry.quantity)

        new_movements.append(
            Movement(
                id=None,
                product=product,
                size=size,
                quantity=abs(entry.quantity),
                kind=kind,
                occurred_at=when,
                unit_price=entry.unit_price,
                note=(entry.note or '').strip() or None,
                image_ref=entry.image_ref,
            )
        )

    for size, qty in removals.items():
        # Lots opened in the same entry can cover its write-offs.
        available = available_quantity(movements, product, size) + additions.get(size, 0)
        if qty > available:
            raise InsufficientStockError(product, size, qty, available)

    inserted = store.insert_movements(new_movements)
    logger.info('Recorded %d stock movement(s) for %s', len(inserted), product)
    return inserted
