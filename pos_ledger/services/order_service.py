from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from pos_ledger.config import settings
from pos_ledger.exceptions import (
    BalanceMismatchError,
    InsufficientStockError,
    PartialFailureWarning,
    PersistenceError,
    ValidationError,
)
from pos_ledger.models import DiscountType, MovementKind
from pos_ledger.services.inventory_service import DraftAllocation, available_quantity, fifo_lots
from pos_ledger.services.ledger_store import CustomerRecord, LedgerStore, Movement, OrderLineRecord
from pos_ledger.services.pricing_service import (
    HUNDRED,
    NO_DISCOUNT,
    ZERO,
    BillLine,
    BillTotals,
    Discount,
    compute_bill,
    money,
)

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r'^\d{10}$')


@dataclass(frozen=True)
class CustomerInput:
    phone: str
    name: str


@dataclass(frozen=True)
class PaymentSplit:
    upi: Decimal = ZERO
    cash: Decimal = ZERO
    pay_later: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return Decimal(self.upi) + Decimal(self.cash) + Decimal(self.pay_later)


@dataclass(frozen=True)
class PlacedOrder:
    order_no: int
    customer: CustomerRecord
    totals: BillTotals
    payment: PaymentSplit
    created_at: datetime


class _PlacementSteps:
    """Tracks which independent writes have completed so a failure can be reported precisely."""

    def __init__(self, order_no: int | None = None) -> None:
        self.order_no = order_no
        self.completed: list[str] = []
        self.wrote = False

    def done(self, step: str, *, wrote: bool = True) -> None:
        self.completed.append(step)
        self.wrote = self.wrote or wrote

    def fail(self, step: str, exc: Exception) -> Exception:
        if not self.wrote:
            logger.error('Order placement failed at %s before any write: %s', step, exc)
            return exc
        logger.error(
            'Order %s partially placed: failed at %s after %s: %s',
            self.order_no,
            step,
            ', '.join(self.completed),
            exc,
        )
        return PartialFailureWarning(
            operation='Order',
            reference=self.order_no,
            completed_steps=self.completed,
            failed_step=step,
            cause=exc,
        )


def _validate_discount(discount: Discount, *, label: str) -> None:
    if Decimal(discount.value) < 0:
        raise ValidationError(f'{label} discount cannot be negative')


def validate_bill(
    customer: CustomerInput,
    lines: list[BillLine],
    order_discount: Discount,
    payment: PaymentSplit,
) -> BillTotals:
    if not PHONE_RE.match(customer.phone or ''):
        raise ValidationError('Customer phone must be exactly 10 digits')
    if not (customer.name or '').strip():
        raise ValidationError('Customer name is required')
    if not lines:
        raise ValidationError('Add at least one item to the bill')

    for idx, line in enumerate(lines, start=1):
        if not (line.product or '').strip():
            raise ValidationError(f'Item {idx}: product is required')
        if not (line.size or '').strip():
            raise ValidationError(f'Item {idx}: size is required')
        if line.quantity <= 0:
            raise ValidationError(f'Item {idx}: quantity must be greater than zero')
        if Decimal(line.mrp) < 0:
            raise ValidationError(f'Item {idx}: MRP cannot be negative')
        _validate_discount(line.discount, label=f'Item {idx}')

    _validate_discount(order_discount, label='Order')
    if order_discount.type == DiscountType.PERCENTAGE and Decimal(order_discount.value) > HUNDRED:
        raise ValidationError('Order discount percentage cannot exceed 100')
    if min(Decimal(payment.upi), Decimal(payment.cash), Decimal(payment.pay_later)) < 0:
        raise ValidationError('Payment amounts cannot be negative')

    totals = compute_bill(lines, order_discount)
    if money(payment.total) != money(totals.grand_total):
        raise BalanceMismatchError(money(totals.grand_total), money(payment.total))
    return totals


def check_stock(store: LedgerStore, lines: list[BillLine]) -> None:
    requested: dict[tuple[str, str], int] = {}
    for line in lines:
        key = (line.product, line.size)
        requested[key] = requested.get(key, 0) + line.quantity

    for (product, size), qty in requested.items():
        available = available_quantity(store.query_movements(product=product, size=size), product, size)
        if qty > available:
            raise InsufficientStockError(product, size, qty, available)


def draft_available_quantity(store: LedgerStore, lines: list[DraftAllocation], line_index: int) -> int:
    line = lines[line_index]
    movements = store.query_movements(product=line.product, size=line.size)
    return available_quantity(movements, line.product, line.size, draft_lines=lines, line_index=line_index)


def next_order_no(store: LedgerStore) -> int:
    current = store.query_max_order_no()
    if current is None:
        return settings.first_order_no
    return int(current) + 1


def _consume_fifo(store: LedgerStore, line: BillLine) -> None:
    lots = fifo_lots(store.query_movements(product=line.product, size=line.size), line.product, line.size)
    on_hand = sum(lot.quantity for lot in lots)
    if on_hand < line.quantity:
        raise InsufficientStockError(line.product, line.size, line.quantity, on_hand)

    remaining = line.quantity
    for lot in lots:
        if remaining <= 0:
            break
        take = min(remaining, lot.quantity)
        store.update_movement_remaining(lot.id, lot.quantity - take)
        remaining -= take


def _order_rows(
    order_no: int,
    customer: CustomerInput,
    totals: BillTotals,
    order_discount: Discount,
    payment: PaymentSplit,
    created_at: datetime,
) -> list[OrderLineRecord]:
    grand_total = money(totals.grand_total)
    return [
        OrderLineRecord(
            order_no=order_no,
            customer_phone=customer.phone,
            customer_name=customer.name.strip(),
            product=priced.line.product,
            size=priced.line.size,
            mrp=money(priced.line.mrp),
            quantity=priced.line.quantity,
            item_discount_type=priced.line.discount.type,
            item_discount_value=money(priced.line.discount.value),
            selling_price=money(priced.selling_price),
            line_total=money(priced.line_total),
            order_discount_type=order_discount.type,
            order_discount_value=money(order_discount.value),
            order_amount=grand_total,
            upi_amount=money(payment.upi),
            cash_amount=money(payment.cash),
            pay_later=money(payment.pay_later),
            created_at=created_at,
        )
        for priced in totals.lines
    ]


def place_order(
    store: LedgerStore,
    *,
    customer: CustomerInput,
    lines: list[BillLine],
    order_discount: Discount = NO_DISCOUNT,
    payment: PaymentSplit,
    now: datetime | None = None,
) -> PlacedOrder:
    """
    Validate a bill, then write it to the ledger as a sequence of independent store calls:
    order number, customer, order lines, FIFO lot decrements, sold movements.

    Nothing is rolled back if a later step fails; the caller gets PartialFailureWarning
    naming the steps that did complete.
    """
    customer = CustomerInput(phone=(customer.phone or '').strip(), name=(customer.name or '').strip())
    lines = [
        BillLine(
            product=(line.product or '').strip(),
            size=(line.size or '').strip(),
            mrp=Decimal(line.mrp),
            quantity=int(line.quantity),
            discount=line.discount,
        )
        for line in lines
    ]
    totals = validate_bill(customer, lines, order_discount, payment)
    check_stock(store, lines)

    created_at = now or datetime.now(timezone.utc)
    steps = _PlacementSteps()

    step = 'order number'
    try:
        steps.order_no = next_order_no(store)
        steps.done(step, wrote=False)

        step = 'customer'
        customer_record = store.upsert_customer_if_absent(customer.phone, customer.name)
        steps.done(step)

        step = 'order lines'
        store.insert_order_lines(
            _order_rows(steps.order_no, customer, totals, order_discount, payment, created_at)
        )
        steps.done(step)

        for line in lines:
            step = f'stock allocation for {line.product} / {line.size}'
            _consume_fifo(store, line)
            steps.done(step)

        step = 'sold movements'
        note = f'Order #{steps.order_no} - {customer.name}'
        store.insert_movements(
            [
                Movement(
                    id=None,
                    product=line.product,
                    size=line.size,
                    quantity=line.quantity,
                    kind=MovementKind.SOLD,
                    occurred_at=created_at,
                    unit_price=money(priced.selling_price),
                    note=note,
                )
                for line, priced in zip(lines, totals.lines)
            ]
        )
        steps.done(step)
    except (PersistenceError, InsufficientStockError) as exc:
        failure = steps.fail(step, exc)
        if failure is exc:
            raise
        raise failure from exc

    logger.info(
        'Placed order %s for %s: %d line(s), total %s',
        steps.order_no,
        customer.phone,
        len(lines),
        money(totals.grand_total),
    )
    return PlacedOrder(
        order_no=steps.order_no,
        customer=customer_record,
        totals=totals,
        payment=payment,
        created_at=created_at,
    )
