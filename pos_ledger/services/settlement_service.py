from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from pos_ledger.exceptions import BalanceMismatchError, PartialFailureWarning, PersistenceError, ValidationError
from pos_ledger.services.ledger_store import LedgerStore, OrderBalance, OrderLineRecord, SettlementRecord
from pos_ledger.services.pricing_service import ZERO, money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementAllocation:
    order_no: int
    upi_applied: Decimal
    cash_applied: Decimal


@dataclass(frozen=True)
class SettlementResult:
    transactions: list[SettlementRecord]
    balances: list[OrderBalance]


def parse_balance_lookup(phone_or_order_no: str) -> tuple[str | None, int | None]:
    value = (phone_or_order_no or '').strip()
    if not value.isdigit():
        raise ValidationError('Enter a 10-digit phone number or an order number')
    if len(value) == 10:
        return value, None
    return None, int(value)


def net_pay_later(original: Decimal, transactions: Iterable[SettlementRecord]) -> Decimal:
    paid = sum((tx.upi_amount + tx.cash_amount for tx in transactions), ZERO)
    return max(ZERO, Decimal(original) - paid)


def build_order_balances(lines: Iterable[OrderLineRecord], transactions: Iterable[SettlementRecord]) -> list[OrderBalance]:
    # Order-level amounts are replicated on every line, so the first line seen stands for the order.
    orders: dict[int, OrderLineRecord] = {}
    for line in lines:
        orders.setdefault(line.order_no, line)

    by_order: dict[int, list[SettlementRecord]] = {}
    for tx in transactions:
        by_order.setdefault(tx.order_no, []).append(tx)

    balances = []
    for order_no in sorted(orders):
        line = orders[order_no]
        applied = by_order.get(order_no, [])
        balances.append(
            OrderBalance(
                order_no=order_no,
                original=line.pay_later,
                paid=sum((tx.upi_amount + tx.cash_amount for tx in applied), ZERO),
                remaining=net_pay_later(line.pay_later, applied),
                order_amount=line.order_amount,
                customer_name=line.customer_name,
                phone=line.customer_phone,
            )
        )
    return balances


def allocate_payment(
    selected: list[OrderBalance],
    upi_amount: Decimal,
    cash_amount: Decimal,
) -> list[SettlementAllocation]:
    """
    Split one UPI + cash payment across the selected orders, in the order given.

    UPI is applied first to each order, then cash covers whatever the UPI left open.
    The payment must cover the selected balances exactly.
    """
    if not selected:
        raise ValidationError('Select at least one order to settle')
    upi_amount = Decimal(upi_amount)
    cash_amount = Decimal(cash_amount)
    if upi_amount < 0 or cash_amount < 0:
        raise ValidationError('Payment amounts cannot be negative')

    selected_total = sum((order.remaining for order in selected), ZERO)
    paid_total = upi_amount + cash_amount
    if money(selected_total) != money(paid_total):
        raise BalanceMismatchError(money(selected_total), money(paid_total))

    rem_upi = upi_amount
    rem_cash = cash_amount
    allocations: list[SettlementAllocation] = []
    for order in selected:
        upi_applied = min(rem_upi, order.remaining)
        rem_upi -= upi_applied
        remaining_after_upi = order.remaining - upi_applied
        cash_applied = min(rem_cash, remaining_after_upi)
        rem_cash -= cash_applied
        if upi_applied > 0 or cash_applied > 0:
            allocations.append(
                SettlementAllocation(order_no=order.order_no, upi_applied=upi_applied, cash_applied=cash_applied)
            )
    return allocations


def order_balances(store: LedgerStore, phone_or_order_no: str) -> list[OrderBalance]:
    parse_balance_lookup(phone_or_order_no)
    return store.query_order_balances(phone_or_order_no.strip())


def settle_pay_later(
    store: LedgerStore,
    *,
    lookup: str,
    order_nos: list[int],
    upi_amount: Decimal,
    cash_amount: Decimal,
    now: datetime | None = None,
) -> SettlementResult:
    balances = {balance.order_no: balance for balance in order_balances(store, lookup)}
    if not order_nos:
        raise ValidationError('Select at least one order to settle')
    if len(set(order_nos)) != len(order_nos):
        raise ValidationError('An order can only be selected once')
    unknown = [order_no for order_no in order_nos if order_no not in balances]
    if unknown:
        raise ValidationError(f'Order(s) not found for {lookup}: {", ".join(str(o) for o in unknown)}')

    selected = [balances[order_no] for order_no in order_nos]
    allocations = allocate_payment(selected, upi_amount, cash_amount)

    created_at = now or datetime.now(timezone.utc)
    inserted: list[SettlementRecord] = []
    for allocation in allocations:
        balance = balances[allocation.order_no]
        try:
            inserted.append(
                store.insert_settlement_transaction(
                    SettlementRecord(
                        order_no=allocation.order_no,
                        upi_amount=allocation.upi_applied,
                        cash_amount=allocation.cash_applied,
                        phone=balance.phone,
                        customer_name=balance.customer_name,
                        created_at=created_at,
                    )
                )
            )
        except PersistenceError as exc:
            if not inserted:
                logger.error('Settlement for %s failed before any transaction was written: %s', lookup, exc)
                raise
            logger.error(
                'Settlement for %s stopped after %d of %d transaction(s): %s',
                lookup,
                len(inserted),
                len(allocations),
                exc,
            )
            raise PartialFailureWarning(
                operation='Pay-later settlement',
                reference=lookup,
                completed_steps=[f'transaction for order {tx.order_no}' for tx in inserted],
                failed_step=f'transaction for order {allocation.order_no}',
                cause=exc,
            ) from exc

    logger.info('Settled %d pay-later order(s) for %s', len(inserted), lookup)
    return SettlementResult(transactions=inserted, balances=order_balances(store, lookup))
