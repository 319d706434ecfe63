from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from pos_ledger.config import settings
from pos_ledger.models import PaymentMode
from pos_ledger.services.ledger_store import ExpenseRecord, LedgerStore, OrderLineRecord
from pos_ledger.services.pricing_service import ZERO
from pos_ledger.services.settlement_service import net_pay_later


@dataclass(frozen=True)
class DailySalesSummary:
    day: date
    orders: int
    order_amount: Decimal
    upi: Decimal
    cash: Decimal
    pay_later: Decimal
    expenses: list[ExpenseRecord]
    expense_total: Decimal
    cash_expenses: Decimal
    available_cash: Decimal


@dataclass(frozen=True)
class OrderSummary:
    order_no: int
    customer_phone: str
    customer_name: str
    created_at: datetime
    lines: list[OrderLineRecord]
    order_amount: Decimal
    upi_amount: Decimal
    cash_amount: Decimal
    pay_later: Decimal
    net_pay_later: Decimal


def business_today(tz_name: str | None = None) -> date:
    return datetime.now(ZoneInfo(tz_name or settings.business_timezone)).date()


def _day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    tz = ZoneInfo(tz_name)
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start, start + timedelta(days=1)


def _first_line_per_order(lines: list[OrderLineRecord]) -> dict[int, OrderLineRecord]:
    orders: dict[int, OrderLineRecord] = {}
    for line in lines:
        orders.setdefault(line.order_no, line)
    return orders


def daily_sales_summary(store: LedgerStore, *, day: date, tz_name: str | None = None) -> DailySalesSummary:
    start, end = _day_bounds(day, tz_name or settings.business_timezone)
    # Order-level amounts repeat on every line; count each order once.
    orders = _first_line_per_order(store.query_order_lines(created_from=start, created_to=end))
    heads = orders.values()
    cash = sum((o.cash_amount for o in heads), ZERO)

    expenses = store.query_expenses(created_from=start, created_to=end)
    cash_expenses = sum((e.amount for e in expenses if e.payment_mode == PaymentMode.CASH), ZERO)
    return DailySalesSummary(
        day=day,
        orders=len(orders),
        order_amount=sum((o.order_amount for o in heads), ZERO),
        upi=sum((o.upi_amount for o in heads), ZERO),
        cash=cash,
        pay_later=sum((o.pay_later for o in heads), ZERO),
        expenses=expenses,
        expense_total=sum((e.amount for e in expenses), ZERO),
        cash_expenses=cash_expenses,
        # Cash in the drawer: cash taken on orders less expenses paid in cash.
        available_cash=cash - cash_expenses,
    )


def list_orders(
    store: LedgerStore,
    *,
    phone: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    tz_name: str | None = None,
) -> list[OrderSummary]:
    tz = tz_name or settings.business_timezone
    created_from = _day_bounds(from_date, tz)[0] if from_date else None
    created_to = _day_bounds(to_date, tz)[1] if to_date else None
    lines = store.query_order_lines(phone=phone, created_from=created_from, created_to=created_to)

    lines_by_order: dict[int, list[OrderLineRecord]] = {}
    for line in lines:
        lines_by_order.setdefault(line.order_no, []).append(line)

    transactions_by_order: dict[int, list] = {}
    for tx in store.query_settlement_transactions(sorted(lines_by_order)):
        transactions_by_order.setdefault(tx.order_no, []).append(tx)

    summaries = []
    for order_no, order_lines in lines_by_order.items():
        head = order_lines[0]
        summaries.append(
            OrderSummary(
                order_no=order_no,
                customer_phone=head.customer_phone,
                customer_name=head.customer_name,
                created_at=head.created_at,
                lines=order_lines,
                order_amount=head.order_amount,
                upi_amount=head.upi_amount,
                cash_amount=head.cash_amount,
                pay_later=head.pay_later,
                net_pay_later=net_pay_later(head.pay_later, transactions_by_order.get(order_no, [])),
            )
        )
    return sorted(summaries, key=lambda s: s.order_no, reverse=True)
