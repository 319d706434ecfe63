from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from pos_ledger.exceptions import ValidationError
from pos_ledger.models import PaymentMode
from pos_ledger.services.ledger_store import ExpenseRecord, LedgerStore
from pos_ledger.services.pricing_service import money

logger = logging.getLogger(__name__)


def _payment_mode(value: PaymentMode | str) -> PaymentMode:
    try:
        return PaymentMode((value or '').strip().upper())
    except ValueError as exc:
        raise ValidationError('Select a payment mode: cash or UPI') from exc


def record_expense(
    store: LedgerStore,
    *,
    name: str,
    amount: Decimal | str,
    payment_mode: PaymentMode | str,
    now: datetime | None = None,
) -> ExpenseRecord:
    name = (name or '').strip()
    if not name:
        raise ValidationError('Expense name is required')
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError('Enter a valid expense amount') from exc
    if not value.is_finite() or value <= 0:
        raise ValidationError('Expense amount must be greater than zero')
    mode = _payment_mode(payment_mode)

    expense = store.insert_expense(
        ExpenseRecord(
            name=name,
            amount=money(value),
            payment_mode=mode,
            created_at=now or datetime.now(timezone.utc),
        )
    )
    logger.info('Recorded %s expense %s of %s', mode.value, name, expense.amount)
    return expense


def expense_names(store: LedgerStore) -> list[str]:
    """Distinct names already used, for the expense picker."""
    return store.query_expense_names()
