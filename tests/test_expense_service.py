from __future__ import annotations

import unittest
from datetime import datetime, timezone
from decimal import Decimal

from pos_ledger.exceptions import ValidationError
from pos_ledger.models import PaymentMode
from pos_ledger.services.expense_service import expense_names, record_expense
from pos_ledger.services.memory_ledger_store import InMemoryLedgerStore

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


class ExpenseServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryLedgerStore()

    def test_records_trimmed_name_and_rounded_amount(self) -> None:
        expense = record_expense(self.store, name='  Tea  ', amount='45.505', payment_mode='cash', now=T0)
        self.assertEqual(expense.id, 1)
        self.assertEqual(expense.name, 'Tea')
        self.assertEqual(expense.amount, Decimal('45.51'))
        self.assertEqual(expense.payment_mode, PaymentMode.CASH)
        self.assertEqual(expense.created_at, T0)

    def test_accepts_enum_mode(self) -> None:
        expense = record_expense(self.store, name='Courier', amount=Decimal('120'), payment_mode=PaymentMode.UPI)
        self.assertEqual(expense.payment_mode, PaymentMode.UPI)

    def test_rejects_invalid_input_without_writing(self) -> None:
        cases = [
            {'name': ' ', 'amount': '10', 'payment_mode': 'cash'},
            {'name': 'Tea', 'amount': '0', 'payment_mode': 'cash'},
            {'name': 'Tea', 'amount': '-5', 'payment_mode': 'cash'},
            {'name': 'Tea', 'amount': 'ten', 'payment_mode': 'cash'},
            {'name': 'Tea', 'amount': '10', 'payment_mode': 'card'},
            {'name': 'Tea', 'amount': '10', 'payment_mode': ''},
        ]
        for kwargs in cases:
            with self.subTest(**kwargs):
                with self.assertRaises(ValidationError):
                    record_expense(self.store, **kwargs)
        self.assertEqual(self.store.expenses, [])

    def test_expense_names_are_distinct_and_sorted(self) -> None:
        for name in ['Tea', 'Courier', 'Tea']:
            record_expense(self.store, name=name, amount='10', payment_mode='cash')
        self.assertEqual(expense_names(self.store), ['Courier', 'Tea'])


if __name__ == '__main__':
    unittest.main()
