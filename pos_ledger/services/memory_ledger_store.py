from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from pos_ledger.exceptions import PersistenceError
from pos_ledger.models import MovementKind
from pos_ledger.services.ledger_store import (
    CustomerRecord,
    ExpenseRecord,
    Movement,
    OrderBalance,
    OrderLineRecord,
    ProductRecord,
    SettlementRecord,
)
from pos_ledger.services.settlement_service import build_order_balances, parse_balance_lookup


class InMemoryLedgerStore:
    def __init__(self, *, products: list[ProductRecord] | None = None) -> None:
        self.movements: list[Movement] = []
        self.order_lines: list[OrderLineRecord] = []
        self.customers: dict[str, CustomerRecord] = {}
        self.settlements: list[SettlementRecord] = []
        self.products: dict[str, ProductRecord] = {p.code: p for p in (products or [])}
        self.expenses: list[ExpenseRecord] = []
        self._next_movement_id = 1
        self._next_settlement_id = 1
        self._next_expense_id = 1

    def query_movements(
        self,
        *,
        product: str | None = None,
        size: str | None = None,
        kinds: list[MovementKind] | None = None,
    ) -> list[Movement]:
        return [
            m
            for m in self.movements
            if (product is None or m.product == product)
            and (size is None or m.size == size)
            and (not kinds or m.kind in kinds)
        ]

    def insert_movements(self, movements: list[Movement]) -> list[Movement]:
        inserted = []
        for movement in movements:
            stored = replace(movement, id=self._next_movement_id)
            self._next_movement_id += 1
            self.movements.append(stored)
            inserted.append(stored)
        return inserted

    def update_movement_remaining(self, movement_id: int, new_remaining: int) -> None:
        for idx, movement in enumerate(self.movements):
            if movement.id == movement_id:
                self.movements[idx] = replace(movement, quantity=new_remaining)
                return
        raise PersistenceError(f'Movement {movement_id} not found')

    def query_max_order_no(self) -> int | None:
        return max((line.order_no for line in self.order_lines), default=None)

    def insert_order_lines(self, lines: list[OrderLineRecord]) -> None:
        self.order_lines.extend(lines)

    def query_order_lines(
        self,
        *,
        phone: str | None = None,
        order_no: int | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[OrderLineRecord]:
        rows = [
            line
            for line in self.order_lines
            if (phone is None or line.customer_phone == phone)
            and (order_no is None or line.order_no == order_no)
            and (created_from is None or line.created_at >= created_from)
            and (created_to is None or line.created_at < created_to)
        ]
        return sorted(rows, key=lambda line: (line.created_at, line.order_no), reverse=True)

    def get_customer(self, phone: str) -> CustomerRecord | None:
        return self.customers.get(phone)

    def upsert_customer_if_absent(self, phone: str, name: str) -> CustomerRecord:
        existing = self.customers.get(phone)
        if existing:
            return existing
        customer = CustomerRecord(phone=phone, name=name)
        self.customers[phone] = customer
        return customer

    def insert_settlement_transaction(self, transaction: SettlementRecord) -> SettlementRecord:
        stored = replace(transaction, id=self._next_settlement_id)
        self._next_settlement_id += 1
        self.settlements.append(stored)
        return stored

    def query_settlement_transactions(self, order_nos: list[int]) -> list[SettlementRecord]:
        wanted = set(order_nos)
        return [tx for tx in self.settlements if tx.order_no in wanted]

    def query_order_balances(self, phone_or_order_no: str) -> list[OrderBalance]:
        phone, order_no = parse_balance_lookup(phone_or_order_no)
        lines = self.query_order_lines(phone=phone, order_no=order_no)
        transactions = self.query_settlement_transactions(sorted({line.order_no for line in lines}))
        return build_order_balances(lines, transactions)

    def query_product(self, code: str) -> ProductRecord | None:
        return self.products.get(code)

    def insert_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        stored = replace(expense, id=self._next_expense_id)
        self._next_expense_id += 1
        self.expenses.append(stored)
        return stored

    def query_expenses(
        self,
        *,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[ExpenseRecord]:
        return [
            e
            for e in self.expenses
            if (created_from is None or e.created_at >= created_from)
            and (created_to is None or e.created_at < created_to)
        ]

    def query_expense_names(self) -> list[str]:
        return sorted({e.name for e in self.expenses})
