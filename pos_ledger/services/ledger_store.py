from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from pos_ledger.models import DiscountType, MovementKind, PaymentMode


@dataclass(frozen=True)
class Movement:
    id: int | None
    product: str
    size: str
    quantity: int
    kind: MovementKind
    occurred_at: datetime
    unit_price: Decimal | None = None
    note: str | None = None
    image_ref: str | None = None


@dataclass(frozen=True)
class CustomerRecord:
    phone: str
    name: str


@dataclass(frozen=True)
class OrderLineRecord:
    order_no: int
    customer_phone: str
    customer_name: str
    product: str
    size: str
    mrp: Decimal
    quantity: int
    item_discount_type: DiscountType
    item_discount_value: Decimal
    selling_price: Decimal
    line_total: Decimal
    order_discount_type: DiscountType
    order_discount_value: Decimal
    order_amount: Decimal
    upi_amount: Decimal
    cash_amount: Decimal
    pay_later: Decimal
    created_at: datetime


@dataclass(frozen=True)
class SettlementRecord:
    order_no: int
    upi_amount: Decimal
    cash_amount: Decimal
    phone: str
    customer_name: str
    created_at: datetime
    id: int | None = None


@dataclass(frozen=True)
class OrderBalance:
    order_no: int
    original: Decimal
    paid: Decimal
    remaining: Decimal
    order_amount: Decimal = Decimal('0')
    customer_name: str = ''
    phone: str = ''


@dataclass(frozen=True)
class ExpenseRecord:
    name: str
    amount: Decimal
    payment_mode: PaymentMode
    created_at: datetime
    id: int | None = None


@dataclass(frozen=True)
class ProductRecord:
    code: str
    mrp: Decimal
    style_code: str | None = None
    image_url: str | None = None


class LedgerStore(Protocol):
    def query_movements(
        self,
        *,
        product: str | None = None,
        size: str | None = None,
        kinds: list[MovementKind] | None = None,
    ) -> list[Movement]: ...

    def insert_movements(self, movements: list[Movement]) -> list[Movement]: ...

    def update_movement_remaining(self, movement_id: int, new_remaining: int) -> None: ...

    def query_max_order_no(self) -> int | None: ...

    def insert_order_lines(self, lines: list[OrderLineRecord]) -> None: ...

    def query_order_lines(
        self,
        *,
        phone: str | None = None,
        order_no: int | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[OrderLineRecord]: ...

    def get_customer(self, phone: str) -> CustomerRecord | None: ...

    def upsert_customer_if_absent(self, phone: str, name: str) -> CustomerRecord: ...

    def insert_settlement_transaction(self, transaction: SettlementRecord) -> SettlementRecord: ...

    def query_settlement_transactions(self, order_nos: list[int]) -> list[SettlementRecord]: ...

    def query_order_balances(self, phone_or_order_no: str) -> list[OrderBalance]: ...

    def query_product(self, code: str) -> ProductRecord | None: ...

    def insert_expense(self, expense: ExpenseRecord) -> ExpenseRecord: ...

    def query_expenses(
        self,
        *,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[ExpenseRecord]: ...

    def query_expense_names(self) -> list[str]: ...
