from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from typing import TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_ledger.exceptions import PersistenceError
from pos_ledger.models import (
    Customer,
    Expense,
    InventoryMovement,
    MovementKind,
    OrderLine,
    PayLaterTransaction,
    Product,
)
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

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _store_call(fn: Callable[..., T]) -> Callable[..., T]:
    @wraps(fn)
    def wrapper(self: SqlLedgerStore, *args, **kwargs) -> T:
        try:
            return fn(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error('Ledger store call %s failed: %s', fn.__name__, exc)
            raise PersistenceError(str(exc)) from exc

    return wrapper


def _to_movement(row: InventoryMovement) -> Movement:
    return Movement(
        id=row.id,
        product=row.product,
        size=row.size,
        quantity=row.quantity,
        kind=row.kind,
        occurred_at=row.occurred_at,
        unit_price=row.unit_price,
        note=row.note,
        image_ref=row.image_ref,
    )


def _to_order_line(row: OrderLine) -> OrderLineRecord:
    return OrderLineRecord(
        order_no=row.order_no,
        customer_phone=row.customer_phone,
        customer_name=row.customer_name,
        product=row.product,
        size=row.size,
        mrp=row.mrp,
        quantity=row.quantity,
        item_discount_type=row.item_discount_type,
        item_discount_value=row.item_discount_value,
        selling_price=row.selling_price,
        line_total=row.line_total,
        order_discount_type=row.order_discount_type,
        order_discount_value=row.order_discount_value,
        order_amount=row.order_amount,
        upi_amount=row.upi_amount,
        cash_amount=row.cash_amount,
        pay_later=row.pay_later,
        created_at=row.created_at,
    )


def _to_settlement(row: PayLaterTransaction) -> SettlementRecord:
    return SettlementRecord(
        id=row.id,
        order_no=row.order_no,
        upi_amount=row.upi_amount,
        cash_amount=row.cash_amount,
        phone=row.phone,
        customer_name=row.customer_name,
        created_at=row.created_at,
    )


def _to_expense(row: Expense) -> ExpenseRecord:
    return ExpenseRecord(
        id=row.id,
        name=row.name,
        amount=row.amount,
        payment_mode=row.payment_mode,
        created_at=row.created_at,
    )


class SqlLedgerStore:
    """
    LedgerStore over a SQLAlchemy session.

    Every write commits on its own. Multi-step operations built on this store are
    therefore not atomic: a failure leaves the earlier steps in place.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    @_store_call
    def query_movements(
        self,
        *,
        product: str | None = None,
        size: str | None = None,
        kinds: list[MovementKind] | None = None,
    ) -> list[Movement]:
        query = select(InventoryMovement)
        if product is not None:
            query = query.where(InventoryMovement.product == product)
        if size is not None:
            query = query.where(InventoryMovement.size == size)
        if kinds:
            query = query.where(InventoryMovement.kind.in_(kinds))
        rows = self.db.execute(query.order_by(InventoryMovement.id.asc())).scalars().all()
        return [_to_movement(row) for row in rows]

    @_store_call
    def insert_movements(self, movements: list[Movement]) -> list[Movement]:
        rows = [
            InventoryMovement(
                product=m.product,
                size=m.size,
                quantity=m.quantity,
                kind=m.kind,
                occurred_at=m.occurred_at,
                unit_price=m.unit_price,
                note=m.note,
                image_ref=m.image_ref,
            )
            for m in movements
        ]
        self.db.add_all(rows)
        self.db.commit()
        return [_to_movement(row) for row in rows]

    @_store_call
    def update_movement_remaining(self, movement_id: int, new_remaining: int) -> None:
        result = self.db.execute(
            update(InventoryMovement)
            .where(InventoryMovement.id == movement_id, InventoryMovement.kind == MovementKind.ADDED)
            .values(quantity=new_remaining)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise PersistenceError(f'Stock lot {movement_id} not found')
        self.db.commit()

    @_store_call
    def query_max_order_no(self) -> int | None:
        value = self.db.execute(select(func.max(OrderLine.order_no))).scalar_one_or_none()
        return int(value) if value is not None else None

    @_store_call
    def insert_order_lines(self, lines: list[OrderLineRecord]) -> None:
        self.db.add_all(
            OrderLine(
                order_no=line.order_no,
                customer_phone=line.customer_phone,
                customer_name=line.customer_name,
                product=line.product,
                size=line.size,
                mrp=line.mrp,
                quantity=line.quantity,
                item_discount_type=line.item_discount_type,
                item_discount_value=line.item_discount_value,
                selling_price=line.selling_price,
                line_total=line.line_total,
                order_discount_type=line.order_discount_type,
                order_discount_value=line.order_discount_value,
                order_amount=line.order_amount,
                upi_amount=line.upi_amount,
                cash_amount=line.cash_amount,
                pay_later=line.pay_later,
                created_at=line.created_at,
            )
            for line in lines
        )
        self.db.commit()

    @_store_call
    def query_order_lines(
        self,
        *,
        phone: str | None = None,
        order_no: int | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[OrderLineRecord]:
        query = select(OrderLine)
        if phone is not None:
            query = query.where(OrderLine.customer_phone == phone)
        if order_no is not None:
            query = query.where(OrderLine.order_no == order_no)
        if created_from is not None:
            query = query.where(OrderLine.created_at >= created_from)
        if created_to is not None:
            query = query.where(OrderLine.created_at < created_to)
        rows = self.db.execute(
            query.order_by(OrderLine.created_at.desc(), OrderLine.order_no.desc(), OrderLine.id.asc())
        ).scalars().all()
        return [_to_order_line(row) for row in rows]

    @_store_call
    def get_customer(self, phone: str) -> CustomerRecord | None:
        row = self.db.execute(select(Customer).where(Customer.phone == phone)).scalar_one_or_none()
        if not row:
            return None
        return CustomerRecord(phone=row.phone, name=row.name)

    @_store_call
    def upsert_customer_if_absent(self, phone: str, name: str) -> CustomerRecord:
        # Check-then-insert: two terminals billing a new customer at once can race here.
        existing = self.db.execute(select(Customer).where(Customer.phone == phone)).scalar_one_or_none()
        if existing:
            return CustomerRecord(phone=existing.phone, name=existing.name)
        self.db.add(Customer(phone=phone, name=name))
        self.db.commit()
        return CustomerRecord(phone=phone, name=name)

    @_store_call
    def insert_settlement_transaction(self, transaction: SettlementRecord) -> SettlementRecord:
        row = PayLaterTransaction(
            order_no=transaction.order_no,
            upi_amount=transaction.upi_amount,
            cash_amount=transaction.cash_amount,
            phone=transaction.phone,
            customer_name=transaction.customer_name,
            created_at=transaction.created_at,
        )
        self.db.add(row)
        self.db.commit()
        return _to_settlement(row)

    @_store_call
    def query_settlement_transactions(self, order_nos: list[int]) -> list[SettlementRecord]:
        if not order_nos:
            return []
        rows = self.db.execute(
            select(PayLaterTransaction)
            .where(PayLaterTransaction.order_no.in_(order_nos))
            .order_by(PayLaterTransaction.id.asc())
        ).scalars().all()
        return [_to_settlement(row) for row in rows]

    def query_order_balances(self, phone_or_order_no: str) -> list[OrderBalance]:
        phone, order_no = parse_balance_lookup(phone_or_order_no)
        lines = self.query_order_lines(phone=phone, order_no=order_no)
        transactions = self.query_settlement_transactions(sorted({line.order_no for line in lines}))
        return build_order_balances(lines, transactions)

    @_store_call
    def query_product(self, code: str) -> ProductRecord | None:
        row = self.db.execute(
            select(Product).where(Product.code == code, Product.active.is_(True))
        ).scalar_one_or_none()
        if not row:
            return None
        return ProductRecord(code=row.code, mrp=row.mrp, style_code=row.style_code, image_url=row.image_url)

    @_store_call
    def insert_expense(self, expense: ExpenseRecord) -> ExpenseRecord:
        row = Expense(
            name=expense.name,
            amount=expense.amount,
            payment_mode=expense.payment_mode,
            created_at=expense.created_at,
        )
        self.db.add(row)
        self.db.commit()
        return _to_expense(row)

    @_store_call
    def query_expenses(
        self,
        *,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[ExpenseRecord]:
        query = select(Expense)
        if created_from is not None:
            query = query.where(Expense.created_at >= created_from)
        if created_to is not None:
            query = query.where(Expense.created_at < created_to)
        rows = self.db.execute(query.order_by(Expense.created_at.asc(), Expense.id.asc())).scalars().all()
        return [_to_expense(row) for row in rows]

    @_store_call
    def query_expense_names(self) -> list[str]:
        return list(self.db.execute(select(Expense.name).distinct().order_by(Expense.name.asc())).scalars())
