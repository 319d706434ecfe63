from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')


class Base(DeclarativeBase):
    pass


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    OWNER = 'OWNER'
    EMPLOYEE = 'EMPLOYEE'


class MovementKind(str, Enum):
    ADDED = 'ADDED'
    REMOVED = 'REMOVED'
    SOLD = 'SOLD'


class DiscountType(str, Enum):
    PERCENTAGE = 'PERCENTAGE'
    FIXED = 'FIXED'


class PaymentMode(str, Enum):
    CASH = 'CASH'
    UPI = 'UPI'


discount_type_enum = SQLEnum(DiscountType, name='discount_type')


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    style_code: Mapped[str | None] = mapped_column(Text)
    mrp: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'), server_default='0')
    image_url: Mapped[str | None] = mapped_column(Text)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryMovement(Base):
    __tablename__ = 'inventory_movements'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='inventory_movements_non_negative_ck'),
        Index('inventory_movements_product_size_ix', 'product', 'size'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    product: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False)
    # For ADDED lots this is the remaining, unconsumed quantity.
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[MovementKind] = mapped_column(SQLEnum(MovementKind, name='movement_kind'), nullable=False)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    note: Mapped[str | None] = mapped_column(Text)
    image_ref: Mapped[str | None] = mapped_column(Text)


class Customer(Base):
    __tablename__ = 'customers'

    phone: Mapped[str] = mapped_column(String(10), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class OrderLine(Base):
    __tablename__ = 'order_lines'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='order_lines_positive_qty_ck'),
        Index('order_lines_order_no_ix', 'order_no'),
        Index('order_lines_customer_phone_ix', 'customer_phone'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_no: Mapped[int] = mapped_column(BigInteger, nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(10), nullable=False)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    product: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False)
    mrp: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    item_discount_type: Mapped[DiscountType] = mapped_column(
        discount_type_enum, nullable=False, default=DiscountType.PERCENTAGE
    )
    item_discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    selling_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    order_discount_type: Mapped[DiscountType] = mapped_column(
        discount_type_enum, nullable=False, default=DiscountType.PERCENTAGE
    )
    order_discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    upi_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    cash_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    pay_later: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PayLaterTransaction(Base):
    __tablename__ = 'pay_later_transactions'
    __table_args__ = (
        Index('pay_later_transactions_order_no_ix', 'order_no'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_no: Mapped[int] = mapped_column(BigInteger, nullable=False)
    upi_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    cash_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    phone: Mapped[str] = mapped_column(String(10), nullable=False)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Expense(Base):
    __tablename__ = 'expenses'
    __table_args__ = (
        CheckConstraint('amount > 0', name='expenses_positive_amount_ck'),
        Index('expenses_created_at_ix', 'created_at'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_mode: Mapped[PaymentMode] = mapped_column(SQLEnum(PaymentMode, name='payment_mode'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('principals.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    order_no: Mapped[int | None] = mapped_column(BigInteger)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
