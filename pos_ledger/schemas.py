from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from pos_ledger.models import DiscountType
from pos_ledger.services.inventory_service import DraftAllocation, StockEntryInput
from pos_ledger.services.order_service import CustomerInput, PaymentSplit
from pos_ledger.services.pricing_service import BillLine, Discount


class LoginIn(BaseModel):
    username: str
    password: str


class DiscountIn(BaseModel):
    type: DiscountType = DiscountType.PERCENTAGE
    value: Decimal = Decimal('0')

    def to_discount(self) -> Discount:
        return Discount(type=self.type, value=self.value)


class BillLineIn(BaseModel):
    product: str
    size: str
    quantity: int = 1
    # Defaults to the product's listed MRP when omitted.
    mrp: Decimal | None = None
    discount: DiscountIn = Field(default_factory=DiscountIn)


class CustomerIn(BaseModel):
    phone: str
    name: str

    def to_input(self) -> CustomerInput:
        return CustomerInput(phone=self.phone, name=self.name)


class PaymentIn(BaseModel):
    upi: Decimal = Decimal('0')
    cash: Decimal = Decimal('0')
    pay_later: Decimal = Decimal('0')

    def to_split(self) -> PaymentSplit:
        return PaymentSplit(upi=self.upi, cash=self.cash, pay_later=self.pay_later)


class QuoteIn(BaseModel):
    lines: list[BillLineIn]
    order_discount: DiscountIn = Field(default_factory=DiscountIn)


class OrderIn(QuoteIn):
    customer: CustomerIn
    payment: PaymentIn


class DraftLineIn(BaseModel):
    product: str
    size: str
    quantity: int = 0

    def to_allocation(self) -> DraftAllocation:
        return DraftAllocation(product=self.product, size=self.size, quantity=self.quantity)


class DraftAvailabilityIn(BaseModel):
    lines: list[DraftLineIn]
    line_index: int


class StockEntryIn(BaseModel):
    size: str
    quantity: int
    note: str | None = None
    unit_price: Decimal | None = None
    image_ref: str | None = None

    def to_input(self) -> StockEntryInput:
        return StockEntryInput(
            size=self.size,
            quantity=self.quantity,
            note=self.note,
            unit_price=self.unit_price,
            image_ref=self.image_ref,
        )


class StockEntriesIn(BaseModel):
    product: str
    entries: list[StockEntryIn]


class SettlementIn(BaseModel):
    lookup: str
    order_nos: list[int]
    upi: Decimal = Decimal('0')
    cash: Decimal = Decimal('0')


def bill_line(line: BillLineIn, mrp: Decimal) -> BillLine:
    return BillLine(
        product=line.product,
        size=line.size,
        mrp=mrp,
        quantity=line.quantity,
        discount=line.discount.to_discount(),
    )


class ExpenseIn(BaseModel):
    name: str
    amount: Decimal
    # CASH or UPI, any case.
    payment_mode: str = 'CASH'
