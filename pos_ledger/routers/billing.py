from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pos_ledger.auth import Principal, Role, require_permission
from pos_ledger.db import get_db
from pos_ledger.dependencies import get_client_ip, ledger_http_error
from pos_ledger.exceptions import LedgerError, PartialFailureWarning, ValidationError
from pos_ledger.schemas import BillLineIn, OrderIn, QuoteIn, bill_line
from pos_ledger.services.audit_service import AuditAction, log_audit, log_partial_failure
from pos_ledger.services.ledger_store import LedgerStore
from pos_ledger.services.order_service import place_order
from pos_ledger.services.pricing_service import BillLine, compute_bill, money
from pos_ledger.services.reporting_service import list_orders
from pos_ledger.services.store_factory import get_ledger_store

router = APIRouter(tags=['billing'])


def _bill_lines(store: LedgerStore, lines: list[BillLineIn]) -> list[BillLine]:
    resolved = []
    for idx, line in enumerate(lines, start=1):
        mrp = line.mrp
        if mrp is None:
            product = store.query_product(line.product.strip())
            if not product:
                raise ValidationError(f'Item {idx}: product {line.product} is not in the product list')
            mrp = product.mrp
        resolved.append(bill_line(line, Decimal(mrp)))
    return resolved


@router.post('/bills/quote')
def quote_bill(
    payload: QuoteIn,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    try:
        totals = compute_bill(_bill_lines(store, payload.lines), payload.order_discount.to_discount())
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return {
        'lines': [
            {
                'product': p.line.product,
                'size': p.line.size,
                'quantity': p.line.quantity,
                'mrp': money(p.line.mrp),
                'selling_price': money(p.selling_price),
                'line_total': money(p.line_total),
            }
            for p in totals.lines
        ],
        'mrp_total': money(totals.mrp_total),
        'item_discount_total': money(totals.item_discount_total),
        'order_discount_amount': money(totals.order_discount_amount),
        'grand_total': money(totals.grand_total),
    }


@router.post('/orders', status_code=201)
def create_order(
    payload: OrderIn,
    request: Request,
    principal: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    try:
        placed = place_order(
            store,
            customer=payload.customer.to_input(),
            lines=_bill_lines(store, payload.lines),
            order_discount=payload.order_discount.to_discount(),
            payment=payload.payment.to_split(),
        )
    except PartialFailureWarning as exc:
        log_partial_failure(
            db, actor_principal_id=principal.id, action=AuditAction.ORDER_PARTIALLY_PLACED, ip=ip, warning=exc
        )
        db.commit()
        raise ledger_http_error(exc) from exc
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action=AuditAction.ORDER_PLACED,
        ip=ip,
        order_no=placed.order_no,
        metadata={
            'customer_phone': placed.customer.phone,
            'lines': len(placed.totals.lines),
            'order_amount': str(money(placed.totals.grand_total)),
        },
    )
    db.commit()
    return {
        'order_no': placed.order_no,
        'customer': placed.customer,
        'order_amount': money(placed.totals.grand_total),
        'payment': placed.payment,
        'created_at': placed.created_at,
    }


@router.get('/orders')
def orders(
    phone: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {'orders': list_orders(store, phone=phone, from_date=from_date, to_date=to_date)}


@router.get('/customers/{phone}')
def customer_lookup(
    phone: str,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    customer = store.get_customer(phone.strip())
    if not customer:
        raise HTTPException(status_code=404, detail='Customer not found')
    return customer

