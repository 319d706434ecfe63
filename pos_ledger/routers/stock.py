from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from pos_ledger.auth import Principal, Role, require_permission
from pos_ledger.db import get_db
from pos_ledger.dependencies import get_client_ip, ledger_http_error
from pos_ledger.exceptions import LedgerError
from pos_ledger.models import MovementKind
from pos_ledger.schemas import DraftAvailabilityIn, StockEntriesIn
from pos_ledger.services.audit_service import AuditAction, log_audit
from pos_ledger.services.inventory_service import (
    available_quantity,
    available_sizes,
    list_movements,
    record_stock_entry,
    sellable_products,
    stock_summary,
)
from pos_ledger.services.ledger_store import LedgerStore
from pos_ledger.services.order_service import draft_available_quantity
from pos_ledger.services.store_factory import get_ledger_store

router = APIRouter(tags=['stock'])


@router.get('/products/sellable')
def products_sellable(
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {'products': sellable_products(store.query_movements())}


@router.get('/products/{code}/sizes')
def product_sizes(
    code: str,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    product = store.query_product(code)
    return {
        'product': code,
        'mrp': product.mrp if product else None,
        'sizes': available_sizes(store.query_movements(product=code), code),
    }


@router.get('/products/{code}/sizes/{size}/available')
def product_size_available(
    code: str,
    size: str,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    movements = store.query_movements(product=code, size=size)
    return {'product': code, 'size': size, 'available': available_quantity(movements, code, size)}


@router.post('/stock/draft-availability')
def draft_availability(
    payload: DraftAvailabilityIn,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    if not 0 <= payload.line_index < len(payload.lines):
        raise HTTPException(status_code=400, detail='Line index is out of range')
    lines = [line.to_allocation() for line in payload.lines]
    return {'available': draft_available_quantity(store, lines, payload.line_index)}


@router.post('/stock/entries', status_code=201)
def stock_entries(
    payload: StockEntriesIn,
    request: Request,
    principal: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
    db: Session = Depends(get_db),
):
    try:
        movements = record_stock_entry(
            store,
            product=payload.product,
            entries=[entry.to_input() for entry in payload.entries],
        )
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action=AuditAction.STOCK_ENTRY_RECORDED,
        ip=get_client_ip(request),
        metadata={
            'product': payload.product,
            'movement_ids': [m.id for m in movements],
            'kinds': [m.kind.value for m in movements],
        },
    )
    db.commit()
    return {'movements': movements}


@router.get('/stock/movements')
def stock_movements(
    product: str | None = None,
    size: str | None = None,
    kind: list[MovementKind] | None = Query(default=None),
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {'movements': list_movements(store, product=product, size=size, kinds=kind)}


@router.get('/stock/summary')
def stock_summary_view(
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {'products': stock_summary(store.query_movements())}
