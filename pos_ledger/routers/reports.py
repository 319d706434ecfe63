from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from pos_ledger.auth import Principal, Role, require_permission
from pos_ledger.db import get_db
from pos_ledger.dependencies import get_client_ip, ledger_http_error
from pos_ledger.exceptions import LedgerError
from pos_ledger.schemas import ExpenseIn
from pos_ledger.services.audit_service import AuditAction, log_audit
from pos_ledger.services.expense_service import expense_names, record_expense
from pos_ledger.services.ledger_store import LedgerStore
from pos_ledger.services.reporting_service import business_today, daily_sales_summary
from pos_ledger.services.store_factory import get_ledger_store

router = APIRouter(tags=['reports'])


@router.get('/reports/daily-sales')
def daily_sales(
    day: date | None = None,
    _: Principal = Depends(require_permission(Role.OWNER)),
    store: LedgerStore = Depends(get_ledger_store),
):
    return daily_sales_summary(store, day=day or business_today())


@router.get('/expenses/names')
def expense_name_options(
    _: Principal = Depends(require_permission(Role.OWNER)),
    store: LedgerStore = Depends(get_ledger_store),
):
    return {'names': expense_names(store)}


@router.post('/expenses', status_code=201)
def create_expense(
    payload: ExpenseIn,
    request: Request,
    principal: Principal = Depends(require_permission(Role.OWNER)),
    store: LedgerStore = Depends(get_ledger_store),
    db: Session = Depends(get_db),
):
    try:
        expense = record_expense(store, name=payload.name, amount=payload.amount, payment_mode=payload.payment_mode)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action=AuditAction.EXPENSE_RECORDED,
        ip=get_client_ip(request),
        metadata={'expense_id': expense.id, 'name': expense.name, 'amount': str(expense.amount)},
    )
    db.commit()
    return expense
