from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from pos_ledger.auth import Principal, Role, require_permission
from pos_ledger.db import get_db
from pos_ledger.dependencies import get_client_ip, ledger_http_error
from pos_ledger.exceptions import LedgerError, PartialFailureWarning
from pos_ledger.schemas import SettlementIn
from pos_ledger.services.audit_service import AuditAction, log_audit, log_partial_failure
from pos_ledger.services.ledger_store import LedgerStore
from pos_ledger.services.settlement_service import order_balances, settle_pay_later
from pos_ledger.services.store_factory import get_ledger_store

router = APIRouter(prefix='/pay-later', tags=['pay-later'])


@router.get('/{lookup}')
def pay_later_balances(
    lookup: str,
    _: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
):
    try:
        balances = order_balances(store, lookup)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    return {'lookup': lookup, 'orders': balances}


@router.post('/settle')
def pay_later_settle(
    payload: SettlementIn,
    request: Request,
    principal: Principal = Depends(require_permission(Role.EMPLOYEE)),
    store: LedgerStore = Depends(get_ledger_store),
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    try:
        result = settle_pay_later(
            store,
            lookup=payload.lookup,
            order_nos=payload.order_nos,
            upi_amount=payload.upi,
            cash_amount=payload.cash,
        )
    except PartialFailureWarning as exc:
        log_partial_failure(
            db, actor_principal_id=principal.id, action=AuditAction.PAY_LATER_PARTIALLY_SETTLED, ip=ip, warning=exc
        )
        db.commit()
        raise ledger_http_error(exc) from exc
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc

    log_audit(
        db,
        actor_principal_id=principal.id,
        action=AuditAction.PAY_LATER_SETTLED,
        ip=ip,
        metadata={
            'lookup': payload.lookup,
            'order_nos': [tx.order_no for tx in result.transactions],
            'upi': str(payload.upi),
            'cash': str(payload.cash),
        },
    )
    db.commit()
    return {'transactions': result.transactions, 'orders': result.balances}
