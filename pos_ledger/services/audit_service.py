from __future__ import annotations

from enum import Enum

from sqlalchemy.orm import Session

from pos_ledger.exceptions import PartialFailureWarning
from pos_ledger.models import AuditLog, AuthEvent


class AuditAction(str, Enum):
    AUTH_LOGIN = 'AUTH_LOGIN'
    AUTH_LOGOUT = 'AUTH_LOGOUT'
    STOCK_ENTRY_RECORDED = 'STOCK_ENTRY_RECORDED'
    ORDER_PLACED = 'ORDER_PLACED'
    ORDER_PARTIALLY_PLACED = 'ORDER_PARTIALLY_PLACED'
    PAY_LATER_SETTLED = 'PAY_LATER_SETTLED'
    PAY_LATER_PARTIALLY_SETTLED = 'PAY_LATER_PARTIALLY_SETTLED'
    EXPENSE_RECORDED = 'EXPENSE_RECORDED'


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username.strip().lower(),
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=(user_agent or '')[:512] or None,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: AuditAction,
    ip: str | None,
    order_no: int | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_principal_id=actor_principal_id,
            action=action.value,
            order_no=order_no,
            ip=ip,
            meta=metadata or {},
        )
    )


def log_partial_failure(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: AuditAction,
    ip: str | None,
    warning: PartialFailureWarning,
) -> None:
    """Leaves a trail for the operator reconciling a half-written order or settlement."""
    log_audit(
        db,
        actor_principal_id=actor_principal_id,
        action=action,
        ip=ip,
        order_no=warning.reference if isinstance(warning.reference, int) else None,
        metadata={
            'reference': warning.reference,
            'completed_steps': warning.completed_steps,
            'failed_step': warning.failed_step,
            'error': str(warning.cause),
        },
    )
