from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_ledger.config import settings
from pos_ledger.db import get_db
from pos_ledger.dependencies import get_client_ip
from pos_ledger.models import Principal as PrincipalModel
from pos_ledger.schemas import LoginIn
from pos_ledger.security.passwords import check_password
from pos_ledger.security.sessions import create_web_session, revoke_web_session
from pos_ledger.services.audit_service import AuditAction, log_audit, log_auth_event

router = APIRouter(tags=['auth'])


def _reject(db: Session, *, username: str, reason: str, principal_id: int | None, ip, user_agent) -> HTTPException:
    log_auth_event(
        db,
        attempted_username=username,
        success=False,
        failure_reason=reason,
        principal_id=principal_id,
        ip=ip,
        user_agent=user_agent,
    )
    db.commit()
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid username or password')


@router.post('/login')
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    username = payload.username.strip()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    principal = db.execute(select(PrincipalModel).where(PrincipalModel.username == username)).scalar_one_or_none()
    if not principal:
        raise _reject(db, username=username, reason='UNKNOWN_USERNAME', principal_id=None, ip=ip, user_agent=user_agent)
    if not principal.active:
        raise _reject(
            db, username=username, reason='INACTIVE_PRINCIPAL', principal_id=principal.id, ip=ip, user_agent=user_agent
        )

    valid, replacement_hash = check_password(payload.password, principal.password_hash)
    if not valid:
        raise _reject(db, username=username, reason='BAD_PASSWORD', principal_id=principal.id, ip=ip, user_agent=user_agent)
    if replacement_hash:
        principal.password_hash = replacement_hash

    token = create_web_session(db, principal.id, ip=ip, user_agent=user_agent)
    log_auth_event(db, attempted_username=username, success=True, principal_id=principal.id, ip=ip, user_agent=user_agent)
    log_audit(db, actor_principal_id=principal.id, action=AuditAction.AUTH_LOGIN, ip=ip, metadata={'username': username})
    db.commit()

    response = JSONResponse({'username': principal.username, 'role': principal.role.value})
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_principal_id=principal.id if principal else None,
        action=AuditAction.AUTH_LOGOUT,
        ip=get_client_ip(request),
    )
    db.commit()

    response = JSONResponse({'status': 'logged_out'})
    response.delete_cookie(settings.session_cookie_name)
    return response
