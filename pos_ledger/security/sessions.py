from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from pos_ledger.auth import Principal, Role
from pos_ledger.config import settings
from pos_ledger.db import SessionLocal
from pos_ledger.models import Principal as PrincipalModel
from pos_ledger.models import WebSession

AUTH_EXEMPT_PATHS = {'/login', '/health', '/docs', '/openapi.json'}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive timestamps.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def create_web_session(db: Session, principal_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        WebSession(
            session_token=token,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_session_expiry(),
        )
    )
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> None:
    web_session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not web_session or web_session.revoked_at is not None:
        return
    web_session.revoked_at = _now()


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(WebSession, PrincipalModel)
        .join(PrincipalModel, PrincipalModel.id == WebSession.principal_id)
        .where(WebSession.session_token == token)
    ).one_or_none()
    if not row:
        return None

    web_session, principal = row
    now = _now()
    if web_session.revoked_at is not None or _aware(web_session.expires_at) <= now:
        return None

    # Sliding expiry.
    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return Principal(
        id=principal.id,
        username=principal.username,
        role=Role(principal.role.value),
        active=principal.active,
    )


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        with SessionLocal() as db:
            request.state.principal = load_principal_from_token(db, token)
            db.commit()

        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return JSONResponse({'detail': 'Not authenticated'}, status_code=status.HTTP_401_UNAUTHORIZED)

        return await call_next(request)
