import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pos_ledger.config import settings
from pos_ledger.dependencies import ledger_http_error
from pos_ledger.exceptions import LedgerError
from pos_ledger.routers import auth, billing, pay_later, reports, stock
from pos_ledger.security.sessions import install_auth_session_middleware

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='POS Ledger')

install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(stock.router)
app.include_router(billing.router)
app.include_router(pay_later.router)
app.include_router(reports.router)


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    # Read-only routes let store failures propagate here.
    http_exc = ledger_http_error(exc)
    return JSONResponse(status_code=http_exc.status_code, content={'detail': http_exc.detail})


@app.get('/health')
def health() -> dict:
    return {'status': 'ok', 'ledger_backend': settings.ledger_backend}
