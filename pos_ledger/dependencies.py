from fastapi import HTTPException, Request, status

from pos_ledger.exceptions import (
    InsufficientStockError,
    LedgerError,
    PartialFailureWarning,
    PersistenceError,
)


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def ledger_http_error(exc: LedgerError) -> HTTPException:
    # ValidationError and BalanceMismatchError fall through to 400.
    if isinstance(exc, InsufficientStockError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PartialFailureWarning):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                'message': str(exc),
                'reference': exc.reference,
                'completed_steps': exc.completed_steps,
                'failed_step': exc.failed_step,
            },
        )
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
