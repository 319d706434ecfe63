from __future__ import annotations

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from pos_ledger.config import settings
from pos_ledger.db import get_db
from pos_ledger.services.ledger_store import LedgerStore
from pos_ledger.services.memory_ledger_store import InMemoryLedgerStore
from pos_ledger.services.sql_ledger_store import SqlLedgerStore


@lru_cache(maxsize=1)
def get_memory_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


def get_ledger_store(db: Session = Depends(get_db)) -> LedgerStore:
    backend = settings.ledger_backend.strip().lower()
    if backend == 'memory':
        return get_memory_store()
    return SqlLedgerStore(db)
