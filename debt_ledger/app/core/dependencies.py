from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends

from ..services import AccountStore, InMemoryAccountStore, LedgerRepository, LedgerService
from . import db
from .config import get_settings


@lru_cache()
def get_memory_store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


def get_account_store() -> Generator[AccountStore, None, None]:
    if get_settings().storage_backend == "memory":
        yield get_memory_store()
        return
    with db.open_session() as session:
        yield LedgerRepository(session)


def get_ledger_service(store: AccountStore = Depends(get_account_store)) -> LedgerService:
    return LedgerService(store, max_write_attempts=get_settings().max_write_attempts)
