from .ledger import LedgerService, apply_credit, apply_debit, settle
from .memory_store import InMemoryAccountStore
from .repository import AccountRecord, AccountStore, LedgerRepository

__all__ = [
    "AccountRecord",
    "AccountStore",
    "InMemoryAccountStore",
    "LedgerRepository",
    "LedgerService",
    "apply_credit",
    "apply_debit",
    "settle",
]
