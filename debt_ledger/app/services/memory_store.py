from __future__ import annotations

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Dict, Optional, Tuple

from ..core.errors import UsernameTakenError
from ..models import IdempotencyRecordModel
from .repository import AccountRecord


class InMemoryAccountStore:
    """Process-local account store.

    ``atomic`` holds a re-entrant lock for the whole block and restores the
    snapshot taken on entry if the block raises, so concurrent operations are
    serialised and a failed transfer leaves no trace.
    """

    def __init__(self) -> None:
        self._accounts: Dict[str, AccountRecord] = {}
        self._idempotency: Dict[Tuple[str, str], IdempotencyRecordModel] = {}
        self._lock = threading.RLock()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            accounts = copy.deepcopy(self._accounts)
            idempotency = dict(self._idempotency)
            try:
                yield
            except Exception:
                self._accounts = accounts
                self._idempotency = idempotency
                raise

    def find_all(self) -> list[AccountRecord]:
        with self._lock:
            return [
                copy.copy(self._accounts[username])
                for username in sorted(self._accounts)
            ]

    def find_one(self, username: str) -> Optional[AccountRecord]:
        with self._lock:
            account = self._accounts.get(username)
            return copy.copy(account) if account is not None else None

    def insert(self, username: str) -> AccountRecord:
        with self._lock:
            if username in self._accounts:
                raise UsernameTakenError(username)
            record = AccountRecord(username=username)
            self._accounts[username] = record
            return copy.copy(record)

    def replace(self, account: AccountRecord) -> bool:
        with self._lock:
            stored = self._accounts.get(account.username)
            if stored is None or stored.version != account.version:
                return False
            account.version += 1
            self._accounts[account.username] = copy.copy(account)
            return True

    def fetch_idempotency(
        self, route: str, key: str
    ) -> Optional[IdempotencyRecordModel]:
        with self._lock:
            return self._idempotency.get((route, key))

    def save_idempotency(
        self,
        *,
        route: str,
        key: str,
        signature: str,
        payload: str,
    ) -> None:
        with self._lock:
            self._idempotency[(route, key)] = IdempotencyRecordModel(
                route=route,
                key=key,
                request_signature=signature,
                response_payload=payload,
            )
