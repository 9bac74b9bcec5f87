from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..core.errors import PersistenceError, UsernameTakenError
from ..models import AccountModel, IdempotencyRecordModel


logger = logging.getLogger(__name__)


@dataclass
class AccountRecord:
    """Detached copy of an account row.

    ``version`` is the value read from the store; ``replace`` only succeeds
    while the stored row still carries it.
    """

    username: str
    balance: int = 0
    debt: int = 0
    version: int = 1


class AccountStore(Protocol):
    """Read/write contract the ledger service depends on."""

    def atomic(self) -> AbstractContextManager[None]: ...
    def find_all(self) -> list[AccountRecord]: ...
    def find_one(self, username: str) -> Optional[AccountRecord]: ...
    def insert(self, username: str) -> AccountRecord: ...
    def replace(self, account: AccountRecord) -> bool: ...
    def fetch_idempotency(
        self, route: str, key: str
    ) -> Optional[IdempotencyRecordModel]: ...
    def save_idempotency(
        self, *, route: str, key: str, signature: str, payload: str
    ) -> None: ...


def _to_record(account: AccountModel) -> AccountRecord:
    return AccountRecord(
        username=account.username,
        balance=account.balance,
        debt=account.debt,
        version=account.version,
    )


class LedgerRepository:
    """Thin data access layer around the SQLModel session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # Unit of work -------------------------------------------------------
    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Commit every write made inside the block together, or none of them."""
        try:
            yield
            self.session.commit()
        except (SQLAlchemyError, OverflowError) as exc:
            # The sqlite driver raises OverflowError unwrapped for out-of-range integers.
            self.session.rollback()
            logger.error(
                "store.rollback",
                extra={"error_type": type(exc).__name__},
            )
            raise PersistenceError(f"store write failed ({type(exc).__name__})") from exc
        except Exception:
            self.session.rollback()
            raise

    # Account operations -------------------------------------------------
    def find_all(self) -> list[AccountRecord]:
        stmt = select(AccountModel).order_by(AccountModel.username)
        return [_to_record(account) for account in self.session.exec(stmt)]

    def find_one(self, username: str) -> Optional[AccountRecord]:
        stmt = (
            select(AccountModel)
            .where(AccountModel.username == username)
            .execution_options(populate_existing=True)
        )
        account = self.session.exec(stmt).first()
        if account is None:
            return None
        return _to_record(account)

    def insert(self, username: str) -> AccountRecord:
        account = AccountModel(username=username, balance=0, debt=0, version=1)
        self.session.add(account)
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise UsernameTakenError(username) from exc
        # Later writes go through replace(), never through the ORM instance.
        self.session.expunge(account)
        return _to_record(account)

    def replace(self, account: AccountRecord) -> bool:
        """Compare-and-replace keyed on username and the version read earlier.

        Returns ``False`` when another writer got there first. On success the
        record's ``version`` is advanced to the stored value.
        """
        table = AccountModel.__table__
        stmt = (
            update(table)
            .where(table.c.username == account.username)
            .where(table.c.version == account.version)
            .values(
                balance=account.balance,
                debt=account.debt,
                version=account.version + 1,
            )
        )
        result = self.session.connection().execute(stmt)
        if result.rowcount != 1:
            return False
        account.version += 1
        return True

    # Idempotency store --------------------------------------------------
    def fetch_idempotency(
        self, route: str, key: str
    ) -> Optional[IdempotencyRecordModel]:
        stmt = (
            select(IdempotencyRecordModel)
            .where(IdempotencyRecordModel.route == route)
            .where(IdempotencyRecordModel.key == key)
        )
        return self.session.exec(stmt).first()

    def save_idempotency(
        self,
        *,
        route: str,
        key: str,
        signature: str,
        payload: str,
    ) -> None:
        record = IdempotencyRecordModel(
            route=route,
            key=key,
            request_signature=signature,
            response_payload=payload,
        )
        self.session.add(record)
