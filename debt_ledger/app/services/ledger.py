from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional, Tuple, TypeVar

from ..core.errors import (
    AccountNotFoundError,
    DuplicateIdempotencyKeyError,
    PersistenceError,
    UsernameTakenError,
)
from ..core.validation import (
    check_account_totals,
    check_transaction,
    check_transfer,
    check_username,
    ensure_valid,
)
from ..models import (
    AccountCreate,
    AccountResponse,
    TransactionInput,
    TransferNote,
)
from .repository import AccountRecord, AccountStore


logger = logging.getLogger(__name__)

T = TypeVar("T")


def settle(amount: int, debt: int) -> Tuple[int, int]:
    """Split ``amount`` into the part that pays off ``debt`` and what is left."""
    paid = min(amount, debt)
    return paid, amount - paid


def apply_credit(account: AccountRecord, amount: int) -> int:
    """Credit ``amount``, clearing debt first. Returns the debt paid off."""
    paid, remainder = settle(amount, account.debt)
    account.debt -= paid
    account.balance += remainder
    return paid


def apply_debit(account: AccountRecord, amount: int) -> int:
    """Debit ``amount``, turning whatever the balance cannot cover into debt.

    Returns the shortfall added to the account's debt.
    """
    covered = min(account.balance, amount)
    account.balance -= covered
    shortfall = amount - covered
    account.debt += shortfall
    return shortfall


class _StaleWriteError(Exception):
    def __init__(self, username: str) -> None:
        super().__init__(username)
        self.username = username


class LedgerService:
    def __init__(self, store: AccountStore, max_write_attempts: int = 3) -> None:
        self.store = store
        self.max_write_attempts = max_write_attempts

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _serialize(self, payload: Any) -> str:
        if isinstance(payload, (list, tuple)):
            data = [item.model_dump(mode="json") for item in payload]
        else:
            data = payload.model_dump(mode="json")
        return json.dumps(data, sort_keys=True)

    def _encode_signature(self, signature: Tuple[Any, ...]) -> str:
        return json.dumps(signature, sort_keys=True)

    def _deserialize_account(self, payload: str) -> AccountResponse:
        return AccountResponse.model_validate(json.loads(payload))

    def _deserialize_transfer(self, payload: str) -> Tuple[AccountResponse, AccountResponse]:
        source, target = json.loads(payload)
        return (
            AccountResponse.model_validate(source),
            AccountResponse.model_validate(target),
        )

    def _get_account(self, username: str) -> AccountRecord:
        account = self.store.find_one(username)
        if account is None:
            raise AccountNotFoundError(username)
        return account

    def _replace(self, account: AccountRecord) -> None:
        ensure_valid(check_account_totals(account.balance, account.debt))
        if not self.store.replace(account):
            raise _StaleWriteError(account.username)

    def _check_idempotency(
        self,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
    ) -> Optional[str]:
        if idempotency_key is None:
            return None
        record = self.store.fetch_idempotency(route, idempotency_key)
        if record is None:
            return None

        signature = self._encode_signature(request_signature)
        if record.request_signature != signature:
            raise DuplicateIdempotencyKeyError()

        return record.response_payload

    def _record_idempotent(
        self,
        route: str,
        idempotency_key: Optional[str],
        request_signature: Tuple[Any, ...],
        response_payload: Any,
    ) -> None:
        if idempotency_key is None:
            return
        self.store.save_idempotency(
            route=route,
            key=idempotency_key,
            signature=self._encode_signature(request_signature),
            payload=self._serialize(response_payload),
        )

    def _account_to_response(self, account: AccountRecord) -> AccountResponse:
        return AccountResponse(
            username=account.username,
            balance=account.balance,
            debt=account.debt,
        )

    def _write(self, operation: str, apply: Callable[[], T]) -> T:
        """Run ``apply`` in one atomic unit, starting over on a version conflict."""
        for attempt in range(1, self.max_write_attempts + 1):
            try:
                with self.store.atomic():
                    return apply()
            except _StaleWriteError as exc:
                logger.warning(
                    "account.write_conflict",
                    extra={
                        "operation": operation,
                        "username": exc.username,
                        "attempt": attempt,
                    },
                )
        raise PersistenceError(
            f"{operation} lost to concurrent updates after "
            f"{self.max_write_attempts} attempt(s)"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create_account(self, payload: AccountCreate) -> AccountResponse:
        ensure_valid(check_username(payload.username))

        def apply() -> AccountRecord:
            # insert() still guards against a concurrent create slipping past this check
            if self.store.find_one(payload.username) is not None:
                raise UsernameTakenError(payload.username)
            return self.store.insert(payload.username)

        account = self._write("create", apply)
        logger.info("account.created", extra={"username": account.username})
        return self._account_to_response(account)

    def get_account(self, username: str) -> AccountResponse:
        ensure_valid(check_username(username))
        return self._account_to_response(self._get_account(username))

    def list_accounts(self) -> list[AccountResponse]:
        return [self._account_to_response(account) for account in self.store.find_all()]

    def deposit(
        self,
        payload: TransactionInput,
        idempotency_key: Optional[str] = None,
    ) -> AccountResponse:
        ensure_valid(check_transaction(payload.username, payload.amount))
        request_signature = ("deposit", payload.username, payload.amount)

        def apply() -> Tuple[AccountResponse, bool]:
            cached = self._check_idempotency("deposit", idempotency_key, request_signature)
            if cached is not None:
                return self._deserialize_account(cached), True

            account = self._get_account(payload.username)
            apply_credit(account, payload.amount)
            self._replace(account)

            response = self._account_to_response(account)
            self._record_idempotent("deposit", idempotency_key, request_signature, response)
            return response, False

        response, replayed = self._write("deposit", apply)
        if replayed:
            logger.info(
                "idempotent.deposit.hit",
                extra={"username": payload.username, "idempotency_key": idempotency_key},
            )
            return response
        logger.info(
            "account.deposit",
            extra={
                "username": payload.username,
                "amount": payload.amount,
                "balance": response.balance,
                "debt": response.debt,
            },
        )
        return response

    def withdraw(
        self,
        payload: TransactionInput,
        idempotency_key: Optional[str] = None,
    ) -> AccountResponse:
        ensure_valid(check_transaction(payload.username, payload.amount))
        request_signature = ("withdraw", payload.username, payload.amount)

        def apply() -> Tuple[AccountResponse, bool]:
            cached = self._check_idempotency("withdraw", idempotency_key, request_signature)
            if cached is not None:
                return self._deserialize_account(cached), True

            account = self._get_account(payload.username)
            apply_debit(account, payload.amount)
            self._replace(account)

            response = self._account_to_response(account)
            self._record_idempotent("withdraw", idempotency_key, request_signature, response)
            return response, False

        response, replayed = self._write("withdraw", apply)
        if replayed:
            logger.info(
                "idempotent.withdraw.hit",
                extra={"username": payload.username, "idempotency_key": idempotency_key},
            )
            return response
        logger.info(
            "account.withdraw",
            extra={
                "username": payload.username,
                "amount": payload.amount,
                "balance": response.balance,
                "debt": response.debt,
            },
        )
        return response

    def transfer(
        self,
        payload: TransferNote,
        idempotency_key: Optional[str] = None,
    ) -> Tuple[AccountResponse, AccountResponse]:
        ensure_valid(check_transfer(payload.from_user, payload.to_user, payload.amount))
        request_signature = ("transfer", payload.from_user, payload.to_user, payload.amount)

        def apply() -> Tuple[Tuple[AccountResponse, AccountResponse], bool]:
            cached = self._check_idempotency("transfer", idempotency_key, request_signature)
            if cached is not None:
                return self._deserialize_transfer(cached), True

            source = self._get_account(payload.from_user)
            target = self._get_account(payload.to_user)

            apply_credit(target, payload.amount)
            apply_debit(source, payload.amount)
            # Both legs commit together or the unit rolls back.
            self._replace(target)
            self._replace(source)

            result = (self._account_to_response(source), self._account_to_response(target))
            self._record_idempotent("transfer", idempotency_key, request_signature, result)
            return result, False

        result, replayed = self._write("transfer", apply)
        if replayed:
            logger.info(
                "idempotent.transfer.hit",
                extra={
                    "from_user": payload.from_user,
                    "to_user": payload.to_user,
                    "idempotency_key": idempotency_key,
                },
            )
            return result
        logger.info(
            "account.transfer",
            extra={
                "from_user": payload.from_user,
                "to_user": payload.to_user,
                "amount": payload.amount,
            },
        )
        return result
