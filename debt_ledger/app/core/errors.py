from __future__ import annotations

from typing import Any, Literal

Outcome = Literal["not_applied"]


class LedgerError(Exception):
    """Base class for every failure the ledger reports to a caller."""

    http_status = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict[str, Any]:
        return {"message": self.message}


class InvalidUsernameError(LedgerError):
    """Raised when a username is empty or contains characters outside [A-Za-z0-9_]."""

    def __init__(self, username: str) -> None:
        super().__init__(f'username "{username}" is invalid')
        self.username = username


class NonPositiveAmountError(LedgerError):
    """Raised when an amount field is zero or negative."""

    def __init__(self, field: str) -> None:
        super().__init__(f'value "{field}" must be greater than zero')
        self.field = field


class AmountOutOfRangeError(LedgerError):
    """Raised when an amount, or the balance or debt it would produce, exceeds the storable maximum."""

    def __init__(self, field: str, limit: int) -> None:
        super().__init__(f'value "{field}" must not exceed {limit}')
        self.field = field
        self.limit = limit


class SameSourceAndTargetError(LedgerError):
    def __init__(self) -> None:
        super().__init__("source and target account cannot be the same")


class AccountNotFoundError(LedgerError):
    """Raised when a username is missing from the store."""

    def __init__(self, username: str) -> None:
        super().__init__(f"user {username} not found")
        self.username = username


class UsernameTakenError(LedgerError):
    def __init__(self, username: str) -> None:
        super().__init__(f'user "{username}" already exists')
        self.username = username


class InputDecodeError(LedgerError):
    """Raised when a request body cannot be decoded into the expected input."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"failed to read input: {detail}")
        self.detail = detail


class PersistenceError(LedgerError):
    """Raised when the store rejects or fails a write.

    Writes of one operation share a single atomic unit, so a failure always
    leaves every touched account as it was before the request.
    """

    def __init__(self, detail: str, outcome: Outcome = "not_applied") -> None:
        super().__init__(f"persistence failure: {detail}")
        self.detail = detail
        self.outcome = outcome

    def to_response(self) -> dict[str, Any]:
        return {"message": self.message, "outcome": self.outcome}


class DuplicateIdempotencyKeyError(LedgerError):
    """Raised when the same idempotency key is reused with different input."""

    def __init__(self) -> None:
        super().__init__("idempotency key was previously used with different parameters")
