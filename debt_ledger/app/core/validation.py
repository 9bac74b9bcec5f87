"""Pure input checks.

Each check returns ``None`` when the input is acceptable, otherwise the single
error describing the first rule that failed. Nothing here touches the store.
"""

from __future__ import annotations

import re
from typing import Optional

from .errors import (
    AmountOutOfRangeError,
    InvalidUsernameError,
    LedgerError,
    NonPositiveAmountError,
    SameSourceAndTargetError,
)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
# Largest value a signed 64-bit integer column holds.
MAX_AMOUNT = 2**63 - 1


def check_username(username: str) -> Optional[LedgerError]:
    if not USERNAME_PATTERN.fullmatch(username):
        return InvalidUsernameError(username)
    return None


def check_amount(amount: int, field: str = "amount") -> Optional[LedgerError]:
    if amount <= 0:
        return NonPositiveAmountError(field)
    if amount > MAX_AMOUNT:
        return AmountOutOfRangeError(field, MAX_AMOUNT)
    return None


def check_account_totals(balance: int, debt: int) -> Optional[LedgerError]:
    if balance > MAX_AMOUNT:
        return AmountOutOfRangeError("balance", MAX_AMOUNT)
    if debt > MAX_AMOUNT:
        return AmountOutOfRangeError("debt", MAX_AMOUNT)
    return None


def check_transaction(username: str, amount: int) -> Optional[LedgerError]:
    return check_username(username) or check_amount(amount)


def check_transfer(from_user: str, to_user: str, amount: int) -> Optional[LedgerError]:
    failure = (
        check_username(from_user)
        or check_username(to_user)
        or check_amount(amount)
    )
    if failure is not None:
        return failure
    if from_user == to_user:
        return SameSourceAndTargetError()
    return None


def ensure_valid(failure: Optional[LedgerError]) -> None:
    if failure is not None:
        raise failure
