from .db import Account as AccountModel
from .db import IdempotencyRecord as IdempotencyRecordModel
from .schemas import (
    AccountCreate,
    AccountLookup,
    AccountResponse,
    ErrorResponse,
    TransactionInput,
    TransferNote,
)

__all__ = [
    "AccountCreate",
    "AccountLookup",
    "AccountResponse",
    "ErrorResponse",
    "TransactionInput",
    "TransferNote",
    "AccountModel",
    "IdempotencyRecordModel",
]
