from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query, status

from ..core.dependencies import get_ledger_service
from ..core.errors import InputDecodeError
from ..models import (
    AccountCreate,
    AccountLookup,
    AccountResponse,
    ErrorResponse,
    TransactionInput,
    TransferNote,
)
from ..services import LedgerService


router = APIRouter(
    prefix="/account",
    tags=["accounts"],
    responses={400: {"model": ErrorResponse}},
)

@router.get("/all", response_model=list[AccountResponse])
def list_accounts(
    service: LedgerService = Depends(get_ledger_service),
) -> list[AccountResponse]:
    return service.list_accounts()

@router.get("", response_model=AccountResponse)
def get_account(
    payload: Optional[AccountLookup] = Body(default=None),
    username: Optional[str] = Query(default=None),
    service: LedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    if payload is not None:
        username = payload.username
    if username is None:
        raise InputDecodeError("username is required")
    return service.get_account(username)

@router.post("/create", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountCreate,
    service: LedgerService = Depends(get_ledger_service),
) -> AccountResponse:
    return service.create_account(payload)

transaction_router = APIRouter(
    tags=["transactions"],
    responses={400: {"model": ErrorResponse}},
)

@transaction_router.post("/deposit", response_model=AccountResponse)
def deposit(
    payload: TransactionInput,
    service: LedgerService = Depends(get_ledger_service),
    idempotency_key: Optional[str] = Header(
        default=None, convert_underscores=False, alias="Idempotency-Key"
    ),
) -> AccountResponse:
    return service.deposit(payload, idempotency_key)

@transaction_router.post("/withdraw", response_model=AccountResponse)
def withdraw(
    payload: TransactionInput,
    service: LedgerService = Depends(get_ledger_service),
    idempotency_key: Optional[str] = Header(
        default=None, convert_underscores=False, alias="Idempotency-Key"
    ),
) -> AccountResponse:
    return service.withdraw(payload, idempotency_key)

@transaction_router.post("/transfer", response_model=list[AccountResponse])
def transfer(
    payload: TransferNote,
    service: LedgerService = Depends(get_ledger_service),
    idempotency_key: Optional[str] = Header(
        default=None, convert_underscores=False, alias="Idempotency-Key"
    ),
) -> list[AccountResponse]:
    source, target = service.transfer(payload, idempotency_key)
    return [source, target]

__all__ = ["router", "transaction_router"]
