from __future__ import annotations

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel


class Account(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_account_balance_non_negative"),
        CheckConstraint("debt >= 0", name="ck_account_debt_non_negative"),
        CheckConstraint("balance = 0 OR debt = 0", name="ck_account_balance_or_debt"),
    )

    username: str = Field(primary_key=True, index=True)
    balance: int = Field(default=0, ge=0)
    debt: int = Field(default=0, ge=0)
    version: int = Field(default=1)


class IdempotencyRecord(SQLModel, table=True):
    route: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    request_signature: str
    response_payload: str
