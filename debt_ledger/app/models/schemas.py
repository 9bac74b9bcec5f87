from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt


class AccountCreate(BaseModel):
    username: str = Field(..., description="Unique account name, letters, digits and underscores")


class AccountLookup(BaseModel):
    username: str


class AccountResponse(BaseModel):
    username: str
    balance: int = Field(..., ge=0, description="Money the ledger owes the account holder")
    debt: int = Field(..., ge=0, description="Money the account holder owes the ledger")


class TransactionInput(BaseModel):
    username: str
    # Strict: JSON booleans and numeric strings are rejected. Positivity and range are
    # checked by the validator so those failures keep the ledger's error shape.
    amount: StrictInt


class TransferNote(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_user: str = Field(
        ...,
        validation_alias=AliasChoices("fromuser", "fromUser", "from_user"),
    )
    to_user: str = Field(
        ...,
        validation_alias=AliasChoices("touser", "toUser", "to_user"),
    )
    amount: StrictInt


class ErrorResponse(BaseModel):
    message: str
    outcome: Optional[str] = None
