"""
Pydantic schemas for Account endpoints.

These schemas define the API contract for account creation, retrieval,
and balance checking. Money is exposed as a Decimal with two places,
which serializes to a JSON string ("12.50") so no float ever carries it.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class AccountCreateRequest(BaseModel):
    """Request body for POST /accounts."""
    account_type: Literal["checking", "savings"] = Field(
        description="Type of bank account to create",
    )


class AccountResponse(BaseModel):
    """Public representation of a bank account."""
    id: int
    user_id: int
    account_type: str
    account_number: str
    balance: Decimal
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """
    Balance check response — includes both stored and computed values.

    The `match` field indicates whether the stored balance agrees with
    the sum of the account's completed transactions.
    """
    account_id: int
    balance: Decimal
    computed_balance: Decimal
    match: bool
