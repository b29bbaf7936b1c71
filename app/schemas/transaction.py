"""
Pydantic schemas for funding and transaction endpoints.

`amount` is typed Any and passed through untouched, so a JSON string
("2.50"), a JSON number (2.5), and also true, null or a list all reach
the funding service as sent. Pydantic would otherwise coerce true to 1.
The service normalizes it so that bad amounts surface as invalid_amount /
amount_too_small errors rather than generic 422s. The same goes for the
funding source's type-specific fields.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class FundingSourceRequest(BaseModel):
    """Declared origin of the funds."""
    type: str = Field(description="'card' or 'bank'")
    account_number: str
    routing_number: str | None = Field(
        None, description="9-digit routing number (required for bank)"
    )


class FundAccountRequest(BaseModel):
    """Request body for POST /accounts/{account_id}/fund."""
    amount: Any = Field(
        description="Amount in dollars, e.g. \"12.50\" or 12.5 (min 0.01)",
    )
    funding_source: FundingSourceRequest


class TransactionResponse(BaseModel):
    """Public representation of a ledger entry (never the full source number)."""
    id: int
    account_id: int
    type: str
    amount: Decimal
    description: str | None
    status: str
    funding_source_type: str
    funding_source_last_four: str
    created_at: datetime
    processed_at: datetime

    model_config = {"from_attributes": True}


class AccountTransactionResponse(TransactionResponse):
    """A ledger entry enriched with the account's type at query time."""
    account_type: str


class FundAccountResponse(BaseModel):
    """Response body for a successful funding call."""
    transaction: TransactionResponse
    new_balance: Decimal
