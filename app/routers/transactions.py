"""
Transactions router — fund an account and list its transactions.

Endpoints (scoped to the authenticated user's accounts):
  POST /accounts/{account_id}/fund           — Deposit from a card or bank
  GET  /accounts/{account_id}/transactions   — List the account's ledger
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.transaction import (
    AccountTransactionResponse,
    FundAccountRequest,
    FundAccountResponse,
    TransactionResponse,
)
from app.services import transaction_service
from app.services.transaction_service import FundingSource

router = APIRouter()


@router.post(
    "/{account_id}/fund",
    response_model=FundAccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Fund an account",
)
async def fund_account(
    account_id: int,
    request: FundAccountRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Deposit money into one of your accounts.

    - **amount**: Dollars as a string ("12.50") or number (12.5); at most
      two decimal places for strings, numbers are rounded half-up to the
      cent. Must be at least 0.01.
    - **funding_source**: `{"type": "card", "account_number": ...}` or
      `{"type": "bank", "account_number": ..., "routing_number": "123456789"}`

    Returns the recorded transaction and the new balance.
    """
    source = request.funding_source
    result = await transaction_service.fund_account(
        db=db,
        account_id=account_id,
        user_id=user.id,
        amount=request.amount,
        funding_source=FundingSource(
            type=source.type,
            account_number=source.account_number,
            routing_number=source.routing_number,
        ),
    )

    return FundAccountResponse(
        transaction=TransactionResponse.model_validate(result["transaction"]),
        new_balance=result["new_balance"],
    )


@router.get(
    "/{account_id}/transactions",
    response_model=list[AccountTransactionResponse],
    summary="List transactions for an account",
)
async def list_transactions(
    account_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List every transaction of an account, oldest first."""
    return await transaction_service.get_transactions(
        db=db,
        account_id=account_id,
        user_id=user.id,
    )
