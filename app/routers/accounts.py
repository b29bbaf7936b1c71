"""
Accounts router — bank account management endpoints.

All endpoints require a JWT and are scoped to the authenticated user:
  POST   /accounts                        — Create a checking or savings account
  GET    /accounts                        — List own accounts
  GET    /accounts/{account_id}/balance   — Stored vs. ledger-computed balance

Another user's account id answers exactly like an id that doesn't exist
(404), so account ids cannot be enumerated.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.schemas.account import AccountCreateRequest, AccountResponse, BalanceResponse
from app.services import account_service

router = APIRouter()


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new bank account",
)
async def create_account(
    request: AccountCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a new checking or savings account.

    The account is created active, with a zero balance and a randomly
    generated 10-digit account number. Each user may hold one account of
    each type; a second one is rejected with 409.
    """
    return await account_service.create_account(
        db=db,
        user_id=user.id,
        account_type=request.account_type,
    )


@router.get(
    "",
    response_model=list[AccountResponse],
    summary="List your accounts",
)
async def list_accounts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List all bank accounts owned by the authenticated user."""
    return await account_service.get_accounts(db, user.id)


@router.get(
    "/{account_id}/balance",
    response_model=BalanceResponse,
    summary="Check account balance",
)
async def get_balance(
    account_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the account balance — both stored and computed from transactions.

    The response includes a `match` boolean indicating whether the stored
    balance agrees with the sum of all completed transactions.
    """
    return await account_service.get_balance(db, account_id, user.id)
