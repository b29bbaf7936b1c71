"""
Account service — business logic for bank account operations.

This module handles:
  - Account creation (one per type per user, with a unique account number)
  - Account listing, scoped to the owner
  - The ownership guard every account-specific operation goes through
  - Balance verification (stored vs. computed from the ledger)

Ownership enforcement:
  get_owned_account() looks accounts up by (account id, owner id) in a
  single query. An account that exists but belongs to someone else is
  indistinguishable from one that doesn't exist: both raise
  AccountNotFoundError with the same message. A caller therefore cannot
  discover which account ids are in use.

Account numbers:
  Account numbers are externally visible, so they are drawn from the
  `secrets` CSPRNG rather than a predictable sequence. Draws that collide
  with an existing number are retried, up to ACCOUNT_NUMBER_MAX_ATTEMPTS.
"""

import logging
import secrets

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    AccountNotActiveError,
    AccountNotFoundError,
    AllocationExhaustedError,
    DuplicateAccountTypeError,
    InternalError,
)
from app.models.account import Account
from app.models.transaction import Transaction
from app.money import from_cents

logger = logging.getLogger(__name__)

ACCOUNT_NUMBER_MIN = 1_000_000_000
ACCOUNT_NUMBER_MAX = 9_999_999_999


def _generate_account_number() -> str:
    """Draw a 10-digit account number in [1000000000, 9999999999]."""
    span = ACCOUNT_NUMBER_MAX - ACCOUNT_NUMBER_MIN + 1
    return str(ACCOUNT_NUMBER_MIN + secrets.randbelow(span))


async def allocate_account_number(
    db: AsyncSession,
    max_attempts: int | None = None,
) -> str:
    """
    Find an account number not used by any existing account.

    Args:
        db: Database session.
        max_attempts: Draws before giving up. Defaults to
                      settings.ACCOUNT_NUMBER_MAX_ATTEMPTS.

    Returns:
        A free 10-digit account number.

    Raises:
        AllocationExhaustedError: If every draw collided.
    """
    if max_attempts is None:
        max_attempts = settings.ACCOUNT_NUMBER_MAX_ATTEMPTS

    for _ in range(max_attempts):
        account_number = _generate_account_number()
        existing = await db.execute(
            select(Account.id).where(Account.account_number == account_number)
        )
        if existing.scalar_one_or_none() is None:
            return account_number
        logger.warning("Account number collision, drawing again")

    raise AllocationExhaustedError(max_attempts)


async def _find_account_of_type(
    db: AsyncSession,
    user_id: int,
    account_type: str,
) -> Account | None:
    result = await db.execute(
        select(Account)
        .where(Account.user_id == user_id)
        .where(Account.account_type == account_type)
    )
    return result.scalar_one_or_none()


async def create_account(
    db: AsyncSession,
    user_id: int,
    account_type: str = "checking",
) -> Account:
    """
    Create a new bank account for a user.

    The account starts active with a zero balance.

    Args:
        db: Database session.
        user_id: The owner's user ID.
        account_type: "checking" or "savings".

    Returns:
        The newly created Account instance.

    Raises:
        DuplicateAccountTypeError: If the user already has this account type.
        AllocationExhaustedError: If no free account number could be drawn.
        InternalError: If the insert fails for any other reason.
    """
    if await _find_account_of_type(db, user_id, account_type) is not None:
        raise DuplicateAccountTypeError(account_type)

    account_number = await allocate_account_number(db)

    account = Account(
        user_id=user_id,
        account_type=account_type,
        account_number=account_number,
        balance_cents=0,
        status="active",
    )
    db.add(account)
    try:
        await db.flush()
        # Commit before the route returns; get_db's teardown runs too late
        # to turn a failed commit into an error response
        await db.commit()
    except IntegrityError:
        # A concurrent request won the race for this type or number
        await db.rollback()
        if await _find_account_of_type(db, user_id, account_type) is not None:
            raise DuplicateAccountTypeError(account_type)
        logger.exception("Account insert failed for user %s", user_id)
        raise InternalError()
    except SQLAlchemyError:
        logger.exception("Account insert failed for user %s", user_id)
        await db.rollback()
        raise InternalError()

    logger.info("Created %s account %s for user %s", account_type, account.id, user_id)
    return account


async def get_accounts(
    db: AsyncSession,
    user_id: int,
) -> list[Account]:
    """
    List all accounts belonging to a specific user.

    This is inherently scoped — only the owner's accounts are returned.
    """
    result = await db.execute(
        select(Account).where(Account.user_id == user_id).order_by(Account.id)
    )
    return list(result.scalars().all())


async def get_owned_account(
    db: AsyncSession,
    account_id: int,
    user_id: int,
    *,
    require_active: bool = True,
    for_update: bool = False,
) -> Account:
    """
    Get a single account, verifying ownership (and optionally its status).

    Args:
        db: Database session.
        account_id: The account to retrieve.
        user_id: The authenticated user's ID.
        require_active: Reject accounts whose status is not "active".
        for_update: Lock the row until the transaction ends
                    (no-op on SQLite, row lock on PostgreSQL).

    Returns:
        The Account instance.

    Raises:
        AccountNotFoundError: If the account doesn't exist OR belongs to
            someone else; the two cases are identical.
        AccountNotActiveError: If require_active and the account is not active.
    """
    query = (
        select(Account)
        .where(Account.id == account_id)
        .where(Account.user_id == user_id)
    )
    if for_update:
        query = query.with_for_update()

    result = await db.execute(query)
    account = result.scalar_one_or_none()

    if account is None:
        raise AccountNotFoundError()

    if require_active and account.status != "active":
        raise AccountNotActiveError()

    return account


async def get_balance(
    db: AsyncSession,
    account_id: int,
    user_id: int,
) -> dict:
    """
    Get the account balance — both stored and computed from the ledger.

    The computed balance sums the account's completed transactions. If it
    doesn't match the stored balance, that signals a data integrity issue.

    Returns:
        Dict with account_id, balance, computed_balance, match.
    """
    account = await get_owned_account(db, account_id, user_id, require_active=False)

    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount_cents), 0))
        .where(Transaction.account_id == account.id)
        .where(Transaction.status == "completed")
    )
    computed_cents = result.scalar()

    return {
        "account_id": account.id,
        "balance": account.balance,
        "computed_balance": from_cents(computed_cents),
        "match": account.balance_cents == computed_cents,
    }
