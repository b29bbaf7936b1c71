"""
Transaction service — the funding engine and the transaction history.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Funding an account (validating the amount and funding source,
    recording a ledger entry, incrementing the balance)
  - Listing an account's ledger entries for its owner

Atomicity:
  The balance increment and the ledger insert are issued in the SAME
  database transaction, and fund_account commits it itself before
  returning. If the increment, the insert, or the commit fails, everything
  is rolled back and the caller gets InternalError, so balance_cents on the
  Account always equals the sum of its completed transactions and a
  success response always describes a durable deposit.

No lost updates:
  The balance is never read into Python, changed, and written back. The
  increment is one conditional statement evaluated by the database:

      UPDATE accounts
         SET balance_cents = balance_cents + :cents
       WHERE id = :id AND user_id = :user_id AND status = 'active'
         AND balance_cents <= :max_balance - :cents

  Two concurrent funding calls on the same account therefore serialize on
  the row (PostgreSQL row lock / SQLite database write lock) and both
  increments land. The ownership lookup before it also takes a row lock
  with with_for_update() where the backend supports one.

  The new balance returned to the caller is read back from the database
  inside the same transaction, never from the in-memory ORM object.

Validation happens before any write:
  amount → funding source → ownership/status. A request that fails any of
  these leaves no trace in the database.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AccountNotActiveError,
    BalanceLimitExceededError,
    InternalError,
    InvalidFundingSourceError,
)
from app.models.account import Account
from app.models.transaction import Transaction
from app.money import MAX_BALANCE_CENTS, from_cents, parse_amount, to_cents
from app.security import encrypt_value
from app.services.account_service import get_owned_account

logger = logging.getLogger(__name__)

FUNDING_SOURCE_TYPES = ("card", "bank")

_ROUTING_NUMBER_PATTERN = re.compile(r"^\d{9}$")
_SOURCE_NUMBER_PATTERN = re.compile(r"^\d+$")


@dataclass(frozen=True)
class FundingSource:
    """
    Where the money comes from.

    Either {type: "card", account_number} or
    {type: "bank", account_number, routing_number}.
    """
    type: str
    account_number: str
    routing_number: str | None = None


def validate_funding_source(source: FundingSource) -> FundingSource:
    """
    Check a funding source and return it in canonical form.

    Spaces and hyphens are stripped from the account number
    ("4111-1111 1111 1111" → "4111111111111111"). Card sources drop any
    routing number that was sent along.

    Raises:
        InvalidFundingSourceError: Unknown type, missing/non-numeric account
            number, or a bank source without a 9-digit routing number.
    """
    if source.type not in FUNDING_SOURCE_TYPES:
        raise InvalidFundingSourceError("Funding source type must be 'card' or 'bank'")

    account_number = re.sub(r"[\s-]", "", source.account_number or "")
    if not _SOURCE_NUMBER_PATTERN.fullmatch(account_number):
        raise InvalidFundingSourceError("Funding account number must contain only digits")

    if source.type == "bank":
        routing_number = source.routing_number
        if routing_number is None or not _ROUTING_NUMBER_PATTERN.fullmatch(routing_number):
            raise InvalidFundingSourceError("Routing number must be 9 digits for bank funding")
        return FundingSource("bank", account_number, routing_number)

    return FundingSource("card", account_number)


async def fund_account(
    db: AsyncSession,
    account_id: int,
    user_id: int,
    amount: object,
    funding_source: FundingSource,
) -> dict:
    """
    Deposit money into an account the caller owns.

    Args:
        db: Database session (its transaction scopes the atomic step).
        account_id: The account to fund.
        user_id: The authenticated user's ID (for ownership verification).
        amount: Raw amount as sent by the caller — "2.50", 2.5, 3, ...
        funding_source: Declared origin of the funds.

    Returns:
        Dict with:
          - "transaction": the persisted Transaction (id and timestamps set)
          - "new_balance": the account balance right after this deposit

    Raises:
        InvalidAmountError / AmountTooSmallError: Bad amount.
        InvalidFundingSourceError: Bad funding source.
        AccountNotFoundError: Account missing or owned by someone else.
        AccountNotActiveError: Account is not active.
        BalanceLimitExceededError: The deposit would push the balance past
            MAX_BALANCE_CENTS.
        InternalError: The database failed (commit included); nothing was
            persisted.
    """
    amount_value = parse_amount(amount)
    source = validate_funding_source(funding_source)

    # Verify ownership and lock the account row
    account = await get_owned_account(db, account_id, user_id, for_update=True)

    amount_cents = to_cents(amount_value)
    encrypted_source = encrypt_value(source.account_number)

    try:
        # Atomic increment, conditional on the account still being fundable
        result = await db.execute(
            update(Account)
            .where(Account.id == account.id)
            .where(Account.user_id == user_id)
            .where(Account.status == "active")
            .where(Account.balance_cents <= MAX_BALANCE_CENTS - amount_cents)
            .values(balance_cents=Account.balance_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            status_result = await db.execute(
                select(Account.status).where(Account.id == account.id)
            )
            if status_result.scalar_one() != "active":
                raise AccountNotActiveError()
            raise BalanceLimitExceededError()

        now = datetime.now(timezone.utc)
        txn = Transaction(
            account_id=account.id,
            type="deposit",
            amount_cents=amount_cents,
            description=f"Funding from {source.type}",
            status="completed",
            funding_source_type=source.type,
            funding_source_last_four=source.account_number[-4:],
            funding_source_encrypted=encrypted_source,
            routing_number=source.routing_number,
            created_at=now,
            processed_at=now,
        )
        db.add(txn)
        await db.flush()

        balance_result = await db.execute(
            select(Account.balance_cents).where(Account.id == account.id)
        )
        new_balance_cents = balance_result.scalar_one()

        # Committed here rather than in get_db teardown, which runs after the
        # response is sent; a failed commit must surface as InternalError
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Funding failed for account %s", account.id)
        await db.rollback()
        raise InternalError()

    logger.info(
        "Funded account %s with %d cents from %s (transaction %s)",
        account.id,
        amount_cents,
        source.type,
        txn.id,
    )
    return {"transaction": txn, "new_balance": from_cents(new_balance_cents)}


def _enrich(txn: Transaction, account_type: str) -> dict:
    """Public view of a ledger entry plus the account's current type."""
    return {
        "id": txn.id,
        "account_id": txn.account_id,
        "account_type": account_type,
        "type": txn.type,
        "amount": txn.amount,
        "description": txn.description,
        "status": txn.status,
        "funding_source_type": txn.funding_source_type,
        "funding_source_last_four": txn.funding_source_last_four,
        "created_at": txn.created_at,
        "processed_at": txn.processed_at,
    }


async def get_transactions(
    db: AsyncSession,
    account_id: int,
    user_id: int,
) -> list[dict]:
    """
    List every ledger entry of an account, oldest first.

    Closed or pending accounts still show their history; only ownership
    is checked. Each entry carries the account's type as of this query
    (it is not stored on the transaction).

    Raises:
        AccountNotFoundError: Account missing or owned by someone else.
    """
    account = await get_owned_account(db, account_id, user_id, require_active=False)

    result = await db.execute(
        select(Transaction)
        .where(Transaction.account_id == account.id)
        .order_by(Transaction.id.asc())
    )
    return [_enrich(txn, account.account_type) for txn in result.scalars().all()]
