"""
Account model — a bank account owned by a User.

Each account has:
  - An internal integer id and an external account number (random
    10-digit string, unique, never changes)
  - A type: "checking" or "savings" — one of each per user at most
  - A balance in integer cents (changed only by the funding engine)
  - A status: "pending", "active", or "closed"; only active accounts
    accept funds

Balance management:
  The `balance_cents` column stores the current balance as an integer
  (in cents, e.g., $10.50 = 1050). It is only ever changed by a single
  `UPDATE ... SET balance_cents = balance_cents + :cents` statement issued
  in the same database transaction that inserts the ledger entry, so it is
  always equal to the sum of the account's completed transactions.

  A CHECK constraint at the database level enforces that the balance can
  never go negative. Two more keep account_type and status inside
  ACCOUNT_TYPES and ACCOUNT_STATUSES. The column is BIGINT, and the funding
  engine refuses any deposit that would take it past MAX_BALANCE_CENTS.

Why integer cents?
  Floating-point numbers can introduce rounding errors in financial
  calculations. For example, 0.1 + 0.2 != 0.3 in IEEE 754 floating point.
  By storing amounts as integer cents:
    - All arithmetic is exact, including arithmetic done by the database
    - $10.99 is stored as 1099 — no ambiguity
    - The API exposes `balance` as a two-place Decimal
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, BigInteger, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.money import from_cents

ACCOUNT_TYPES = ("checking", "savings")
ACCOUNT_STATUSES = ("pending", "active", "closed")


def _one_of(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        # Database-level constraint: balance can never be negative
        CheckConstraint(
            "balance_cents >= 0",
            name="ck_accounts_non_negative_balance",
        ),
        CheckConstraint(
            _one_of("account_type", ACCOUNT_TYPES),
            name="ck_accounts_account_type",
        ),
        CheckConstraint(
            _one_of("status", ACCOUNT_STATUSES),
            name="ck_accounts_status",
        ),
        # One account per type per user
        UniqueConstraint(
            "user_id",
            "account_type",
            name="uq_accounts_user_account_type",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Owner of this account
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # "checking" or "savings"
    account_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    # Unique 10-digit account number (generated at creation time)
    account_number: Mapped[str] = mapped_column(
        String(10),
        unique=True,
        nullable=False,
    )

    # BIGINT: capped at MAX_BALANCE_CENTS by the funding engine
    balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    # "pending", "active", or "closed"
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="active",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="accounts",
    )

    @property
    def balance(self) -> Decimal:
        """Balance as a two-place Decimal, e.g. Decimal("12.50")."""
        return from_cents(self.balance_cents)
