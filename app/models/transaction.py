"""
Transaction model — the append-only ledger of funding events.

Every successful funding call creates exactly one Transaction row, in the
same database transaction that increments the account balance. Rows are
never updated or deleted afterwards.

Key fields:
  - type: "deposit" (the only type the funding path produces)
  - amount_cents: Always positive
  - status: "completed" — no pending/partial state is ever written
  - created_at / processed_at: Both set once, at insertion

Funding source:
  The caller declares where the money comes from: a card or a bank account.
  Like card data in any banking system, the full source account number is
  sensitive:
    - funding_source_encrypted: Full account number, Fernet-encrypted
    - funding_source_last_four: Last 4 digits in plaintext for display
    - routing_number: Bank routing number (bank sources only) — routing
      numbers identify the bank, not the customer, so they stay readable
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, BigInteger, DateTime, ForeignKey, CheckConstraint, LargeBinary
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.money import from_cents


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transactions_positive_amount"),
    )

    # Integer autoincrement — ids grow with insertion order
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="deposit",
    )

    amount_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="completed",
    )

    # "card" or "bank"
    funding_source_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    funding_source_last_four: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
    )

    # Fernet-encrypted (AES-128-CBC + HMAC-SHA256)
    funding_source_encrypted: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
    )

    routing_number: Mapped[str | None] = mapped_column(
        String(9),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    @property
    def amount(self) -> Decimal:
        return from_cents(self.amount_cents)
