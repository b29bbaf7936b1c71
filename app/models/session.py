"""
Session model — server-side record of an issued JWT.

A JWT on its own is stateless: once signed it stays valid until `exp`. To
support logout, every token issued at signup/login is also stored here, and
the auth dependency only accepts tokens whose row still exists. Deleting the
row revokes the token.

expires_at mirrors the token's `exp` claim. Rows close to expiry are
deleted on use (see app/dependencies.py), and expired rows can be purged in
bulk with demo/clear_sessions.py.
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    # The signed JWT itself
    token: Mapped[str] = mapped_column(
        String(512),
        unique=True,
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
