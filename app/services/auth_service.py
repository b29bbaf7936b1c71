"""
Authentication service — signup, login, and logout business logic.

This module contains the core auth logic, separated from HTTP concerns.
The router calls these functions and translates the results into HTTP
responses.

Signup flow:
  1. Check if email is already registered
  2. Hash the password with Argon2id
  3. Create the User and its first Session in a single database transaction
  4. Return a JWT token so the user is immediately logged in

Login flow:
  1. Look up user by email
  2. Verify password against stored hash
  3. Record a new Session and return its JWT token

Logout flow:
  Delete the Session row for the presented token. The JWT may still be
  cryptographically valid, but get_current_user refuses tokens without a
  session row.

Commits:
  signup, login, and logout commit before returning, so the token handed
  to the client is durable by the time the response is sent (get_db's
  teardown commit runs only after that). purge_expired_sessions leaves
  the commit to its caller.

Security notes:
  - Passwords are hashed before storage (never stored in plaintext)
  - Login returns the same error for "wrong password" and "email not found"
    to prevent user enumeration attacks
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import DuplicateEmailError, InvalidCredentialsError
from app.models.session import Session
from app.models.user import User
from app.security import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


async def _open_session(db: AsyncSession, user: User) -> str:
    """Issue a JWT for the user and record it in the sessions table."""
    expires_at = datetime.now(timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    # "sub" (subject) is the standard claim for user identity
    token = create_access_token(data={"sub": str(user.id)}, expires_at=expires_at)

    db.add(Session(user_id=user.id, token=token, expires_at=expires_at))
    await db.flush()
    return token


async def signup(
    db: AsyncSession,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    phone_number: str | None = None,
) -> tuple[User, str]:
    """
    Register a new user and log them in.

    Args:
        db: Database session.
        email: User's email (must be unique).
        password: Plaintext password (will be hashed before storage).
        first_name: User's first name.
        last_name: User's last name.
        phone_number: Optional phone number.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise DuplicateEmailError()

    user = User(
        email=email,
        hashed_password=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
    )
    db.add(user)
    # Flush to get the user.id assigned (needed for the session FK)
    await db.flush()

    token = await _open_session(db, user)
    await db.commit()
    logger.info("Registered user %s", user.id)
    return user, token


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a fresh JWT token.

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for every case — prevents user enumeration
    if not user:
        raise InvalidCredentialsError()

    if not verify_password(password, user.hashed_password):
        raise InvalidCredentialsError()

    if not user.is_active:
        raise InvalidCredentialsError()

    token = await _open_session(db, user)
    await db.commit()
    return user, token


async def logout(db: AsyncSession, token: str) -> bool:
    """
    Revoke the session for a token.

    Returns:
        True if a session was deleted, False if none matched.
    """
    result = await db.execute(delete(Session).where(Session.token == token))
    await db.commit()
    return result.rowcount > 0


async def purge_expired_sessions(db: AsyncSession) -> int:
    """Delete every session whose expiry has passed. Returns the count."""
    result = await db.execute(
        delete(Session).where(Session.expires_at < datetime.now(timezone.utc))
    )
    if result.rowcount:
        logger.info("Purged %d expired session(s)", result.rowcount)
    return result.rowcount
