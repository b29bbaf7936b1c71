"""
FastAPI dependencies for authentication.

Dependencies are reusable functions that FastAPI injects into route handlers.
Every banking endpoint declares `get_current_user`; if it fails (missing,
invalid, revoked, or nearly expired token) the request is rejected with 401
before the route handler runs.

The services downstream only ever receive `user.id` — the verified,
non-forgeable principal identifier. They trust it without re-checking
credentials.

Session validation:
  1. The JWT signature and `exp` claim are verified
  2. A row for the exact token must exist in the sessions table
     (logout deletes it)
  3. If the session expires within SESSION_EXPIRY_SAFETY_SECONDS it is
     deleted and rejected, so a token never expires halfway through a
     request
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.models.session import Session
from app.models.user import User
from app.security import decode_access_token

logger = logging.getLogger(__name__)


# OAuth2PasswordBearer tells FastAPI where to look for the token:
# the "Authorization: Bearer <token>" header. The tokenUrl points to
# the login endpoint (used by Swagger UI's "Authorize" button).
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Args:
        token: JWT from the Authorization header (injected by OAuth2PasswordBearer).
        db: Database session (injected by get_db).

    Returns:
        The authenticated User instance.

    Raises:
        HTTPException 401: If the token is invalid, revoked, about to
            expire, or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = int(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(Session).where(Session.token == token))
    session = result.scalar_one_or_none()
    if session is None or session.user_id != user_id:
        raise credentials_exception

    safety_window = timedelta(seconds=settings.SESSION_EXPIRY_SAFETY_SECONDS)
    if _as_utc(session.expires_at) - datetime.now(timezone.utc) <= safety_window:
        # Revoke it now; commit explicitly because get_db rolls back on the 401
        await db.execute(delete(Session).where(Session.id == session.id))
        await db.commit()
        logger.info("Revoked session %s for user %s near expiry", session.id, user_id)
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user
