"""
Authentication router — signup, login, and logout endpoints.

Signup and login are the only public (unauthenticated) endpoints in the
API. Everything else requires a valid JWT token with a live session.

Endpoints:
  POST /auth/signup  — Register a new user and get a token
  POST /auth/login   — Authenticate and get a token
  POST /auth/logout  — Revoke the presented token

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - JWT tokens appear only in response bodies, which are not logged by
    uvicorn (it logs method, path, and status code only).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user, oauth2_scheme
from app.models.user import User
from app.schemas.auth import (
    UserSignupRequest,
    UserLoginRequest,
    TokenResponse,
    SignupResponse,
    LogoutResponse,
)
from app.services import auth_service

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: UserSignupRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new bank customer.

    Returns a JWT token so the user is immediately logged in after signup.

    - **email**: Must be a valid email format and not already registered
    - **password**: Minimum 8 characters
    - **first_name** / **last_name**: Required, 1-100 characters
    - **phone_number**: Optional, 10-15 digits with an optional leading +
    """
    user, token = await auth_service.signup(
        db=db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone_number=request.phone_number,
    )

    return SignupResponse(user_id=user.id, email=user.email, token=token)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token",
)
async def login(
    request: UserLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with email and password.

    Returns a JWT bearer token that must be included in the Authorization
    header for all subsequent requests:

        Authorization: Bearer <token>
    """
    user, token = await auth_service.login(
        db=db,
        email=request.email,
        password=request.password,
    )

    return TokenResponse(token=token)


@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="Revoke the current token",
)
async def logout(
    token: str = Depends(oauth2_scheme),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """End the session; the same token is rejected afterwards."""
    revoked = await auth_service.logout(db, token)
    return LogoutResponse(
        success=True,
        message="Logged out successfully" if revoked else "No active session",
    )
