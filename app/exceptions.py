"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  FastAPI's default HTTPException works, but custom exceptions let the
  service layer raise domain-specific errors (like AmountTooSmallError)
  without importing HTTP concepts. The router/handler layer then translates
  these into proper HTTP responses.

  This separation means:
    - Service code is testable without HTTP
    - Error responses are consistent across all endpoints
    - Adding new error types is straightforward

Exception hierarchy:
    BankAPIError (base)
    ├── InvalidAmountError          — amount is not a valid money value
    ├── AmountTooSmallError         — amount rounds to less than $0.01
    ├── InvalidFundingSourceError   — card/bank details missing or malformed
    ├── AccountNotFoundError        — account missing OR owned by someone else
    ├── AccountNotActiveError       — account exists but cannot take funds
    ├── BalanceLimitExceededError   — deposit would push the balance past the cap
    ├── DuplicateAccountTypeError   — second checking/savings for one user
    ├── AllocationExhaustedError    — no free account number found
    ├── InternalError               — store failure, details stay in the log
    ├── DuplicateEmailError         — signup with a registered email
    └── InvalidCredentialsError     — wrong email or password

Every response body has the same shape:
    {"detail": "<human readable>", "error_type": "<machine checkable>"}

Amounts, account numbers, and email addresses are never placed in an
error message.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all Bank API domain errors."""

    status_code: int = 400
    error_type: str = "bank_api_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Validation errors — reported to the caller, never retried
# ---------------------------------------------------------------------------

class InvalidAmountError(BankAPIError):
    """Raised when an amount is not a plain, non-negative decimal value."""

    error_type = "invalid_amount"

    def __init__(self, detail: str = "Invalid amount format; use e.g. 1.23"):
        super().__init__(detail)


class AmountTooSmallError(BankAPIError):
    """Raised when an amount rounds to less than one cent."""

    error_type = "amount_too_small"

    def __init__(self):
        super().__init__("Amount must be at least $0.01")


class InvalidFundingSourceError(BankAPIError):
    """Raised when the declared funding source is incomplete or malformed."""

    error_type = "invalid_funding_source"

    def __init__(self, detail: str = "Invalid funding source"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Authorization errors — uniform so account existence does not leak
# ---------------------------------------------------------------------------

class AccountNotFoundError(BankAPIError):
    """
    Raised when an account does not exist or belongs to another user.

    Both cases produce the same message so a caller cannot
    discover which account ids exist.
    """

    status_code = 404
    error_type = "account_not_found"

    def __init__(self):
        super().__init__("Account not found")


class AccountNotActiveError(BankAPIError):
    """Raised when funding an account whose status is not 'active'."""

    error_type = "account_not_active"

    def __init__(self):
        super().__init__("Account is not active")


class BalanceLimitExceededError(BankAPIError):
    """Raised when a deposit would take the balance past MAX_BALANCE_CENTS."""

    error_type = "balance_limit_exceeded"

    def __init__(self):
        super().__init__("Deposit would exceed the maximum account balance")


# ---------------------------------------------------------------------------
# Conflict errors
# ---------------------------------------------------------------------------

class DuplicateAccountTypeError(BankAPIError):
    """Raised when a user already owns an account of the requested type."""

    status_code = 409  # Conflict — the resource already exists
    error_type = "duplicate_account_type"

    def __init__(self, account_type: str):
        self.account_type = account_type
        super().__init__(f"You already have a {account_type} account")


class AllocationExhaustedError(BankAPIError):
    """Raised when every account-number draw collided with an existing one."""

    status_code = 503
    error_type = "allocation_exhausted"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__("Could not allocate an account number, please retry")


# ---------------------------------------------------------------------------
# Internal errors
# ---------------------------------------------------------------------------

class InternalError(BankAPIError):
    """Opaque failure of the persistence layer. Details are only logged."""

    status_code = 500
    error_type = "internal_error"

    def __init__(self):
        super().__init__("An internal error occurred")


# ---------------------------------------------------------------------------
# Authentication errors
# ---------------------------------------------------------------------------

class DuplicateEmailError(BankAPIError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = 409
    error_type = "duplicate_email"

    def __init__(self):
        super().__init__("Email is already registered")


class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Each domain exception maps to its own HTTP status code through the
    class attributes above, with a consistent JSON response format:
    {"detail": "error message", "error_type": "..."}

    This is called once during app startup in main.py.
    """

    @app.exception_handler(BankAPIError)
    async def bank_api_error_handler(
        request: Request, exc: BankAPIError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.error_type},
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(
        request: Request, exc: SQLAlchemyError
    ) -> JSONResponse:
        # Anything the services did not translate themselves
        logger.error(
            "Unhandled database error on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        error = InternalError()
        return JSONResponse(
            status_code=error.status_code,
            content={"detail": error.detail, "error_type": error.error_type},
        )
