"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This pattern keeps secrets out of source code — the .env file is
gitignored, and .env.example provides a safe template for developers.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from app.config import settings
    print(settings.SECRET_KEY)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Funding Bank API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign JWT tokens
      - FUNDING_SOURCE_ENCRYPTION_KEY: Fernet key for encrypting funding
        source account numbers at rest
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Funding Bank API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # One JSON object per line instead of the plain text format
    LOG_JSON: bool = False

    # --- Database ---
    # SQLite for MVP; swap to PostgreSQL connection string for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/bank.db"

    # --- Authentication ---
    # REQUIRED: No default — forces the developer to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    # Sessions live for 7 days
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60
    # Sessions this close to expiry are revoked instead of accepted
    SESSION_EXPIRY_SAFETY_SECONDS: int = 30

    # --- Funding source encryption ---
    # REQUIRED: Fernet key for encrypting card / bank account numbers at rest
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    FUNDING_SOURCE_ENCRYPTION_KEY: str

    # --- Accounts ---
    # Upper bound on account-number draws before giving up
    ACCOUNT_NUMBER_MAX_ATTEMPTS: int = 100

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
