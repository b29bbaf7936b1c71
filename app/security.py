"""
Security utilities: password hashing, JWT tokens, and Fernet encryption.

This module centralizes all cryptographic operations so they're easy to
audit and update. Three concerns are handled here:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - We use passlib's CryptContext for safe, high-level Argon2 operations

2. JWT TOKENS (JSON Web Tokens)
   - After signup/login, the user receives a signed JWT containing their user ID
   - The token is signed with SECRET_KEY using HS256 (HMAC-SHA256)
   - Tokens expire after ACCESS_TOKEN_EXPIRE_MINUTES
   - Each token is also recorded in the sessions table so it can be revoked

3. FERNET ENCRYPTION (AES-128-CBC + HMAC-SHA256)
   - Used for encrypting funding source account numbers at rest
   - Fernet provides authenticated encryption: data is both encrypted and
     integrity-checked, preventing tampering
   - The encryption key is loaded from environment variables, never hardcoded
"""

import uuid
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet
from jose import jwt
from passlib.context import CryptContext

from app.config import settings


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

# "deprecated='auto'" lets passlib verify hashes made with a retired scheme
# while hashing new passwords with the active one.
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using Argon2id.

    Args:
        plain_password: The user's raw password input.

    Returns:
        An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored Argon2 hash (constant time)."""
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. JWT Tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_at: datetime | None = None) -> str:
    """
    Create a signed JWT access token.

    The token payload contains:
      - "sub": The subject (user ID as string) — standard JWT claim
      - "exp": Expiration timestamp — after this, the token is rejected
      - "iat": Issued-at timestamp
      - "jti": Random token id, so two tokens issued to the same user in
               the same second still differ (sessions.token is unique)

    Args:
        data: Dictionary of claims to encode (must include "sub").
        expires_at: Optional absolute expiry. Defaults to now +
                    ACCESS_TOKEN_EXPIRE_MINUTES.

    Returns:
        An encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    if expires_at is None:
        expires_at = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = data.copy()
    to_encode.update({"exp": expires_at, "iat": now, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.

    Returns:
        The decoded payload dictionary (contains "sub", "exp", etc.).
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# 3. Fernet Encryption (for funding source numbers at rest)
# ---------------------------------------------------------------------------

# Fernet keys are URL-safe base64-encoded 32-byte keys.
_fernet = Fernet(settings.FUNDING_SOURCE_ENCRYPTION_KEY.encode())


def encrypt_value(plaintext: str) -> bytes:
    """
    Encrypt a string value using Fernet (AES-128-CBC + HMAC-SHA256).

    Returns:
        Encrypted bytes suitable for storing in a LargeBinary column.
    """
    return _fernet.encrypt(plaintext.encode())


def decrypt_value(ciphertext: bytes) -> str:
    """
    Decrypt a Fernet-encrypted value back to plaintext.

    Raises:
        cryptography.fernet.InvalidToken: If the data is corrupted or
            the encryption key doesn't match.
    """
    return _fernet.decrypt(ciphertext).decode()
