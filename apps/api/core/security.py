"""
Security utilities for session tokens.

Provides:
- JWT access token generation and validation
- Opaque refresh token generation and hashing

SECURITY REQUIREMENTS:
- SECRET_KEY must be set via environment variable
- SECRET_KEY must be cryptographically secure (32+ characters)
- SECRET_KEY must be different for each environment (dev/staging/prod)
- SECRET_KEY must NEVER be committed to source control
"""
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Dict, Tuple
from jose import JWTError, ExpiredSignatureError, jwt
from core.config import settings

# SECRET_KEY is required by config.py, startup fails if not set
SECRET_KEY = settings.SECRET_KEY

# Validate SECRET_KEY strength at module load
if len(SECRET_KEY) < 32:
    raise ValueError(
        "SECRET_KEY must be at least 32 characters. "
        "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES
REFRESH_TOKEN_EXPIRE_DAYS = settings.REFRESH_TOKEN_EXPIRE_DAYS


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"  # decodable, but bad signature or claims
    MALFORMED = "malformed"  # not a JWT at all


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta is not None:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def inspect_access_token(token: Optional[str]) -> Tuple[TokenStatus, Optional[Dict]]:
    """
    Classify an access token.

    Returns (status, payload). The payload is only returned for VALID and
    EXPIRED tokens, i.e. when the signature checks out.
    """
    if not token:
        return TokenStatus.MALFORMED, None
    try:
        jwt.get_unverified_claims(token)
    except JWTError:
        return TokenStatus.MALFORMED, None

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        try:
            payload = jwt.decode(
                token, SECRET_KEY, algorithms=[ALGORITHM], options={"verify_exp": False}
            )
        except JWTError:
            return TokenStatus.INVALID, None
        return TokenStatus.EXPIRED, payload
    except JWTError:
        return TokenStatus.INVALID, None

    if payload.get("type") != "access" or not payload.get("sub"):
        return TokenStatus.INVALID, None
    return TokenStatus.VALID, payload


def generate_refresh_token() -> str:
    """Opaque refresh token. Only its hash is ever stored."""
    return secrets.token_urlsafe(48)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
