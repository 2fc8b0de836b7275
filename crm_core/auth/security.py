"""
Security Utilities

Password hashing with Argon2id and JWT access/refresh token management.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from structlog import get_logger

from ..config import get_config

logger = get_logger()

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Argon2 preferred, bcrypt kept to verify legacy hashes
pwd_context = CryptContext(
    schemes=["argon2", "bcrypt"],
    deprecated="auto",
    argon2__memory_cost=65536,  # 64 MB
    argon2__time_cost=3,
    argon2__parallelism=4,
)

PASSWORD_RULES = (
    (lambda p: len(p) >= 8, "Password must be at least 8 characters long"),
    (lambda p: any(c.isupper() for c in p), "Password must contain at least one uppercase letter"),
    (lambda p: any(c.islower() for c in p), "Password must contain at least one lowercase letter"),
    (lambda p: any(c.isdigit() for c in p), "Password must contain at least one digit"),
)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a stored hash.

    Malformed hashes count as a mismatch.
    """
    try:
        verified, needs_rehash = pwd_context.verify_and_update(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error("password_verification_error", error=str(e))
        return False

    if verified and needs_rehash:
        logger.info("password_needs_rehash", algorithm="bcrypt_to_argon2")

    return verified


def validate_password_strength(password: str) -> tuple[bool, Optional[str]]:
    """
    Validate password strength.

    Returns:
        Tuple of (is_valid, error_message)
    """
    for rule, message in PASSWORD_RULES:
        if not rule(password):
            return False, message
    return True, None


def _encode(data: dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"type": token_type, "exp": datetime.utcnow() + expires_delta})

    config = get_config()
    return jwt.encode(to_encode, config.jwt_secret_key, algorithm=config.jwt_algorithm)


def _decode(token: str, token_type: str) -> Optional[dict[str, Any]]:
    config = get_config()
    try:
        payload = jwt.decode(token, config.jwt_secret_key, algorithms=[config.jwt_algorithm])
    except JWTError as e:
        logger.warning("jwt_decode_error", error=str(e), token_type=token_type)
        return None

    if payload.get("type") != token_type:
        logger.warning("jwt_type_mismatch", expected=token_type, actual=payload.get("type"))
        return None

    return payload


def create_access_token(
    data: dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (user_id, tenant_id, role)
        expires_delta: Token lifetime (defaults to config value)
    """
    lifetime = expires_delta or timedelta(hours=get_config().jwt_expiry_hours)
    return _encode(data, ACCESS_TOKEN_TYPE, lifetime)


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """Decode and validate an access token. Returns None when invalid or expired."""
    return _decode(token, ACCESS_TOKEN_TYPE)


def create_refresh_token(user_id: str, tenant_id: str) -> str:
    lifetime = timedelta(days=get_config().refresh_token_expiry_days)
    return _encode({"user_id": user_id, "tenant_id": tenant_id}, REFRESH_TOKEN_TYPE, lifetime)


def verify_refresh_token(token: str) -> Optional[dict[str, Any]]:
    return _decode(token, REFRESH_TOKEN_TYPE)
