"""
Expense Tracker - Authentication Helpers

PURPOSE: Password hashing, bearer tokens and password-reset tokens
SCOPE: Credential handling shared by the user manager and the HTTP layer
DEPENDENCIES: bcrypt, PyJWT, config.py
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Tuple

import bcrypt
import jwt

from .config import AppConfig
from .exceptions import AuthenticationError


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=10)).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def create_access_token(user_id: int, app_config: AppConfig) -> str:
    """Issue a signed bearer token for ``user_id``."""
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'iat': now,
        'exp': now + timedelta(days=app_config.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, app_config.JWT_SECRET, algorithm=app_config.JWT_ALGORITHM)


def decode_access_token(token: str, app_config: AppConfig) -> int:
    """Return the user id carried by ``token``.

    Raises AuthenticationError for a missing, malformed, tampered or expired
    token.
    """
    if not token:
        raise AuthenticationError("Not authorized, no token")
    try:
        payload = jwt.decode(token, app_config.JWT_SECRET, algorithms=[app_config.JWT_ALGORITHM])
        return int(payload['sub'])
    except (jwt.PyJWTError, KeyError, ValueError, TypeError):
        raise AuthenticationError("Not authorized, token failed")


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def generate_reset_token() -> Tuple[str, str]:
    """Return ``(raw_token, token_hash)``; only the hash is ever stored."""
    token = secrets.token_hex(20)
    return token, hash_reset_token(token)
