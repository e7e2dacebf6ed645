"""
VoiceConnect Backend: Password Hashing & JWT Helpers
======================================================

Passwords:
    bcrypt with `settings.bcrypt_rounds` (12 by default). bcrypt only reads
    the first 72 bytes of a password, so longer inputs are cut there
    explicitly; recent bcrypt releases raise instead of truncating.

Tokens:
    HS256 JWTs with claims {sub: user id, type: access|refresh, iat, exp}.
    Access and refresh tokens are signed with different secrets, and the
    `type` claim is checked on decode, so one can never stand in for the other.
"""

import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from voiceconnect.config import settings
from voiceconnect.exceptions import AuthenticationError


TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def _create_token(user_id: uuid.UUID, token_type: str, secret: str, expire_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: uuid.UUID) -> str:
    return _create_token(
        user_id, TOKEN_TYPE_ACCESS, settings.jwt_secret, settings.jwt_access_expire_minutes
    )


def create_refresh_token(user_id: uuid.UUID) -> str:
    return _create_token(
        user_id,
        TOKEN_TYPE_REFRESH,
        settings.jwt_refresh_secret,
        settings.jwt_refresh_expire_minutes,
    )


def _decode_token(token: str, token_type: str, secret: str) -> uuid.UUID:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Invalid token.", context={"reason": "expired"})
    except jwt.PyJWTError as e:
        raise AuthenticationError("Invalid token.", context={"reason": type(e).__name__})

    if payload.get("type") != token_type:
        raise AuthenticationError("Invalid token.", context={"reason": "wrong_token_type"})
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid token.", context={"reason": "bad_subject"})


def decode_access_token(token: str) -> uuid.UUID:
    """Returns the user id in a valid access token; raises AuthenticationError otherwise."""
    return _decode_token(token, TOKEN_TYPE_ACCESS, settings.jwt_secret)


def decode_refresh_token(token: str) -> uuid.UUID:
    return _decode_token(token, TOKEN_TYPE_REFRESH, settings.jwt_refresh_secret)
