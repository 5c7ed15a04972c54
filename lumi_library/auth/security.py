from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from lumi_library.errors import InvalidToken, TokenExpired


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"


def hash_password(password: str) -> str:
    """Salted hash; hashing the same password twice gives different strings."""
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except (ValueError, TypeError):
        # Malformed / unknown hash format.
        return False


def create_access_token(
    *,
    secret: str,
    user_id: int,
    email: str,
    expires_minutes: int,
    now: datetime | None = None,
) -> str:
    """Issue a signed session token.

    Claims: sub (user id), email, iat, exp. Role is deliberately not a claim;
    privileged routes read it from the users table.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")

    issued = now or datetime.now(timezone.utc)
    exp = issued + timedelta(minutes=max(1, int(expires_minutes)))

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "email": email,
        "iat": int(issued.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    """Verify signature + expiry and return the claims.

    Raises TokenExpired once `exp` has passed (no leeway) and InvalidToken for
    anything else (bad signature, garbage, missing claims).
    """
    if not token:
        raise InvalidToken()
    if not secret:
        raise ValueError("jwt_secret_blank")
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpired() from e
    except jwt.InvalidTokenError as e:
        raise InvalidToken() from e
