from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from lumi_library.config import Config
from lumi_library.db import connect
from lumi_library.errors import Forbidden, InvalidToken, Unauthenticated

from .crud import get_user_by_id, public_user, require_user
from .security import decode_access_token


_bearer = HTTPBearer(auto_error=False)


def require_auth(cfg: Config, token: str | None) -> Dict[str, Any]:
    """Verify a session token and return the identity it carries.

    Missing token, bad signature and expiry all raise Unauthenticated (401).
    The store is not consulted.
    """
    if not token:
        raise Unauthenticated()

    claims = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidToken() from e

    return {"user_id": user_id, "email": claims.get("email")}


def require_role(cfg: Config, token: str | None, role: str) -> Dict[str, Any]:
    """Verify the token, then check `role` against the user's *current* stored role.

    Role can change after a token was issued, so it is never read from claims.
    Raises Unauthenticated (401) or Forbidden (403).
    """
    identity = require_auth(cfg, token)
    with connect(cfg.DB_DSN) as conn:
        row = get_user_by_id(conn, identity["user_id"])
    if row is None or str(row["role"]) != role:
        raise Forbidden()
    return public_user(row)


# -----------------------------
# FastAPI dependencies
# -----------------------------


def get_config(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise RuntimeError("server_config_missing")
    return cfg


def _token_from(credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def get_identity(
    cfg: Config = Depends(get_config),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    return require_auth(cfg, _token_from(credentials))


def get_current_user(
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    """The stored user behind a valid token (fresh row, not token claims).

    A token that outlives its user gets NotFound (404).
    """
    with connect(cfg.DB_DSN) as conn:
        return public_user(require_user(conn, identity["user_id"]))


def require_admin(
    cfg: Config = Depends(get_config),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Dict[str, Any]:
    return require_role(cfg, _token_from(credentials), "admin")
