from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from lumi_library.config import Config
from lumi_library.db import connect, is_unique_violation
from lumi_library.errors import DuplicateEmail, InvalidCredentials, NotFound, ValidationError
from lumi_library.util.time import utcnow_iso

from .security import hash_password, verify_password


ROLES = ("user", "admin")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_email(email: str, *, case_insensitive: bool = False) -> str:
    e = (email or "").strip()
    return e.lower() if case_insensitive else e


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password_hash", None)
    d["id"] = d.get("user_id")
    return d


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()


def get_user_by_email(conn: Any, email: str, *, case_insensitive: bool = False) -> Optional[Any]:
    e = normalize_email(email, case_insensitive=case_insensitive)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=?",
        (e,),
    ).fetchone()


def require_user(conn: Any, user_id: int) -> Any:
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise NotFound("User not found")
    return row


def register_user(
    conn: Any,
    *,
    name: str,
    email: str,
    password: str,
    role: str = "user",
    case_insensitive: bool = False,
) -> Dict[str, Any]:
    """Create a user and return its public view.

    Raises ValidationError on missing/malformed input and DuplicateEmail when
    the email is already taken (exact match unless `case_insensitive`).
    """
    n = (name or "").strip()
    e = normalize_email(email, case_insensitive=case_insensitive)
    if not n or not e or not password:
        raise ValidationError("All fields are required")
    if not _EMAIL_RE.match(e):
        raise ValidationError("Invalid email format")
    if role not in ROLES:
        raise ValidationError("Invalid role. Must be user or admin")

    if get_user_by_email(conn, e) is not None:
        raise DuplicateEmail()

    now = utcnow_iso()
    try:
        row = conn.execute(
            """
            INSERT INTO users (name, email, password_hash, role, subscription, subscription_expiry, created_at, updated_at)
            VALUES (?,?,?,?,'none',NULL,?,?)
            RETURNING user_id
            """,
            (n, e, hash_password(password), role, now, now),
        ).fetchone()
    except Exception as exc:
        # A concurrent registration can win between the lookup and the insert.
        if is_unique_violation(exc):
            raise DuplicateEmail() from exc
        raise
    user = require_user(conn, int(row["user_id"]))
    _debug(f"Registered user_id={user['user_id']} role={role}")
    return public_user(user)


def verify_user_credentials(conn: Any, email: str, password: str, *, case_insensitive: bool = False) -> Any:
    """Return the user row for a valid email/password pair.

    Unknown email and wrong password raise the same InvalidCredentials so
    callers cannot tell which accounts exist.
    """
    if not (email or "").strip() or not password:
        raise ValidationError("Email and password are required")
    row = get_user_by_email(conn, email, case_insensitive=case_insensitive)
    if row is None or not verify_password(password, str(row["password_hash"])):
        raise InvalidCredentials()
    return row


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def set_user_role(conn: Any, user_id: int, role: str) -> Dict[str, Any]:
    if not role or role not in ROLES:
        raise ValidationError("Invalid role. Must be user or admin")
    require_user(conn, user_id)
    conn.execute(
        "UPDATE users SET role=?, updated_at=? WHERE user_id=?",
        (role, utcnow_iso(), int(user_id)),
    )
    _debug(f"Role changed user_id={user_id} role={role}")
    return public_user(require_user(conn, user_id))


def delete_user(conn: Any, user_id: int) -> None:
    """Delete a user together with their subscriptions and wishlist rows."""
    require_user(conn, user_id)
    conn.execute("DELETE FROM users WHERE user_id=?", (int(user_id),))
    conn.execute("DELETE FROM subscriptions WHERE user_id=?", (int(user_id),))
    conn.execute("DELETE FROM user_wishlist WHERE user_id=?", (int(user_id),))
    _debug(f"Deleted user_id={user_id}")


def list_users(conn: Any, *, search: str | None = None) -> List[Dict[str, Any]]:
    """All users, optionally filtered by a case-insensitive substring of email or name."""
    q = (search or "").strip()
    if q:
        like = f"%{q.lower()}%"
        rows = conn.execute(
            """
            SELECT * FROM users
            WHERE LOWER(email) LIKE ? OR LOWER(name) LIKE ?
            ORDER BY user_id
            """,
            (like, like),
        ).fetchall()
    else:
        rows = conn.execute("SELECT * FROM users ORDER BY user_id").fetchall()
    return [public_user(r) for r in rows]


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if the users table is empty.

    - AUTH_BOOTSTRAP_ADMIN_EMAIL
    - AUTH_BOOTSTRAP_ADMIN_PASSWORD
    - AUTH_BOOTSTRAP_ADMIN_NAME (default: Administrator)

    Nothing happens unless both email and password are set.
    """
    email = (cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL or "").strip()
    password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD or ""
    if not email or not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None

        return register_user(
            conn,
            name=cfg.AUTH_BOOTSTRAP_ADMIN_NAME,
            email=email,
            password=password,
            role="admin",
            case_insensitive=cfg.AUTH_EMAIL_CASE_INSENSITIVE,
        )
