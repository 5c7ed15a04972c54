"""Subscription ledger (simulated payments).

The `subscriptions` table is the source of truth. Each purchase appends an
immutable row and then overwrites the owner's denormalized
`users.subscription` / `users.subscription_expiry` with that row's plan/expiry.

Whether a grant is live is always derived from its expiry at read time and
reported as `active`; the stored `is_active` column only records what was true
at creation and is passed through untouched.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from lumi_library.auth.crud import require_user
from lumi_library.errors import AmountMismatch, NotFound, UnknownPlan, ValidationError
from lumi_library.util.time import add_days_iso, parse_iso, to_iso, utcnow, utcnow_iso


DEFAULT_PLAN_DAYS = 30


def _debug(msg: str) -> None:
    print(f"[billing] {msg}")


@dataclass(frozen=True)
class Plan:
    name: str
    price: float
    days: int = DEFAULT_PLAN_DAYS


# All plans currently share the same validity window and differ only in price.
PLANS: Dict[str, Plan] = {
    "basic": Plan("basic", 9.99),
    "premium": Plan("premium", 14.99),
    "family": Plan("family", 19.99),
}


def get_plan(plan: str | None, *, days: int | None = None) -> Plan:
    p = PLANS.get((plan or "").strip())
    if p is None:
        raise UnknownPlan()
    if days is not None and int(days) != p.days:
        return Plan(p.name, p.price, int(days))
    return p


def _new_payment_id() -> str:
    # Stand-in for a payment processor reference.
    return f"payment_{int(time.time() * 1000)}"


def subscription_view(row: Any | Dict[str, Any], *, now: datetime | None = None) -> Dict[str, Any]:
    """Public view of a ledger row; `active` is derived from expiry at `now`."""
    d = dict(row)
    d["id"] = d.get("subscription_id")
    d["amount"] = float(d["amount"])
    d["is_active"] = bool(d.get("is_active"))
    d["active"] = (now or utcnow()) <= parse_iso(str(d["expiry_date"]))
    return d


def get_subscription(conn: Any, subscription_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM subscriptions WHERE subscription_id=?",
        (int(subscription_id),),
    ).fetchone()


def purchase(
    conn: Any,
    *,
    user_id: int,
    plan: str,
    amount: Any,
    now: datetime | None = None,
    days: int | None = None,
) -> Dict[str, Any]:
    """Record a (simulated) paid subscription and update the user's cached entitlement.

    Raises UnknownPlan if `plan` is not in PLANS and AmountMismatch unless
    `amount` equals the plan price exactly. Nothing is written on failure.
    `days` overrides the plan's validity window (Config.SUBSCRIPTION_DAYS).
    """
    p = get_plan(plan, days=days)
    if isinstance(amount, bool):
        raise AmountMismatch()
    try:
        paid = float(amount)
    except (TypeError, ValueError) as e:
        raise AmountMismatch() from e
    if paid != p.price:
        raise AmountMismatch()

    require_user(conn, user_id)

    start = now or utcnow()
    start_iso = to_iso(start)
    expiry_iso = add_days_iso(start, p.days)

    row = conn.execute(
        """
        INSERT INTO subscriptions (user_id, plan, start_date, expiry_date, is_active, amount, payment_id, created_at)
        VALUES (?,?,?,?,1,?,?,?)
        RETURNING *
        """,
        (int(user_id), p.name, start_iso, expiry_iso, paid, _new_payment_id(), start_iso),
    ).fetchone()

    # Latest purchase wins, even over a longer-running earlier grant.
    conn.execute(
        "UPDATE users SET subscription=?, subscription_expiry=?, updated_at=? WHERE user_id=?",
        (p.name, expiry_iso, utcnow_iso(), int(user_id)),
    )
    _debug(f"Purchase user_id={user_id} plan={p.name} amount={paid} expires={expiry_iso}")

    return subscription_view(row, now=start)


def latest_subscription(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        """
        SELECT * FROM subscriptions
        WHERE user_id=?
        ORDER BY created_at DESC, subscription_id DESC
        LIMIT 1
        """,
        (int(user_id),),
    ).fetchone()


def current_entitlement(conn: Any, user_id: int, *, now: datetime | None = None) -> Optional[Dict[str, Any]]:
    """The user's most recent grant with `active` derived from `now`, or None.

    Read-only: an elapsed grant is reported inactive without any write.
    """
    row = latest_subscription(conn, user_id)
    if row is None:
        return None
    return subscription_view(row, now=now)


def reset_user_entitlement(conn: Any, user_id: int) -> bool:
    """Clear the cached plan/expiry on a user. Idempotent.

    Returns True if the user row existed.
    """
    cur = conn.execute(
        "UPDATE users SET subscription='none', subscription_expiry=NULL, updated_at=? WHERE user_id=?",
        (utcnow_iso(), int(user_id)),
    )
    return cur.rowcount > 0


def revoke_subscription(conn: Any, subscription_id: int) -> Dict[str, Any]:
    """Admin delete of a ledger row; the owner is reset to plan 'none' / no expiry.

    Both writes go through the same connection, so within one `connect()`
    block they commit or roll back together. If a caller ever splits them and
    the reset is lost, `reconcile_entitlements` repairs the user.
    """
    row = get_subscription(conn, subscription_id)
    if row is None:
        raise NotFound("Subscription not found")

    user_id = int(row["user_id"])
    conn.execute("DELETE FROM subscriptions WHERE subscription_id=?", (int(subscription_id),))
    reset_user_entitlement(conn, user_id)
    _debug(f"Revoked subscription_id={subscription_id} user_id={user_id}")
    return dict(row)


def find_orphaned_entitlements(conn: Any) -> List[Dict[str, Any]]:
    """Users whose cached plan and expiry match no ledger row (e.g. a half-finished revoke).

    A user with older rows still counts when the row the cache came from is gone.
    """
    rows = conn.execute(
        """
        SELECT u.user_id, u.email, u.subscription, u.subscription_expiry
        FROM users u
        WHERE u.subscription <> 'none'
          AND NOT EXISTS (
              SELECT 1 FROM subscriptions s
              WHERE s.user_id = u.user_id
                AND s.plan = u.subscription
                AND s.expiry_date = u.subscription_expiry
          )
        ORDER BY u.user_id
        """
    ).fetchall()
    return [dict(r) for r in rows]


def reconcile_entitlements(conn: Any) -> List[int]:
    """Reset every orphaned entitlement. Safe to rerun; returns the user ids touched."""
    fixed: List[int] = []
    for u in find_orphaned_entitlements(conn):
        reset_user_entitlement(conn, int(u["user_id"]))
        fixed.append(int(u["user_id"]))
        _debug(f"Reconciled user_id={u['user_id']} (was {u['subscription']})")
    return fixed


def list_subscriptions(
    conn: Any,
    *,
    search: str | None = None,
    plan: str | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> List[Dict[str, Any]]:
    """Admin listing joined with the owner's name/email.

    - search: case-insensitive substring of owner email or name
    - plan: exact plan name
    - status: 'active' (expiry >= now) or 'expired' (expiry < now)
    """
    ts = now or utcnow()
    where: List[str] = []
    params: List[Any] = []

    q = (search or "").strip()
    if q:
        like = f"%{q.lower()}%"
        where.append("(LOWER(u.email) LIKE ? OR LOWER(u.name) LIKE ?)")
        params.extend([like, like])

    if plan:
        if plan not in PLANS:
            raise UnknownPlan()
        where.append("s.plan = ?")
        params.append(plan)

    if status:
        if status == "active":
            where.append("s.expiry_date >= ?")
        elif status == "expired":
            where.append("s.expiry_date < ?")
        else:
            raise ValidationError("Invalid status. Must be active or expired")
        params.append(to_iso(ts))

    where_sql = f"WHERE {' AND '.join(where)}" if where else ""
    rows = conn.execute(
        f"""
        SELECT s.*, u.name AS user_name, u.email AS user_email
        FROM subscriptions s
        JOIN users u ON u.user_id = s.user_id
        {where_sql}
        ORDER BY s.created_at DESC, s.subscription_id DESC
        """,
        params,
    ).fetchall()
    return [subscription_view(r, now=ts) for r in rows]
