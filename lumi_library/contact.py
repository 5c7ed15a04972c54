from __future__ import annotations

from typing import Any, Dict

from lumi_library.errors import ValidationError
from lumi_library.util.time import utcnow_iso


def _debug(msg: str) -> None:
    print(f"[contact] {msg}")


def submit_contact_message(
    conn: Any,
    *,
    name: str | None,
    email: str | None,
    subject: str | None,
    message: str | None,
) -> Dict[str, Any]:
    n = (name or "").strip()
    e = (email or "").strip()
    m = (message or "").strip()
    if not n or not e or not m:
        raise ValidationError("Name, email and message are required")

    row = conn.execute(
        """
        INSERT INTO contact_messages (name, email, subject, message, created_at)
        VALUES (?,?,?,?,?)
        RETURNING message_id
        """,
        (n, e, (subject or "").strip() or None, m, utcnow_iso()),
    ).fetchone()
    _debug(f"Contact message_id={row['message_id']} from={e}")
    return {"message_id": int(row["message_id"])}
