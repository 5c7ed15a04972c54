from __future__ import annotations

from typing import Any, Dict, List

from lumi_library.auth.crud import require_user
from lumi_library.errors import NotFound
from lumi_library.util.time import utcnow_iso

from .books import book_view, get_book_row


def wishlist_ids(conn: Any, user_id: int) -> List[int]:
    rows = conn.execute(
        "SELECT book_id FROM user_wishlist WHERE user_id=? ORDER BY added_at, book_id",
        (int(user_id),),
    ).fetchall()
    return [int(r["book_id"]) for r in rows]


def get_wishlist(conn: Any, user_id: int) -> List[Dict[str, Any]]:
    require_user(conn, user_id)
    rows = conn.execute(
        """
        SELECT b.*
        FROM user_wishlist w
        JOIN books b ON b.book_id = w.book_id
        WHERE w.user_id=?
        ORDER BY w.added_at, w.book_id
        """,
        (int(user_id),),
    ).fetchall()
    return [book_view(r) for r in rows]


def add_to_wishlist(conn: Any, user_id: int, book_id: int) -> List[int]:
    """Add a book to the user's wishlist (no-op if already there). Returns the id list."""
    require_user(conn, user_id)
    if get_book_row(conn, book_id) is None:
        raise NotFound("Book not found")
    conn.execute(
        """
        INSERT INTO user_wishlist (user_id, book_id, added_at) VALUES (?,?,?)
        ON CONFLICT(user_id, book_id) DO NOTHING
        """,
        (int(user_id), int(book_id), utcnow_iso()),
    )
    return wishlist_ids(conn, user_id)


def remove_from_wishlist(conn: Any, user_id: int, book_id: int) -> List[int]:
    require_user(conn, user_id)
    conn.execute(
        "DELETE FROM user_wishlist WHERE user_id=? AND book_id=?",
        (int(user_id), int(book_id)),
    )
    return wishlist_ids(conn, user_id)
