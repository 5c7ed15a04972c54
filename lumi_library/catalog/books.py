from __future__ import annotations

from typing import Any, Dict, List, Optional

from lumi_library.db import is_unique_violation
from lumi_library.errors import ConflictError, NotFound, ValidationError
from lumi_library.util.time import utcnow_iso


REQUIRED_FIELDS = ("title", "author", "description", "category", "cover_image")
UPDATABLE_FIELDS = REQUIRED_FIELDS + ("sample_content", "full_content")

ALREADY_REVIEWED = "You have already reviewed this book"


def _debug(msg: str) -> None:
    print(f"[catalog] {msg}")


def book_view(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d["id"] = d.get("book_id")
    d["rating"] = float(d.get("rating") or 0)
    return d


def list_books(conn: Any, *, category: str | None = None, search: str | None = None) -> List[Dict[str, Any]]:
    """Books filtered by exact category and/or a case-insensitive title/author substring.

    A category of "All" (or blank) means no category filter.
    """
    where: List[str] = []
    params: List[Any] = []

    cat = (category or "").strip()
    if cat and cat != "All":
        where.append("category = ?")
        params.append(cat)

    q = (search or "").strip()
    if q:
        like = f"%{q.lower()}%"
        where.append("(LOWER(title) LIKE ? OR LOWER(author) LIKE ?)")
        params.extend([like, like])

    where_sql = f"WHERE {' AND '.join(where)}" if where else ""
    rows = conn.execute(
        f"SELECT * FROM books {where_sql} ORDER BY book_id",
        params,
    ).fetchall()
    return [book_view(r) for r in rows]


def get_book_row(conn: Any, book_id: int) -> Optional[Any]:
    return conn.execute("SELECT * FROM books WHERE book_id=?", (int(book_id),)).fetchone()


def get_book(conn: Any, book_id: int) -> Dict[str, Any]:
    """A book with its reviews (reviewer name included when the user still exists)."""
    row = get_book_row(conn, book_id)
    if row is None:
        raise NotFound("Book not found")
    book = book_view(row)
    reviews = conn.execute(
        """
        SELECT r.review_id, r.user_id, u.name AS user_name, r.rating, r.comment, r.created_at
        FROM book_reviews r
        LEFT JOIN users u ON u.user_id = r.user_id
        WHERE r.book_id=?
        ORDER BY r.created_at, r.review_id
        """,
        (int(book_id),),
    ).fetchall()
    book["reviews"] = [dict(r) for r in reviews]
    return book


def create_book(conn: Any, fields: Dict[str, Any]) -> Dict[str, Any]:
    missing = [f for f in REQUIRED_FIELDS if not str(fields.get(f) or "").strip()]
    if missing:
        raise ValidationError(f"All fields are required: {', '.join(REQUIRED_FIELDS)}")

    row = conn.execute(
        """
        INSERT INTO books (title, author, description, category, cover_image, sample_content, full_content, rating, created_at)
        VALUES (?,?,?,?,?,?,?,0,?)
        RETURNING book_id
        """,
        (
            str(fields["title"]).strip(),
            str(fields["author"]).strip(),
            str(fields["description"]),
            str(fields["category"]).strip(),
            str(fields["cover_image"]).strip(),
            str(fields.get("sample_content") or ""),
            str(fields.get("full_content") or ""),
            utcnow_iso(),
        ),
    ).fetchone()
    book_id = int(row["book_id"])
    _debug(f"Created book_id={book_id} title={fields['title']!r}")
    return get_book(conn, book_id)


def update_book(conn: Any, book_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Partial update; only known fields are applied and required ones may not be blanked."""
    if get_book_row(conn, book_id) is None:
        raise NotFound("Book not found")

    updates: List[tuple[str, Any]] = []
    for k in UPDATABLE_FIELDS:
        if k not in fields or fields[k] is None:
            continue
        v = str(fields[k])
        if k in REQUIRED_FIELDS and not v.strip():
            raise ValidationError(f"{k} cannot be blank")
        updates.append((k, v))

    if updates:
        sets = ", ".join([f"{k}=?" for k, _ in updates])
        params = [v for _, v in updates] + [int(book_id)]
        conn.execute(f"UPDATE books SET {sets} WHERE book_id=?", params)
    return get_book(conn, book_id)


def delete_book(conn: Any, book_id: int) -> None:
    if get_book_row(conn, book_id) is None:
        raise NotFound("Book not found")
    conn.execute("DELETE FROM books WHERE book_id=?", (int(book_id),))
    conn.execute("DELETE FROM book_reviews WHERE book_id=?", (int(book_id),))
    conn.execute("DELETE FROM user_wishlist WHERE book_id=?", (int(book_id),))
    _debug(f"Deleted book_id={book_id}")


def has_reviewed(conn: Any, book_id: int, user_id: int) -> bool:
    row = conn.execute(
        "SELECT 1 FROM book_reviews WHERE book_id=? AND user_id=?",
        (int(book_id), int(user_id)),
    ).fetchone()
    return row is not None


def add_review(conn: Any, *, book_id: int, user_id: int, rating: Any, comment: str | None) -> Dict[str, Any]:
    """Add a 1-5 star review (one per user per book) and recompute the book's mean rating."""
    try:
        r = int(rating)
    except (TypeError, ValueError) as e:
        raise ValidationError("Rating must be between 1 and 5") from e
    if r != rating or r < 1 or r > 5:
        raise ValidationError("Rating must be between 1 and 5")
    text = (comment or "").strip()
    if not text:
        raise ValidationError("Comment is required")

    if get_book_row(conn, book_id) is None:
        raise NotFound("Book not found")

    if has_reviewed(conn, book_id, user_id):
        raise ConflictError(ALREADY_REVIEWED)

    try:
        conn.execute(
            "INSERT INTO book_reviews (book_id, user_id, rating, comment, created_at) VALUES (?,?,?,?,?)",
            (int(book_id), int(user_id), r, text, utcnow_iso()),
        )
    except Exception as exc:
        if is_unique_violation(exc):
            raise ConflictError(ALREADY_REVIEWED) from exc
        raise
    avg = conn.execute(
        "SELECT AVG(rating) AS avg_rating FROM book_reviews WHERE book_id=?",
        (int(book_id),),
    ).fetchone()["avg_rating"]
    conn.execute("UPDATE books SET rating=? WHERE book_id=?", (float(avg or 0), int(book_id)))
    return get_book(conn, book_id)
