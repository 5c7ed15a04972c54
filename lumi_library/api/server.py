from __future__ import annotations

import traceback
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from lumi_library import __version__
from lumi_library.auth import bootstrap_admin_if_needed, get_current_user, get_identity, require_admin
from lumi_library.auth.crud import (
    delete_user,
    list_users,
    public_user,
    register_user,
    set_user_role,
    touch_last_login,
    verify_user_credentials,
)
from lumi_library.auth.deps import get_config
from lumi_library.auth.security import create_access_token
from lumi_library.billing.ledger import (
    PLANS,
    current_entitlement,
    list_subscriptions,
    purchase,
    revoke_subscription,
)
from lumi_library.catalog.books import add_review, create_book, delete_book, get_book, list_books, update_book
from lumi_library.catalog.wishlist import add_to_wishlist, get_wishlist, remove_from_wishlist
from lumi_library.config import Config, load_config
from lumi_library.contact import submit_contact_message
from lumi_library.db import connect, init_db
from lumi_library.errors import InternalError, LibraryError, Unauthenticated, ValidationError


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


router = APIRouter(prefix="/api")


# -----------------------------
# Request models
# -----------------------------
# Fields are optional so missing input is reported by our own validation
# ("All fields are required") rather than a framework error.


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SubscriptionRequest(BaseModel):
    plan: Optional[str] = None
    amount: Optional[float] = None


class RoleRequest(BaseModel):
    role: Optional[str] = None


class WishlistRequest(_CamelModel):
    book_id: Optional[int] = Field(default=None, alias="bookId")


class ReviewRequest(BaseModel):
    rating: Optional[int] = None
    comment: Optional[str] = None


class BookRequest(_CamelModel):
    title: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    cover_image: Optional[str] = Field(default=None, alias="coverImage")
    sample_content: Optional[str] = Field(default=None, alias="sampleContent")
    full_content: Optional[str] = Field(default=None, alias="fullContent")


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


def _issue_token(cfg: Config, user: Dict[str, Any]) -> str:
    return create_access_token(
        secret=cfg.AUTH_JWT_SECRET,
        user_id=int(user["user_id"]),
        email=str(user["email"]),
        expires_minutes=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES),
    )


# -----------------------------
# Health
# -----------------------------


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "OK", "message": "Lumi Library API is running"}


# -----------------------------
# Auth
# -----------------------------


@router.post("/auth/register", status_code=201)
def auth_register(payload: RegisterRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        u = register_user(
            conn,
            name=payload.name or "",
            email=payload.email or "",
            password=payload.password or "",
            case_insensitive=cfg.AUTH_EMAIL_CASE_INSENSITIVE,
        )
    return {"message": "User registered successfully", "token": _issue_token(cfg, u), "user": u}


@router.post("/auth/login")
def auth_login(payload: LoginRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = verify_user_credentials(
            conn,
            payload.email or "",
            payload.password or "",
            case_insensitive=cfg.AUTH_EMAIL_CASE_INSENSITIVE,
        )
        touch_last_login(conn, int(row["user_id"]))
        u = public_user(row)
    return {"message": "Login successful", "token": _issue_token(cfg, u), "user": u}


@router.get("/auth/profile")
def auth_profile(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user


# -----------------------------
# Catalog
# -----------------------------


@router.get("/books")
def books_list(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    cfg: Config = Depends(get_config),
) -> list[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return list_books(conn, category=category, search=search)


@router.get("/books/{book_id}")
def books_get(book_id: int, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return get_book(conn, book_id)


@router.post("/books/{book_id}/reviews")
def books_add_review(
    book_id: int,
    payload: ReviewRequest,
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        book = add_review(
            conn,
            book_id=book_id,
            user_id=identity["user_id"],
            rating=payload.rating,
            comment=payload.comment,
        )
    return {"message": "Review added successfully", "book": book}


# -----------------------------
# Wishlist
# -----------------------------


@router.get("/users/wishlist")
def wishlist_get(
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> list[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return get_wishlist(conn, identity["user_id"])


@router.post("/users/wishlist")
def wishlist_add(
    payload: WishlistRequest,
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    if payload.book_id is None:
        raise ValidationError("bookId is required")
    with connect(cfg.DB_DSN) as conn:
        ids = add_to_wishlist(conn, identity["user_id"], payload.book_id)
    return {"message": "Book added to wishlist", "wishlist": ids}


@router.delete("/users/wishlist/{book_id}")
def wishlist_remove(
    book_id: int,
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        ids = remove_from_wishlist(conn, identity["user_id"], book_id)
    return {"message": "Book removed from wishlist", "wishlist": ids}


# -----------------------------
# Subscriptions
# -----------------------------


@router.get("/subscriptions/plans")
def subscription_plans(cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    return {
        name: {"price": p.price, "days": int(cfg.SUBSCRIPTION_DAYS)}
        for name, p in PLANS.items()
    }


@router.post("/subscriptions")
def subscriptions_create(
    payload: SubscriptionRequest,
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        sub = purchase(
            conn,
            user_id=identity["user_id"],
            plan=payload.plan or "",
            amount=payload.amount,
            days=int(cfg.SUBSCRIPTION_DAYS),
        )
    return {"message": "Subscription created successfully", "subscription": sub}


@router.get("/subscriptions")
def subscriptions_current(
    identity: Dict[str, Any] = Depends(get_identity),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"subscription": current_entitlement(conn, identity["user_id"])}


# -----------------------------
# Contact
# -----------------------------


@router.post("/contact")
def contact_submit(payload: ContactRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        submit_contact_message(
            conn,
            name=payload.name,
            email=payload.email,
            subject=payload.subject,
            message=payload.message,
        )
    return {"message": "Thank you for your message! We will get back to you soon."}


# -----------------------------
# Admin
# -----------------------------


@router.get("/admin/users")
def admin_list_users(
    search: Optional[str] = Query(None),
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> list[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return list_users(conn, search=search)


@router.put("/users/{user_id}/role")
def admin_set_role(
    user_id: int,
    payload: RoleRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        u = set_user_role(conn, user_id, payload.role or "")
    return {"message": "User role updated successfully", "user": u}


@router.delete("/users/{user_id}")
def admin_delete_user(
    user_id: int,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_user(conn, user_id)
    return {"message": "User deleted successfully"}


@router.get("/admin/books")
def admin_list_books(
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> list[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return list_books(conn)


@router.post("/admin/books", status_code=201)
def admin_create_book(
    payload: BookRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        book = create_book(conn, payload.model_dump())
    return {"message": "Book added successfully", "book": book}


@router.put("/admin/books/{book_id}")
def admin_update_book(
    book_id: int,
    payload: BookRequest,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        book = update_book(conn, book_id, payload.model_dump(exclude_unset=True))
    return {"message": "Book updated successfully", "book": book}


@router.delete("/admin/books/{book_id}")
def admin_delete_book(
    book_id: int,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        delete_book(conn, book_id)
    return {"message": "Book deleted successfully"}


@router.get("/admin/subscriptions")
def admin_list_subscriptions(
    search: Optional[str] = Query(None),
    plan: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> list[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return list_subscriptions(conn, search=search, plan=plan, status=status)


@router.delete("/admin/subscriptions/{subscription_id}")
def admin_delete_subscription(
    subscription_id: int,
    _admin: Dict[str, Any] = Depends(require_admin),
    cfg: Config = Depends(get_config),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        revoke_subscription(conn, subscription_id)
    return {"message": "Subscription deleted successfully"}


# -----------------------------
# Error envelope: every failure is {"message": str}
# -----------------------------


def _error(status_code: int, message: str, headers: Dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message}, headers=headers)


def _library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return _error(exc.status_code, exc.message, headers)


def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = f"Invalid {loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    else:
        msg = "Invalid request"
    return _error(400, msg)


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return _error(exc.status_code, message, getattr(exc, "headers", None))


def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Never leak internal error text to clients.
    _debug(f"Unhandled error on {request.method} {request.url.path}: {exc!r}\n{traceback.format_exc()}")
    return _error(500, InternalError.default_message)


# -----------------------------
# App factory
# -----------------------------


def create_app(cfg: Config | None = None) -> FastAPI:
    cfg = cfg or load_config()
    app = FastAPI(title="Lumi Library API", version=__version__)
    # Make config available to route deps.
    app.state.cfg = cfg

    origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials="*" not in origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(LibraryError, _library_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    app.include_router(router)

    @app.on_event("startup")
    def _on_startup() -> None:
        if cfg.using_dev_secret:
            _debug("WARNING: AUTH_JWT_SECRET is not set; using the development fallback secret.")

        # Ensure schema exists.
        init_db(cfg.DB_DSN)

        # Bootstrap first admin if needed (only when users table is empty)
        boot = bootstrap_admin_if_needed(cfg)
        if boot:
            _debug(f"Bootstrapped initial admin user: email={boot.get('email')} role={boot.get('role')}")

    return app


app = create_app()
