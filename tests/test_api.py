"""
Integration tests for API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from lumi_library.api import server
from lumi_library.api.server import create_app
from lumi_library.auth import crud
from lumi_library.db import connect
from lumi_library.errors import StoreUnavailable

from tests.conftest import auth, promote, register


BOOK = {
    "title": "The Silent Observer",
    "author": "Emma Richardson",
    "description": "A gripping mystery.",
    "category": "Mystery",
    "coverImage": "https://example.com/cover.jpg",
    "sampleContent": "Chapter 1",
    "fullContent": "Chapter 1 ... The End",
}


def _create_book(client, admin_token, **overrides):
    r = client.post("/api/admin/books", json={**BOOK, **overrides}, headers=auth(admin_token))
    assert r.status_code == 201, r.text
    return r.json()["book"]


class TestHealthEndpoints:
    def test_health_check(self, client):
        r = client.get("/api/health")

        assert r.status_code == 200
        assert r.json() == {"status": "OK", "message": "Lumi Library API is running"}

    def test_unknown_route(self, client):
        r = client.get("/api/nope")

        assert r.status_code == 404
        assert r.json() == {"message": "Route not found"}


class TestAuthEndpoints:
    """Registration, login and profile."""

    def test_register_returns_token_and_public_user(self, client):
        r = client.post("/api/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "pw123456"})

        assert r.status_code == 201
        data = r.json()
        assert data["message"] == "User registered successfully"
        assert data["token"]
        assert data["user"]["email"] == "ada@example.com"
        assert data["user"]["role"] == "user"
        assert data["user"]["subscription"] == "none"
        assert "password_hash" not in data["user"]

    def test_register_duplicate_email(self, client):
        register(client, "ada@example.com")
        r = client.post("/api/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "other"})

        assert r.status_code == 400
        assert r.json() == {"message": "User already exists with this email"}

    def test_register_race_reports_duplicate(self, client, monkeypatch):
        register(client, "ada@example.com")
        monkeypatch.setattr(crud, "get_user_by_email", lambda *a, **kw: None)

        r = client.post("/api/auth/register", json={"name": "Ada", "email": "ada@example.com", "password": "other"})

        assert r.status_code == 400
        assert r.json() == {"message": "User already exists with this email"}

    def test_register_missing_fields(self, client):
        r = client.post("/api/auth/register", json={"email": "ada@example.com"})

        assert r.status_code == 400
        assert r.json() == {"message": "All fields are required"}

    def test_login(self, client):
        register(client, "ada@example.com", password="pw123456")
        r = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "pw123456"})

        assert r.status_code == 200
        assert r.json()["message"] == "Login successful"
        assert r.json()["user"]["email"] == "ada@example.com"

    def test_login_failures_look_the_same(self, client):
        register(client, "ada@example.com", password="pw123456")
        wrong_pw = client.post("/api/auth/login", json={"email": "ada@example.com", "password": "nope"})
        no_user = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope"})

        assert wrong_pw.status_code == no_user.status_code == 400
        assert wrong_pw.json() == no_user.json() == {"message": "Invalid email or password"}

    def test_profile(self, client):
        token, user = register(client, "ada@example.com", name="Ada")
        r = client.get("/api/auth/profile", headers=auth(token))

        assert r.status_code == 200
        assert r.json()["id"] == user["id"]
        assert r.json()["name"] == "Ada"

    def test_profile_without_token(self, client):
        r = client.get("/api/auth/profile")

        assert r.status_code == 401
        assert r.json() == {"message": "Access denied. No token provided."}
        assert r.headers["www-authenticate"] == "Bearer"

    def test_profile_with_bad_token(self, client):
        r = client.get("/api/auth/profile", headers=auth("not-a-jwt"))

        assert r.status_code == 401
        assert r.json() == {"message": "Invalid token."}

    def test_profile_of_deleted_user(self, client, admin_token):
        token, user = register(client, "ada@example.com")
        client.delete(f"/api/users/{user['id']}", headers=auth(admin_token))

        r = client.get("/api/auth/profile", headers=auth(token))
        assert r.status_code == 404
        assert r.json() == {"message": "User not found"}

    def test_non_bearer_scheme_is_no_token(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.get("/api/auth/profile", headers={"Authorization": f"Token {token}"})

        assert r.status_code == 401
        assert r.json() == {"message": "Access denied. No token provided."}


class TestSubscriptionEndpoints:
    def test_plans(self, client):
        r = client.get("/api/subscriptions/plans")

        assert r.status_code == 200
        assert r.json()["basic"] == {"price": 9.99, "days": 30}
        assert set(r.json()) == {"basic", "premium", "family"}

    def test_purchase_and_read_back(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.post("/api/subscriptions", json={"plan": "premium", "amount": 14.99}, headers=auth(token))

        assert r.status_code == 200
        sub = r.json()["subscription"]
        assert r.json()["message"] == "Subscription created successfully"
        assert sub["plan"] == "premium"
        assert sub["amount"] == 14.99
        assert sub["active"] is True

        current = client.get("/api/subscriptions", headers=auth(token)).json()["subscription"]
        assert current["subscription_id"] == sub["subscription_id"]

        profile = client.get("/api/auth/profile", headers=auth(token)).json()
        assert profile["subscription"] == "premium"
        assert profile["subscription_expiry"] == sub["expiry_date"]

    def test_no_subscription(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.get("/api/subscriptions", headers=auth(token))

        assert r.status_code == 200
        assert r.json() == {"subscription": None}

    def test_wrong_amount(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.post("/api/subscriptions", json={"plan": "basic", "amount": 5.0}, headers=auth(token))

        assert r.status_code == 400
        assert r.json() == {"message": "Invalid amount for selected plan"}
        assert client.get("/api/subscriptions", headers=auth(token)).json() == {"subscription": None}

    def test_unknown_plan(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.post("/api/subscriptions", json={"plan": "gold", "amount": 9.99}, headers=auth(token))

        assert r.status_code == 400
        assert r.json() == {"message": "Invalid subscription plan"}

    def test_malformed_amount(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.post("/api/subscriptions", json={"plan": "basic", "amount": "lots"}, headers=auth(token))

        assert r.status_code == 400
        assert r.json()["message"].startswith("Invalid amount")

    def test_purchase_requires_token(self, client):
        r = client.post("/api/subscriptions", json={"plan": "basic", "amount": 9.99})
        assert r.status_code == 401


class TestAdminEndpoints:
    def test_revoke_subscription(self, client, admin_token):
        token, _ = register(client, "ada@example.com")
        sub = client.post(
            "/api/subscriptions", json={"plan": "basic", "amount": 9.99}, headers=auth(token)
        ).json()["subscription"]
        path = f"/api/admin/subscriptions/{sub['subscription_id']}"

        assert client.delete(path, headers=auth(token)).status_code == 403

        r = client.delete(path, headers=auth(admin_token))
        assert r.status_code == 200
        assert r.json() == {"message": "Subscription deleted successfully"}

        profile = client.get("/api/auth/profile", headers=auth(token)).json()
        assert profile["subscription"] == "none"
        assert profile["subscription_expiry"] is None

        again = client.delete(path, headers=auth(admin_token))
        assert again.status_code == 404
        assert again.json() == {"message": "Subscription not found"}

    def test_list_subscriptions(self, client, admin_token):
        token, _ = register(client, "ada@example.com", name="Ada Lovelace")
        client.post("/api/subscriptions", json={"plan": "family", "amount": 19.99}, headers=auth(token))

        r = client.get("/api/admin/subscriptions", params={"status": "active"}, headers=auth(admin_token))
        assert r.status_code == 200
        assert [s["user_email"] for s in r.json()] == ["ada@example.com"]

        assert client.get("/api/admin/subscriptions", params={"status": "expired"}, headers=auth(admin_token)).json() == []
        assert client.get("/api/admin/subscriptions", params={"plan": "basic"}, headers=auth(admin_token)).json() == []
        assert len(client.get("/api/admin/subscriptions", params={"search": "lovelace"}, headers=auth(admin_token)).json()) == 1

        bad = client.get("/api/admin/subscriptions", params={"status": "paused"}, headers=auth(admin_token))
        assert bad.status_code == 400

    def test_set_role(self, client, admin_token):
        token, user = register(client, "ada@example.com")
        path = f"/api/users/{user['id']}/role"

        assert client.put(path, json={"role": "admin"}).status_code == 401
        assert client.put(path, json={"role": "admin"}, headers=auth(token)).status_code == 403

        bad = client.put(path, json={"role": "owner"}, headers=auth(admin_token))
        assert bad.status_code == 400
        assert bad.json() == {"message": "Invalid role. Must be user or admin"}

        missing = client.put("/api/users/9999/role", json={"role": "admin"}, headers=auth(admin_token))
        assert missing.status_code == 404

        r = client.put(path, json={"role": "admin"}, headers=auth(admin_token))
        assert r.status_code == 200
        assert r.json()["user"]["role"] == "admin"

        # Same token, new role.
        assert client.get("/api/admin/users", headers=auth(token)).status_code == 200

    def test_demoted_admin_loses_access(self, client, cfg, admin_token):
        assert client.get("/api/admin/users", headers=auth(admin_token)).status_code == 200

        admin_id = client.get("/api/auth/profile", headers=auth(admin_token)).json()["id"]
        promote(cfg, admin_id, role="user")

        r = client.get("/api/admin/users", headers=auth(admin_token))
        assert r.status_code == 403
        assert r.json() == {"message": "Access denied. Admin privileges required."}

    def test_list_and_delete_users(self, client, admin_token):
        token, user = register(client, "ada@example.com", name="Ada")
        client.post("/api/subscriptions", json={"plan": "basic", "amount": 9.99}, headers=auth(token))

        found = client.get("/api/admin/users", params={"search": "ada"}, headers=auth(admin_token)).json()
        assert [u["email"] for u in found] == ["ada@example.com"]

        r = client.delete(f"/api/users/{user['id']}", headers=auth(admin_token))
        assert r.status_code == 200
        assert client.get("/api/admin/subscriptions", headers=auth(admin_token)).json() == []
        assert client.delete(f"/api/users/{user['id']}", headers=auth(admin_token)).status_code == 404


class TestBooksEndpoints:
    def test_create_and_get_book(self, client, admin_token):
        book = _create_book(client, admin_token)

        r = client.get(f"/api/books/{book['id']}")
        assert r.status_code == 200
        assert r.json()["title"] == BOOK["title"]
        assert r.json()["cover_image"] == BOOK["coverImage"]
        assert r.json()["reviews"] == []

    def test_create_book_requires_admin(self, client):
        token, _ = register(client, "ada@example.com")
        assert client.post("/api/admin/books", json=BOOK, headers=auth(token)).status_code == 403

    def test_create_book_missing_fields(self, client, admin_token):
        r = client.post("/api/admin/books", json={"title": "Only a title"}, headers=auth(admin_token))
        assert r.status_code == 400

    def test_list_filters(self, client, admin_token):
        _create_book(client, admin_token)
        _create_book(client, admin_token, title="Beyond the Stars", author="Michael Chen", category="Science Fiction")

        assert len(client.get("/api/books").json()) == 2
        assert len(client.get("/api/books", params={"category": "All"}).json()) == 2
        assert [b["title"] for b in client.get("/api/books", params={"category": "Mystery"}).json()] == [BOOK["title"]]
        assert [b["author"] for b in client.get("/api/books", params={"search": "CHEN"}).json()] == ["Michael Chen"]

    def test_update_and_delete_book(self, client, admin_token):
        book = _create_book(client, admin_token)

        r = client.put(f"/api/admin/books/{book['id']}", json={"title": "Renamed"}, headers=auth(admin_token))
        assert r.status_code == 200
        assert r.json()["book"]["title"] == "Renamed"
        assert r.json()["book"]["author"] == BOOK["author"]

        assert client.delete(f"/api/admin/books/{book['id']}", headers=auth(admin_token)).status_code == 200
        missing = client.get(f"/api/books/{book['id']}")
        assert missing.status_code == 404
        assert missing.json() == {"message": "Book not found"}

    def test_reviews(self, client, admin_token):
        book = _create_book(client, admin_token)
        t1, _ = register(client, "one@example.com", name="One")
        t2, _ = register(client, "two@example.com", name="Two")
        path = f"/api/books/{book['id']}/reviews"

        assert client.post(path, json={"rating": 5, "comment": "Loved it"}).status_code == 401

        r = client.post(path, json={"rating": 5, "comment": "Loved it"}, headers=auth(t1))
        assert r.status_code == 200
        assert r.json()["book"]["rating"] == 5.0

        dup = client.post(path, json={"rating": 1, "comment": "Changed my mind"}, headers=auth(t1))
        assert dup.status_code == 400
        assert dup.json() == {"message": "You have already reviewed this book"}

        assert client.post(path, json={"rating": 6, "comment": "Too good"}, headers=auth(t2)).status_code == 400

        r = client.post(path, json={"rating": 4, "comment": "Solid"}, headers=auth(t2))
        book = r.json()["book"]
        assert book["rating"] == 4.5
        assert [rv["user_name"] for rv in book["reviews"]] == ["One", "Two"]


class TestWishlistEndpoints:
    def test_add_list_remove(self, client, admin_token):
        book = _create_book(client, admin_token)
        token, _ = register(client, "ada@example.com")

        r = client.post("/api/users/wishlist", json={"bookId": book["id"]}, headers=auth(token))
        assert r.status_code == 200
        assert r.json()["wishlist"] == [book["id"]]

        again = client.post("/api/users/wishlist", json={"bookId": book["id"]}, headers=auth(token))
        assert again.json()["wishlist"] == [book["id"]]

        listed = client.get("/api/users/wishlist", headers=auth(token)).json()
        assert [b["title"] for b in listed] == [BOOK["title"]]

        r = client.delete(f"/api/users/wishlist/{book['id']}", headers=auth(token))
        assert r.status_code == 200
        assert r.json()["wishlist"] == []

    def test_missing_book_id(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.post("/api/users/wishlist", json={}, headers=auth(token))

        assert r.status_code == 400
        assert r.json() == {"message": "bookId is required"}

    def test_unknown_book(self, client):
        token, _ = register(client, "ada@example.com")
        r = client.post("/api/users/wishlist", json={"bookId": 404}, headers=auth(token))

        assert r.status_code == 404

    def test_deleting_book_clears_wishlists(self, client, admin_token):
        book = _create_book(client, admin_token)
        token, _ = register(client, "ada@example.com")
        client.post("/api/users/wishlist", json={"bookId": book["id"]}, headers=auth(token))

        client.delete(f"/api/admin/books/{book['id']}", headers=auth(admin_token))
        assert client.get("/api/users/wishlist", headers=auth(token)).json() == []


class TestContactEndpoint:
    def test_submit(self, client, cfg):
        r = client.post(
            "/api/contact",
            json={"name": "Ada", "email": "ada@example.com", "subject": "Hi", "message": "Hello there"},
        )

        assert r.status_code == 200
        with connect(cfg.DB_DSN) as conn:
            row = conn.execute("SELECT * FROM contact_messages").fetchone()
        assert row["message"] == "Hello there"

    def test_missing_message(self, client):
        r = client.post("/api/contact", json={"name": "Ada", "email": "ada@example.com"})
        assert r.status_code == 400


class TestErrorHandling:
    def test_unexpected_error_is_generic(self, cfg, monkeypatch):
        def _boom(conn, **kwargs):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(server, "list_books", _boom)
        with TestClient(create_app(cfg), raise_server_exceptions=False) as c:
            r = c.get("/api/books")

        assert r.status_code == 500
        assert r.json() == {"message": "Internal server error"}
        assert "secret" not in r.text

    def test_store_unavailable(self, client, monkeypatch):
        def _down(conn, **kwargs):
            raise StoreUnavailable()

        monkeypatch.setattr(server, "list_books", _down)
        r = client.get("/api/books")

        assert r.status_code == 500
        assert r.json() == {"message": "Database connection error. Please try again later."}

    def test_unopenable_database(self, tmp_path):
        # A directory cannot be opened as a SQLite file.
        with pytest.raises(StoreUnavailable):
            with connect(str(tmp_path)):
                pass
