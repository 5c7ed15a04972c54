"""Seed the DB with sample books and a demo user.

Usage:
  python scripts/seed.py           # add sample data
  python scripts/seed.py --reset   # wipe users/books/subscriptions first

The demo user (john@example.com / password123) gets a basic plan through the
ledger, so the cached plan on the user row is backed by a subscription record.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lumi_library.auth.crud import get_user_by_email, register_user
from lumi_library.billing.ledger import PLANS, purchase
from lumi_library.catalog.books import create_book
from lumi_library.config import load_config
from lumi_library.db import connect, init_db


PLACEHOLDER_CONTENT = "Full book content would go here..."

SAMPLE_BOOKS = [
    {
        "title": "The Cosmic Journey",
        "author": "Alexandra Stellar",
        "description": "Embark on an extraordinary voyage through the cosmos with Dr. Elena Voyager, "
        "a brilliant astrophysicist who discovers a hidden gateway to parallel universes.",
        "category": "Science Fiction",
        "cover_image": "images/related-book1.jpg",
        "sample_content": "Chapter 1: The Discovery\nDr. Elena Voyager adjusted the quantum sensors on her telescope, "
        "peering into the cosmic void beyond the Andromeda Galaxy.",
    },
    {
        "title": "Stellar Winds",
        "author": "Alexandra Stellar",
        "description": "A gripping tale of interstellar exploration and discovery.",
        "category": "Science Fiction",
        "cover_image": "images/related-book2.jpg",
        "sample_content": "Chapter 1: The Launch\nThe spacecraft hummed with energy as it prepared for its journey to the stars.",
    },
    {
        "title": "Quantum Dreams",
        "author": "Marcus Quantum",
        "description": "A thrilling adventure through the quantum realm.",
        "category": "Sci-Fi Thriller",
        "cover_image": "images/related-book3.jpg",
        "sample_content": "Chapter 1: The Experiment\nDr. Sarah Chen stared at the quantum computer screen.",
    },
    {
        "title": "The Hobbit",
        "author": "J.R.R. Tolkien",
        "description": "A classic fantasy adventure about Bilbo Baggins and his unexpected journey.",
        "category": "Fantasy",
        "cover_image": "images/fantasy-book1.jpg",
        "sample_content": "Chapter 1: An Unexpected Party\nIn a hole in the ground there lived a hobbit.",
    },
    {
        "title": "A Brief History of Time",
        "author": "Stephen Hawking",
        "description": "A landmark volume in science writing by one of the great minds of our time.",
        "category": "Science",
        "cover_image": "images/science-book1.jpg",
        "sample_content": "Chapter 1: Our Picture of the Universe\nA well-known scientist once gave a public lecture on astronomy.",
    },
    {
        "title": "Steve Jobs",
        "author": "Walter Isaacson",
        "description": "Based on more than forty interviews with Jobs conducted over two years.",
        "category": "Biography",
        "cover_image": "images/biographies-book1.jpg",
        "sample_content": "Chapter 1: The Childhood\nWhen he was around five years old, his parents decided to give him a sibling.",
    },
    {
        "title": "Pride and Prejudice",
        "author": "Jane Austen",
        "description": "A romantic novel of manners written by Jane Austen.",
        "category": "Romance",
        "cover_image": "images/romance-book1.jpg",
        "sample_content": "Chapter 1: It is a truth universally acknowledged, that a single man in possession "
        "of a good fortune, must be in want of a wife.",
    },
    {
        "title": "The Art Book",
        "author": "Phaidon Press",
        "description": "A comprehensive guide to Western art from medieval to modern times.",
        "category": "Art",
        "cover_image": "images/art-book1.jpg",
        "sample_content": "Introduction: Art has always been a reflection of human experience.",
    },
]

DEMO_USER = {"name": "John Doe", "email": "john@example.com", "password": "password123"}


def seed(conn, *, days: int) -> dict:
    """Insert sample books missing by title and the demo user. Safe to rerun."""
    existing = {r["title"] for r in conn.execute("SELECT title FROM books").fetchall()}
    added_books = 0
    for book in SAMPLE_BOOKS:
        if book["title"] in existing:
            continue
        create_book(conn, {**book, "full_content": PLACEHOLDER_CONTENT})
        added_books += 1

    added_user = False
    if get_user_by_email(conn, DEMO_USER["email"]) is None:
        u = register_user(conn, **DEMO_USER)
        purchase(conn, user_id=int(u["user_id"]), plan="basic", amount=PLANS["basic"].price, days=days)
        added_user = True

    return {"books": added_books, "demo_user": added_user}


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--reset", action="store_true", help="Delete existing users, books and subscriptions first")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        if args.reset:
            for table in ("book_reviews", "user_wishlist", "subscriptions", "books", "users"):
                conn.execute(f"DELETE FROM {table}")
            print("Cleared existing data")

        added = seed(conn, days=cfg.SUBSCRIPTION_DAYS)

    print(f"Created {added['books']} sample book(s)")
    if added["demo_user"]:
        print(f"Created demo user {DEMO_USER['email']} with a basic plan")
    print("Database seeding completed successfully")


if __name__ == "__main__":
    main()
