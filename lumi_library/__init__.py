"""Lumi Library - Backend.

A digital book-subscription library:
- Users register / log in and receive short-lived JWTs.
- Books can be browsed, searched, reviewed and wishlisted.
- Subscriptions are bought through a simulated payment flow.

Core concepts:
- The `subscriptions` table is the ledger (source of truth).
- The plan/expiry stored on `users` is a denormalized cache of the latest grant.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
