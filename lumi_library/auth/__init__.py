"""Authentication / authorization helpers.

Auth is intentionally lightweight:

- Users table (email/password hash + role)
- Stateless JWT session tokens (`Authorization: Bearer <token>`), valid for 24h

Role is not a token claim. Admin-only routes re-read the user's role from the
store on every request (`require_role`), so demoting an admin takes effect
immediately even for tokens issued earlier.
"""

from .crud import bootstrap_admin_if_needed, register_user, verify_user_credentials
from .deps import get_current_user, get_identity, require_admin, require_auth, require_role

__all__ = [
    "get_current_user",
    "get_identity",
    "require_admin",
    "require_auth",
    "require_role",
    "bootstrap_admin_if_needed",
    "register_user",
    "verify_user_credentials",
]
