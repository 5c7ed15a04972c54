import os
from dataclasses import dataclass
from typing import Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


# Used only when AUTH_JWT_SECRET is unset. The API prints a warning at startup.
DEV_JWT_SECRET = "lumi-library-jwt-secret"


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Build one with `load_config()` at process start and pass it down
    explicitly (the API keeps it on `app.state.cfg`).
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set LUMI_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: LUMI_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("LUMI_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("LUMI_DB_PATH", "./lumi_library.sqlite")
    )

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = os.environ.get("AUTH_JWT_SECRET", DEV_JWT_SECRET)
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "1440"))  # 24 hours

    # Emails are matched exactly as stored unless this is switched on.
    AUTH_EMAIL_CASE_INSENSITIVE: bool = _env_bool("AUTH_EMAIL_CASE_INSENSITIVE", False) is True

    # Bootstrap first admin user if users table is empty (both must be set).
    AUTH_BOOTSTRAP_ADMIN_EMAIL: str | None = os.environ.get("AUTH_BOOTSTRAP_ADMIN_EMAIL")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str | None = os.environ.get("AUTH_BOOTSTRAP_ADMIN_PASSWORD")
    AUTH_BOOTSTRAP_ADMIN_NAME: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_NAME", "Administrator")

    # -----------------
    # Subscriptions
    # -----------------
    # Validity window applied to every plan.
    SUBSCRIPTION_DAYS: int = int(os.environ.get("SUBSCRIPTION_DAYS", "30"))

    # -----------------
    # CORS
    # -----------------
    # Comma-separated list; "*" allows any origin.
    CORS_ALLOW_ORIGINS: str = os.environ.get("CORS_ALLOW_ORIGINS", "*")

    @property
    def using_dev_secret(self) -> bool:
        return self.AUTH_JWT_SECRET == DEV_JWT_SECRET


def load_config() -> Config:
    return Config()
