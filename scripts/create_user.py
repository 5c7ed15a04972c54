"""Create a user in the configured DB.

Usage:
  python scripts/create_user.py --name Alice --email alice@example.com --password '...' --role user

NOTE: This is intended for local/dev.
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lumi_library.auth.crud import register_user
from lumi_library.config import load_config
from lumi_library.db import connect, init_db


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--name", required=True)
    ap.add_argument("--email", required=True)
    ap.add_argument("--password", required=True)
    ap.add_argument("--role", choices=["user", "admin"], default="user")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = register_user(
            conn,
            name=args.name,
            email=args.email,
            password=args.password,
            role=args.role,
            case_insensitive=cfg.AUTH_EMAIL_CASE_INSENSITIVE,
        )

    print("Created user:")
    print(u)


if __name__ == "__main__":
    main()
