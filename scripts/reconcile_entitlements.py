"""Repair users whose cached plan has no backing subscription row.

A revoke that deleted the subscription but never reset the user leaves
`users.subscription` claiming a plan the ledger does not have. This sweep
resets those users to plan 'none'. It is idempotent; run it as often as you like.

Usage:
  python scripts/reconcile_entitlements.py            # fix
  python scripts/reconcile_entitlements.py --dry-run  # report only
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lumi_library.billing.ledger import find_orphaned_entitlements, reconcile_entitlements
from lumi_library.config import load_config
from lumi_library.db import connect, init_db


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--dry-run", action="store_true", help="List affected users without changing anything")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        if args.dry_run:
            orphans = find_orphaned_entitlements(conn)
            for u in orphans:
                print(f"user_id={u['user_id']} email={u['email']} plan={u['subscription']} expiry={u['subscription_expiry']}")
            print(f"{len(orphans)} orphaned entitlement(s)")
            return

        fixed = reconcile_entitlements(conn)

    print(f"Reset {len(fixed)} user(s): {fixed}")


if __name__ == "__main__":
    main()
