import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from lumi_library.config import load_config
from lumi_library.db import connect, get_app_config, init_db


def main() -> None:
    cfg = load_config()
    init_db(cfg.DB_DSN)
    with connect(cfg.DB_DSN) as conn:
        version = get_app_config(conn, "schema_version")

    print(f"DB initialized: {cfg.DB_DSN} (schema {version})")


if __name__ == "__main__":
    main()
