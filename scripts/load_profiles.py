from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.config import settings  # noqa: E402
from app.store import SqliteProfileStore  # noqa: E402
from app.store.loader import load_profiles  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Load alumni profile documents into the SQLite profile store.")
    parser.add_argument("path", help="JSON array or JSON-lines file of profile documents")
    parser.add_argument(
        "--db",
        default=settings.profiles_db_path,
        help="SQLite database path (defaults to PROFILES_DB_PATH)",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level, format="%(message)s")
    store = SqliteProfileStore(args.db)
    try:
        loaded, skipped = load_profiles(args.path, store)
    finally:
        store.close()
    print(f"Loaded {loaded} profiles into {args.db} ({skipped} skipped)")


if __name__ == "__main__":
    main()
