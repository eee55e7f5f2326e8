#!/usr/bin/env python3
"""
Create and seed the Movies schema, or verify an existing one.
It packages a repeatable workflow so development tasks can be executed consistently.
Run it directly with `python scripts/init_database.py`.
It prints a JSON summary and exits non-zero on failure.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.common.db import create_db_engine, test_connection
from src.common.logging import configure_logging
from src.common.settings import get_settings
from src.data.errors import PersistenceError
from src.data.schema import ensure_schema


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create, seed, or verify the Movies database schema")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override the URL built from DATABASE_URL / DB_* settings",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging()
    database_url = args.database_url or get_settings().database_url

    engine = create_db_engine(database_url)
    try:
        if not test_connection(engine):
            print("Database is unreachable; check the DB_* settings.", file=sys.stderr)
            sys.exit(1)
        try:
            created = ensure_schema(engine)
        except PersistenceError as exc:
            print(f"Schema check failed: {exc}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps({"schema_created": created, "database": engine.url.database}, indent=2))
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
