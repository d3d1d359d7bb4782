#!/usr/bin/env python3
"""
Create all tables that do not exist yet and list them.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect

from database.connection import Database
import config


def migrate():
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    print("Running database migrations...")
    config.db.create_tables()

    existing = set(inspect(config.db.engine).get_table_names())
    for table in config.db.table_names():
        mark = "✓" if table in existing else "✗"
        print(f"  {mark} {table}")
    missing = [t for t in config.db.table_names() if t not in existing]
    if missing:
        print(f"\n✗ Missing tables: {', '.join(missing)}")
        sys.exit(1)
    print("\n✓ Migrations completed successfully")


if __name__ == "__main__":
    migrate()
