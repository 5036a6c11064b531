#!/usr/bin/env python3
"""
Create the embeddings / job_matches tables and bring older job_matches tables up to date.
Safe to run repeatedly.
"""

import sys
from pathlib import Path

from sqlalchemy import inspect, text

# Allow `python backend/migrate.py` from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.jobmatch.database import Base, engine, init_db  # noqa: E402


def migrate():
    print("Initializing database with all models...")
    init_db()
    print("✓ Database initialized successfully")

    inspector = inspect(engine)
    existing = {c["name"] for c in inspector.get_columns("job_matches")}

    # Columns added after the first release of job_matches.
    columns_to_add = {
        "notified_at": "TIMESTAMP",
        "claim_token": "VARCHAR(36)",
        "claimed_at": "TIMESTAMP",
    }

    added = []
    for col, col_type in columns_to_add.items():
        if col in existing:
            continue
        try:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE job_matches ADD COLUMN {col} {col_type}"))
            added.append(col)
        except Exception as e:
            print(f"✗ Failed to add column {col}: {e}")

    if added:
        print(f"✓ Added job_matches columns: {', '.join(added)}")
    else:
        print("✓ job_matches columns already up to date")

    missing = [t for t in ("embeddings", "job_matches") if t not in Base.metadata.tables]
    if missing:
        print(f"✗ Tables not registered: {', '.join(missing)}")
        return False
    return True


if __name__ == "__main__":
    success = migrate()
    sys.exit(0 if success else 1)
