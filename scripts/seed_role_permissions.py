"""
Seed the project permission catalogue and the role -> permission table.

Run after the tables exist. Safe to run repeatedly; only missing rows are added.

Usage:
    python scripts/seed_role_permissions.py [--create-tables]
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from budget_hub.db import Base, SessionLocal, engine
from budget_hub.seed import seed_role_permissions


def main(create_tables: bool = False) -> None:
    if create_tables:
        Base.metadata.create_all(bind=engine)
        print("Tables created/verified")
    db = SessionLocal()
    try:
        perms, pairs = seed_role_permissions(db)
        print(f"Added {perms} permissions and {pairs} role permissions")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed project permissions and role permissions")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    args = parser.parse_args()

    main(create_tables=args.create_tables)
