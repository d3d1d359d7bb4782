#!/usr/bin/env python3
"""
Script to delete a super admin user by email.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.models import User, UserRole
from services.auth_service import normalize_email
import config


def delete_super_admin(email: str, force: bool = False):
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )

    with config.db.get_session() as db:
        user = db.query(User).filter(
            User.email == normalize_email(email),
            User.role == UserRole.SUPER_ADMIN
        ).first()
        if user is None:
            print(f"✗ No super admin with email {email}")
            sys.exit(1)

        remaining = db.query(User).filter(
            User.role == UserRole.SUPER_ADMIN,
            User.id != user.id
        ).count()
        if remaining == 0 and not force:
            print("✗ Refusing to delete the last super admin (pass --force to override)")
            sys.exit(1)

        if not force:
            answer = input(f"Delete super admin {user.name} <{user.email}>? [y/N] ").strip().lower()
            if answer != "y":
                print("Aborted")
                return

        db.delete(user)
        print(f"✓ Deleted super admin {user.email}")


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a != "--force"]
    if len(args) != 1:
        print("Usage: delete_super_admin.py <email> [--force]")
        sys.exit(1)
    delete_super_admin(args[0], force="--force" in sys.argv[1:])
