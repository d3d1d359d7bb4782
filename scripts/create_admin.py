#!/usr/bin/env python3
"""
Script to create a super admin user.
"""
import sys
from getpass import getpass
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from core.exceptions import AgriModelError
from services.auth_service import AuthService
import config


def create_admin():
    """Create a super admin user."""
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Creating super admin user...")
    print("=" * 50)

    name = input("Full name: ").strip()
    email = input("Email: ").strip()
    password = getpass("Password: ").strip()
    phone_number = input("Phone number (optional): ").strip() or None

    if not name or not email or not password:
        print("Error: Name, email, and password are required")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            user = AuthService.register_super_admin(
                db, name=name, email=email, password=password, phone_number=phone_number
            )
            print("\n✓ Super admin created successfully!")
            print(f"  ID: {user.id}")
            print(f"  Email: {user.email}")
            print(f"  User code: {user.user_code}")
    except AgriModelError as e:
        print(f"\n✗ Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
