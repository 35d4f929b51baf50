#!/usr/bin/env python3
"""
Script to create an admin user.
"""
import sys
from getpass import getpass
from pathlib import Path

# Add parent directory to the system path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.connection import Database
from database.models import UserRole
from services.auth_service import AuthService
import config


def create_admin():
    """Create an admin user with a password (admins skip the magic-link setup)."""
    config.db = Database(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW
    )
    config.db.create_tables()

    print("Creating admin user...")
    print("=" * 50)

    name = input("Full name: ").strip()
    email = input("Email: ").strip()
    password = getpass("Password: ").strip()
    phone = input("Phone (optional): ").strip() or None

    if not name or not email or not password:
        print("Error: Name, email, and password are required")
        sys.exit(1)

    try:
        with config.db.get_session() as db:
            user = AuthService.create_user(
                db=db,
                email=email,
                name=name,
                role=UserRole.ADMIN,
                phone=phone,
                password=password,
            )
            print(f"\n✓ Admin user created successfully!")
            print(f"  Name: {user.name}")
            print(f"  Email: {user.email}")
            print(f"  Role: {user.role.value}")
    except ValueError as e:
        print(f"\n✗ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    create_admin()
