#!/usr/bin/env python3
"""
Create (or promote) an admin account for Memory Trainer.

Usage:
    python scripts/create_admin.py <email> <password> [name]

Example:
    python scripts/create_admin.py admin@example.com secretpassword Admin
"""

import asyncio
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from errors import ValidationError
from models.user import UserRole
from services.auth_service import AuthService
from stores.score_store import ScoreStore
from stores.user_store import UserStore


async def create_admin(email: str, password: str, name: str) -> int:
    """Create an admin account, or promote the existing one. Returns an exit code."""
    if not config.POSTGRES_URL:
        print("Error: POSTGRES_URL not configured in environment or .env file")
        return 1

    print("Connecting to database...")
    store = await UserStore.create(config.POSTGRES_URL)
    try:
        existing = await store.get_user_by_email(email)
        if existing:
            if existing.role == UserRole.ADMIN:
                print(f"'{email}' is already an admin.")
            else:
                await store.update_user(existing.id, role=UserRole.ADMIN)
                print(f"Done! '{email}' is now an admin.")
            return 0

        scores = ScoreStore(store.pool)
        await scores.initialize_schema()
        auth = AuthService(
            store,
            scores,
            secret_key=config.SECRET_KEY,
            session_expiry_hours=config.SESSION_EXPIRY_HOURS,
            admin_emails=[email],
        )
        try:
            result = await auth.register(name=name, email=email, password=password)
        except ValidationError as e:
            for detail in e.details:
                print(f"Error: {detail['field']} {detail['message']}")
            return 1

        print("Admin user created successfully!")
        print(f"  Name: {result.user.name}")
        print(f"  Email: {result.user.email}")
        print(f"  Role: {result.user.role.value}")
        return 0
    finally:
        await store.close()


def main():
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    email = sys.argv[1]
    password = sys.argv[2]
    name = sys.argv[3] if len(sys.argv) > 3 else "Admin"

    sys.exit(asyncio.run(create_admin(email, password, name)))


if __name__ == "__main__":
    main()
