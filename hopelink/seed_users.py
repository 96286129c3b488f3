"""
Database seeding script for initial users.

Creates the ADMIN account (admins cannot register through the API) and one
demo user for each of the other roles.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hopelink.app.db.session import AsyncSessionLocal
from hopelink.app.models.user import User
from hopelink.app.models.enums import UserRole
from hopelink.app.core.security import get_password_hash
from sqlalchemy import select

# (username, full name, role, password)
SEED_USERS = (
    ("admin", "HopeLink Admin", UserRole.ADMIN, "admin123"),
    ("donor", "Demo Donor", UserRole.DONOR, "donor123"),
    ("recipient", "Demo Recipient", UserRole.RECIPIENT, "recipient123"),
    ("volunteer", "Demo Volunteer", UserRole.VOLUNTEER, "volunteer123"),
)


async def seed_users(session_factory=AsyncSessionLocal) -> int:
    """
    Seed initial users with different roles.

    Skips entirely when the admin account already exists. Returns the
    number of users created.
    """
    async with session_factory() as db:
        print("🌱 Starting user seeding...")

        result = await db.execute(
            select(User).where(User.username == "admin")
        )
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return 0

        for username, full_name, role, password in SEED_USERS:
            db.add(User(
                email=f"{username}@hopelink.org",
                username=username,
                full_name=full_name,
                hashed_password=get_password_hash(password),
                role=role,
                is_active=True
            ))
            print(f"✅ Created {role.value.upper()} user (username: {username}, password: {password})")

        await db.commit()

        print("\n🎉 User seeding completed successfully!")
        return len(SEED_USERS)


if __name__ == "__main__":
    asyncio.run(seed_users())
