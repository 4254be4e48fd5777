"""Seed script — populates the database with sample accounts for testing."""

import asyncio

from jbfitness_auth.database.engine import async_session_factory, init_db
from jbfitness_auth.database.repository import UserRepository

# (username, email, password)
SAMPLE_USERS = [
    ("alice", "alice@example.com", "alice-password"),
    ("bob", "bob@example.com", "bob-password"),
    ("carol", "carol@example.com", "carol-password"),
]


async def seed() -> None:
    """Insert sample users, skipping any that already exist."""
    await init_db()
    created = 0
    async with async_session_factory() as session:
        repo = UserRepository(session)
        for username, email, password in SAMPLE_USERS:
            if await repo.find_by_email(email) is not None:
                continue
            await repo.create_user(username, email, password)
            created += 1
        await session.commit()
    print(f"✅ Seeded {created} users into the database.")


if __name__ == "__main__":
    asyncio.run(seed())
