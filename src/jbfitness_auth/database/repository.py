"""User repository — the credential store consulted by the login flow."""

from __future__ import annotations

import secrets

from fastapi.concurrency import run_in_threadpool
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jbfitness_auth.models.user import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email address (``None`` becomes ``""``)."""
    return (email or "").strip().lower()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def _check_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# Checked against when the email is unknown so both failures cost one bcrypt round
_DUMMY_HASH = hash_password(secrets.token_urlsafe(16))


class UserRepository:
    """Encapsulates all database queries related to users.

    bcrypt work is CPU-bound, so hashing and verification run in the
    threadpool instead of on the event loop.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_email(self, email: str) -> User | None:
        """Look up a user by email, normalising the input first."""
        stmt = select(User).where(User.email == normalize_email(email))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def verify_password(user: User | None, password: str) -> bool:
        """Check *password* against the user's stored bcrypt hash.

        A missing *user* still pays for one verification and returns ``False``.
        """
        if user is None:
            await run_in_threadpool(_check_password, password, _DUMMY_HASH)
            return False
        return await run_in_threadpool(_check_password, password, user.password_hash)

    async def create_user(self, username: str, email: str, password: str) -> User:
        """Insert a new user with a hashed password and flush to get its id.

        The caller owns the transaction and must commit.
        """
        user = User(
            username=username,
            email=normalize_email(email),
            password_hash=await run_in_threadpool(hash_password, password),
        )
        self._session.add(user)
        await self._session.flush()
        return user
