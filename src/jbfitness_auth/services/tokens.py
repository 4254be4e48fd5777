"""Session token minting (JWT)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from jbfitness_auth.config import settings


class InvalidTokenError(Exception):
    """Raised when a session token cannot be decoded or has expired."""


def issue_session_token(user_id: int, username: str, email: str) -> str:
    """Create a signed session token for an authenticated user."""
    expire = datetime.now(UTC) + timedelta(minutes=settings.session_token_ttl_minutes)
    claims = {
        "sub": str(user_id),
        "id": user_id,
        "username": username,
        "email": email,
        "exp": expire,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
