"""Tests for the LoginService — password check, OTP challenge, session token."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from jbfitness_auth.database import repository
from jbfitness_auth.database.repository import UserRepository, hash_password
from jbfitness_auth.errors import (
    ChallengeNotFoundError,
    DeliveryError,
    InvalidCredentialsError,
    InvalidOtpError,
    InvalidRequestError,
    OtpExpiredError,
    TooManyAttemptsError,
)
from jbfitness_auth.models.user import Base, User
from jbfitness_auth.otp.challenge_store import OtpChallengeStore
from jbfitness_auth.services.email_service import EmailService
from jbfitness_auth.services.login_service import LoginService
from jbfitness_auth.services.tokens import decode_session_token

# ── In-memory test database ─────────────────────────────
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def db_session():
    """Create tables and seed one test user."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        session.add(
            User(
                username="alice",
                email="alice@example.com",
                password_hash=hash_password("correct horse"),
            )
        )
        await session.commit()
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def store(clock):
    return OtpChallengeStore(ttl_seconds=600, max_attempts=5, clock=clock)


@pytest.fixture
def email_service():
    """Mocked email service — never actually sends emails."""
    svc = EmailService()
    svc.send_login_otp = AsyncMock(return_value=True)
    return svc


@pytest.fixture
def email_checker():
    """Deliverability check that never touches DNS."""
    return AsyncMock(return_value=True)


@pytest.fixture
def service(db_session, store, email_service, email_checker):
    return LoginService(
        store, UserRepository(db_session), email_service, email_checker=email_checker
    )


def _last_code(email_service) -> str:
    return email_service.send_login_otp.call_args.args[1]


# ── login ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_login_emails_code_and_returns_challenge(service, store, email_service):
    challenge = await service.login("  Alice@Example.com ", "correct horse")

    assert challenge.email == "alice@example.com"
    assert challenge.expires_in_ms == 600000
    assert len(store) == 1
    email_service.send_login_otp.assert_awaited_once()
    to_email, code, name = email_service.send_login_otp.call_args.args
    assert (to_email, name) == ("alice@example.com", "alice")
    assert len(code) == 6


@pytest.mark.asyncio
@pytest.mark.parametrize("email,password", [("", "x"), ("alice@example.com", ""), (None, None)])
async def test_login_requires_both_fields(service, store, email_service, email, password):
    with pytest.raises(InvalidRequestError):
        await service.login(email, password)
    assert len(store) == 0
    email_service.send_login_otp.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["alice@example.com", "nobody@example.com"])
async def test_login_bad_credentials(service, store, email):
    with pytest.raises(InvalidCredentialsError) as exc_info:
        await service.login(email, "wrong password")
    assert exc_info.value.status_code == 401
    assert len(store) == 0


@pytest.mark.asyncio
async def test_unknown_email_still_checks_a_password_hash(service, monkeypatch):
    check = MagicMock(return_value=False)
    monkeypatch.setattr(repository, "_check_password", check)

    with pytest.raises(InvalidCredentialsError):
        await service.login("nobody@example.com", "whatever")

    check.assert_called_once_with("whatever", repository._DUMMY_HASH)


@pytest.mark.asyncio
async def test_login_delivery_failure_keeps_challenge_for_resend(service, store, email_service):
    email_service.send_login_otp.return_value = False

    with pytest.raises(DeliveryError) as exc_info:
        await service.login("alice@example.com", "correct horse")

    challenge_id = exc_info.value.extra["challengeId"]
    assert exc_info.value.status_code == 500
    assert len(store) == 1

    email_service.send_login_otp.return_value = True
    assert await service.resend(challenge_id) == 600000
    session = await service.verify(challenge_id, _last_code(email_service))
    assert session.user.email == "alice@example.com"


# ── verify ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_verify_success_issues_token(service, email_service):
    challenge = await service.login("alice@example.com", "correct horse")

    session = await service.verify(challenge.challenge_id, _last_code(email_service))

    claims = decode_session_token(session.token)
    assert claims["email"] == "alice@example.com"
    assert claims["username"] == "alice"
    assert claims["id"] == session.user.id
    assert session.user.username == "alice"

    with pytest.raises(ChallengeNotFoundError):
        await service.verify(challenge.challenge_id, _last_code(email_service))


@pytest.mark.asyncio
async def test_verify_mismatch_then_lockout(service):
    challenge = await service.login("alice@example.com", "correct horse")

    for _ in range(4):
        with pytest.raises(InvalidOtpError):
            await service.verify(challenge.challenge_id, "000000")
    with pytest.raises(TooManyAttemptsError) as exc_info:
        await service.verify(challenge.challenge_id, "000000")
    assert exc_info.value.status_code == 429

    with pytest.raises(ChallengeNotFoundError):
        await service.verify(challenge.challenge_id, "000000")


@pytest.mark.asyncio
async def test_verify_expired(service, clock, email_service):
    challenge = await service.login("alice@example.com", "correct horse")
    clock.now += 601

    with pytest.raises(OtpExpiredError):
        await service.verify(challenge.challenge_id, _last_code(email_service))


@pytest.mark.asyncio
@pytest.mark.parametrize("challenge_id,otp", [("", "123456"), ("abc", ""), (None, None)])
async def test_verify_requires_both_fields(service, challenge_id, otp):
    with pytest.raises(InvalidRequestError):
        await service.verify(challenge_id, otp)


@pytest.mark.asyncio
async def test_whitespace_otp_counts_as_a_wrong_guess(service):
    challenge = await service.login("alice@example.com", "correct horse")

    for _ in range(4):
        with pytest.raises(InvalidOtpError):
            await service.verify(challenge.challenge_id, "   ")
    with pytest.raises(TooManyAttemptsError):
        await service.verify(challenge.challenge_id, "   ")


# ── resend ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_resend_replaces_code(service, email_service):
    challenge = await service.login("alice@example.com", "correct horse")
    first_code = _last_code(email_service)

    await service.resend(challenge.challenge_id)
    second_code = _last_code(email_service)
    assert email_service.send_login_otp.await_count == 2

    if first_code != second_code:
        with pytest.raises(InvalidOtpError):
            await service.verify(challenge.challenge_id, first_code)
    session = await service.verify(challenge.challenge_id, second_code)
    assert session.user.username == "alice"


@pytest.mark.asyncio
async def test_resend_unknown_challenge(service):
    with pytest.raises(ChallengeNotFoundError):
        await service.resend("does-not-exist")
    with pytest.raises(InvalidRequestError):
        await service.resend("")


@pytest.mark.asyncio
async def test_resend_delivery_failure(service, store, email_service):
    challenge = await service.login("alice@example.com", "correct horse")
    email_service.send_login_otp.return_value = False

    with pytest.raises(DeliveryError):
        await service.resend(challenge.challenge_id)
    assert len(store) == 1


# ── register ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_register_creates_user_and_signs_in(service, db_session):
    session = await service.register("bob", "Bob@Example.com", "hunter22")
    await db_session.commit()

    assert session.user.email == "bob@example.com"
    assert decode_session_token(session.token)["username"] == "bob"

    challenge = await service.login("bob@example.com", "hunter22")
    assert challenge.email == "bob@example.com"


@pytest.mark.asyncio
async def test_register_rejects_duplicates_and_bad_input(service, email_checker):
    with pytest.raises(InvalidRequestError, match="already exists"):
        await service.register("alice2", "ALICE@example.com", "pw")
    email_checker.return_value = False
    with pytest.raises(InvalidRequestError, match="doesn't exist"):
        await service.register("carol", "carol@no-such-domain.com", "pw")
    email_checker.assert_awaited_with("carol@no-such-domain.com")
    with pytest.raises(InvalidRequestError, match="required"):
        await service.register("", "carol@example.com", "pw")


# ── validate_email ───────────────────────────────────────

@pytest.mark.asyncio
async def test_validate_email(service, email_checker):
    assert await service.validate_email("  Carol@Example.com ") == "carol@example.com"

    with pytest.raises(InvalidRequestError) as exc_info:
        await service.validate_email("")
    assert exc_info.value.to_dict() == {"msg": "Email is required", "exists": False}

    email_checker.return_value = False
    with pytest.raises(InvalidRequestError) as exc_info:
        await service.validate_email("carol@no-such-domain.com")
    assert exc_info.value.to_dict() == {"msg": "Email doesn't exist", "exists": False}
