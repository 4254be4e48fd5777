"""Login service — password check, OTP challenge, session token.

Flow
----
1. ``login``: the email/password pair is checked against the user store.
   On success a challenge is created and its code emailed to the user.
   The client receives only the ``challenge_id``.
2. ``verify``: the client submits the code for its ``challenge_id``.
   A match consumes the challenge and yields a session token.
3. ``resend``: a still-live challenge gets a fresh code and a full TTL.

Any terminal outcome (expired, locked, unknown challenge) sends the client
back to step 1.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from jbfitness_auth.database.repository import UserRepository, normalize_email
from jbfitness_auth.errors import (
    ChallengeNotFoundError,
    DeliveryError,
    InvalidCredentialsError,
    InvalidOtpError,
    InvalidRequestError,
    OtpExpiredError,
    TooManyAttemptsError,
)
from jbfitness_auth.otp.challenge_store import OtpChallengeStore, VerifyOutcome
from jbfitness_auth.services.email_service import EmailService
from jbfitness_auth.services.email_validation import email_domain_exists
from jbfitness_auth.services.tokens import issue_session_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfo:
    id: int
    username: str
    email: str


@dataclass(frozen=True)
class LoginChallenge:
    """Returned after a successful password check."""

    challenge_id: str
    email: str
    expires_in_ms: int


@dataclass(frozen=True)
class AuthenticatedSession:
    token: str
    user: UserInfo


class LoginService:
    """Orchestrates one login attempt across the collaborators.

    The challenge store owns all state transitions; this class only maps
    their outcomes to errors and performs email delivery outside the
    store's lock.
    """

    def __init__(
        self,
        store: OtpChallengeStore,
        users: UserRepository,
        email_service: EmailService,
        token_issuer: Callable[[int, str, str], str] = issue_session_token,
        email_checker: Callable[[str], Awaitable[bool]] = email_domain_exists,
    ) -> None:
        self._store = store
        self._users = users
        self._email = email_service
        self._issue_token = token_issuer
        self._email_exists = email_checker

    @property
    def expires_in_ms(self) -> int:
        """The full TTL, reported on every issue / re-issue."""
        return self._store.ttl_seconds * 1000

    async def login(self, email: str | None, password: str | None) -> LoginChallenge:
        normalized = normalize_email(email)
        if not normalized or not password:
            raise InvalidRequestError("Email and password are required")

        user = await self._users.find_by_email(normalized)
        if not await self._users.verify_password(user, password):
            logger.info("Rejected password login for %s", normalized)
            raise InvalidCredentialsError()

        issued = self._store.create(user.id, user.email, user.username)

        sent = await self._email.send_login_otp(user.email, issued.code, user.username)
        if not sent:
            # The challenge stays live so the client can recover via resend.
            raise DeliveryError(
                "Unable to send verification code. Please request a new code.",
                challengeId=issued.challenge_id,
            )

        logger.info("Login OTP sent to %s", user.email)
        return LoginChallenge(
            challenge_id=issued.challenge_id,
            email=user.email,
            expires_in_ms=self.expires_in_ms,
        )

    async def verify(self, challenge_id: str | None, otp: str | None) -> AuthenticatedSession:
        # Whitespace-only codes are not "missing"; they count as a wrong guess
        if not challenge_id or otp is None or otp == "":
            raise InvalidRequestError("Challenge ID and OTP are required")

        result = self._store.verify(challenge_id, otp)

        if result.outcome is VerifyOutcome.NOT_FOUND:
            raise ChallengeNotFoundError()
        if result.outcome is VerifyOutcome.EXPIRED:
            raise OtpExpiredError()
        if result.outcome is VerifyOutcome.LOCKED:
            raise TooManyAttemptsError()
        if result.outcome is VerifyOutcome.MISMATCH:
            raise InvalidOtpError()

        challenge = result.challenge
        user = UserInfo(
            id=challenge.identity,
            username=challenge.display_name,
            email=challenge.display_email,
        )
        token = self._issue_token(user.id, user.username, user.email)
        logger.info("User %s authenticated via login OTP", user.id)
        return AuthenticatedSession(token=token, user=user)

    async def resend(self, challenge_id: str | None) -> int:
        """Issue a fresh code and return the TTL in milliseconds."""
        if not challenge_id:
            raise InvalidRequestError("Challenge ID is required")

        issued = self._store.resend(challenge_id)
        if issued is None:
            raise ChallengeNotFoundError()

        sent = await self._email.send_login_otp(
            issued.display_email, issued.code, issued.display_name
        )
        if not sent:
            raise DeliveryError("Failed to resend OTP")
        return self.expires_in_ms

    async def validate_email(self, email: str | None) -> str:
        """Pre-flight check used by the sign-up form; returns the normalised email."""
        normalized = normalize_email(email)
        if not normalized:
            raise InvalidRequestError("Email is required", exists=False)
        if not await self._email_exists(normalized):
            raise InvalidRequestError("Email doesn't exist", exists=False)
        return normalized

    async def register(
        self, username: str | None, email: str | None, password: str | None
    ) -> AuthenticatedSession:
        """Create an account and sign it in directly (no OTP on sign-up)."""
        normalized = normalize_email(email)
        username = (username or "").strip()
        if not username or not normalized or not password:
            raise InvalidRequestError("All fields are required")
        if not await self._email_exists(normalized):
            raise InvalidRequestError("Email doesn't exist")
        if await self._users.find_by_email(normalized) is not None:
            raise InvalidRequestError("User already exists")

        try:
            user = await self._users.create_user(username, normalized, password)
        except IntegrityError as exc:
            # Lost a race with a concurrent sign-up for the same email
            raise InvalidRequestError("User already exists") from exc
        logger.info("Registered user %s (%s)", user.id, user.email)
        info = UserInfo(id=user.id, username=user.username, email=user.email)
        return AuthenticatedSession(
            token=self._issue_token(info.id, info.username, info.email), user=info
        )
