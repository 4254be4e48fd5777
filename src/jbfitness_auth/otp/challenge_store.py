"""In-memory store of pending login OTP challenges.

A challenge is issued right after the password check succeeds and is
redeemed exactly once for a session token.  Every record carries its own
expiry and a count of failed attempts against the *current* code; both are
reset whenever the code is regenerated.

All mutating operations are single method calls that own their locking, so
callers never do a get / modify / put sequence themselves.
"""

from __future__ import annotations

import enum
import hmac
import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Defaults mirror the settings in ``config.py``
DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_MAX_ATTEMPTS = 5

CODE_MIN = 100000
CODE_MAX = 999999


def generate_code() -> str:
    """Return a 6-digit code drawn uniformly from ``[100000, 999999]``."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def generate_challenge_id() -> str:
    """Return a 128-bit URL-safe random identifier."""
    return secrets.token_urlsafe(16)


class ChallengeCollisionError(RuntimeError):
    """The id generator produced an id that is already live."""


class VerifyOutcome(enum.StrEnum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    LOCKED = "locked"


@dataclass
class OtpChallenge:
    """One pending second-factor verification."""

    challenge_id: str
    identity: int
    display_email: str
    display_name: str
    code: str
    expires_at: float
    attempts: int = 0


@dataclass(frozen=True)
class IssuedCode:
    """Value object handed back to the caller on create / resend."""

    challenge_id: str
    code: str
    expires_at: float
    display_email: str
    display_name: str


@dataclass(frozen=True)
class VerifyResult:
    outcome: VerifyOutcome
    challenge: OtpChallenge | None = None
    attempts: int = 0


class OtpChallengeStore:
    """Process-local challenge store keyed by ``challenge_id``.

    A single lock serialises every operation.  Operations are O(1) dict
    work (except :meth:`purge_expired`) and never perform I/O, so the lock
    is never held across an ``await``.

    Parameters
    ----------
    ttl_seconds:
        Validity window of each freshly generated code.
    max_attempts:
        Failed verifications tolerated before the challenge is locked out.
    clock:
        Monotonic time source in seconds; injectable for tests.
    id_factory, code_factory:
        Random generators for challenge ids and codes.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = generate_challenge_id,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self._clock = clock
        self._id_factory = id_factory
        self._code_factory = code_factory
        self._challenges: dict[str, OtpChallenge] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)

    def create(self, identity: int, display_email: str, display_name: str) -> IssuedCode:
        """Open a new challenge for an already password-authenticated user."""
        challenge_id = self._id_factory()
        code = self._code_factory()
        with self._lock:
            if challenge_id in self._challenges:
                raise ChallengeCollisionError("Challenge id collision; refusing to overwrite")
            expires_at = self._clock() + self.ttl_seconds
            self._challenges[challenge_id] = OtpChallenge(
                challenge_id=challenge_id,
                identity=identity,
                display_email=display_email,
                display_name=display_name,
                code=code,
                expires_at=expires_at,
            )
        logger.info("OTP challenge %s created for user %s", challenge_id, identity)
        return IssuedCode(
            challenge_id=challenge_id,
            code=code,
            expires_at=expires_at,
            display_email=display_email,
            display_name=display_name,
        )

    def verify(self, challenge_id: str, submitted_code: object) -> VerifyResult:
        """Check *submitted_code* against the live challenge.

        Outcomes are evaluated in order: not found, expired, mismatch (which
        may become locked), success.  Expired, locked and successful
        challenges are removed.
        """
        candidate = str(submitted_code).strip()
        with self._lock:
            challenge = self._challenges.get(challenge_id)
            if challenge is None:
                return VerifyResult(VerifyOutcome.NOT_FOUND)

            if self._clock() > challenge.expires_at:
                del self._challenges[challenge_id]
                logger.info("OTP challenge %s expired", challenge_id)
                return VerifyResult(VerifyOutcome.EXPIRED)

            if not hmac.compare_digest(candidate.encode(), challenge.code.encode()):
                challenge.attempts += 1
                if challenge.attempts >= self.max_attempts:
                    del self._challenges[challenge_id]
                    logger.warning(
                        "OTP challenge %s locked after %d failed attempts",
                        challenge_id,
                        challenge.attempts,
                    )
                    return VerifyResult(VerifyOutcome.LOCKED, attempts=challenge.attempts)
                return VerifyResult(VerifyOutcome.MISMATCH, attempts=challenge.attempts)

            # Single use
            del self._challenges[challenge_id]
        logger.info("OTP challenge %s redeemed by user %s", challenge_id, challenge.identity)
        return VerifyResult(VerifyOutcome.SUCCESS, challenge=challenge)

    def resend(self, challenge_id: str) -> IssuedCode | None:
        """Regenerate the code of a live challenge.

        Returns ``None`` if the challenge does not exist.  An expired record
        is removed instead of being revived; only ``login`` can start over.
        """
        code = self._code_factory()
        with self._lock:
            challenge = self._challenges.get(challenge_id)
            if challenge is None:
                return None
            now = self._clock()
            if now > challenge.expires_at:
                del self._challenges[challenge_id]
                logger.info("OTP challenge %s expired before resend", challenge_id)
                return None
            challenge.code = code
            challenge.expires_at = now + self.ttl_seconds
            challenge.attempts = 0
            issued = IssuedCode(
                challenge_id=challenge_id,
                code=code,
                expires_at=challenge.expires_at,
                display_email=challenge.display_email,
                display_name=challenge.display_name,
            )
        logger.info("OTP challenge %s regenerated", challenge_id)
        return issued

    def purge_expired(self) -> int:
        """Delete every expired record and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [cid for cid, c in self._challenges.items() if now > c.expires_at]
            for cid in expired:
                del self._challenges[cid]
        if expired:
            logger.debug("Purged %d expired OTP challenges", len(expired))
        return len(expired)
