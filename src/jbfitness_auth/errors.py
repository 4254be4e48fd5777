"""Domain errors raised by the login flow and rendered by the API layer."""

from __future__ import annotations

from typing import Any


class AuthFlowError(Exception):
    """Base error carrying the HTTP status and user-facing message."""

    status_code: int = 400
    default_msg: str = "Bad request"

    def __init__(self, msg: str | None = None, **extra: Any) -> None:
        self.msg = msg or self.default_msg
        self.extra = extra
        super().__init__(self.msg)

    def to_dict(self) -> dict[str, Any]:
        return {"msg": self.msg, **self.extra}


class InvalidRequestError(AuthFlowError):
    status_code = 400


class InvalidCredentialsError(AuthFlowError):
    status_code = 401
    default_msg = "Invalid credentials"


class InvalidOtpError(AuthFlowError):
    status_code = 401
    default_msg = "Invalid OTP"


class OtpExpiredError(AuthFlowError):
    status_code = 400
    default_msg = "OTP expired. Please sign in again."


class ChallengeNotFoundError(AuthFlowError):
    status_code = 400
    default_msg = "Verification session expired. Please sign in again."


class TooManyAttemptsError(AuthFlowError):
    status_code = 429
    default_msg = "Too many invalid attempts. Please sign in again."


class DeliveryError(AuthFlowError):
    status_code = 500
    default_msg = "Failed to send verification code"
