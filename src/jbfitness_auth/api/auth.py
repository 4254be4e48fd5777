"""Auth router — register, password login, OTP verification and resend.

Endpoints
---------
POST /api/auth/register     → create account, return session token
POST /api/auth/login        → check password, email an OTP, return challengeId
POST /api/auth/verify-otp   → redeem the OTP for a session token
POST /api/auth/resend-otp   → email a fresh OTP for the same challengeId
POST /api/auth/validate-email → check an address before sign-up
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from jbfitness_auth.database.engine import get_session
from jbfitness_auth.database.repository import UserRepository
from jbfitness_auth.otp.challenge_store import OtpChallengeStore
from jbfitness_auth.services.email_service import EmailService
from jbfitness_auth.services.email_validation import email_domain_exists
from jbfitness_auth.services.login_service import AuthenticatedSession, LoginService

router = APIRouter(prefix="/api/auth", tags=["auth"])


# ── Request / response models ────────────────────────────

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None


class LoginRequest(CamelModel):
    email: str | None = None
    password: str | None = None


class VerifyOtpRequest(CamelModel):
    # Clients may post the code as a JSON number
    model_config = ConfigDict(coerce_numbers_to_str=True)

    challenge_id: str | None = None
    otp: str | None = None


class ResendOtpRequest(CamelModel):
    challenge_id: str | None = None


class UserOut(CamelModel):
    id: int
    username: str
    email: str


class LoginResponse(CamelModel):
    msg: str
    requires_2fa: bool = Field(True, alias="requires2FA")
    challenge_id: str
    email: str
    expires_in_ms: int


class SessionResponse(CamelModel):
    msg: str
    token: str
    user: UserOut


class ResendOtpResponse(CamelModel):
    msg: str
    expires_in_ms: int


class ValidateEmailRequest(CamelModel):
    email: str | None = None


class ValidateEmailResponse(CamelModel):
    msg: str
    exists: bool


# ── Dependencies ─────────────────────────────────────────

def get_challenge_store(request: Request) -> OtpChallengeStore:
    """The process-wide store created in the app lifespan."""
    return request.app.state.challenge_store


def get_email_service() -> EmailService:
    return EmailService()


def get_email_checker() -> Callable[[str], Awaitable[bool]]:
    return email_domain_exists


def get_login_service(
    db_session: AsyncSession = Depends(get_session),
    store: OtpChallengeStore = Depends(get_challenge_store),
    email_service: EmailService = Depends(get_email_service),
    email_checker: Callable[[str], Awaitable[bool]] = Depends(get_email_checker),
) -> LoginService:
    return LoginService(
        store, UserRepository(db_session), email_service, email_checker=email_checker
    )


def _session_response(msg: str, session: AuthenticatedSession) -> SessionResponse:
    user = session.user
    return SessionResponse(
        msg=msg,
        token=session.token,
        user=UserOut(id=user.id, username=user.username, email=user.email),
    )


# ── Endpoints ────────────────────────────────────────────

@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, service: LoginService = Depends(get_login_service)):
    session = await service.register(body.username, body.email, body.password)
    return _session_response("User registered successfully", session)


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, service: LoginService = Depends(get_login_service)):
    """Verify the password and email a one-time code.

    The code itself is never part of the response.
    """
    challenge = await service.login(body.email, body.password)
    return LoginResponse(
        msg="Verification code sent to your email",
        challenge_id=challenge.challenge_id,
        email=challenge.email,
        expires_in_ms=challenge.expires_in_ms,
    )


@router.post("/verify-otp", response_model=SessionResponse)
async def verify_otp(body: VerifyOtpRequest, service: LoginService = Depends(get_login_service)):
    session = await service.verify(body.challenge_id, body.otp)
    return _session_response("Login successful", session)


@router.post("/resend-otp", response_model=ResendOtpResponse)
async def resend_otp(body: ResendOtpRequest, service: LoginService = Depends(get_login_service)):
    expires_in_ms = await service.resend(body.challenge_id)
    return ResendOtpResponse(msg="A new OTP has been sent", expires_in_ms=expires_in_ms)


@router.post("/validate-email", response_model=ValidateEmailResponse)
async def validate_email(
    body: ValidateEmailRequest, service: LoginService = Depends(get_login_service)
):
    await service.validate_email(body.email)
    return ValidateEmailResponse(msg="Email is valid", exists=True)
