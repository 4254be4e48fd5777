"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from jbfitness_auth.api.auth import router as auth_router
from jbfitness_auth.config import settings
from jbfitness_auth.database.engine import close_db, init_db
from jbfitness_auth.errors import AuthFlowError
from jbfitness_auth.otp.challenge_store import ChallengeCollisionError, OtpChallengeStore
from jbfitness_auth.otp.reaper import ExpiredChallengeReaper

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    await init_db()
    logger.info("Database initialised")

    store = OtpChallengeStore(
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
    )
    app.state.challenge_store = store

    reaper = None
    if settings.otp_reaper_interval_seconds > 0:
        reaper = ExpiredChallengeReaper(store, settings.otp_reaper_interval_seconds)
        reaper.start()

    yield

    logger.info("Shutting down %s …", settings.app_name)
    if reaper is not None:
        await reaper.stop()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Password + email OTP sign-in for JBFitness",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(auth_router)


@app.exception_handler(AuthFlowError)
async def auth_flow_error_handler(request: Request, exc: AuthFlowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"msg": "Invalid request body"})


# ServerErrorMiddleware re-raises after the Exception handler runs, so the
# known failure types are also registered directly.
@app.exception_handler(ChallengeCollisionError)
@app.exception_handler(SQLAlchemyError)
@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"msg": "Server error"})


@app.get("/health")
async def health_check():
    """Simple liveness check."""
    return {"status": "healthy", "app": settings.app_name}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("jbfitness_auth.main:app", host="127.0.0.1", port=8000)
