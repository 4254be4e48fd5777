"""JBFitness Auth — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./jbfitness.db"

    # ── Session tokens ────────────────────────────────────
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    session_token_ttl_minutes: int = 60 * 24

    # ── Login OTP ─────────────────────────────────────────
    otp_ttl_seconds: int = 10 * 60
    otp_max_attempts: int = 5
    otp_reaper_interval_seconds: int = 60  # 0 disables the reaper

    # ── SMTP ──────────────────────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_start_tls: bool = True

    # ── App ───────────────────────────────────────────────
    app_name: str = "JBFitness"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
