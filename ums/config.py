"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. This keeps SMTP and OAuth secrets out of source code — the .env
file is gitignored.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

Usage:
    from ums.config import settings
    print(settings.SESSION_MAX_AGE_SECONDS)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the User Management System API.

    Nothing is strictly required: the defaults give a working local setup
    (SQLite database, dev outbox instead of SMTP, seeded demo admin).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "UMS API"
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # --- Database ---
    # SQLite for local use; swap to a PostgreSQL (asyncpg) URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ums.db"
    # When False every request fails fast with 503 DB_DISABLED
    DB_ENABLED: bool = True

    # --- Sessions ---
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 24             # 24 hours
    SESSION_REMEMBER_AGE_SECONDS: int = 60 * 60 * 24 * 14   # 14 days ("remember me")
    COOKIE_SESSION: str = "session"
    COOKIE_CSRF: str = "csrf"
    CSRF_HEADER: str = "x-csrf-token"
    # Marks both cookies Secure outside production too (always on in production)
    SECURE_COOKIES: bool = False

    # --- One-time tokens ---
    VERIFICATION_TOKEN_TTL_SECONDS: int = 60 * 60 * 24       # 24 hours
    INVITE_TOKEN_TTL_SECONDS: int = 60 * 60 * 24 * 7         # 7 days
    PASSWORD_RESET_TOKEN_TTL_SECONDS: int = 60 * 60          # 1 hour

    # Used to build links in outgoing mail
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    # --- Mail (optional) ---
    # SMTP is only attempted when host, user, password and sender are all set.
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""
    # True = implicit TLS (port 465); False = STARTTLS
    SMTP_SECURE: bool = False
    SMTP_TIMEOUT_SECONDS: int = 10

    # --- Google OAuth (optional) ---
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = ""

    # --- Bootstrap admin ---
    # Created on startup only when the users table is empty
    SEED_ADMIN_EMAIL: str = "admin@example.com"
    SEED_ADMIN_PASSWORD: str = "admin123!"

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    # "console" or "json"; development always renders to the console
    LOG_FORMAT: str = "json"

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def cookies_secure(self) -> bool:
        return self.SECURE_COOKIES or self.is_production

    @property
    def smtp_configured(self) -> bool:
        return bool(
            self.SMTP_HOST and self.SMTP_PORT and self.SMTP_USER
            and self.SMTP_PASSWORD and self.SMTP_FROM
        )

    @property
    def google_configured(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
