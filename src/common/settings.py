"""
Application settings loaded from environment variables.
It centralizes process-wide concerns like logging level and store connection parameters.
Keeping these helpers isolated keeps the data and API layers free of environment parsing.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Final

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy.engine import URL

REQUIRED_ENV_VARS: Final[tuple[str, ...]] = (
    "PROJECT_NAME",
    "ENV",
    "LOG_LEVEL",
)


class Settings(BaseModel):
    """Typed runtime configuration."""

    model_config = ConfigDict(extra="ignore")

    PROJECT_NAME: str
    ENV: str
    LOG_LEVEL: str
    DB_DRIVER: str = "postgresql+psycopg2"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "MoviesDB"
    DB_USER: str = "movies"
    DB_PASSWORD: str = ""
    DB_TRUST_SERVER_CERTIFICATE: bool = True
    DB_ECHO: bool = False
    DATABASE_URL: str | None = None

    @property
    def database_url(self) -> str:
        """Explicit `DATABASE_URL` when set, otherwise a URL assembled from the `DB_*` parts."""

        if self.DATABASE_URL:
            return self.DATABASE_URL

        # Trusting the server certificate still requires TLS but skips verification.
        sslmode = "require" if self.DB_TRUST_SERVER_CERTIFICATE else "verify-full"
        url = URL.create(
            self.DB_DRIVER,
            username=self.DB_USER,
            password=self.DB_PASSWORD or None,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
            query={"sslmode": sslmode},
        )
        return url.render_as_string(hide_password=False)


def load_settings(*, load_env: bool = True) -> Settings:
    """Load and validate environment settings from `.env` and process environment."""

    if load_env:
        load_dotenv()

    missing = [key for key in REQUIRED_ENV_VARS if not os.getenv(key)]
    if missing:
        missing_values = ", ".join(sorted(missing))
        raise RuntimeError(
            f"Missing required environment variables: {missing_values}. "
            "Populate these values in `.env` before starting the application."
        )

    values = {key: value for key, value in os.environ.items() if value != ""}
    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid environment configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached accessor for application settings."""

    return load_settings()
