"""
Application configuration via Pydantic Settings.
All values come from environment variables or a .env file and are validated
once at startup; the resulting object is frozen and passed explicitly to every
component.
"""
from __future__ import annotations

import logging
from typing import Literal, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from renewal.errors import ConfigurationError

logger = logging.getLogger(__name__)

_TRUTHY = {"YES", "Y", "TRUE", "1", "ON"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ── CA / account ───────────────────────────────────────────────────────
    STAGING: bool = False
    ACCOUNT_EMAIL: str = ""
    ACCOUNT_KEY: str = ""             # exported PEM; empty = register a new account
    ACCOUNT_KEY_PATH: str = ""        # optional file the account key is loaded from / saved to

    # ── Domain & certificate subject ───────────────────────────────────────
    DOMAIN: str
    CERT_COUNTRY: str = ""
    CERT_STATE: str = ""
    CERT_LOCALITY: str = ""
    CERT_ORGANISATION: str = ""
    CERT_ORGANISATION_UNIT: str = ""

    # ── Storage ────────────────────────────────────────────────────────────
    CERTIFICATE_PASSWORD: str
    CERTIFICATE_PATH: str
    CHALLENGE_PATH: str

    # ── Scheduling ─────────────────────────────────────────────────────────
    DELAY: int = Field(ge=0)          # milliseconds between supervision cycles
    RENEWAL_THRESHOLD_DAYS: int = Field(default=7, ge=0)
    CHALLENGE_POLL_INTERVAL: float = Field(default=10.0, ge=0)
    CHALLENGE_MAX_ATTEMPTS: int = Field(default=60, ge=0)   # 0 = poll until terminal

    # ── ACME transport (Pebble / private CAs) ──────────────────────────────
    ACME_DIRECTORY_URL: str = ""      # overrides the Let's Encrypt staging/production choice
    ACME_CA_BUNDLE: str = ""          # Path to CA cert bundle; empty = system default
    ACME_INSECURE: bool = False       # Skip TLS verification (never use in production)

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("STAGING", mode="before")
    @classmethod
    def parse_staging(cls, v: object) -> object:
        """Accept YES/NO style flags as well as booleans."""
        if isinstance(v, str):
            return v.strip().upper() in _TRUTHY
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("DOMAIN", "CERTIFICATE_PATH", "CHALLENGE_PATH")
    @classmethod
    def require_value(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("CERTIFICATE_PASSWORD")
    @classmethod
    def require_password(cls, v: str) -> str:
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("DOMAIN")
    @classmethod
    def validate_domain(cls, v: str) -> str:
        if "/" in v or "\\" in v or v.startswith("*."):
            raise ValueError("DOMAIN must be a single host name (no wildcards or path separators)")
        return v

    @field_validator("CERT_COUNTRY")
    @classmethod
    def validate_country(cls, v: str) -> str:
        v = v.strip()
        if v and len(v) != 2:
            raise ValueError("CERT_COUNTRY must be a two-letter ISO 3166 code")
        return v.upper()

    @model_validator(mode="after")
    def require_account_source(self) -> "Settings":
        if not self.ACCOUNT_KEY and not self.ACCOUNT_KEY_PATH and not self.ACCOUNT_EMAIL:
            raise ValueError(
                "ACCOUNT_EMAIL must be set when neither ACCOUNT_KEY nor ACCOUNT_KEY_PATH is configured"
            )
        return self

    @property
    def delay_seconds(self) -> float:
        return self.DELAY / 1000


def load_settings(env_file: Optional[str] = ".env", **overrides: object) -> Settings:
    """
    Build the validated Settings for this process.

    Raises ConfigurationError with the validation messages instead of letting
    the first renewal cycle fail on a missing value.
    """
    logger.info(" 0. Loading environment variables...")
    try:
        return Settings(_env_file=env_file, **overrides)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration:\n{exc}") from exc
