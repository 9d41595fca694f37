"""Central configuration for splitflap.

All settings are loaded from environment variables (with ``.env`` file support
via *python-dotenv*).  Validation and type coercion are handled by
``pydantic-settings``.

Usage::

    from splitflap.config import get_settings, load_env

    load_env()
    settings = get_settings()
    print(settings.BOARD_URL)

The :func:`get_settings` helper creates the :class:`SplitflapSettings`
singleton lazily so that importing this module never triggers validation
before the caller has had a chance to load a ``.env`` file or populate the
environment.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path
from typing import ClassVar

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Canonical .env locations (checked in order of priority).
ENV_PATHS: list[str] = ["config/.env", ".env"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class SplitflapSettings(BaseSettings):
    """Validated configuration for the content pipeline.

    Required fields (no defaults):
        ``BOARD_API_KEY``

    ``OPENROUTER_API_KEY`` is only needed once AI generators are
    registered; programmatic and static generators run without it.
    """

    model_config = SettingsConfigDict(
        # .env loading is handled by load_env() so that the process entry
        # point controls which files are read.  Do NOT set env_file here.
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Required -- no defaults
    # ------------------------------------------------------------------
    BOARD_API_KEY: str = Field(
        ...,
        description="Local API key printed on the board's enablement screen.",
    )

    # ------------------------------------------------------------------
    # Board transport
    # ------------------------------------------------------------------
    BOARD_URL: str = Field(
        default="http://vestaboard.local:7000",
        description="Base URL of the board's local API.",
    )
    BOARD_TIMEOUT_MS: int = Field(
        default=5000,
        ge=100,
        description="Per-attempt request timeout in milliseconds.",
    )
    BOARD_MAX_RETRIES: int = Field(
        default=2,
        ge=0,
        description="Retries after the first attempt for each board request.",
    )
    BOARD_BACKOFF_BASE_MS: int = Field(
        default=1000,
        ge=0,
        description="Delay before the first retry; doubles on each retry.",
    )
    BOARD_BACKOFF_MAX_MS: int = Field(
        default=10_000,
        ge=0,
        description="Upper bound on a single backoff delay.",
    )

    # ------------------------------------------------------------------
    # AI providers (OpenRouter)
    # ------------------------------------------------------------------
    OPENROUTER_API_KEY: str | None = Field(
        default=None,
        description="API key for OpenRouter (https://openrouter.ai).",
    )
    PREFERRED_PROVIDER: str = Field(
        default="openai",
        description="Vendor tried first for AI generation.",
    )
    ALTERNATE_PROVIDER: str | None = Field(
        default="anthropic",
        description="Vendor tried after a transient failure.  Empty disables failover.",
    )
    PREFERRED_PROVIDER_MODEL: str | None = Field(
        default=None,
        description="Pin the preferred vendor to one OpenRouter model id for every tier.",
    )
    ALTERNATE_PROVIDER_MODEL: str | None = Field(
        default=None,
        description="Pin the alternate vendor to one OpenRouter model id for every tier.",
    )
    PROVIDER_FAILURE_THRESHOLD: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before a provider circuit trips.",
    )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    FALLBACK_DIRECTORY: str = Field(
        default="prompts/static",
        description="Directory of .txt files served when generation fails.",
    )

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------
    DATABASE_URL: str | None = Field(
        default=None,
        description="PostgreSQL DSN for content history.  Unset disables persistence.",
    )
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for circuit state.  Unset keeps circuits in memory.",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level.",
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _normalise(self) -> SplitflapSettings:
        if self.BOARD_BACKOFF_MAX_MS < self.BOARD_BACKOFF_BASE_MS:
            raise ValueError("BOARD_BACKOFF_MAX_MS must be >= BOARD_BACKOFF_BASE_MS.")
        self.PREFERRED_PROVIDER = self.PREFERRED_PROVIDER.strip().lower()
        if self.ALTERNATE_PROVIDER is not None:
            self.ALTERNATE_PROVIDER = self.ALTERNATE_PROVIDER.strip().lower() or None
        if self.ALTERNATE_PROVIDER == self.PREFERRED_PROVIDER:
            raise ValueError("ALTERNATE_PROVIDER must differ from PREFERRED_PROVIDER.")
        return self

    @property
    def provider_names(self) -> list[str]:
        names = [self.PREFERRED_PROVIDER]
        if self.ALTERNATE_PROVIDER:
            names.append(self.ALTERNATE_PROVIDER)
        return names

    # ------------------------------------------------------------------
    # Repr safety -- redact secrets in logs / debug output
    # ------------------------------------------------------------------

    _SENSITIVE_FIELDS: ClassVar[set[str]] = {
        "BOARD_API_KEY", "OPENROUTER_API_KEY", "DATABASE_URL", "REDIS_URL",
    }

    def __repr__(self) -> str:
        fields = []
        for name in type(self).model_fields:
            val = getattr(self, name)
            if name in self._SENSITIVE_FIELDS:
                val = "***" if val else None
            fields.append(f"{name}={val!r}")
        return f"SplitflapSettings({', '.join(fields)})"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def find_env_file() -> Path | None:
    """Return the first existing ``.env`` file from :data:`ENV_PATHS`."""
    for candidate in ENV_PATHS:
        p = Path(candidate)
        if p.is_file():
            return p
    return None


def load_env() -> None:
    """Load ``.env`` files from the canonical locations.

    Values already in the environment win over both files, and
    ``config/.env`` wins over ``.env``.
    """
    load_dotenv("config/.env")  # Primary (Docker + local)
    load_dotenv()               # Fallback (CWD/.env)


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install the process-wide log format on stdout."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


# ---------------------------------------------------------------------------
# Lazy singleton accessor
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=1)
def get_settings() -> SplitflapSettings:
    """Return the global :class:`SplitflapSettings` singleton.

    The instance is created on first call so that the module can be imported
    safely before any ``.env`` file has been loaded or environment variables
    have been set.  Subsequent calls return the cached instance.

    Raises:
        pydantic.ValidationError: If ``BOARD_API_KEY`` is missing or any
            value fails validation.
    """
    logger.debug("Initialising SplitflapSettings from environment.")
    return SplitflapSettings()  # type: ignore[call-arg]
