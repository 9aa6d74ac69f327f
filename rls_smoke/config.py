"""
RLS Smoke Test - Environment Configuration
==========================================

Settings are read from the environment when a ``Settings`` instance is
created, so tests and the CLI can patch ``os.environ`` (or load a .env file)
first.

Usage:
    from rls_smoke.config import Settings, validate_settings

    settings = Settings()
    validate_settings(settings)  # raises ConfigurationError
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY")

DEFAULT_EMAIL_DOMAIN = "storagevalet.test"


def _str_env(key: str, default: str = "") -> str:
    """Get string environment variable."""
    return os.getenv(key, default)


def _url_env(key: str) -> str:
    """Get a URL environment variable without its trailing slash."""
    return _str_env(key).strip().rstrip("/")


@dataclass
class Settings:
    """Supabase project and run configuration."""
    supabase_url: str = field(default_factory=lambda: _url_env("SUPABASE_URL"))
    anon_key: str = field(default_factory=lambda: _str_env("SUPABASE_ANON_KEY"))
    service_role_key: str = field(default_factory=lambda: _str_env("SUPABASE_SERVICE_ROLE_KEY"))

    email_domain: str = field(default_factory=lambda: _str_env("RLS_SMOKE_EMAIL_DOMAIN", DEFAULT_EMAIL_DOMAIN))
    log_level: str = field(default_factory=lambda: _str_env("LOG_LEVEL", "INFO"))

    @property
    def rest_url(self) -> str:
        """PostgREST base URL for the project."""
        return f"{self.supabase_url}/rest/v1"

    def missing(self) -> List[str]:
        """Names of required variables that are not set."""
        values = {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_ANON_KEY": self.anon_key,
            "SUPABASE_SERVICE_ROLE_KEY": self.service_role_key,
        }
        return [name for name in REQUIRED_ENV_VARS if not values[name]]


def load_env_file(path: Optional[str]) -> bool:
    """
    Load a dotenv file into the environment.

    Variables already present in the environment are not overridden.
    Returns True if the file existed and was loaded.
    """
    if not path:
        return False
    if not os.path.exists(path):
        logger.warning(f"Env file not found: {path}")
        return False
    loaded = load_dotenv(path, override=False)
    logger.debug(f"Loaded env file {path}")
    return loaded


def validate_settings(settings: Settings) -> Settings:
    """
    Fail fast if any required Supabase variable is missing.

    Raises:
        ConfigurationError: listing every missing variable
    """
    missing = settings.missing()
    if missing:
        raise ConfigurationError(missing)

    if not settings.supabase_url.startswith(("http://", "https://")):
        logger.warning(f"SUPABASE_URL has no scheme: '{settings.supabase_url}'")

    return settings
