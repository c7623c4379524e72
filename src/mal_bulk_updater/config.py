"""Configuration management using Pydantic models."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_SNAPSHOT_MAX_ITEMS,
    DEFAULT_SNAPSHOT_MAX_PAGES,
    MAL_API_BASE,
    MAL_AUTH_URL,
    MAL_TOKEN_URL,
    PACING_INTERVAL_SECONDS,
    SESSION_MAX_AGE_SECONDS,
)
from .models import TokenSet

logger = logging.getLogger(__name__)


# Placeholder values that indicate unconfigured credentials
INVALID_PLACEHOLDERS = {
    "YOUR_CLIENT_ID",
    "YOUR_MAL_CLIENT_ID_HERE",
    "",
}

# Well-known cookie-signing secrets that must not be used for real deployments
INVALID_SESSION_SECRETS = {
    "supersecret",
    "change-me",
    "",
}

# Environment variable -> (section, key) overrides applied on top of YAML
ENV_OVERRIDES = {
    "MAL_CLIENT_ID": ("mal", "client_id"),
    "MAL_CLIENT_SECRET": ("mal", "client_secret"),
    "MAL_ACCESS_TOKEN": ("mal", "access_token"),
    "MAL_REFRESH_TOKEN": ("mal", "refresh_token"),
    "MAL_REDIRECT_URI": ("oauth", "redirect_uri"),
    "MAL_PKCE_METHOD": ("oauth", "pkce_method"),
    "SESSION_SECRET": ("session", "secret"),
    "COOKIE_SECURE": ("session", "secure"),
    "MAL_LIST_MAX_PAGES": ("pipeline", "snapshot_max_pages"),
    "MAL_LIST_MAX_ITEMS": ("pipeline", "snapshot_max_items"),
}


class OAuthConfig(BaseModel):
    """OAuth configuration."""
    redirect_uri: str = "http://localhost:3000/callback"
    pkce_method: str = "S256"

    @field_validator("pkce_method")
    @classmethod
    def normalize_pkce_method(cls, v: str) -> str:
        """Accept 'plain' or 'S256' in any case."""
        return "plain" if v.strip().lower() == "plain" else "S256"


class MALConfig(BaseModel):
    """MyAnimeList API configuration."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    auth_url: str = MAL_AUTH_URL
    token_url: str = MAL_TOKEN_URL
    api_base: str = MAL_API_BASE


class SessionConfig(BaseModel):
    """Cookie session settings."""
    secret: str = "supersecret"
    max_age: int = SESSION_MAX_AGE_SECONDS
    secure: bool = False


class PipelineConfig(BaseModel):
    """Preview/confirm/snapshot pacing and caps."""
    pacing_interval: float = Field(default=PACING_INTERVAL_SECONDS, ge=0)
    snapshot_max_pages: int = Field(default=DEFAULT_SNAPSHOT_MAX_PAGES, ge=1)
    snapshot_max_items: int = Field(default=DEFAULT_SNAPSHOT_MAX_ITEMS, ge=1)


class Config(BaseModel):
    """Root configuration model."""
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    mal: MALConfig = Field(default_factory=MALConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    log_level: str = "INFO"

    @field_validator("oauth", "mal", "session", "pipeline", mode="before")
    @classmethod
    def ensure_section(cls, v):
        """Treat an empty YAML section as defaults."""
        return v if v is not None else {}


class Settings:
    """Application settings loaded from config.yaml, .env and the environment."""

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[dict] = None):
        """Load and validate configuration."""
        self.config_path = Path(config_path) if config_path else self._get_config_path()
        if environ is None:
            load_dotenv()
            environ = dict(os.environ)
        self._load_config(environ)

    def _get_config_path(self) -> Path:
        """Get config file path based on environment."""
        if os.path.exists("/.dockerenv"):
            return Path("/app/data/config.yaml")
        return Path("data/config.yaml")

    def _read_yaml(self) -> dict:
        """Read the YAML config file, or nothing if it does not exist."""
        if not self.config_path.exists():
            logger.debug(f"No config file at {self.config_path}, using defaults")
            return {}
        with open(self.config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def _load_config(self, environ: dict) -> None:
        """Load configuration from YAML using Pydantic, then apply env overrides."""
        try:
            raw_config = self._read_yaml()
            for var_name, (section, key) in ENV_OVERRIDES.items():
                value = environ.get(var_name)
                if value:
                    raw_config.setdefault(section, {})
                    if raw_config[section] is None:
                        raw_config[section] = {}
                    raw_config[section][key] = value

            config = Config(**raw_config)
            logger.debug(f"Loaded configuration from {self.config_path}")
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise

        self.redirect_uri = config.oauth.redirect_uri
        self.pkce_method = config.oauth.pkce_method

        self.mal_client_id = config.mal.client_id
        self.mal_client_secret = config.mal.client_secret
        self.mal_auth_url = config.mal.auth_url
        self.mal_token_url = config.mal.token_url
        self.mal_api_base = config.mal.api_base
        self.fallback_tokens = (
            TokenSet(access_token=config.mal.access_token, refresh_token=config.mal.refresh_token)
            if config.mal.access_token
            else None
        )

        self.session_secret = config.session.secret
        self.session_max_age = config.session.max_age
        self.cookie_secure = config.session.secure

        self.pacing_interval = config.pipeline.pacing_interval
        self.snapshot_max_pages = config.pipeline.snapshot_max_pages
        self.snapshot_max_items = config.pipeline.snapshot_max_items

        self.log_level = config.log_level

    @property
    def has_client_secret(self) -> bool:
        """True when a confidential-client secret is configured."""
        return bool(self.mal_client_secret) and self.mal_client_secret not in INVALID_PLACEHOLDERS


def validate_credentials(settings: Settings) -> tuple[bool, list[str]]:
    """
    Validate that the MAL client id is set and not a placeholder.
    Returns (is_valid, list_of_invalid_vars).
    """
    missing_or_invalid = []
    if not settings.mal_client_id or settings.mal_client_id in INVALID_PLACEHOLDERS:
        missing_or_invalid.append("MAL_CLIENT_ID")
    return len(missing_or_invalid) == 0, missing_or_invalid


def has_weak_session_secret(settings: Settings) -> bool:
    """True when the cookie-signing secret is unset or a well-known default."""
    return settings.session_secret.strip() in INVALID_SESSION_SECRETS


# Singleton cache for settings
_SETTINGS_SINGLETON = None

def get_settings() -> Settings:
    """Get (cached) application settings singleton."""
    global _SETTINGS_SINGLETON
    if _SETTINGS_SINGLETON is None:
        _SETTINGS_SINGLETON = Settings()
    return _SETTINGS_SINGLETON
