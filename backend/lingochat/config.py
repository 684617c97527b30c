"""Lingo Chat application configuration.

Loads settings from two YAML files:
  * lingochat.settings.yaml  : non-secret configuration
  * lingochat.secrets.yaml   : secrets (never committed)

Either path can be overridden with the LINGOCHAT_SETTINGS / LINGOCHAT_SECRETS
environment variables.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("lingochat.settings.yaml")
SECRETS_FILE  = Path("lingochat.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class DatabaseSettings(BaseModel):
    path: str = "lingochat.duckdb"


class ChatSettings(BaseModel):
    """Realtime chat limits and behaviour switches."""
    max_message_length:      int  = Field(default=2000, ge=1)
    presence_mirror_enabled: bool = True


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chat:     ChatSettings     = Field(default_factory=ChatSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = settings_path or Path(os.getenv("LINGOCHAT_SETTINGS", SETTINGS_FILE))
    secrets_path  = secrets_path or Path(os.getenv("LINGOCHAT_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, max_message_length=%d)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
        app_settings.chat.max_message_length,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace (or with None, forget) the cached settings."""
    global _config
    _config = config
