"""Configuration management for the ledger bridge."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from ledger_bridge.utils.origin import normalize_origin

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class BridgeSettings(BaseModel):
    """Host channel settings.

    ``allowed_origin`` is the exact origin of the host page. It is optional
    here so tooling can load settings without a host, but a channel cannot be
    built without it.
    """

    allowed_origin: str | None = Field(default=None)
    default_timeout_ms: int = Field(default=8000, ge=1)
    min_timeout_ms: int = Field(default=500, ge=1)
    send_timeout_ms: int = Field(default=15_000, ge=1)
    context_timeout_ms: int = Field(default=6000, ge=1)
    ready_timeout_ms: int = Field(default=1200, ge=1)
    resend_phrase: str = Field(default="confirm send", min_length=1)
    currency_code: str = Field(default="EUR", min_length=1)

    @field_validator("allowed_origin")
    @classmethod
    def _validate_allowed_origin(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        normalized = normalize_origin(value)
        if normalized is None:
            raise ValueError("allowed_origin must be an http(s) origin without a path")
        return normalized

    @field_validator("resend_phrase")
    @classmethod
    def _validate_resend_phrase(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("resend_phrase must not be blank")
        return value.strip()


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/ledger_bridge.sqlite")
    sqlite_wal: bool = Field(default=True)


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


ENV_KEYS = {
    "host": "LEDGER_BRIDGE_HOST",
    "port": "LEDGER_BRIDGE_PORT",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "sqlite_path": "SQLITE_PATH",
    "sqlite_wal": "SQLITE_WAL",
    "allowed_origin": "BRIDGE_ALLOWED_ORIGIN",
    "default_timeout_ms": "BRIDGE_DEFAULT_TIMEOUT_MS",
    "min_timeout_ms": "BRIDGE_MIN_TIMEOUT_MS",
    "send_timeout_ms": "BRIDGE_SEND_TIMEOUT_MS",
    "context_timeout_ms": "BRIDGE_CONTEXT_TIMEOUT_MS",
    "ready_timeout_ms": "BRIDGE_READY_TIMEOUT_MS",
    "resend_phrase": "BRIDGE_RESEND_PHRASE",
    "currency_code": "BRIDGE_CURRENCY_CODE",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    bridge_defaults = BridgeSettings()

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "bridge": {
            "allowed_origin": os.getenv(ENV_KEYS["allowed_origin"]),
            "default_timeout_ms": _env_int(
                ENV_KEYS["default_timeout_ms"], bridge_defaults.default_timeout_ms
            ),
            "min_timeout_ms": _env_int(ENV_KEYS["min_timeout_ms"], bridge_defaults.min_timeout_ms),
            "send_timeout_ms": _env_int(
                ENV_KEYS["send_timeout_ms"], bridge_defaults.send_timeout_ms
            ),
            "context_timeout_ms": _env_int(
                ENV_KEYS["context_timeout_ms"], bridge_defaults.context_timeout_ms
            ),
            "ready_timeout_ms": _env_int(
                ENV_KEYS["ready_timeout_ms"], bridge_defaults.ready_timeout_ms
            ),
            "resend_phrase": os.getenv(ENV_KEYS["resend_phrase"], bridge_defaults.resend_phrase),
            "currency_code": os.getenv(ENV_KEYS["currency_code"], bridge_defaults.currency_code),
        },
        "storage": {
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool(ENV_KEYS["sqlite_wal"], StorageSettings().sqlite_wal),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
