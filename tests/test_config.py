from __future__ import annotations

import pytest
from pydantic import ValidationError

from ledger_bridge import config


@pytest.fixture
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "load_dotenv", lambda **_: None)
    for key in config.ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)
    config._load_settings_cached.cache_clear()
    yield monkeypatch
    config._load_settings_cached.cache_clear()


def test_resolve_path_absolute_inside_project() -> None:
    root = str(config._project_root().resolve())
    absolute = f"{root}/data/test_file"
    assert config._resolve_path(absolute) == absolute


def test_resolve_path_absolute_outside_project_rejected() -> None:
    with pytest.raises(ValueError, match="Path traversal detected"):
        config._resolve_path("/tmp/example")


def test_env_int_uses_default_for_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT_VALUE", "")
    assert config._env_int("TEST_INT_VALUE", 7) == 7


def test_env_int_invalid_value_returns_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT_INVALID", "not_a_number")
    assert config._env_int("TEST_INT_INVALID", 42) == 42


def test_env_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_BOOL_VALUE", " Yes ")
    assert config._env_bool("TEST_BOOL_VALUE", False) is True
    monkeypatch.setenv("TEST_BOOL_VALUE", "off")
    assert config._env_bool("TEST_BOOL_VALUE", True) is False
    monkeypatch.delenv("TEST_BOOL_VALUE")
    assert config._env_bool("TEST_BOOL_VALUE", True) is True


def test_defaults(fresh_settings: pytest.MonkeyPatch) -> None:
    settings = config.load_settings()

    assert settings.bridge.allowed_origin is None
    assert settings.bridge.default_timeout_ms == 8000
    assert settings.bridge.min_timeout_ms == 500
    assert settings.bridge.send_timeout_ms == 15_000
    assert settings.bridge.context_timeout_ms == 6000
    assert settings.bridge.ready_timeout_ms == 1200
    assert settings.bridge.resend_phrase == "confirm send"
    assert settings.bridge.currency_code == "EUR"
    assert settings.storage.sqlite_path.endswith("ledger_bridge.sqlite")


def test_bridge_env_overrides(fresh_settings: pytest.MonkeyPatch) -> None:
    fresh_settings.setenv("BRIDGE_ALLOWED_ORIGIN", "HTTPS://Host.Example/")
    fresh_settings.setenv("BRIDGE_SEND_TIMEOUT_MS", "20000")
    fresh_settings.setenv("BRIDGE_RESEND_PHRASE", "  send again ")
    fresh_settings.setenv("BRIDGE_CURRENCY_CODE", "USD")

    settings = config.load_settings()

    assert settings.bridge.allowed_origin == "https://host.example"
    assert settings.bridge.send_timeout_ms == 20000
    assert settings.bridge.resend_phrase == "send again"
    assert settings.bridge.currency_code == "USD"


def test_load_settings_is_cached(fresh_settings: pytest.MonkeyPatch) -> None:
    assert config.load_settings() is config.load_settings()


def test_invalid_origin_raises_runtime_error(fresh_settings: pytest.MonkeyPatch) -> None:
    fresh_settings.setenv("BRIDGE_ALLOWED_ORIGIN", "https://host.example/app")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()


def test_zero_timeout_raises_runtime_error(fresh_settings: pytest.MonkeyPatch) -> None:
    fresh_settings.setenv("BRIDGE_DEFAULT_TIMEOUT_MS", "0")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()


def test_blank_origin_means_unset() -> None:
    assert config.BridgeSettings(allowed_origin="  ").allowed_origin is None


def test_blank_resend_phrase_rejected() -> None:
    with pytest.raises(ValidationError):
        config.BridgeSettings(resend_phrase="   ")
