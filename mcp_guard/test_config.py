"""Tests for gateway configuration loading."""

from __future__ import annotations

import pytest

from mcp_guard.config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_GUARD_API_URL, GatewayConfig, load_config
from mcp_guard.errors import ConfigurationError

_VARS = ("ENABLE_GUARD_API", "API_KEY", "GUARD_API_URL", "MCP_GUARD_CONNECT_TIMEOUT")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # No stray .env from the working tree
    monkeypatch.chdir(tmp_path)
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    config = load_config()
    assert config == GatewayConfig()
    assert not config.moderation_enabled
    assert config.guard_api_url == DEFAULT_GUARD_API_URL
    assert config.connect_timeout == DEFAULT_CONNECT_TIMEOUT


def test_moderation_enabled_with_key(monkeypatch):
    monkeypatch.setenv("ENABLE_GUARD_API", "true")
    monkeypatch.setenv("API_KEY", "sk-123")
    monkeypatch.setenv("GUARD_API_URL", "https://guard.internal")
    monkeypatch.setenv("MCP_GUARD_CONNECT_TIMEOUT", "2.5")

    config = load_config()

    assert config.moderation_enabled
    assert config.credential == "sk-123"
    assert config.guard_api_url == "https://guard.internal"
    assert config.connect_timeout == 2.5


@pytest.mark.parametrize("key", [None, ""])
def test_moderation_enabled_without_key_is_fatal(monkeypatch, key):
    monkeypatch.setenv("ENABLE_GUARD_API", "true")
    if key is not None:
        monkeypatch.setenv("API_KEY", key)

    with pytest.raises(ConfigurationError, match="API_KEY environment variable is not set"):
        load_config()


def test_key_without_moderation_is_fine(monkeypatch):
    monkeypatch.setenv("API_KEY", "sk-123")
    config = load_config()
    assert not config.moderation_enabled
    assert config.credential == "sk-123"


def test_dotenv_file_read(tmp_path):
    (tmp_path / ".env").write_text("ENABLE_GUARD_API=1\nAPI_KEY=from-file\n")
    config = load_config()
    assert config.moderation_enabled
    assert config.credential == "from-file"


@pytest.mark.parametrize(("var", "value"), [("ENABLE_GUARD_API", "maybe"), ("MCP_GUARD_CONNECT_TIMEOUT", "-1")])
def test_unparseable_values(monkeypatch, var, value):
    monkeypatch.setenv(var, value)
    with pytest.raises(ConfigurationError, match="Invalid gateway settings"):
        load_config()
