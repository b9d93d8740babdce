"""Tests for the gateway CLI."""

from __future__ import annotations

import functools
import json
import logging

import pytest
import structlog
from typer.testing import CliRunner

from mcp_guard.cli import app
from mcp_guard.orchestrator import Gateway
from mcp_guard.testing.backends import make_connector, make_echo_server

SERVERS = json.dumps([{"name": "echo", "command": "echo-server"}, {"name": "broken", "command": "missing"}])


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for var in ("ENABLE_GUARD_API", "API_KEY", "MCP_GUARD_LOG_FILE", "MCP_GUARD_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def fake_backends(monkeypatch):
    gateway = functools.partial(Gateway, connector=make_connector({"echo": make_echo_server()}))
    monkeypatch.setattr("mcp_guard.cli.Gateway", gateway)


def _invoke(*args: str):
    # Logs stay out of the captured output; the working directory is tmp_path
    return CliRunner().invoke(app, ["--log-file", "gateway.log", *args])


def test_moderation_without_key_exits_before_connecting(monkeypatch):
    monkeypatch.setenv("ENABLE_GUARD_API", "true")
    result = _invoke("check", SERVERS)
    assert result.exit_code == 2
    assert "API_KEY" in result.output


def test_invalid_server_json_is_configuration_error():
    result = _invoke("check", "[{")
    assert result.exit_code == 2
    assert "Invalid server configuration" in result.output


def test_check_json_report(fake_backends):
    result = _invoke("check", "--json", SERVERS)

    assert result.exit_code == 1
    report = json.loads(result.stdout)
    assert report["configured"] == 2
    assert report["connected"] == 1
    statuses = {o["name"]: o["status"] for o in report["outcomes"]}
    assert statuses == {"echo": "connected", "broken": "failed"}


def test_check_all_connected(fake_backends):
    result = _invoke("check", json.dumps([{"name": "echo", "command": "echo-server"}]))
    assert result.exit_code == 0
    assert "Connected 1/1 servers" in result.stdout
    assert "echo" in result.stdout


def test_logs_go_to_log_file(fake_backends, tmp_path):
    _invoke("check", "--json", SERVERS)
    log = (tmp_path / "gateway.log").read_text()
    assert "Connected to 1/2 servers" in log
    assert "broken" in log
