"""Pytest configuration for mcp_guard tests."""

import pytest

from mcp_guard.testing.fixtures import *  # noqa: F403


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest-asyncio auto mode."""
    config.option.asyncio_mode = "auto"
