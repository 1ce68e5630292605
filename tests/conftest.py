"""Shared test fixtures and marker registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from backend_suite import BackendConfig

if TYPE_CHECKING:
    from pathlib import Path


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: requires external services")


@pytest.fixture
def local_config(tmp_path: Path) -> BackendConfig:
    """A local configuration with a fixed namespace below ``tmp_path``."""
    return BackendConfig.parse(f"local:{tmp_path}").with_namespace("test-fixed")

