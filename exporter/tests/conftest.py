"""
Shared test fixtures for exporter tests.

Provides environment variable fixtures for ExporterSettings configuration
tests. All exporter env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

# All ExporterSettings environment variable names, used for cleanup.
_ALL_EXPORTER_ENV_VARS = (
    "TIMEOUT_SECONDS",
    "BQ_ENABLE",
    "BQ_PROJECT_ID",
    "BQ_DATASET",
    "BQ_TABLE",
    "CONFIG_PATH",
    "MEASUREMENT_FILE_PATH",
    "MEASUREMENT_FILE_CONFIG_MAP_NAME",
    "DISCOVERY_BIND_PORT",
    "BROADCAST_ADDRESS",
    "DEVICE_PORT",
    "MAX_PENDING_REPLIES",
)


@pytest.fixture(autouse=True)
def _clean_exporter_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all exporter env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_EXPORTER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for ExporterSettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "TIMEOUT_SECONDS": "5",
        "BQ_ENABLE": "false",
        "BQ_PROJECT_ID": "jarvis-project",
        "BQ_DATASET": "jarvis",
        "BQ_TABLE": "measurements",
        "CONFIG_PATH": "/tmp/config.yaml",
        "MEASUREMENT_FILE_PATH": "/tmp/last-measurement.json",
        "MEASUREMENT_FILE_CONFIG_MAP_NAME": "hs110-state",
        "DISCOVERY_BIND_PORT": "0",
        "BROADCAST_ADDRESS": "192.168.1.255",
        "DEVICE_PORT": "9999",
        "MAX_PENDING_REPLIES": "16",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones).

    Optional variables should fall back to their defaults.
    """
    env = {
        "BQ_PROJECT_ID": "jarvis-project",
        "BQ_DATASET": "jarvis",
        "BQ_TABLE": "measurements",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
