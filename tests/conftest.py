"""Shared fixtures for research agent tests."""

from unittest.mock import MagicMock

import pytest

from settings import ENV_VARS, Config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep real environment variables and .env files out of every test."""
    for names in ENV_VARS.values():
        for name in names:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def session():
    """Mock requests.Session; set session.get.return_value per test."""
    return MagicMock()
