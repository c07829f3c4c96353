"""Pytest configuration and fixtures."""

import os

import pytest

from wheelflow import config as config_module


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Ensure tests run with default settings and reset the settings cache between runs."""

    for name in list(os.environ):
        if name.startswith(config_module.ENV_PREFIX):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv(config_module.API_KEY_ENV_VAR, raising=False)
    config_module.get_settings.cache_clear()
    try:
        yield
    finally:
        config_module.get_settings.cache_clear()


class FakeClock:
    """Manually advanced clock shared by the cache and fetcher tests."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
