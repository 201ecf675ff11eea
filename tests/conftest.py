"""Shared fixtures for Egile Plugins tests."""

import pytest

from egile_plugins.config import set_config
from egile_plugins.eventbus import Eventbus
from egile_plugins.manager import PluginManager


@pytest.fixture(autouse=True)
def reset_config(monkeypatch):
    """Isolate every test from EGILE_PLUGINS_* variables and cached settings."""
    monkeypatch.delenv("EGILE_PLUGINS_EVENT_PREFIX", raising=False)
    monkeypatch.delenv("EGILE_PLUGINS_THROW_NO_METHOD", raising=False)
    monkeypatch.delenv("EGILE_PLUGINS_THROW_NO_PLUGIN", raising=False)
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def eventbus():
    return Eventbus()


@pytest.fixture
def manager():
    return PluginManager()
