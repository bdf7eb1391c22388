"""Pytest configuration and shared fixtures for turnstream tests."""

import pytest
from rich.console import Console
from textual.theme import BUILTIN_THEMES

import turnstream.io.logging_setup
import turnstream.io.perf_logging
from turnstream.tui.rendering import build_theme_colors, set_theme


@pytest.fixture(autouse=True)
def _init_theme():
    """Initialize the module render theme for every test."""
    set_theme(BUILTIN_THEMES["textual-dark"])


@pytest.fixture(autouse=True)
def _isolate_runtime_state(monkeypatch):
    """Perf trace and logging bootstrap are module-global; reset around each test."""
    for name in ("TURNSTREAM_LOG_DIR", "TURNSTREAM_LOG_FILE", "TURNSTREAM_LOG_LEVEL", "TURNSTREAM_PERF_TRACE"):
        monkeypatch.delenv(name, raising=False)
    turnstream.io.perf_logging.reset_trace()
    yield
    turnstream.io.perf_logging.reset_trace()
    turnstream.io.perf_logging.set_enabled(False)
    turnstream.io.logging_setup.reset()


@pytest.fixture
def tmp_settings(tmp_path, monkeypatch):
    """Redirect settings file to a temp directory."""
    settings_file = tmp_path / "settings.json"
    monkeypatch.setattr(
        "turnstream.settings.get_config_path",
        lambda: settings_file,
    )
    return settings_file


@pytest.fixture
def console():
    """Colorless fixed-width console for strip rendering."""
    return Console(width=80, force_terminal=False, color_system=None)


@pytest.fixture
def theme_colors():
    return build_theme_colors(BUILTIN_THEMES["textual-dark"])
