"""Tests for stored presentation preferences."""

import json
import logging
from pathlib import Path

import pytest

import turnstream.settings
from turnstream.settings import Preferences, load_preferences, save_preferences


def test_config_path_follows_xdg(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert turnstream.settings.get_config_path() == Path(tmp_path) / "turnstream" / "settings.json"


class TestLoadPreferences:
    def test_missing_file_gives_defaults(self, tmp_settings):
        assert load_preferences() == Preferences()

    def test_reads_stored_values(self, tmp_settings):
        tmp_settings.write_text(
            json.dumps({"theme": "nord", "hide_thinking_block": True, "width": 120}),
            encoding="utf-8",
        )
        assert load_preferences() == Preferences(theme="nord", hide_thinking_block=True, width=120)

    @pytest.mark.parametrize("content", ["{not json", "[1, 2]", '"just a string"'])
    def test_unusable_file_gives_defaults(self, tmp_settings, caplog, content):
        tmp_settings.write_text(content, encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="turnstream.settings"):
            assert load_preferences() == Preferences()
        assert "ignoring" in caplog.text

    @pytest.mark.parametrize(
        "key,value",
        [
            ("theme", 7),
            ("theme", "  "),
            ("hide_thinking_block", "yes"),
            ("width", 0),
            ("width", True),
            ("width", "80"),
        ],
    )
    def test_invalid_value_is_ignored(self, tmp_settings, caplog, key, value):
        tmp_settings.write_text(json.dumps({key: value}), encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="turnstream.settings"):
            prefs = load_preferences()
        assert getattr(prefs, key) == getattr(Preferences(), key)
        assert f"ignoring setting {key}=" in caplog.text


class TestSavePreferences:
    def test_round_trip(self, tmp_settings):
        prefs = Preferences(theme="dracula", hide_thinking_block=True, width=100)
        save_preferences(prefs)
        assert load_preferences() == prefs

    def test_preserves_unknown_keys_and_drops_none(self, tmp_settings):
        tmp_settings.write_text(json.dumps({"other_tool": {"x": 1}, "width": 70}), encoding="utf-8")

        save_preferences(Preferences(theme="nord"))

        assert json.loads(tmp_settings.read_text(encoding="utf-8")) == {
            "other_tool": {"x": 1},
            "theme": "nord",
            "hide_thinking_block": False,
        }
        assert not list(tmp_settings.parent.glob("*.tmp"))

    def test_creates_parent_directories(self, tmp_path, monkeypatch):
        target = tmp_path / "deep" / "dir" / "settings.json"
        monkeypatch.setattr("turnstream.settings.get_config_path", lambda: target)
        save_preferences(Preferences(width=60))
        assert json.loads(target.read_text(encoding="utf-8")) == {"hide_thinking_block": False, "width": 60}

    def test_failed_write_leaves_no_temp_file(self, tmp_settings, monkeypatch):
        def _boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("turnstream.settings.os.replace", _boom)
        with pytest.raises(OSError, match="disk full"):
            save_preferences(Preferences(theme="nord"))
        assert not list(tmp_settings.parent.glob("*.tmp"))
        assert not tmp_settings.exists()
