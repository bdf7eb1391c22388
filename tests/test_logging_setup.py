"""Tests for the logging bootstrap: stderr policy, opt-in log file, perf switch."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

import turnstream.io.logging_setup as logging_setup
import turnstream.io.perf_logging


def _handlers():
    return logging.getLogger("turnstream").handlers


class TestResolveOptions:
    def test_defaults_keep_stderr_quiet(self):
        options = logging_setup.resolve_options(env={})
        assert options.level == logging.INFO
        assert options.stderr_level == logging.WARNING
        assert options.log_file is None
        assert options.perf_trace is False

    def test_verbose_lowers_both_levels(self):
        options = logging_setup.resolve_options(verbose=True, env={})
        assert options.level == logging.DEBUG
        assert options.stderr_level == logging.DEBUG

    def test_perf_trace_surfaces_info(self):
        options = logging_setup.resolve_options(env={"TURNSTREAM_PERF_TRACE": "1"})
        assert options.perf_trace is True
        assert options.stderr_level == logging.INFO

    @pytest.mark.parametrize("raw,expected", [("debug", logging.DEBUG), (" Error ", logging.ERROR), ("chatty", logging.INFO)])
    def test_level_from_env(self, raw, expected):
        assert logging_setup.resolve_options(env={"TURNSTREAM_LOG_LEVEL": raw}).level == expected

    def test_explicit_log_file_wins_over_dir(self, tmp_path):
        env = {"TURNSTREAM_LOG_FILE": str(tmp_path / "x.log"), "TURNSTREAM_LOG_DIR": str(tmp_path / "dir")}
        assert logging_setup.resolve_options(env=env).log_file == str(tmp_path / "x.log")

    def test_log_dir_names_file_after_session(self, tmp_path):
        options = logging_setup.resolve_options("replay run/1", env={"TURNSTREAM_LOG_DIR": str(tmp_path)})
        assert options.log_file.startswith(str(tmp_path))
        assert "replay-run-1-" in options.log_file


class TestConfigure:
    def test_stderr_only_by_default(self, capsys):
        logging_setup.configure()

        assert len(_handlers()) == 1
        assert not any(isinstance(h, RotatingFileHandler) for h in _handlers())
        logging.getLogger("turnstream.normalizer").info("routine detail")
        logging.getLogger("turnstream.cli").warning("something odd")
        err = capsys.readouterr().err
        assert "routine detail" not in err
        assert "turnstream: something odd" in err

    def test_log_file_receives_info(self, tmp_path, monkeypatch):
        log_file = tmp_path / "nested" / "run.log"
        monkeypatch.setenv("TURNSTREAM_LOG_FILE", str(log_file))

        options = logging_setup.configure()

        assert options.log_file == str(log_file)
        assert logging.getLogger("turnstream").propagate is False
        logging.getLogger("turnstream.normalizer").info("hello from child")
        for handler in _handlers():
            handler.flush()
        assert "hello from child" in log_file.read_text(encoding="utf-8")

    def test_is_idempotent(self, tmp_path, monkeypatch):
        first = logging_setup.configure()
        monkeypatch.setenv("TURNSTREAM_LOG_FILE", str(tmp_path / "late.log"))
        second = logging_setup.configure(verbose=True)

        assert second is first
        assert len(_handlers()) == 1

    def test_perf_env_enables_tracing(self, monkeypatch):
        monkeypatch.setenv("TURNSTREAM_PERF_TRACE", "1")
        assert not turnstream.io.perf_logging.is_enabled()

        logging_setup.configure()

        assert turnstream.io.perf_logging.is_enabled()

    def test_reset_detaches_handlers(self):
        logging_setup.configure()

        logging_setup.reset()

        assert _handlers() == []
        assert logging.getLogger("turnstream").propagate is True
        assert logging_setup.configure() is not None
