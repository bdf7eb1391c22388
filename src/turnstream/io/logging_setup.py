"""Logging bootstrap for turnstream entry points.

// [LAW:single-enforcer] Handler wiring and TURNSTREAM_* environment parsing happen here only.
// [LAW:one-source-of-truth] RuntimeOptions is the resolved environment; configure() applies it.

Library modules only call logging.getLogger(__name__). Stdout belongs to
command output (normalized JSON, a rendered turn), so diagnostics go to
stderr, WARNING and up unless verbose or a perf trace asks for more. The
rotating log file is opt-in.

Environment:
    TURNSTREAM_LOG_LEVEL   level for the turnstream logger (default INFO, DEBUG when verbose)
    TURNSTREAM_LOG_FILE    write a rotating log file at this path
    TURNSTREAM_LOG_DIR     write <session>-<utc stamp>-<pid>.log into this directory
    TURNSTREAM_PERF_TRACE  "1" turns on phase tracing (turnstream.io.perf_logging)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

import turnstream.io.perf_logging

_ROOT_LOGGER = "turnstream"
_LOG_FILE_MAX_BYTES = 20 * 1024 * 1024
_LOG_FILE_BACKUPS = 5


@dataclass(frozen=True)
class RuntimeOptions:
    """What configure() resolved from flags and environment."""

    level: int
    stderr_level: int
    log_file: str | None
    perf_trace: bool


_applied: RuntimeOptions | None = None


def _level_from(raw: str | None, default: int) -> int:
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def _log_file_for(session_name: str, env: Mapping[str, str]) -> str | None:
    explicit = env.get("TURNSTREAM_LOG_FILE")
    if explicit:
        return explicit
    log_dir = env.get("TURNSTREAM_LOG_DIR")
    if not log_dir:
        return None
    stem = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in session_name).strip("-_")
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return str(Path(log_dir) / f"{stem or 'turnstream'}-{stamp}-{os.getpid()}.log")


def resolve_options(
    session_name: str = "turnstream",
    *,
    verbose: bool = False,
    env: Mapping[str, str] | None = None,
) -> RuntimeOptions:
    """Resolve logging/trace options without touching any logger."""
    env = os.environ if env is None else env
    level = _level_from(env.get("TURNSTREAM_LOG_LEVEL"), logging.DEBUG if verbose else logging.INFO)
    perf_trace = env.get("TURNSTREAM_PERF_TRACE", "") == "1"
    if verbose:
        stderr_level = level
    elif perf_trace:
        # The trace summary is logged at INFO; someone asked to see it.
        stderr_level = max(level, logging.INFO)
    else:
        stderr_level = max(level, logging.WARNING)
    return RuntimeOptions(
        level=level,
        stderr_level=stderr_level,
        log_file=_log_file_for(session_name, env),
        perf_trace=perf_trace,
    )


def configure(session_name: str = "turnstream", *, verbose: bool = False) -> RuntimeOptions:
    """Attach stderr (and optional file) handlers to the turnstream logger.

    Idempotent: later calls return the options applied by the first one.
    """
    global _applied
    if _applied is not None:
        return _applied

    options = resolve_options(session_name, verbose=verbose)
    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(options.level)
    root.propagate = False
    root.handlers.clear()

    stderr = logging.StreamHandler()
    stderr.setLevel(options.stderr_level)
    stderr.setFormatter(logging.Formatter("turnstream: %(message)s"))
    root.addHandler(stderr)

    if options.log_file is not None:
        Path(options.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            options.log_file,
            maxBytes=_LOG_FILE_MAX_BYTES,
            backupCount=_LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setLevel(options.level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s %(name)s %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )
        root.addHandler(file_handler)

    if options.perf_trace:
        turnstream.io.perf_logging.set_enabled(True)

    logging.captureWarnings(True)
    _applied = options
    return options


def reset() -> None:
    """Detach handlers and forget the applied options. Used by tests."""
    global _applied
    root = logging.getLogger(_ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
    root.propagate = True
    logging.captureWarnings(False)
    _applied = None
