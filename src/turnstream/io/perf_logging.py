"""Phase tracing and slow-path performance logging.

Two tools share this module:

- A per-request phase trace (start_trace / trace_phase / end_trace) that
  records how long each named phase took. Enable with set_enabled(True);
  logging_setup.configure() does so for TURNSTREAM_PERF_TRACE=1. Disabled
  tracing costs one boolean check per call.
- monitor_slow_path(), which logs a stack when one stage exceeds its threshold.

// [LAW:one-source-of-truth] Slow-stage thresholds are centralized in SLOW_STAGE_THRESHOLDS_MS.
// [LAW:single-enforcer] Threshold-exceeded diagnostics are emitted only by monitor_slow_path().
"""

from __future__ import annotations

import logging
import sys
import threading
import time
import traceback
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_enabled = False


def is_enabled() -> bool:
    return _enabled


def set_enabled(val: bool) -> None:
    global _enabled
    _enabled = val


# ─── Phase trace ──────────────────────────────────────────────────────────────


@dataclass
class PerfTrace:
    """Phase timings in milliseconds, in the order phases finished."""

    started_ns: int = 0
    phases: dict[str, float] = field(default_factory=dict)
    total_ms: float | None = None

    def summary(self) -> str:
        parts = [f"{name}={ms:.1f}ms" for name, ms in self.phases.items()]
        if self.total_ms is not None:
            parts.append(f"total={self.total_ms:.1f}ms")
        return " | ".join(parts)


_current: PerfTrace | None = None
_last: PerfTrace | None = None


def start_trace() -> None:
    """Begin a new trace. Call at the start of a request."""
    global _current
    if not _enabled:
        return
    _current = PerfTrace(started_ns=time.perf_counter_ns())


@contextmanager
def trace_phase(name: str) -> Iterator[None]:
    """Record the wall time of the wrapped block under ``name``.

    Repeated phases within one trace accumulate. Outside an active trace
    this is a no-op, so library code can always wrap its phases.
    """
    if not _enabled or _current is None:
        yield
        return
    trace = _current
    started_ns = time.perf_counter_ns()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter_ns() - started_ns) / 1_000_000
        trace.phases[name] = trace.phases.get(name, 0.0) + elapsed_ms


def end_trace() -> PerfTrace | None:
    """Finish the current trace, log its summary and return it."""
    global _current, _last
    if not _enabled or _current is None:
        return None
    trace = _current
    trace.total_ms = (time.perf_counter_ns() - trace.started_ns) / 1_000_000
    _last = trace
    _current = None
    logger.info("[perf-trace] %s", trace.summary())
    return trace


def get_last_trace() -> PerfTrace | None:
    return _last


def reset_trace() -> None:
    global _current, _last
    _current = None
    _last = None


# ─── Slow-path monitor ────────────────────────────────────────────────────────

# [LAW:no-mode-explosion] One central threshold map; avoid per-callsite knobs.
SLOW_STAGE_THRESHOLDS_MS: dict[str, float] = {
    "normalizer.normalize_history": 50.0,
    "assistant_message.rebuild": 16.0,
    "assistant_message.render": 16.0,
}

_DEFAULT_THRESHOLD_MS = 250.0
_STACK_LIMIT = 40
_THREAD_STACK_LIMIT = 20


def _threshold_for(stage: str) -> float:
    return SLOW_STAGE_THRESHOLDS_MS.get(stage, _DEFAULT_THRESHOLD_MS)


def _resolve_context(
    context: Mapping[str, Any] | Callable[[], Mapping[str, Any]] | None,
) -> Mapping[str, Any]:
    if context is None:
        return {}
    if callable(context):
        try:
            resolved = context()
        except Exception as exc:  # pragma: no cover - logging path only
            return {"context_error": repr(exc)}
        return resolved if isinstance(resolved, Mapping) else {"context_value": resolved}
    return context


def _format_context(context: Mapping[str, Any]) -> str:
    parts = [f"{k}={context[k]!r}" for k in sorted(context.keys())]
    return " ".join(parts)


def _thread_dump() -> str:
    frames = sys._current_frames()
    names = {thread.ident: thread.name for thread in threading.enumerate()}
    chunks: list[str] = []
    for tid, frame in frames.items():
        chunks.append(f"\n--- thread={names.get(tid, 'unknown')} ident={tid} ---\n")
        chunks.extend(traceback.format_stack(frame, limit=_THREAD_STACK_LIMIT))
    return "".join(chunks)


@contextmanager
def monitor_slow_path(
    stage: str,
    *,
    logger: logging.Logger,
    context: Mapping[str, Any] | Callable[[], Mapping[str, Any]] | None = None,
    threshold_ms: float | None = None,
) -> Iterator[None]:
    """Log stack diagnostics when a stage exceeds its latency threshold.

    Independent of the phase-trace switch: slow paths are always worth a warning.
    """
    started_ns = time.perf_counter_ns()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter_ns() - started_ns) / 1_000_000
        threshold = _threshold_for(stage) if threshold_ms is None else float(threshold_ms)
        if elapsed_ms >= threshold:
            resolved_context = _resolve_context(context)
            context_text = _format_context(resolved_context)
            stack = "".join(traceback.format_stack(limit=_STACK_LIMIT))

            # Full thread dump only for severe threshold breaches.
            extra_threads = _thread_dump() if elapsed_ms >= (threshold * 2.0) else ""
            logger.warning(
                "perf threshold exceeded stage=%s elapsed_ms=%.2f threshold_ms=%.2f context=%s\n"
                "stacktrace:\n%s%s",
                stage,
                elapsed_ms,
                threshold,
                context_text,
                stack,
                f"\nthread_dump:{extra_threads}" if extra_threads else "",
            )
