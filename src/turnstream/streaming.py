"""Stream events → assistant message snapshots → view updates.

Providers stream one assistant turn as a sequence of block-level events
(start/delta/end per content block, then done or error). This module types
those events, folds them into immutable AssistantMessage snapshots, and
drives an AssistantMessageView with them.

Recorded streams are JSON Lines, one event object per line:

    {"type": "text_delta", "index": 0, "delta": "Hel"}
    {"type": "toolcall_start", "index": 1, "id": "call_1", "name": "read"}
    {"type": "done", "reason": "toolUse"}

// [LAW:single-enforcer] parse_stream_event is the sole dict → event validation boundary.
// [LAW:one-source-of-truth] The class IS the type; no event_type field needed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from turnstream.conversation import (
    AssistantContent,
    AssistantMessage,
    JsonDict,
    ModelIdentity,
    StopReason,
    TextContent,
    ThinkingContent,
    ToolCall,
    model_identity_from_dict,
)

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = ModelIdentity(provider="unknown", api="unknown", model_id="unknown")


class StreamEventError(ValueError):
    """Raised when a dict is not a valid stream event."""


# ─── Event hierarchy ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StreamEvent:
    """Base class for all stream events."""


@dataclass(frozen=True)
class StartEvent(StreamEvent):
    model: ModelIdentity | None = None


@dataclass(frozen=True)
class TextStartEvent(StreamEvent):
    index: int


@dataclass(frozen=True)
class TextDeltaEvent(StreamEvent):
    index: int
    delta: str


@dataclass(frozen=True)
class TextEndEvent(StreamEvent):
    index: int
    text_signature: str | None = None


@dataclass(frozen=True)
class ThinkingStartEvent(StreamEvent):
    index: int


@dataclass(frozen=True)
class ThinkingDeltaEvent(StreamEvent):
    index: int
    delta: str


@dataclass(frozen=True)
class ThinkingEndEvent(StreamEvent):
    index: int
    thinking_signature: str | None = None


@dataclass(frozen=True)
class ToolCallStartEvent(StreamEvent):
    index: int
    id: str
    name: str


@dataclass(frozen=True)
class ToolCallDeltaEvent(StreamEvent):
    """A fragment of the tool call's argument JSON."""

    index: int
    delta: str


@dataclass(frozen=True)
class ToolCallEndEvent(StreamEvent):
    index: int
    arguments: dict | None = None
    thought_signature: str | None = None


@dataclass(frozen=True)
class DoneEvent(StreamEvent):
    reason: StopReason = StopReason.STOP


@dataclass(frozen=True)
class ErrorEvent(StreamEvent):
    """Terminal failure. reason is StopReason.ERROR or StopReason.ABORTED."""

    reason: StopReason = StopReason.ERROR
    error_message: str | None = None


TERMINAL_EVENTS = (DoneEvent, ErrorEvent)


# ─── Parsing ──────────────────────────────────────────────────────────────────


def _index(raw: JsonDict) -> int:
    value = raw.get("index", 0)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise StreamEventError(f"event 'index' must be an integer, got {value!r}") from None


def _str(value: object) -> str:
    return "" if value is None else str(value)


def _opt_str(value: object) -> str | None:
    return None if value is None else str(value)


def _stop_reason(raw: object, allowed: Iterable[StopReason]) -> StopReason:
    try:
        reason = StopReason(str(raw))
    except ValueError:
        raise StreamEventError(f"unknown stop reason: {raw!r}") from None
    if reason not in allowed:
        raise StreamEventError(f"stop reason {raw!r} not allowed here")
    return reason


def _parse_start(raw: JsonDict) -> StartEvent:
    model = raw.get("model")
    if isinstance(model, dict):
        try:
            return StartEvent(model=model_identity_from_dict(model))
        except ValueError as exc:
            raise StreamEventError(str(exc)) from exc
    return StartEvent()


def _parse_toolcall_end(raw: JsonDict) -> ToolCallEndEvent:
    arguments = raw.get("arguments")
    if arguments is not None and not isinstance(arguments, dict):
        raise StreamEventError("toolcall_end 'arguments' must be an object")
    return ToolCallEndEvent(
        index=_index(raw),
        arguments=arguments,
        thought_signature=_opt_str(raw.get("thought_signature")),
    )


_DONE_REASONS = (StopReason.STOP, StopReason.LENGTH, StopReason.TOOL_USE)
_ERROR_REASONS = (StopReason.ERROR, StopReason.ABORTED)


# [LAW:dataflow-not-control-flow] Dispatch table for event parsing
_EVENT_PARSERS: dict[str, Callable[[JsonDict], StreamEvent]] = {
    "start": _parse_start,
    "text_start": lambda raw: TextStartEvent(index=_index(raw)),
    "text_delta": lambda raw: TextDeltaEvent(index=_index(raw), delta=_str(raw.get("delta"))),
    "text_end": lambda raw: TextEndEvent(index=_index(raw), text_signature=_opt_str(raw.get("text_signature"))),
    "thinking_start": lambda raw: ThinkingStartEvent(index=_index(raw)),
    "thinking_delta": lambda raw: ThinkingDeltaEvent(index=_index(raw), delta=_str(raw.get("delta"))),
    "thinking_end": lambda raw: ThinkingEndEvent(
        index=_index(raw), thinking_signature=_opt_str(raw.get("thinking_signature"))
    ),
    "toolcall_start": lambda raw: ToolCallStartEvent(
        index=_index(raw), id=_str(raw.get("id")), name=_str(raw.get("name"))
    ),
    "toolcall_delta": lambda raw: ToolCallDeltaEvent(index=_index(raw), delta=_str(raw.get("delta"))),
    "toolcall_end": _parse_toolcall_end,
    "done": lambda raw: DoneEvent(reason=_stop_reason(raw.get("reason", "stop"), _DONE_REASONS)),
    "error": lambda raw: ErrorEvent(
        reason=_stop_reason(raw.get("reason", "error"), _ERROR_REASONS),
        error_message=_opt_str(raw.get("error_message")),
    ),
}


def parse_stream_event(raw: JsonDict) -> StreamEvent:
    """Parse a raw event dict into a typed StreamEvent.

    Raises:
        StreamEventError: If the type is unknown or a field is malformed.
    """
    if not isinstance(raw, dict):
        raise StreamEventError(f"event must be an object, got {type(raw).__name__}")
    event_type = raw.get("type")
    handler = _EVENT_PARSERS.get(_str(event_type))
    if handler is None:
        raise StreamEventError(f"Unknown stream event type: {event_type!r}")
    return handler(raw)


def load_events_jsonl(path: str | Path) -> list[StreamEvent]:
    """Read a recorded event stream. Blank lines are skipped.

    Raises StreamEventError naming the line for invalid JSON or events.
    """
    events: list[StreamEvent] = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError as exc:
                raise StreamEventError(f"line {lineno}: invalid JSON: {exc.msg}") from exc
            try:
                events.append(parse_stream_event(raw))
            except StreamEventError as exc:
                raise StreamEventError(f"line {lineno}: {exc}") from exc
    return events


# ─── Snapshot assembly ────────────────────────────────────────────────────────


@dataclass
class _BlockDraft:
    """Mutable in-progress content block."""

    kind: str  # "text" | "thinking" | "tool_call"
    text: str = ""
    signature: str | None = None
    tool_id: str = ""
    tool_name: str = ""
    args_json: str = ""
    arguments: dict = field(default_factory=dict)

    def freeze(self) -> AssistantContent:
        if self.kind == "thinking":
            return ThinkingContent(thinking=self.text, thinking_signature=self.signature)
        if self.kind == "tool_call":
            return ToolCall(
                id=self.tool_id,
                name=self.tool_name,
                arguments=dict(self.arguments),
                thought_signature=self.signature,
            )
        return TextContent(text=self.text, text_signature=self.signature)


def _parse_partial_args(args_json: str) -> dict | None:
    """Best-effort parse of accumulated argument JSON; None while incomplete."""
    try:
        parsed = json.loads(args_json)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class SnapshotAssembler:
    """Folds stream events into AssistantMessage snapshots.

    Each apply() returns a new immutable message; earlier snapshots are never
    touched. Deltas for an index with no start event open the block implicitly;
    an event whose block kind disagrees with the open block at its index
    raises StreamEventError and leaves the assembled state unchanged.
    """

    def __init__(self, model: ModelIdentity = UNKNOWN_MODEL):
        self.model = model
        self._drafts: dict[int, _BlockDraft] = {}
        self._stop_reason = StopReason.STOP
        self._error_message: str | None = None
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def _draft(self, index: int, kind: str) -> _BlockDraft:
        draft = self._drafts.get(index)
        if draft is None:
            draft = _BlockDraft(kind=kind)
            self._drafts[index] = draft
        elif draft.kind != kind:
            raise StreamEventError(f"{kind} event for index {index}, which holds a {draft.kind} block")
        return draft

    def apply(self, event: StreamEvent) -> AssistantMessage:
        if self._done:
            logger.debug("ignoring %s after terminal event", type(event).__name__)
            return self.snapshot()
        handler = _ASSEMBLY_HANDLERS.get(type(event))
        if handler is not None:
            handler(self, event)
        return self.snapshot()

    def snapshot(self) -> AssistantMessage:
        content = [self._drafts[i].freeze() for i in sorted(self._drafts)]
        stop_reason = self._stop_reason
        if not self._done and any(isinstance(b, ToolCall) for b in content):
            stop_reason = StopReason.TOOL_USE
        return AssistantMessage(
            content=content,
            model=self.model,
            stop_reason=stop_reason,
            error_message=self._error_message,
        )


def _on_start(asm: SnapshotAssembler, event: StartEvent) -> None:
    if event.model is not None:
        asm.model = event.model


def _on_text_start(asm: SnapshotAssembler, event: TextStartEvent) -> None:
    asm._draft(event.index, "text")


def _on_text_delta(asm: SnapshotAssembler, event: TextDeltaEvent) -> None:
    asm._draft(event.index, "text").text += event.delta


def _on_text_end(asm: SnapshotAssembler, event: TextEndEvent) -> None:
    asm._draft(event.index, "text").signature = event.text_signature


def _on_thinking_start(asm: SnapshotAssembler, event: ThinkingStartEvent) -> None:
    asm._draft(event.index, "thinking")


def _on_thinking_delta(asm: SnapshotAssembler, event: ThinkingDeltaEvent) -> None:
    asm._draft(event.index, "thinking").text += event.delta


def _on_thinking_end(asm: SnapshotAssembler, event: ThinkingEndEvent) -> None:
    asm._draft(event.index, "thinking").signature = event.thinking_signature


def _on_toolcall_start(asm: SnapshotAssembler, event: ToolCallStartEvent) -> None:
    draft = asm._draft(event.index, "tool_call")
    draft.tool_id = event.id
    draft.tool_name = event.name


def _on_toolcall_delta(asm: SnapshotAssembler, event: ToolCallDeltaEvent) -> None:
    draft = asm._draft(event.index, "tool_call")
    draft.args_json += event.delta
    parsed = _parse_partial_args(draft.args_json)
    if parsed is not None:
        draft.arguments = parsed


def _on_toolcall_end(asm: SnapshotAssembler, event: ToolCallEndEvent) -> None:
    draft = asm._draft(event.index, "tool_call")
    if event.arguments is not None:
        draft.arguments = dict(event.arguments)
    elif draft.args_json:
        parsed = _parse_partial_args(draft.args_json)
        if parsed is None:
            logger.warning("tool call %s ended with unparseable arguments", draft.tool_id)
        else:
            draft.arguments = parsed
    draft.signature = event.thought_signature


def _on_done(asm: SnapshotAssembler, event: DoneEvent) -> None:
    asm._stop_reason = event.reason
    asm._done = True


def _on_error(asm: SnapshotAssembler, event: ErrorEvent) -> None:
    asm._stop_reason = event.reason
    asm._error_message = event.error_message
    asm._done = True


_ASSEMBLY_HANDLERS: dict[type, Callable[[SnapshotAssembler, StreamEvent], None]] = {
    StartEvent: _on_start,
    TextStartEvent: _on_text_start,
    TextDeltaEvent: _on_text_delta,
    TextEndEvent: _on_text_end,
    ThinkingStartEvent: _on_thinking_start,
    ThinkingDeltaEvent: _on_thinking_delta,
    ThinkingEndEvent: _on_thinking_end,
    ToolCallStartEvent: _on_toolcall_start,
    ToolCallDeltaEvent: _on_toolcall_delta,
    ToolCallEndEvent: _on_toolcall_end,
    DoneEvent: _on_done,
    ErrorEvent: _on_error,
}


# ─── Driving a view ───────────────────────────────────────────────────────────


class MessageView(Protocol):
    def update(self, message: AssistantMessage) -> None: ...

    def finalize(self) -> None: ...


def drive_view(
    view: MessageView,
    events: Iterable[StreamEvent],
    model: ModelIdentity = UNKNOWN_MODEL,
) -> AssistantMessage | None:
    """Feed every event's snapshot to ``view``; finalize on the terminal event.

    Returns the last snapshot, or None when ``events`` is empty. A stream
    that ends without done/error leaves the view streaming.
    StreamEventError from the assembler propagates; the view keeps the
    snapshots it already received.
    """
    assembler = SnapshotAssembler(model)
    message: AssistantMessage | None = None
    for event in events:
        message = assembler.apply(event)
        view.update(message)
        if assembler.done:
            view.finalize()
            break
    return message
