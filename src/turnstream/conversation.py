"""Conversation model shared by the history normalizer and the renderer.

// [LAW:one-source-of-truth] The class IS the type; no role/type string fields on instances.
// [LAW:single-enforcer] message_from_dict is the sole dict → model validation boundary.

This module is STABLE. Safe for `from` imports everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


# ─── Type alias for JSON-parsed dicts ─────────────────────────────────────────

JsonDict = dict[str, object]


class MessageFormatError(ValueError):
    """Raised when a dict cannot be decoded into a conversation type."""


# ─── Enums & value types ──────────────────────────────────────────────────────


class StopReason(Enum):
    """Why an assistant turn ended."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_USE = "toolUse"
    ERROR = "error"
    ABORTED = "aborted"


# Turns that ended this way contribute nothing replayable to history.
FAILED_STOP_REASONS = frozenset({StopReason.ERROR, StopReason.ABORTED})


@dataclass(frozen=True)
class ModelIdentity:
    """The (provider, api, model_id) triple recorded on every assistant message."""

    provider: str
    api: str
    model_id: str

    def __str__(self) -> str:
        return f"{self.provider}/{self.api}/{self.model_id}"


@dataclass(frozen=True)
class Usage:
    """Token usage counts."""

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output + self.cache_read + self.cache_write


# ─── Content blocks ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TextContent:
    text: str
    # Provider-issued metadata; never valid for a different provider.
    text_signature: str | None = None


@dataclass(frozen=True)
class ThinkingContent:
    thinking: str
    thinking_signature: str | None = None


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict = field(default_factory=dict)
    thought_signature: str | None = None


@dataclass(frozen=True)
class ImageContent:
    data: str  # base64
    mime_type: str = "image/png"


AssistantContent = Union[TextContent, ThinkingContent, ToolCall]
UserContent = Union[TextContent, ImageContent]


# ─── Messages ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UserMessage:
    content: str | list[UserContent]
    timestamp: int = 0


@dataclass(frozen=True)
class AssistantMessage:
    """One assistant turn, either finalized or a transient streaming snapshot."""

    content: list[AssistantContent]
    model: ModelIdentity
    stop_reason: StopReason = StopReason.STOP
    error_message: str | None = None
    usage: Usage = field(default_factory=Usage)
    timestamp: int = 0

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [block for block in self.content if isinstance(block, ToolCall)]

    @property
    def has_tool_calls(self) -> bool:
        return any(isinstance(block, ToolCall) for block in self.content)


@dataclass(frozen=True)
class ToolResultMessage:
    tool_call_id: str
    tool_name: str
    content: list[UserContent] = field(default_factory=list)
    is_error: bool = False
    timestamp: int = 0


Message = Union[UserMessage, AssistantMessage, ToolResultMessage]


# ─── Dict codec ───────────────────────────────────────────────────────────────


def _require(data: JsonDict, key: str, kind: str) -> object:
    if key not in data:
        raise MessageFormatError(f"{kind} is missing required key {key!r}")
    return data[key]


def _opt_str(value: object) -> str | None:
    return None if value is None else str(value)


def _block_from_dict(data: JsonDict) -> AssistantContent | ImageContent:
    block_type = data.get("type")
    if block_type == "text":
        return TextContent(
            text=str(_require(data, "text", "text block")),
            text_signature=_opt_str(data.get("text_signature")),
        )
    if block_type == "thinking":
        return ThinkingContent(
            thinking=str(_require(data, "thinking", "thinking block")),
            thinking_signature=_opt_str(data.get("thinking_signature")),
        )
    if block_type == "tool_call":
        arguments = data.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise MessageFormatError("tool_call block 'arguments' must be an object")
        return ToolCall(
            id=str(_require(data, "id", "tool_call block")),
            name=str(_require(data, "name", "tool_call block")),
            arguments=arguments,
            thought_signature=_opt_str(data.get("thought_signature")),
        )
    if block_type == "image":
        return ImageContent(
            data=str(_require(data, "data", "image block")),
            mime_type=str(data.get("mime_type", "image/png")),
        )
    raise MessageFormatError(f"unknown content block type: {block_type!r}")


def block_from_dict(data: JsonDict) -> AssistantContent | ImageContent:
    """Decode one content block dict."""
    if not isinstance(data, dict):
        raise MessageFormatError(f"content block must be an object, got {type(data).__name__}")
    return _block_from_dict(data)


def block_to_dict(block: AssistantContent | ImageContent) -> JsonDict:
    """Encode one content block. Optional signature keys are omitted when unset."""
    if isinstance(block, TextContent):
        out: JsonDict = {"type": "text", "text": block.text}
        if block.text_signature is not None:
            out["text_signature"] = block.text_signature
        return out
    if isinstance(block, ThinkingContent):
        out = {"type": "thinking", "thinking": block.thinking}
        if block.thinking_signature is not None:
            out["thinking_signature"] = block.thinking_signature
        return out
    if isinstance(block, ToolCall):
        out = {"type": "tool_call", "id": block.id, "name": block.name, "arguments": dict(block.arguments)}
        if block.thought_signature is not None:
            out["thought_signature"] = block.thought_signature
        return out
    if isinstance(block, ImageContent):
        return {"type": "image", "data": block.data, "mime_type": block.mime_type}
    raise TypeError(f"not a content block: {block!r}")


def _blocks(data: JsonDict, kind: str) -> list:
    raw = data.get("content", [])
    if not isinstance(raw, list):
        raise MessageFormatError(f"{kind} 'content' must be a list")
    return [block_from_dict(item) for item in raw]


def _parse_stop_reason(raw: object) -> StopReason:
    try:
        return StopReason(str(raw or StopReason.STOP.value))
    except ValueError:
        raise MessageFormatError(f"unknown stop_reason: {raw!r}") from None


def _parse_usage(raw: object) -> Usage:
    if not isinstance(raw, dict):
        return Usage()
    return Usage(
        input=int(raw.get("input", 0) or 0),
        output=int(raw.get("output", 0) or 0),
        cache_read=int(raw.get("cache_read", 0) or 0),
        cache_write=int(raw.get("cache_write", 0) or 0),
    )


def model_identity_from_dict(data: JsonDict) -> ModelIdentity:
    return ModelIdentity(
        provider=str(_require(data, "provider", "model identity")),
        api=str(_require(data, "api", "model identity")),
        model_id=str(_require(data, "model_id", "model identity")),
    )


def message_from_dict(data: JsonDict) -> Message:
    """Decode a message dict into its typed form.

    Raises MessageFormatError for unknown roles, unknown block types and
    missing required keys. Unknown extra keys are ignored.
    """
    if not isinstance(data, dict):
        raise MessageFormatError(f"message must be an object, got {type(data).__name__}")
    role = data.get("role")
    timestamp = int(data.get("timestamp", 0) or 0)

    if role == "user":
        content = data.get("content", "")
        if isinstance(content, list):
            return UserMessage(content=_blocks(data, "user message"), timestamp=timestamp)
        return UserMessage(content=str(content), timestamp=timestamp)

    if role == "assistant":
        model = _require(data, "model", "assistant message")
        if not isinstance(model, dict):
            raise MessageFormatError("assistant message 'model' must be an object")
        return AssistantMessage(
            content=_blocks(data, "assistant message"),
            model=model_identity_from_dict(model),
            stop_reason=_parse_stop_reason(data.get("stop_reason")),
            error_message=_opt_str(data.get("error_message")),
            usage=_parse_usage(data.get("usage")),
            timestamp=timestamp,
        )

    if role == "tool_result":
        return ToolResultMessage(
            tool_call_id=str(_require(data, "tool_call_id", "tool_result message")),
            tool_name=str(data.get("tool_name", "")),
            content=_blocks(data, "tool_result message"),
            is_error=bool(data.get("is_error", False)),
            timestamp=timestamp,
        )

    raise MessageFormatError(f"unknown message role: {role!r}")


def message_to_dict(message: Message) -> JsonDict:
    """Encode a typed message back to its dict form."""
    if isinstance(message, UserMessage):
        content = message.content
        return {
            "role": "user",
            "content": content if isinstance(content, str) else [block_to_dict(b) for b in content],
            "timestamp": message.timestamp,
        }
    if isinstance(message, AssistantMessage):
        out: JsonDict = {
            "role": "assistant",
            "content": [block_to_dict(b) for b in message.content],
            "model": {
                "provider": message.model.provider,
                "api": message.model.api,
                "model_id": message.model.model_id,
            },
            "stop_reason": message.stop_reason.value,
            "usage": {
                "input": message.usage.input,
                "output": message.usage.output,
                "cache_read": message.usage.cache_read,
                "cache_write": message.usage.cache_write,
            },
            "timestamp": message.timestamp,
        }
        if message.error_message is not None:
            out["error_message"] = message.error_message
        return out
    if isinstance(message, ToolResultMessage):
        return {
            "role": "tool_result",
            "tool_call_id": message.tool_call_id,
            "tool_name": message.tool_name,
            "content": [block_to_dict(b) for b in message.content],
            "is_error": message.is_error,
            "timestamp": message.timestamp,
        }
    raise TypeError(f"not a message: {message!r}")
