"""Shared builders for conversation and stream-event test data."""

from turnstream.conversation import (
    AssistantMessage,
    ModelIdentity,
    StopReason,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)

MODEL_A = ModelIdentity(provider="anthropic", api="messages", model_id="claude-sonnet-4-5")
MODEL_B = ModelIdentity(provider="openai", api="responses", model_id="gpt-5")


def user(text="hi", timestamp=0):
    return UserMessage(content=text, timestamp=timestamp)


def tool_call(id="x1", name="read", arguments=None, thought_signature=None):
    return ToolCall(
        id=id,
        name=name,
        arguments=arguments if arguments is not None else {"path": "README.md"},
        thought_signature=thought_signature,
    )


def assistant(
    *blocks,
    model=MODEL_A,
    stop_reason=None,
    error_message=None,
    timestamp=0,
):
    """Assistant message from blocks; plain strings become TextContent.

    stop_reason defaults to TOOL_USE when any block is a tool call, else STOP.
    """
    content = [TextContent(text=b) if isinstance(b, str) else b for b in blocks]
    if stop_reason is None:
        has_calls = any(isinstance(b, ToolCall) for b in content)
        stop_reason = StopReason.TOOL_USE if has_calls else StopReason.STOP
    return AssistantMessage(
        content=content,
        model=model,
        stop_reason=stop_reason,
        error_message=error_message,
        timestamp=timestamp,
    )


def thinking(text, signature=None):
    return ThinkingContent(thinking=text, thinking_signature=signature)


def tool_result(tool_call_id="x1", name="read", text="ok", is_error=False, timestamp=0):
    return ToolResultMessage(
        tool_call_id=tool_call_id,
        tool_name=name,
        content=[TextContent(text=text)],
        is_error=is_error,
        timestamp=timestamp,
    )


def text_events(*deltas, index=0):
    """Raw event dicts for one streamed text block (no terminal event)."""
    events = [{"type": "text_start", "index": index}]
    events.extend({"type": "text_delta", "index": index, "delta": d} for d in deltas)
    events.append({"type": "text_end", "index": index})
    return events
