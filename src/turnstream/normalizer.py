"""History normalization for replay against a (possibly different) model.

Takes an ordered message list and the model about to receive it, and returns
a new list that model will accept:

- tool calls left unanswered when history moved on get a synthetic failed
  tool result, inserted right before the message that moved on;
- errored/aborted assistant turns are dropped whole;
- thinking from another model is downgraded to plain text, empty thinking
  is dropped;
- provider-specific signatures are stripped from other models' blocks;
- tool-call ids are remapped for the target, and every later tool result
  is rewritten to follow.

One left-to-right pass. The input list and its messages are never mutated.

// [LAW:single-enforcer] Orphan repair happens only in _flush_orphans().
// [LAW:one-source-of-truth] _NormalizeState is the only state the pass carries.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence

from turnstream.conversation import (
    FAILED_STOP_REASONS,
    AssistantContent,
    AssistantMessage,
    Message,
    ModelIdentity,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from turnstream.io.perf_logging import monitor_slow_path, trace_phase
from turnstream.providers import is_same_model

logger = logging.getLogger(__name__)

ToolCallIdRemap = Callable[[str, ModelIdentity, AssistantMessage], str]

ORPHAN_RESULT_TEXT = "No result provided"


# ─── Pass state ──────────────────────────────────────────────────────────────


class _NormalizeState:
    """Accumulator threaded through the pass.

    id_map lives for the whole pass: a remapped id must be honored by any
    later tool result. pending/seen_result_ids are scoped to the current
    batch of tool calls and are reset only at the two flush points.
    """

    def __init__(self, target: ModelIdentity, id_remap: ToolCallIdRemap | None):
        self.target = target
        self.id_remap = id_remap
        self.out: list[Message] = []
        self.id_map: dict[str, str] = {}
        self.pending: list[ToolCall] = []
        self.seen_result_ids: set[str] = set()


def _flush_orphans(state: _NormalizeState, timestamp: int) -> None:
    """Emit failed results for unanswered pending calls, then reset the batch."""
    if not state.pending:
        return
    for call in state.pending:
        if call.id in state.seen_result_ids:
            continue
        logger.debug("synthesizing failed result for orphaned tool call id=%s name=%s", call.id, call.name)
        state.out.append(
            ToolResultMessage(
                tool_call_id=call.id,
                tool_name=call.name,
                content=[TextContent(text=ORPHAN_RESULT_TEXT)],
                is_error=True,
                timestamp=timestamp,
            )
        )
    state.pending = []
    state.seen_result_ids = set()


# ─── Block transforms ────────────────────────────────────────────────────────


def _transform_thinking(block: ThinkingContent, same_model: bool) -> AssistantContent | None:
    if not block.thinking.strip():
        return None
    if same_model:
        # Signed or not, the producing model accepts its own reasoning back.
        return block
    return TextContent(text=block.thinking)


def _transform_text(block: TextContent, same_model: bool) -> AssistantContent:
    if same_model:
        return block
    return TextContent(text=block.text)


def _transform_tool_call(
    block: ToolCall,
    same_model: bool,
    source: AssistantMessage,
    state: _NormalizeState,
) -> ToolCall:
    if same_model:
        return block
    call = block
    if call.thought_signature is not None:
        call = dataclasses.replace(call, thought_signature=None)
    if state.id_remap is not None:
        new_id = state.id_remap(block.id, state.target, source)
        if new_id != block.id:
            state.id_map[block.id] = new_id
            call = dataclasses.replace(call, id=new_id)
    return call


# ─── Message handlers ────────────────────────────────────────────────────────


def _handle_user(message: UserMessage, state: _NormalizeState) -> None:
    _flush_orphans(state, message.timestamp)
    state.out.append(message)


def _handle_tool_result(message: ToolResultMessage, state: _NormalizeState) -> None:
    mapped = state.id_map.get(message.tool_call_id)
    if mapped is not None and mapped != message.tool_call_id:
        message = dataclasses.replace(message, tool_call_id=mapped)
    state.seen_result_ids.add(message.tool_call_id)
    state.out.append(message)


def _handle_assistant(message: AssistantMessage, state: _NormalizeState) -> None:
    # A new assistant turn means the previous batch will never be answered.
    _flush_orphans(state, message.timestamp)

    if message.stop_reason in FAILED_STOP_REASONS:
        logger.debug(
            "dropping %s assistant turn from %s (%d blocks)",
            message.stop_reason.value,
            message.model,
            len(message.content),
        )
        return

    same_model = is_same_model(message, state.target)
    content: list[AssistantContent] = []
    for block in message.content:
        if isinstance(block, ThinkingContent):
            transformed = _transform_thinking(block, same_model)
        elif isinstance(block, TextContent):
            transformed = _transform_text(block, same_model)
        elif isinstance(block, ToolCall):
            transformed = _transform_tool_call(block, same_model, message, state)
        else:
            transformed = block
        if transformed is not None:
            content.append(transformed)

    state.out.append(dataclasses.replace(message, content=content))

    tool_calls = [block for block in content if isinstance(block, ToolCall)]
    if tool_calls:
        state.pending = tool_calls
        state.seen_result_ids = set()


_HANDLERS: dict[type, Callable[[Message, _NormalizeState], None]] = {
    UserMessage: _handle_user,
    ToolResultMessage: _handle_tool_result,
    AssistantMessage: _handle_assistant,
}


# ─── Public API ──────────────────────────────────────────────────────────────


def normalize_history(
    messages: Sequence[Message],
    target: ModelIdentity,
    id_remap: ToolCallIdRemap | None = None,
) -> list[Message]:
    """Return a copy of ``messages`` that is safe to send to ``target``.

    Args:
        messages: Conversation history, oldest first.
        target: Identity of the model that will receive the history.
        id_remap: Optional ``(old_id, target, source_message) -> new_id``
            applied to tool-call ids of assistant messages from other models.
            See turnstream.providers.normalize_tool_call_id for a default.

    Never raises for inconsistent history: tool results that match no
    earlier call pass through as-is. Calls still pending at the end of the
    list are left alone, since their results may simply not exist yet.
    """
    state = _NormalizeState(target, id_remap)
    with trace_phase("normalize_history"), monitor_slow_path(
        "normalizer.normalize_history",
        logger=logger,
        context=lambda: {"messages": len(messages), "target": str(target)},
    ):
        for message in messages:
            handler = _HANDLERS.get(type(message))
            if handler is None:
                state.out.append(message)
            else:
                handler(message, state)
    return state.out
