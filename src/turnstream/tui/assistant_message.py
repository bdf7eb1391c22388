"""Incremental rendering of one assistant message.

AssistantMessageView receives full snapshots of an in-progress assistant
message and maintains an ordered list of render units for it:

    [Spacer] (unit [Spacer-after-thinking])* [Spacer Notice]

While streaming, text and thinking blocks show only their complete lines,
so a line appears all at once when its newline arrives. finalize() flushes
the withheld tails. Collapsed thinking is the exception: its label shows as
soon as the raw thinking is non-blank.

Render units are pooled by (block kind, block index). A stable block keeps
the same MarkdownUnit across updates, and with it the unit's strip cache.

// [LAW:single-enforcer] _rebuild() is the only place units are computed.
// [LAW:one-source-of-truth] The pool is the only owner of block render objects.
"""

from __future__ import annotations

import logging
from enum import Enum

from rich.console import Console
from textual.strip import Strip

from turnstream.conversation import (
    AssistantMessage,
    StopReason,
    TextContent,
    ThinkingContent,
)
from turnstream.io.perf_logging import monitor_slow_path
from turnstream.tui.rendering import (
    MarkdownUnit,
    RenderUnit,
    SpacerUnit,
    TextUnit,
    ThemeColors,
    get_theme_colors,
    render_units,
)

logger = logging.getLogger(__name__)

# Providers report a bare cancel with this message; it says nothing useful.
ABORT_DEFAULT_MESSAGE = "Request was aborted"
ABORT_FALLBACK_NOTICE = "Operation aborted"
ERROR_FALLBACK_MESSAGE = "Unknown error"
THINKING_LABEL = "Thinking..."


class RenderPhase(Enum):
    STREAMING = "streaming"
    FINALIZED = "finalized"


# [LAW:dataflow-not-control-flow] Transitions as data, not branches.
# FINALIZED is terminal: finalize() on it is a no-op.
_FINALIZE_TRANSITIONS: dict[RenderPhase, RenderPhase] = {
    RenderPhase.STREAMING: RenderPhase.FINALIZED,
    RenderPhase.FINALIZED: RenderPhase.FINALIZED,
}

PoolKey = tuple[str, int]


def buffer_to_complete_lines(text: str) -> str:
    """Text up to and including the last newline; "" if there is none."""
    last_newline = text.rfind("\n")
    if last_newline < 0:
        return ""
    return text[: last_newline + 1]


def notice_text(message: AssistantMessage) -> str | None:
    """Error/abort notice for a message, or None when there is nothing to show.

    Messages with tool calls never get a notice here; the tool-call display
    reports their failure.
    """
    if message.has_tool_calls:
        return None
    if message.stop_reason == StopReason.ABORTED:
        if message.error_message and message.error_message != ABORT_DEFAULT_MESSAGE:
            return message.error_message
        return ABORT_FALLBACK_NOTICE
    if message.stop_reason == StopReason.ERROR:
        return f"Error: {message.error_message or ERROR_FALLBACK_MESSAGE}"
    return None


class AssistantMessageView:
    """Render state for a single assistant message.

    Args:
        message: Optional initial snapshot.
        hide_thinking_block: Show thinking as a fixed label instead of its text.
        theme: Colors to render with. Defaults to the module theme from
            turnstream.tui.rendering.set_theme(), resolved at each rebuild.
        streaming: False builds an already-finalized view, used for history
            that is not streaming in.
    """

    def __init__(
        self,
        message: AssistantMessage | None = None,
        *,
        hide_thinking_block: bool = False,
        theme: ThemeColors | None = None,
        streaming: bool = True,
    ):
        self._phase = RenderPhase.STREAMING if streaming else RenderPhase.FINALIZED
        self._hide_thinking_block = hide_thinking_block
        self._theme = theme
        self._message: AssistantMessage | None = None
        self._pool: dict[PoolKey, RenderUnit] = {}
        self._units: list[RenderUnit] = []
        if message is not None:
            self.update(message)

    # ─── State ────────────────────────────────────────────────────────────

    @property
    def phase(self) -> RenderPhase:
        return self._phase

    @property
    def is_streaming(self) -> bool:
        return self._phase == RenderPhase.STREAMING

    @property
    def message(self) -> AssistantMessage | None:
        return self._message

    @property
    def hide_thinking_block(self) -> bool:
        return self._hide_thinking_block

    @property
    def units(self) -> list[RenderUnit]:
        return list(self._units)

    # ─── Inputs ───────────────────────────────────────────────────────────

    def update(self, message: AssistantMessage) -> None:
        """Show a new snapshot. Same snapshot twice leaves every unit in place."""
        self._message = message
        self._rebuild()

    def finalize(self) -> None:
        """Leave streaming mode for good and flush withheld partial lines."""
        next_phase = _FINALIZE_TRANSITIONS[self._phase]
        if next_phase == self._phase:
            return
        self._phase = next_phase
        logger.debug("assistant message finalized blocks=%d", self._block_count())
        self._rebuild()

    def invalidate(self) -> None:
        """Drop every pooled render object and rebuild from the last snapshot."""
        self._pool.clear()
        self._rebuild()

    def set_hide_thinking_block(self, hide: bool) -> None:
        if hide == self._hide_thinking_block:
            return
        self._hide_thinking_block = hide
        # Label units and markdown units are not interchangeable.
        self.invalidate()

    def set_theme(self, theme: ThemeColors | None) -> None:
        self._theme = theme
        self.invalidate()

    # ─── Output ───────────────────────────────────────────────────────────

    def render(self, console: Console, width: int) -> list[Strip]:
        with monitor_slow_path(
            "assistant_message.render",
            logger=logger,
            context=lambda: {"units": len(self._units), "width": width},
        ):
            return render_units(self._units, console, width)

    # ─── Internals ────────────────────────────────────────────────────────

    def _block_count(self) -> int:
        return 0 if self._message is None else len(self._message.content)

    def _display_text(self, raw: str) -> str:
        visible = buffer_to_complete_lines(raw) if self.is_streaming else raw
        return visible.strip()

    def _markdown_unit(self, key: PoolKey, text: str, theme: ThemeColors, style: str | None) -> MarkdownUnit:
        unit = self._pool.get(key)
        if isinstance(unit, MarkdownUnit):
            unit.set_text(text)
            return unit
        unit = MarkdownUnit(text, theme, style=style)
        self._pool[key] = unit
        return unit

    def _label_unit(self, key: PoolKey, theme: ThemeColors) -> TextUnit:
        unit = self._pool.get(key)
        if isinstance(unit, TextUnit):
            return unit
        unit = TextUnit(THINKING_LABEL, style=f"italic {theme.thinking_text}")
        self._pool[key] = unit
        return unit

    def _block_units(self, message: AssistantMessage, theme: ThemeColors) -> list[tuple[str, RenderUnit]]:
        contributions: list[tuple[str, RenderUnit]] = []
        for index, block in enumerate(message.content):
            if isinstance(block, TextContent):
                text = self._display_text(block.text)
                if text:
                    contributions.append(("text", self._markdown_unit(("text", index), text, theme, None)))
            elif isinstance(block, ThinkingContent):
                key = ("thinking", index)
                if self._hide_thinking_block:
                    # A fixed label cannot flicker, so it skips the line buffer.
                    if block.thinking.strip():
                        contributions.append(("thinking", self._label_unit(key, theme)))
                    continue
                text = self._display_text(block.thinking)
                if text:
                    unit = self._markdown_unit(key, text, theme, f"italic {theme.thinking_text}")
                    contributions.append(("thinking", unit))
            # Tool calls and other blocks belong to other renderers.
        return contributions

    def _rebuild(self) -> None:
        message = self._message
        if message is None:
            self._units = []
            return
        theme = self._theme or get_theme_colors()
        with monitor_slow_path(
            "assistant_message.rebuild",
            logger=logger,
            context=lambda: {"blocks": self._block_count(), "phase": self._phase.value},
        ):
            contributions = self._block_units(message, theme)
            units: list[RenderUnit] = []
            if contributions:
                units.append(SpacerUnit())
            last = len(contributions) - 1
            for position, (kind, unit) in enumerate(contributions):
                units.append(unit)
                if kind == "thinking" and position < last:
                    units.append(SpacerUnit())

            notice = notice_text(message)
            if notice is not None:
                units.append(SpacerUnit())
                units.append(TextUnit(notice, style=theme.error))
            self._units = units
