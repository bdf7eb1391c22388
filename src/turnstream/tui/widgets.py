"""Textual widget hosting one AssistantMessageView.

Uses the Line API: strips are rendered once per change (snapshot, finalize,
resize, theme) and render_line(y) only indexes into them.
"""

from __future__ import annotations

from textual.geometry import Size
from textual.strip import Strip
from textual.widget import Widget

from turnstream.conversation import AssistantMessage
from turnstream.tui.assistant_message import AssistantMessageView
from turnstream.tui.rendering import build_theme_colors


class AssistantMessageWidget(Widget):
    """One assistant message, re-rendered incrementally as it streams."""

    DEFAULT_CSS = """
    AssistantMessageWidget {
        height: auto;
        color: $foreground;
    }
    """

    def __init__(
        self,
        message: AssistantMessage | None = None,
        *,
        hide_thinking_block: bool = False,
        streaming: bool = True,
        name: str | None = None,
        id: str | None = None,
        classes: str | None = None,
    ):
        super().__init__(name=name, id=id, classes=classes)
        self._view = AssistantMessageView(hide_thinking_block=hide_thinking_block, streaming=streaming)
        # Snapshots wait here until mount provides a theme to render with.
        self._pending: AssistantMessage | None = message
        self._strips: list[Strip] = []
        self._last_width = 0

    @property
    def view(self) -> AssistantMessageView:
        return self._view

    @property
    def strips(self) -> list[Strip]:
        return self._strips

    def on_mount(self) -> None:
        self._view.set_theme(build_theme_colors(self.app.current_theme))
        self.app.theme_changed_signal.subscribe(self, self._on_app_theme_changed)
        if self._pending is not None:
            self._view.update(self._pending)
            self._pending = None
        self._refresh_strips()

    # ─── Inputs ───────────────────────────────────────────────────────────

    def update_message(self, message: AssistantMessage) -> None:
        if not self.is_mounted:
            self._pending = message
            return
        self._view.update(message)
        self._refresh_strips()

    def finalize(self) -> None:
        self._view.finalize()
        if self.is_mounted:
            self._refresh_strips()

    def set_hide_thinking_block(self, hide: bool) -> None:
        self._view.set_hide_thinking_block(hide)
        if self.is_mounted:
            self._refresh_strips()

    def _on_app_theme_changed(self, theme) -> None:
        self._view.set_theme(build_theme_colors(theme))
        self._refresh_strips()

    def on_resize(self, event) -> None:
        if event.size.width != self._last_width:
            self._refresh_strips()

    # ─── Line API ─────────────────────────────────────────────────────────

    def _render_width(self) -> int:
        return max(1, self.size.width)

    def _refresh_strips(self) -> None:
        width = self._render_width()
        self._last_width = width
        self._strips = self._view.render(self.app.console, width)
        self.refresh(layout=True)

    def get_content_height(self, container: Size, viewport: Size, width: int) -> int:
        if width <= 0:
            return len(self._strips)
        return len(self._view.render(self.app.console, width))

    def render_line(self, y: int) -> Strip:
        width = self._render_width()
        if y < len(self._strips):
            return self._strips[y].crop_extend(0, width, self.rich_style)
        return Strip.blank(width, self.rich_style)
