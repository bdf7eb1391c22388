"""Theme colors and render units for the assistant message view.

A render unit is the smallest thing the view places on screen: a blank
spacer, a line of styled plain text, or a markdown document. Every unit
exposes ``render(console, width) -> list[Strip]``; the view concatenates them.

Pipeline for markdown (shared with plain text):
    rich renderable -> console.render(width) -> Segment.split_lines -> Strip

# [LAW:single-enforcer] Theme state changes only through set_theme().
# [LAW:one-source-of-truth] Markdown styling is defined once in build_theme_colors().
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from rich.console import Console, RenderableType
from rich.markdown import Markdown
from rich.segment import Segment
from rich.text import Text
from rich.theme import Theme as RichTheme
from textual.color import Color
from textual.strip import Strip

import turnstream.io.perf_logging


@dataclass(frozen=True)
class ThemeColors:
    """All colors the rendering pipeline needs, derived from a Textual Theme."""

    # Semantic colors from theme
    primary: str
    secondary: str
    accent: str
    warning: str
    error: str
    success: str
    surface: str
    foreground: str
    background: str
    dark: bool

    # Collapsed/expanded reasoning text
    thinking_text: str

    # Code rendering
    code_theme: str  # "github-dark" or "friendly"

    # Markdown theme dict (for Rich console.use_theme)
    markdown_theme_dict: dict


def _normalize_color(color: str | None, fallback: str) -> str:
    """Normalize a theme color to #RRGGBB hex.

    Textual's ANSI themes use names like "ansi_green" that Rich can't parse
    in style strings. Convert via Textual's Color.parse().rgb, falling back
    to the provided default if parsing fails.

    "ansi_default" means the terminal default, which is unknowable at runtime, so
    we treat it as None and use the fallback.
    // [LAW:single-enforcer] All color normalization goes through here.
    """
    if color is None or color == "ansi_default":
        return fallback
    if color.startswith("#") and len(color) == 7:
        return color
    try:
        c = Color.parse(color)
    except Exception:
        return fallback
    r, g, b = c.rgb
    return "#{:02X}{:02X}{:02X}".format(r, g, b)


def _is_ansi_default(color: str | None) -> bool:
    return color is None or color == "ansi_default"


def build_theme_colors(textual_theme) -> ThemeColors:
    """Map a Textual Theme to ThemeColors.

    Handles None fields and ANSI color names. When bg/fg/surface are all
    unknowable (ansi_default), fallbacks assume a dark terminal.
    """
    dark = textual_theme.dark

    # // [LAW:dataflow-not-control-flow] assume_dark is a value, not a branch
    assume_dark = dark or all(
        _is_ansi_default(getattr(textual_theme, attr))
        for attr in ("background", "foreground", "surface")
    )

    primary = _normalize_color(textual_theme.primary, "#0178D4")
    secondary = _normalize_color(textual_theme.secondary, primary)
    accent = _normalize_color(textual_theme.accent, primary)
    warning = _normalize_color(textual_theme.warning, "#ffa62b")
    error = _normalize_color(textual_theme.error, "#ba3c5b")
    success = _normalize_color(textual_theme.success, "#4EBF71")
    foreground = _normalize_color(textual_theme.foreground, "#e0e0e0" if assume_dark else "#1e1e1e")
    background = _normalize_color(textual_theme.background, "#1e1e1e" if assume_dark else "#e0e0e0")
    surface = _normalize_color(textual_theme.surface, "#2b2b2b" if assume_dark else "#d0d0d0")

    code_theme = "github-dark" if dark else "friendly"
    thinking_text = "#9a9a9a" if assume_dark else "#6a6a6a"

    md_code_style = f"{foreground} on {surface}"

    markdown_theme_dict = {
        "markdown.text": foreground,
        "markdown.paragraph": foreground,
        "markdown.item": foreground,
        "markdown.strong": f"bold {foreground}",
        "markdown.em": f"italic {foreground}",
        "markdown.code": md_code_style,
        "markdown.code_block": f"on {surface}",
        "markdown.h1": f"bold underline {primary}",
        "markdown.h2": f"bold {primary}",
        "markdown.h3": f"bold {secondary}",
        "markdown.h4": f"italic {secondary}",
        "markdown.h5": f"italic {foreground}",
        "markdown.h6": "dim italic",
        "markdown.link": f"underline {primary}",
        "markdown.link_url": f"dim underline {primary}",
        "markdown.block_quote": f"italic {foreground}",
        "markdown.table.border": f"dim {foreground}",
        "markdown.table.header": f"bold {primary}",
        "markdown.hr": f"dim {foreground}",
    }

    return ThemeColors(
        primary=primary,
        secondary=secondary,
        accent=accent,
        warning=warning,
        error=error,
        success=success,
        surface=surface,
        foreground=foreground,
        background=background,
        dark=dark,
        thinking_text=thinking_text,
        code_theme=code_theme,
        markdown_theme_dict=markdown_theme_dict,
    )


# Module-level theme state: None until set_theme() runs.
_theme_colors: ThemeColors | None = None


def get_theme_colors() -> ThemeColors:
    """Get the current ThemeColors. Raises RuntimeError if set_theme() not called."""
    if _theme_colors is None:
        raise RuntimeError("Theme not initialized. Call set_theme() before rendering.")
    return _theme_colors


def set_theme(textual_theme) -> ThemeColors:
    """Rebuild theme-derived module state from a Textual Theme.

    // [LAW:single-enforcer] Sole entry point for theme changes.
    """
    global _theme_colors
    _theme_colors = build_theme_colors(textual_theme)
    return _theme_colors


# ─── Strip conversion ─────────────────────────────────────────────────────────


def _renderable_to_strips(renderable: RenderableType, console: Console, width: int) -> list[Strip]:
    render_options = console.options.update_width(max(1, width))
    segments = console.render(renderable, render_options)
    lines = list(Segment.split_lines(segments))
    if not lines:
        return []
    return [s.adjust_cell_length(width) for s in Strip.from_lines(lines)]


def strips_to_text(strips: Iterable[Strip]) -> str:
    """Plain text of strips, one line per strip, trailing padding removed."""
    return "\n".join("".join(seg.text for seg in strip).rstrip() for strip in strips)


# ─── Render units ─────────────────────────────────────────────────────────────


class RenderUnit(Protocol):
    def render(self, console: Console, width: int) -> list[Strip]: ...


class SpacerUnit:
    """Blank vertical gap between blocks."""

    def __init__(self, lines: int = 1):
        self.lines = lines

    def render(self, console: Console, width: int) -> list[Strip]:
        return [Strip.blank(width) for _ in range(self.lines)]

    def __repr__(self) -> str:
        return f"SpacerUnit(lines={self.lines})"


class TextUnit:
    """Single styled plain-text paragraph (labels, notices)."""

    def __init__(self, text: str, style: str = ""):
        self.text = text
        self.style = style

    def render(self, console: Console, width: int) -> list[Strip]:
        return _renderable_to_strips(Text(self.text, style=self.style), console, width)

    def __repr__(self) -> str:
        return f"TextUnit({self.text!r}, style={self.style!r})"


class MarkdownUnit:
    """Markdown document that keeps its rendered strips until text or width changes.

    Pooled by the view: streaming updates call set_text() on the same
    instance, so an unchanged block is never re-parsed.
    """

    def __init__(self, text: str, theme: ThemeColors, style: str | None = None):
        self._text = text
        self.theme = theme
        self.style = style
        self._cache_key: tuple[str, int] | None = None
        self._cache: list[Strip] = []

    @property
    def text(self) -> str:
        return self._text

    def set_text(self, text: str) -> None:
        if text == self._text:
            return
        self._text = text
        self._cache_key = None
        self._cache = []

    def _renderable(self) -> RenderableType:
        if self.style:
            return Markdown(self._text, code_theme=self.theme.code_theme, style=self.style)
        return Markdown(self._text, code_theme=self.theme.code_theme)

    def render(self, console: Console, width: int) -> list[Strip]:
        key = (self._text, width)
        if key == self._cache_key:
            return self._cache
        with console.use_theme(RichTheme(self.theme.markdown_theme_dict)):
            strips = _renderable_to_strips(self._renderable(), console, width)
        self._cache_key = key
        self._cache = strips
        return strips

    def __repr__(self) -> str:
        return f"MarkdownUnit({self._text[:30]!r}, style={self.style!r})"


def render_units(units: Iterable[RenderUnit], console: Console, width: int) -> list[Strip]:
    """Concatenate the strips of every unit, in order."""
    strips: list[Strip] = []
    with turnstream.io.perf_logging.trace_phase("render_units"):
        for unit in units:
            strips.extend(unit.render(console, width))
    return strips
