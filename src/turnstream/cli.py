"""CLI entry point for turnstream.

    turnstream [-v] normalize HISTORY.json --provider P --api A --model M [--no-remap]
    turnstream [-v] replay EVENTS.jsonl [--width N] [--[no-]hide-thinking] [--theme NAME]
                                        [--save-defaults]
"""

import argparse
import dataclasses
import json
import logging
import sys

from rich.console import Console
from rich.segment import Segment, Segments
from textual.theme import BUILTIN_THEMES

import turnstream.io.logging_setup
import turnstream.io.perf_logging
import turnstream.settings
from turnstream.conversation import ModelIdentity, message_from_dict, message_to_dict
from turnstream.normalizer import normalize_history
from turnstream.providers import all_provider_specs, is_known_provider, normalize_tool_call_id
from turnstream.sanitize import sanitize_message
from turnstream.streaming import StreamEventError, drive_view, load_events_jsonl
from turnstream.tui.assistant_message import AssistantMessageView
from turnstream.tui.rendering import build_theme_colors

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BAD_INPUT = 2
DEFAULT_THEME = "textual-dark"
DEFAULT_WIDTH = 80


def _fail(message: str) -> int:
    # The stderr handler installed by logging_setup.configure() prints this.
    logger.error(message)
    return EXIT_BAD_INPUT


def _cmd_normalize(args: argparse.Namespace) -> int:
    try:
        with open(args.history, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        return _fail(f"cannot read {args.history}: {exc}")
    if not isinstance(raw, list):
        return _fail(f"{args.history}: expected a JSON array of messages")
    try:
        # Sanitize first: a block that was only lone surrogates is then empty
        # and normalization drops it.
        messages = [sanitize_message(message_from_dict(item)) for item in raw]
    except ValueError as exc:
        return _fail(f"{args.history}: {exc}")

    if not is_known_provider(args.provider):
        known = ", ".join(spec.key for spec in all_provider_specs())
        logger.warning(
            "unknown provider %r (known: %s); tool-call ids will not be constrained",
            args.provider,
            known,
        )
    target = ModelIdentity(provider=args.provider, api=args.api, model_id=args.model)
    id_remap = None if args.no_remap else normalize_tool_call_id

    turnstream.io.perf_logging.start_trace()
    normalized = normalize_history(messages, target, id_remap=id_remap)
    turnstream.io.perf_logging.end_trace()
    logger.info("normalized %d messages into %d for %s", len(messages), len(normalized), target)

    print(json.dumps([message_to_dict(m) for m in normalized], indent=2, ensure_ascii=False))
    return EXIT_OK


def _replay_preferences(args: argparse.Namespace) -> turnstream.settings.Preferences:
    """Stored preferences overridden by whichever flags were given."""
    stored = turnstream.settings.load_preferences()
    overrides = {
        key: value
        for key, value in (
            ("theme", args.theme),
            ("hide_thinking_block", args.hide_thinking),
            ("width", args.width),
        )
        if value is not None
    }
    return dataclasses.replace(stored, **overrides)


def _cmd_replay(args: argparse.Namespace) -> int:
    if args.width is not None and args.width <= 0:
        return _fail(f"--width must be positive, got {args.width}")
    prefs = _replay_preferences(args)
    theme_name = prefs.theme or DEFAULT_THEME
    textual_theme = BUILTIN_THEMES.get(theme_name)
    if textual_theme is None:
        return _fail(f"unknown theme {theme_name!r}; choose from: {', '.join(sorted(BUILTIN_THEMES))}")
    width = prefs.width or DEFAULT_WIDTH

    try:
        events = load_events_jsonl(args.events)
    except OSError as exc:
        return _fail(f"cannot read {args.events}: {exc}")
    except StreamEventError as exc:
        return _fail(f"{args.events}: {exc}")

    view = AssistantMessageView(
        hide_thinking_block=prefs.hide_thinking_block,
        theme=build_theme_colors(textual_theme),
    )
    turnstream.io.perf_logging.start_trace()
    try:
        drive_view(view, events)
    except StreamEventError as exc:
        return _fail(f"{args.events}: {exc}")
    # Recorded streams may be cut before their terminal event; show everything.
    view.finalize()

    console = Console(width=width)
    strips = view.render(console, width)
    turnstream.io.perf_logging.end_trace()
    logger.info("replayed %d events into %d lines", len(events), len(strips))

    segments: list[Segment] = []
    for strip in strips:
        segments.extend(strip)
        segments.append(Segment.line())
    console.print(Segments(segments), end="")

    if args.save_defaults:
        turnstream.settings.save_preferences(prefs)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="turnstream",
        description="Normalize LLM conversation history and replay streamed assistant turns",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Show debug diagnostics on stderr",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    norm = sub.add_parser("normalize", help="Normalize a history JSON file for a target model")
    norm.add_argument("history", help="Path to a JSON array of messages")
    norm.add_argument(
        "--provider",
        required=True,
        help="Target provider ({})".format(", ".join(spec.key for spec in all_provider_specs())),
    )
    norm.add_argument("--api", required=True, help="Target API (e.g. messages, responses)")
    norm.add_argument("--model", required=True, help="Target model id")
    norm.add_argument(
        "--no-remap",
        action="store_true",
        default=False,
        help="Keep tool-call ids as recorded",
    )
    norm.set_defaults(func=_cmd_normalize)

    replay = sub.add_parser("replay", help="Render a recorded event stream (JSON Lines)")
    replay.add_argument("events", help="Path to a .jsonl event recording")
    replay.add_argument(
        "--width",
        type=int,
        default=None,
        help=f"Render width (default: from settings, else {DEFAULT_WIDTH})",
    )
    replay.add_argument(
        "--hide-thinking",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Collapse thinking blocks to a label (default: from settings)",
    )
    replay.add_argument("--theme", type=str, default=None, help="Textual theme name (default: from settings)")
    replay.add_argument(
        "--save-defaults",
        action="store_true",
        default=False,
        help="Store the effective theme, width and thinking choice as defaults",
    )
    replay.set_defaults(func=_cmd_replay)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    options = turnstream.io.logging_setup.configure(
        session_name=f"turnstream-{args.command}",
        verbose=args.verbose,
    )
    logger.debug("runtime options %s", options)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
