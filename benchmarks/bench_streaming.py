"""Repeatable benchmark for streamed-turn rendering and history normalization.

Generates a synthetic event stream for one assistant turn (thinking block,
then a markdown answer in token-sized deltas) and measures per-event latency
of snapshot assembly, view update and render. A second stage times
normalize_history over a long cross-model conversation.

Usage:
    python benchmarks/bench_streaming.py             # default 500 deltas
    python benchmarks/bench_streaming.py --deltas 2000
    python benchmarks/bench_streaming.py --json       # machine-readable output
"""

import argparse
import io
import json
import statistics
import sys
import time
import tracemalloc

from rich.console import Console
from textual.theme import BUILTIN_THEMES

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
from turnstream.normalizer import normalize_history
from turnstream.providers import normalize_tool_call_id
from turnstream.streaming import (
    DoneEvent,
    SnapshotAssembler,
    StreamEvent,
    TextDeltaEvent,
    ThinkingDeltaEvent,
    ThinkingEndEvent,
)
from turnstream.tui.assistant_message import AssistantMessageView
from turnstream.tui.rendering import set_theme

_MODEL_A = ModelIdentity("anthropic", "messages", "claude-sonnet-4-5")
_MODEL_B = ModelIdentity("openai", "responses", "gpt-5")

# Realistic token-sized chunks; some end lines so the buffer releases text.
_CHUNKS = [
    "Here's ", "how ", "to ", "fix ", "the ", "authentication ", "issue:\n",
    "\n", "The ", "problem ", "is ", "in ", "your ", "middleware.\n",
    "```python\n", "app.use(auth(refresh=True))\n", "```\n",
    "- Added ", "`refresh` ", "to ", "enable ", "token ", "refresh\n",
]


def generate_stream(n_deltas: int) -> list[StreamEvent]:
    """Build an event sequence: thinking deltas, N text deltas, done."""
    events: list[StreamEvent] = [
        ThinkingDeltaEvent(index=0, delta="Let me look at the middleware.\n"),
        ThinkingDeltaEvent(index=0, delta="The refresh handler is missing."),
        ThinkingEndEvent(index=0, thinking_signature="sig-bench"),
    ]
    for i in range(n_deltas):
        events.append(TextDeltaEvent(index=1, delta=_CHUNKS[i % len(_CHUNKS)]))
    events.append(DoneEvent(StopReason.STOP))
    return events


def generate_history(n_turns: int) -> list:
    """Alternate models every turn, with one tool call per turn and some orphans."""
    messages: list = []
    for turn in range(n_turns):
        model = _MODEL_A if turn % 2 == 0 else _MODEL_B
        call_id = f"call|{turn}|" + "x" * 80
        messages.append(UserMessage(content=f"question {turn}", timestamp=turn * 10))
        messages.append(AssistantMessage(
            content=[
                ThinkingContent(thinking=f"reasoning {turn}", thinking_signature="sig"),
                TextContent(text=f"answer {turn}"),
                ToolCall(id=call_id, name="read", arguments={"path": f"f{turn}.py"}),
            ],
            model=model,
            stop_reason=StopReason.TOOL_USE,
            timestamp=turn * 10 + 1,
        ))
        if turn % 3:
            messages.append(ToolResultMessage(
                tool_call_id=call_id,
                tool_name="read",
                content=[TextContent(text="contents")],
                is_error=False,
                timestamp=turn * 10 + 2,
            ))
    return messages


def _stats(samples_ns: list[int]) -> dict:
    us = [s / 1000 for s in samples_ns]
    if len(us) < 2:
        cuts = us * 99 if us else [0.0] * 99
    else:
        cuts = statistics.quantiles(us, n=100, method="inclusive")
    return {
        "count": len(us),
        "min_us": round(min(us, default=0.0), 2),
        "max_us": round(max(us, default=0.0), 2),
        "mean_us": round(statistics.fmean(us) if us else 0.0, 2),
        "p50_us": round(cuts[49], 2),
        "p95_us": round(cuts[94], 2),
        "p99_us": round(cuts[98], 2),
    }


def run_benchmark(n_deltas: int, width: int = 100, n_turns: int = 200) -> dict:
    """Run both stages and return a results dict."""
    set_theme(BUILTIN_THEMES["textual-dark"])
    console = Console(width=width, force_terminal=True, color_system="truecolor", file=io.StringIO())
    events = generate_stream(n_deltas)

    assemble_ns: list[int] = []
    update_ns: list[int] = []
    render_ns: list[int] = []

    tracemalloc.start()
    wall_start = time.monotonic_ns()

    asm = SnapshotAssembler(_MODEL_A)
    view = AssistantMessageView()
    for event in events:
        t0 = time.monotonic_ns()
        snapshot = asm.apply(event)
        t1 = time.monotonic_ns()
        view.update(snapshot)
        t2 = time.monotonic_ns()
        view.render(console, width)
        t3 = time.monotonic_ns()
        assemble_ns.append(t1 - t0)
        update_ns.append(t2 - t1)
        render_ns.append(t3 - t2)

    t0 = time.monotonic_ns()
    view.finalize()
    view.render(console, width)
    finalize_ns = time.monotonic_ns() - t0

    wall_elapsed_ns = time.monotonic_ns() - wall_start
    mem_current, mem_peak = tracemalloc.get_traced_memory()
    tracemalloc.stop()

    history = generate_history(n_turns)
    normalize_ns: list[int] = []
    for _ in range(5):
        t0 = time.monotonic_ns()
        normalize_history(history, _MODEL_B, normalize_tool_call_id)
        normalize_ns.append(time.monotonic_ns() - t0)

    return {
        "n_deltas": n_deltas,
        "n_events": len(events),
        "width": width,
        "wall_time_ms": wall_elapsed_ns / 1_000_000,
        "finalize_ms": finalize_ns / 1_000_000,
        "mem_peak_kb": mem_peak / 1024,
        "mem_current_kb": mem_current / 1024,
        "history_messages": len(history),
        "stages": {
            "assemble": _stats(assemble_ns),
            "update": _stats(update_ns),
            "render": _stats(render_ns),
            "normalize_history": _stats(normalize_ns),
        },
    }


def print_report(results: dict) -> None:
    """Print a human-readable benchmark report."""
    print(f"\n{'='*60}")
    print("  Streaming Render Benchmark")
    print(f"{'='*60}")
    print(f"  Events:     {results['n_events']} ({results['n_deltas']} text deltas)")
    print(f"  Width:      {results['width']} cells")
    print(f"  Wall time:  {results['wall_time_ms']:.1f} ms "
          f"(finalize {results['finalize_ms']:.2f} ms)")
    print(f"  Memory:     {results['mem_peak_kb']:.0f} KB peak, "
          f"{results['mem_current_kb']:.0f} KB current")
    print(f"  History:    {results['history_messages']} messages")
    print()

    for stage_name, stats in results["stages"].items():
        print(f"  [{stage_name}] ({stats['count']} samples)")
        print(f"    min={stats['min_us']:.1f}us  "
              f"p50={stats['p50_us']:.1f}us  "
              f"p95={stats['p95_us']:.1f}us  "
              f"p99={stats['p99_us']:.1f}us  "
              f"max={stats['max_us']:.1f}us")
        print()

    print(f"{'='*60}\n")


def main() -> None:
    parser = argparse.ArgumentParser(description="Streaming render benchmark")
    parser.add_argument("--deltas", type=int, default=500,
                        help="Number of text delta events (default: 500)")
    parser.add_argument("--width", type=int, default=100,
                        help="Render width in cells (default: 100)")
    parser.add_argument("--turns", type=int, default=200,
                        help="Assistant turns in the normalized history (default: 200)")
    parser.add_argument("--json", action="store_true",
                        help="Output machine-readable JSON")
    args = parser.parse_args()

    results = run_benchmark(args.deltas, width=args.width, n_turns=args.turns)

    if args.json:
        json.dump(results, sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        print_report(results)


if __name__ == "__main__":
    main()
