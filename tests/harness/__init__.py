"""Test harness for turnstream.

Re-exports all public API for convenient imports:
    from tests.harness import assistant, user, strips_to_text, ...
"""

from tests.harness.builders import (
    MODEL_A,
    MODEL_B,
    assistant,
    text_events,
    thinking,
    tool_call,
    tool_result,
    user,
)
from tests.harness.content import strip_lines, strips_to_text

__all__ = [
    "MODEL_A",
    "MODEL_B",
    "assistant",
    "text_events",
    "thinking",
    "tool_call",
    "tool_result",
    "user",
    "strip_lines",
    "strips_to_text",
]
