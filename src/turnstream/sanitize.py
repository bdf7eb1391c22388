"""Unpaired-surrogate removal for text headed to a provider.

Lone UTF-16 surrogates (U+D800-U+DFFF without their partner) make most JSON
encoders and provider APIs reject the whole request. They show up in Python
strings decoded with ``surrogateescape`` or parsed from JSON ``\\ud83d``-style
escapes that were cut mid-pair.
"""

from __future__ import annotations

import dataclasses
import re

from turnstream.conversation import (
    AssistantMessage,
    Message,
    TextContent,
    ThinkingContent,
    ToolResultMessage,
    UserMessage,
)

_UNPAIRED_SURROGATE = re.compile(
    "[\ud800-\udbff](?![\udc00-\udfff])|(?<![\ud800-\udbff])[\udc00-\udfff]"
)

# Fast check: no code point in the surrogate range means nothing to strip.
_HAS_SURROGATE_RANGE = re.compile("[\ud800-\udfff]")


def sanitize_surrogates(text: str) -> str:
    """Remove unpaired surrogates; properly paired ones are preserved."""
    if not _HAS_SURROGATE_RANGE.search(text):
        return text
    return _UNPAIRED_SURROGATE.sub("", text)


def _sanitize_block(block):
    if isinstance(block, TextContent):
        clean = sanitize_surrogates(block.text)
        return block if clean == block.text else dataclasses.replace(block, text=clean)
    if isinstance(block, ThinkingContent):
        clean = sanitize_surrogates(block.thinking)
        return block if clean == block.thinking else dataclasses.replace(block, thinking=clean)
    return block


def sanitize_message(message: Message) -> Message:
    """Return message with every text field passed through sanitize_surrogates."""
    if isinstance(message, UserMessage):
        if isinstance(message.content, str):
            return dataclasses.replace(message, content=sanitize_surrogates(message.content))
        return dataclasses.replace(message, content=[_sanitize_block(b) for b in message.content])
    if isinstance(message, (AssistantMessage, ToolResultMessage)):
        return dataclasses.replace(message, content=[_sanitize_block(b) for b in message.content])
    return message
