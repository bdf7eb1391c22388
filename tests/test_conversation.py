"""Tests for the conversation model and its dict codec."""

import pytest

from turnstream.conversation import (
    AssistantMessage,
    ImageContent,
    MessageFormatError,
    ModelIdentity,
    StopReason,
    TextContent,
    ThinkingContent,
    ToolCall,
    ToolResultMessage,
    Usage,
    UserMessage,
    block_from_dict,
    block_to_dict,
    message_from_dict,
    message_to_dict,
)

MODEL = {"provider": "anthropic", "api": "messages", "model_id": "claude-sonnet-4-5"}


class TestModel:
    def test_identity_equality_is_triple_equality(self):
        a = ModelIdentity("anthropic", "messages", "m1")
        assert a == ModelIdentity("anthropic", "messages", "m1")
        assert a != ModelIdentity("anthropic", "bedrock", "m1")
        assert str(a) == "anthropic/messages/m1"

    def test_assistant_tool_call_helpers(self):
        call = ToolCall(id="a", name="read")
        message = AssistantMessage(
            content=[TextContent(text="x"), call],
            model=ModelIdentity("p", "a", "m"),
        )
        assert message.tool_calls == [call]
        assert message.has_tool_calls
        assert not AssistantMessage(content=[], model=message.model).has_tool_calls

    def test_usage_total(self):
        assert Usage(input=1, output=2, cache_read=3, cache_write=4).total == 10

    def test_messages_are_frozen(self):
        message = UserMessage(content="hi")
        with pytest.raises(AttributeError):
            message.content = "changed"


class TestBlockCodec:
    def test_text_without_signature_omits_key(self):
        assert block_to_dict(TextContent(text="hi")) == {"type": "text", "text": "hi"}

    def test_thinking_with_signature(self):
        block = block_from_dict({"type": "thinking", "thinking": "t", "thinking_signature": "s"})
        assert block == ThinkingContent(thinking="t", thinking_signature="s")
        assert block_to_dict(block)["thinking_signature"] == "s"

    def test_tool_call(self):
        block = block_from_dict({"type": "tool_call", "id": "c", "name": "bash", "arguments": {"cmd": "ls"}})
        assert block == ToolCall(id="c", name="bash", arguments={"cmd": "ls"})

    def test_image_default_mime(self):
        assert block_from_dict({"type": "image", "data": "AAAA"}) == ImageContent(data="AAAA")

    @pytest.mark.parametrize(
        "raw",
        [
            {"type": "video"},
            {"type": "text"},
            {"type": "tool_call", "id": "c"},
            {"type": "tool_call", "id": "c", "name": "n", "arguments": "[]"},
            "text",
        ],
    )
    def test_invalid_blocks_raise(self, raw):
        with pytest.raises(MessageFormatError):
            block_from_dict(raw)


class TestMessageCodec:
    def test_user_string_content(self):
        assert message_from_dict({"role": "user", "content": "hi", "timestamp": 5}) == UserMessage("hi", 5)

    def test_user_block_content(self):
        message = message_from_dict({"role": "user", "content": [{"type": "text", "text": "hi"}]})
        assert message.content == [TextContent(text="hi")]

    def test_assistant(self):
        message = message_from_dict({
            "role": "assistant",
            "content": [{"type": "text", "text": "ok"}],
            "model": MODEL,
            "stop_reason": "aborted",
            "error_message": "Request was aborted",
            "usage": {"input": 3, "output": 4},
        })
        assert message.stop_reason is StopReason.ABORTED
        assert message.error_message == "Request was aborted"
        assert message.usage == Usage(input=3, output=4)
        assert message.model == ModelIdentity(**MODEL)

    def test_assistant_defaults_to_stop(self):
        message = message_from_dict({"role": "assistant", "content": [], "model": MODEL})
        assert message.stop_reason is StopReason.STOP

    def test_tool_result(self):
        message = message_from_dict({
            "role": "tool_result",
            "tool_call_id": "c",
            "tool_name": "bash",
            "content": [{"type": "text", "text": "out"}],
            "is_error": True,
        })
        assert message == ToolResultMessage(
            tool_call_id="c", tool_name="bash", content=[TextContent(text="out")], is_error=True
        )

    def test_encode_decode_preserves_messages(self):
        messages = [
            UserMessage(content="hi", timestamp=1),
            AssistantMessage(
                content=[ThinkingContent("t", "sig"), ToolCall("c", "read", {"p": 1}, "ts")],
                model=ModelIdentity(**MODEL),
                stop_reason=StopReason.TOOL_USE,
                usage=Usage(1, 2, 3, 4),
                timestamp=2,
            ),
            ToolResultMessage(tool_call_id="c", tool_name="read", content=[ImageContent("AAAA", "image/jpeg")]),
        ]
        assert [message_from_dict(message_to_dict(m)) for m in messages] == messages

    @pytest.mark.parametrize(
        "raw,match",
        [
            ({"role": "system", "content": "x"}, "unknown message role"),
            ({"role": "assistant", "content": []}, "missing required key 'model'"),
            ({"role": "assistant", "content": [], "model": MODEL, "stop_reason": "weird"}, "stop_reason"),
            ({"role": "assistant", "content": {}, "model": MODEL}, "must be a list"),
            ({"role": "tool_result", "content": []}, "tool_call_id"),
            ([], "must be an object"),
        ],
    )
    def test_invalid_messages_raise(self, raw, match):
        with pytest.raises(MessageFormatError, match=match):
            message_from_dict(raw)

    def test_format_error_is_value_error(self):
        with pytest.raises(ValueError):
            message_from_dict({"role": 1})
