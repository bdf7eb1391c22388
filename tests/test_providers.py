"""Tests for the provider registry and default tool-call id remap."""

import re

import pytest

from turnstream.conversation import ModelIdentity
from turnstream.providers import (
    ProviderSpec,
    all_provider_specs,
    get_provider_spec,
    is_known_provider,
    is_same_model,
    normalize_provider,
    normalize_tool_call_id,
)
from tests.harness import MODEL_A, MODEL_B, assistant


def _target(provider):
    return ModelIdentity(provider=provider, api="api", model_id="model")


class TestRegistry:
    def test_normalize_provider(self):
        assert normalize_provider("  OpenAI ") == "openai"
        assert normalize_provider(None) == ""

    def test_known_providers(self):
        keys = {spec.key for spec in all_provider_specs()}
        assert {"anthropic", "openai", "mistral", "google"} <= keys
        assert is_known_provider("Anthropic")
        assert not is_known_provider("acme")

    def test_unknown_provider_is_permissive(self):
        spec = get_provider_spec("acme")
        assert isinstance(spec, ProviderSpec)
        assert spec.tool_call_id_max_len is None
        assert spec.tool_call_id_disallowed is None


class TestIsSameModel:
    def test_same_triple(self):
        assert is_same_model(assistant("x", model=MODEL_A), MODEL_A)

    def test_any_field_differs(self):
        assert not is_same_model(assistant("x", model=MODEL_B), MODEL_A)
        other_api = ModelIdentity(MODEL_A.provider, "bedrock", MODEL_A.model_id)
        assert not is_same_model(assistant("x", model=MODEL_A), other_api)


class TestNormalizeToolCallId:
    @pytest.mark.parametrize("provider", ["anthropic", "openai", "google", "acme"])
    def test_conforming_id_unchanged(self, provider):
        assert normalize_tool_call_id("toolu_01ABC-def", _target(provider)) == "toolu_01ABC-def"

    def test_disallowed_characters_replaced(self):
        assert normalize_tool_call_id("call|fc_1.x", _target("anthropic")) == "call_fc_1_x"

    def test_long_ids_are_truncated_with_digest(self):
        long_a = "call_" + "a" * 80
        long_b = "call_" + "a" * 79 + "b"
        out_a = normalize_tool_call_id(long_a, _target("openai"))
        out_b = normalize_tool_call_id(long_b, _target("openai"))
        assert len(out_a) <= 40
        assert len(out_b) <= 40
        assert out_a != out_b
        assert out_a.startswith("call_aaa")

    def test_mistral_ids_are_nine_alphanumerics(self):
        out = normalize_tool_call_id("toolu_01ABCDEF", _target("mistral"))
        assert re.fullmatch(r"[a-zA-Z0-9]{9}", out)
        assert normalize_tool_call_id("abcDEF123", _target("mistral")) == "abcDEF123"

    @pytest.mark.parametrize("provider", ["anthropic", "openai", "mistral"])
    @pytest.mark.parametrize("raw", ["x" * 200, "a.b.c", "call|1", "ok_id"])
    def test_idempotent(self, provider, raw):
        once = normalize_tool_call_id(raw, _target(provider))
        assert normalize_tool_call_id(once, _target(provider)) == once

    def test_deterministic(self):
        raw = "id with spaces " * 10
        target = _target("anthropic")
        assert normalize_tool_call_id(raw, target) == normalize_tool_call_id(raw, target)
