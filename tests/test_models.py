"""Tests for the chat model factory and the langchain-backed generator."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.messages import AIMessage
from langchain_openai import ChatOpenAI

from promptbench.config import EngineSettings, Settings
from promptbench.errors import GenerationError
from promptbench.models import (
    LangChainGenerator,
    _message_text,
    _token_usage,
    create_chat_model,
    resolve_llm_config,
)
from promptbench.schemas.evaluation import LLMConfig, TokenUsage


def _make_settings(**overrides):
    """Create a Settings object for testing."""
    defaults = {"openai_api_key": "test-key"}
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)


# ---------------------------------------------------------------------------
# Config resolution
# ---------------------------------------------------------------------------


class TestResolveLlmConfig:
    def test_none_uses_engine_defaults(self):
        llm = resolve_llm_config(None, EngineSettings())
        assert llm == LLMConfig(provider="openai", model="gpt-4", temperature=0.7, max_tokens=2000)

    def test_fills_unset_fields(self):
        llm = resolve_llm_config(LLMConfig(model="gpt-3.5-turbo"), EngineSettings())
        assert llm.model == "gpt-3.5-turbo"
        assert llm.temperature == 0.7
        assert llm.max_tokens == 2000

    def test_zero_temperature_kept(self):
        llm = resolve_llm_config(LLMConfig(model="m", temperature=0.0), EngineSettings())
        assert llm.temperature == 0.0


# ---------------------------------------------------------------------------
# create_chat_model
# ---------------------------------------------------------------------------


class TestCreateChatModel:
    def test_returns_chat_openai(self):
        llm = LLMConfig(model="gpt-4-turbo", temperature=0.2, max_tokens=256)
        model = create_chat_model(llm, settings=_make_settings(), timeout=30)
        assert isinstance(model, ChatOpenAI)
        assert model.model_name == "gpt-4-turbo"
        assert model.temperature == 0.2
        assert model.max_tokens == 256
        assert model.request_timeout == 30

    def test_base_url_passed_through(self):
        settings = _make_settings(openai_base_url="https://gateway.example/v1")
        model = create_chat_model(LLMConfig(model="m"), settings=settings)
        assert model.openai_api_base == "https://gateway.example/v1"

    def test_missing_api_key_raises(self):
        with pytest.raises(GenerationError, match="No API key"):
            create_chat_model(LLMConfig(model="m"), settings=_make_settings(openai_api_key=""))


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestResponseParsing:
    def test_string_content(self):
        assert _message_text(AIMessage(content="hello")) == "hello"

    def test_block_content(self):
        message = AIMessage(content=[{"type": "text", "text": "a"}, "b", {"type": "image_url"}])
        assert _message_text(message) == "ab"

    def test_usage_metadata(self):
        message = AIMessage(
            content="x",
            usage_metadata={"input_tokens": 12, "output_tokens": 3, "total_tokens": 15},
        )
        assert _token_usage(message) == TokenUsage(input_tokens=12, output_tokens=3)

    def test_no_usage_metadata(self):
        assert _token_usage(AIMessage(content="x")) is None


# ---------------------------------------------------------------------------
# LangChainGenerator
# ---------------------------------------------------------------------------


class TestLangChainGenerator:
    @pytest.mark.asyncio
    async def test_generates_with_injected_model(self):
        generator = LangChainGenerator(chat_model=FakeListChatModel(responses=["positive"]))
        result = await generator.generate("Classify: great")
        assert result.text == "positive"
        assert result.token_usage is None

    @pytest.mark.asyncio
    async def test_empty_completion_raises(self):
        generator = LangChainGenerator(chat_model=FakeListChatModel(responses=[""]))
        with pytest.raises(GenerationError, match="No completion"):
            await generator.generate("prompt")

    @pytest.mark.asyncio
    async def test_models_cached_per_config(self):
        fake = FakeListChatModel(responses=["a", "b", "c"])
        generator = LangChainGenerator(settings=_make_settings(), engine_settings=EngineSettings())
        with patch("promptbench.models.create_chat_model", return_value=fake) as factory:
            await generator.generate("p", LLMConfig(model="gpt-4"))
            await generator.generate("p", LLMConfig(model="gpt-4"))
            await generator.generate("p", LLMConfig(model="gpt-3.5-turbo"))
        assert factory.call_count == 2

    @pytest.mark.asyncio
    async def test_missing_key_surfaces_as_generation_error(self):
        generator = LangChainGenerator(settings=_make_settings(openai_api_key=""))
        with pytest.raises(GenerationError):
            await generator.generate("p", LLMConfig(model="gpt-4"))
