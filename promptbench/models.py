"""Text generation collaborator.

The batch runner only depends on the ``TextGenerator`` protocol. This module
also provides the production implementation, ``LangChainGenerator``, which
sends each resolved prompt to a langchain chat model.

Chat models are built per variant model configuration with ``ChatOpenAI``
against an OpenAI-compatible endpoint (``OPENAI_BASE_URL`` lets the same
client reach OpenRouter-style gateways for other providers).
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage
from langchain_openai import ChatOpenAI

from promptbench.config import EngineSettings, Settings, get_engine_settings, get_settings
from promptbench.errors import GenerationError
from promptbench.schemas.evaluation import GenerationResult, LLMConfig, TokenUsage

logger = structlog.get_logger(__name__)


class TextGenerator(Protocol):
    """Anything that can turn a prompt into a completion."""

    async def generate(
        self, prompt: str, llm: LLMConfig | None = None
    ) -> GenerationResult: ...


# ---------------------------------------------------------------------------
# Chat model factory
# ---------------------------------------------------------------------------


def resolve_llm_config(
    llm: LLMConfig | None, engine_settings: EngineSettings | None = None
) -> LLMConfig:
    """Fill unset generation parameters from engine.toml [defaults]."""
    defaults = (engine_settings or get_engine_settings()).defaults
    if llm is None:
        return defaults.as_llm_config()
    return LLMConfig(
        provider=llm.provider,
        model=llm.model,
        temperature=llm.temperature if llm.temperature is not None else defaults.temperature,
        max_tokens=llm.max_tokens or defaults.max_tokens,
    )


def create_chat_model(
    llm: LLMConfig,
    settings: Settings | None = None,
    timeout: float | None = None,
) -> BaseChatModel:
    """Create a chat model for one resolved LLMConfig.

    Raises:
        GenerationError: No API key is configured.
    """
    if settings is None:
        settings = get_settings()
    if not settings.openai_api_key:
        raise GenerationError("No API key available for LLM evaluation")

    kwargs: dict[str, Any] = dict(
        model=llm.model,
        temperature=llm.temperature,
        api_key=settings.openai_api_key,
        timeout=timeout,
    )
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url
    if llm.max_tokens is not None:
        kwargs["max_tokens"] = llm.max_tokens

    logger.debug("chat_model_created", provider=llm.provider, model=llm.model)
    return ChatOpenAI(**kwargs)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _token_usage(message: BaseMessage) -> TokenUsage | None:
    usage = getattr(message, "usage_metadata", None)
    if not usage:
        return None
    return TokenUsage(
        input_tokens=usage.get("input_tokens", 0),
        output_tokens=usage.get("output_tokens", 0),
    )


class LangChainGenerator:
    """TextGenerator backed by langchain chat models.

    Args:
        chat_model: Use this model for every call instead of building one per
            variant configuration. Handy for tests and custom providers.
        settings: Environment settings (API key, base URL).
        engine_settings: engine.toml settings (generation defaults).
    """

    def __init__(
        self,
        chat_model: BaseChatModel | None = None,
        settings: Settings | None = None,
        engine_settings: EngineSettings | None = None,
    ) -> None:
        self._chat_model = chat_model
        self._settings = settings
        self._engine_settings = engine_settings
        self._models: dict[tuple[Any, ...], BaseChatModel] = {}

    def _model_for(self, llm: LLMConfig | None) -> BaseChatModel:
        if self._chat_model is not None:
            return self._chat_model
        resolved = resolve_llm_config(llm, self._engine_settings)
        key = (resolved.provider, resolved.model, resolved.temperature, resolved.max_tokens)
        if key not in self._models:
            self._models[key] = create_chat_model(resolved, self._settings)
        return self._models[key]

    async def generate(
        self, prompt: str, llm: LLMConfig | None = None
    ) -> GenerationResult:
        """Send one prompt as a user message and return the completion.

        Raises:
            GenerationError: The model returned no text.
        """
        model = self._model_for(llm)
        response = await model.ainvoke([HumanMessage(content=prompt)])
        text = _message_text(response)
        if not text:
            raise GenerationError("No completion received from LLM")
        return GenerationResult(text=text, token_usage=_token_usage(response))
