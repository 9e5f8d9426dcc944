"""
OpenAI and Anthropic LLM providers.

Both SDKs are imported lazily so only the configured one must be installed.
"""

from __future__ import annotations

import logging
from typing import Any

from .base import BaseLLMProvider, LLMConfig, LLMResponse, Message, MessageRole

logger = logging.getLogger(__name__)


class OpenAILLMProvider(BaseLLMProvider):
    """
    OpenAI Chat Completions provider.

    Requirements:
    - openai package
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        organization: str | None = None,
    ):
        super().__init__(default_model=model)
        self._api_key = api_key
        self._organization = organization
        self._client = None  # Lazy initialization

    @property
    def name(self) -> str:
        return "openai"

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError:
                raise ImportError(
                    "openai package is required for OpenAI LLM. Install with: pip install openai"
                )
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                organization=self._organization,
            )
        return self._client

    async def complete(
        self,
        messages: list[Message],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        if config is None:
            config = LLMConfig()

        client = self._get_client()

        params: dict[str, Any] = {
            "model": config.model or self.default_model,
            "messages": [m.to_dict() for m in messages],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if config.response_format == "json":
            params["response_format"] = {"type": "json_object"}

        try:
            response = await client.chat.completions.create(**params)
        except Exception as e:
            logger.error(f"OpenAI completion error: {e}", exc_info=True)
            raise

        choice = response.choices[0]
        usage = {}
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }

        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage=usage,
            finish_reason=choice.finish_reason or "stop",
            provider=self.name,
        )


class AnthropicLLMProvider(BaseLLMProvider):
    """
    Anthropic Messages API provider.

    Anthropic has no JSON mode; JSON requests rely on the prompt and the
    tolerant parser in the completion service.

    Requirements:
    - anthropic package
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-latest",
    ):
        super().__init__(default_model=model)
        self._api_key = api_key
        self._client = None

    @property
    def name(self) -> str:
        return "anthropic"

    def _get_client(self):
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError:
                raise ImportError(
                    "anthropic package is required for Anthropic LLM. "
                    "Install with: pip install anthropic"
                )
            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def complete(
        self,
        messages: list[Message],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        if config is None:
            config = LLMConfig()

        client = self._get_client()

        # System prompt travels separately
        system_prompt = "\n\n".join(m.content for m in messages if m.role == MessageRole.SYSTEM)
        conversation = [m.to_dict() for m in messages if m.role != MessageRole.SYSTEM]

        try:
            response = await client.messages.create(
                model=config.model or self.default_model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                system=system_prompt,
                messages=conversation,
            )
        except Exception as e:
            logger.error(f"Anthropic completion error: {e}", exc_info=True)
            raise

        content = response.content[0].text if response.content else ""

        return LLMResponse(
            content=content,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            finish_reason=response.stop_reason or "end_turn",
            provider=self.name,
        )
