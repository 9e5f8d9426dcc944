"""
Completion Service.

The core asks the language model for two kinds of output:
- structured results (judgments, reconciliation batches) validated
  against a Pydantic shape
- free-form next-action messages

Every failure (provider error, unparsable output, schema mismatch) is
raised as ServiceFailure. Callers decide whether that means "no effect
this cycle".

Usage:
    service = LLMCompletionService(llm=OpenAILLMProvider(api_key=...))

    verdict = await service.generate_structured(prompt, TaskCompletion)
    content = await service.generate_freeform(prompt)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from taskloop.errors import ServiceFailure
from taskloop.providers.llm.base import LLMConfig, Message
from taskloop.utils.json_parser import load_json_object

from .templates import STRUCTURED_SYSTEM_PROMPT

if TYPE_CHECKING:
    from taskloop.providers.llm.base import LLMProvider

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class ModelClass(str, Enum):
    """Model size used for a request."""

    SMALL = "small"  # Judgment and reconciliation
    LARGE = "large"  # Next-action generation


@dataclass(frozen=True)
class Content:
    """
    A free-form agent message.

    Attributes:
        text: Message text
        action: Name of the action the message asks for, if any
        extra: Any other fields the model returned
    """

    text: str
    action: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {**self.extra, "text": self.text}
        if self.action:
            data["action"] = self.action
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Content:
        extra = {k: v for k, v in data.items() if k not in ("text", "action")}
        # Only a named action is dispatchable
        action = data.get("action")
        if not isinstance(action, str) or action.strip().upper() in ("", "NONE"):
            action = None
        return cls(
            text=str(data.get("text", "")),
            action=action,
            extra=extra,
        )


class CompletionService(Protocol):
    """Contract between the core and the language model."""

    async def generate_structured(
        self,
        context: str,
        schema: type[M],
        model_class: ModelClass = ModelClass.SMALL,
    ) -> M:
        """
        Produce a result conforming to schema.

        Raises:
            ServiceFailure: On any failure or malformed result
        """
        ...

    async def generate_freeform(
        self,
        context: str,
        model_class: ModelClass = ModelClass.LARGE,
    ) -> Content | None:
        """
        Produce the agent's next message, or None if nothing was generated.

        Raises:
            ServiceFailure: On provider failure
        """
        ...


class LLMCompletionService:
    """
    CompletionService backed by an LLMProvider.

    SMALL and LARGE requests are routed to two configurable model names;
    None means the provider's default model.
    """

    def __init__(
        self,
        llm: LLMProvider,
        *,
        small_model: str | None = None,
        large_model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ):
        self._llm = llm
        self._models = {ModelClass.SMALL: small_model, ModelClass.LARGE: large_model}
        self._temperature = temperature
        self._max_tokens = max_tokens

    def _config(self, model_class: ModelClass, *, json_mode: bool) -> LLMConfig:
        return LLMConfig(
            model=self._models[model_class],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            response_format="json" if json_mode else None,
        )

    async def _complete(self, messages: list[Message], config: LLMConfig) -> str:
        try:
            response = await self._llm.complete(messages=messages, config=config)
        except Exception as e:
            logger.error(f"[completion] {self._llm.name} request failed: {e}")
            raise ServiceFailure(f"Completion request failed: {e}", cause=e) from e
        return response.content

    async def generate_structured(
        self,
        context: str,
        schema: type[M],
        model_class: ModelClass = ModelClass.SMALL,
    ) -> M:
        messages = [Message.system(STRUCTURED_SYSTEM_PROMPT), Message.user(context)]
        content = await self._complete(messages, self._config(model_class, json_mode=True))

        try:
            data = load_json_object(content)
        except ValueError as e:
            logger.warning(f"[completion] Unparsable {schema.__name__} response: {content[:100]}")
            raise ServiceFailure(f"Malformed {schema.__name__} response: {e}", cause=e) from e

        try:
            result = schema.model_validate(data)
        except SchemaValidationError as e:
            logger.warning(
                f"[completion] {schema.__name__} validation failed: {e.error_count()} errors"
            )
            logger.debug(f"[completion] Validation errors: {e.errors()}")
            raise ServiceFailure(f"Invalid {schema.__name__} response", cause=e) from e

        logger.debug(f"[completion] Structured {schema.__name__} result received")
        return result

    async def generate_freeform(
        self,
        context: str,
        model_class: ModelClass = ModelClass.LARGE,
    ) -> Content | None:
        messages = [Message.user(context)]
        text = await self._complete(messages, self._config(model_class, json_mode=False))

        if not text or not text.strip():
            return None

        try:
            content = Content.from_dict(load_json_object(text))
        except ValueError:
            # Plain prose is a valid message
            content = Content(text=text.strip())

        if not content.text.strip():
            return None
        return content
