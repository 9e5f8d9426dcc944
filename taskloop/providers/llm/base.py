"""
LLM provider contract.

The completion service sends either a system + user pair (structured
judgments, JSON mode) or a single user message (next-action generation)
and only reads the generated text back. Token usage is kept for logging.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"


@dataclass
class Message:
    """One prompt message; `system` carries the output-format instructions."""

    role: MessageRole
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)


@dataclass
class LLMResponse:
    """
    Text produced for one prompt.

    usage holds "input_tokens" and "output_tokens" whatever the SDK calls
    them.
    """

    content: str
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str = "stop"
    provider: str = ""

    @property
    def total_tokens(self) -> int:
        return self.usage.get("input_tokens", 0) + self.usage.get("output_tokens", 0)


@dataclass
class LLMConfig:
    """
    Per-request settings chosen by the completion service.

    model is the small or large model name for the request (None: the
    provider's default); response_format "json" asks for JSON mode where
    the provider has one.
    """

    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1024
    response_format: str | None = None


@runtime_checkable
class LLMProvider(Protocol):
    """What LLMCompletionService needs from a model backend."""

    @property
    def name(self) -> str: ...

    async def complete(
        self,
        messages: list[Message],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """
        Raises:
            Exception: Any SDK error; the completion service turns it into
                ServiceFailure
        """
        ...


class BaseLLMProvider(ABC):
    """Shared default-model handling for the SDK-backed providers."""

    def __init__(self, default_model: str = ""):
        self.default_model = default_model

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}', model='{self.default_model}')"
