"""
Domain types for the taskloop core.

Task, Trigger and Note are immutable dataclasses. A changed value is a new
instance (dataclasses.replace) written through its manager, which persists
it as a new record. Each type knows how to convert to and from the opaque
record content it is stored as; mutable payloads (task data, trigger
params, note values) are copied across that boundary.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TriggerType(str, Enum):
    """Kinds of activation conditions."""

    POLLING = "polling"  # Fixed-interval heartbeat
    DYNAMIC = "dynamic"  # Debounced natural-language predicate
    PRICE = "price"  # Price threshold (not implemented)


class TaskStatus(str, Enum):
    """Task lifecycle states. COMPLETED is terminal."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def _parse_trigger_type(value: Any) -> TriggerType | str:
    """Known kinds become TriggerType; unknown ones stay raw strings."""
    try:
        return TriggerType(value)
    except ValueError:
        return str(value)


def _type_value(value: TriggerType | str) -> str:
    return value.value if isinstance(value, TriggerType) else str(value)


# =============================================================================
# Task
# =============================================================================


@dataclass(frozen=True)
class Task:
    """
    A goal-directed unit of work.

    Attributes:
        id: Logical task identifier
        description: What the agent should do
        definition_of_done: How completion is judged
        status: Lifecycle state
        trigger_types: Trigger kinds relevant to this task
        order: Position in the execution sequence (None = append)
        data: Opaque task parameters
        created_at: Creation time in epoch milliseconds
    """

    id: str
    description: str
    definition_of_done: str
    status: TaskStatus = TaskStatus.PENDING
    trigger_types: frozenset[TriggerType | str] = frozenset()
    order: int | None = None
    data: dict[str, Any] = field(default_factory=dict)
    created_at: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def sort_key(self) -> tuple[int, int, str]:
        return (self.order if self.order is not None else 0, self.created_at, self.id)

    def to_content(self) -> dict[str, Any]:
        return {
            "text": self.description,
            "task_id": self.id,
            "description": self.description,
            "definition_of_done": self.definition_of_done,
            "status": self.status.value,
            "trigger_types": sorted(_type_value(t) for t in self.trigger_types),
            "order": self.order,
            "data": copy.deepcopy(self.data),
            "created_at": self.created_at,
        }

    @classmethod
    def from_content(cls, content: dict[str, Any]) -> Task:
        return cls(
            id=content["task_id"],
            description=content.get("description", ""),
            definition_of_done=content.get("definition_of_done", ""),
            status=TaskStatus(content.get("status", TaskStatus.PENDING.value)),
            trigger_types=frozenset(
                _parse_trigger_type(t) for t in content.get("trigger_types") or ()
            ),
            order=content.get("order"),
            data=copy.deepcopy(content.get("data") or {}),
            created_at=int(content.get("created_at") or 0),
        )


# =============================================================================
# Trigger
# =============================================================================


@dataclass(frozen=True)
class TriggerEvaluation:
    """Outcome of evaluating a trigger once."""

    is_triggered: bool
    reason: str
    timestamp: int
    response: Any = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "is_triggered": self.is_triggered,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }
        if self.response is not None:
            data["response"] = copy.deepcopy(self.response)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TriggerEvaluation:
        return cls(
            is_triggered=bool(data.get("is_triggered", False)),
            reason=str(data.get("reason", "")),
            timestamp=int(data.get("timestamp") or 0),
            response=copy.deepcopy(data.get("response")),
        )


@dataclass(frozen=True)
class Trigger:
    """
    A named condition that gates whether the current task runs this cycle.

    Attributes:
        id: Logical trigger identifier
        type: Trigger kind (unknown kinds read from storage stay strings)
        params: Kind-specific parameters (interval, condition, ...)
        last_check: Last time the debounce window was consumed
        last_evaluation: Last recorded evaluation outcome
        created_at: Creation time, defines engine evaluation order
    """

    id: str
    type: TriggerType | str
    params: dict[str, Any] = field(default_factory=dict)
    last_check: int | None = None
    last_evaluation: TriggerEvaluation | None = None
    created_at: int = 0

    @property
    def type_name(self) -> str:
        return _type_value(self.type)

    def to_content(self) -> dict[str, Any]:
        return {
            "text": f"Trigger {self.type_name}",
            "trigger_id": self.id,
            "type": self.type_name,
            "params": copy.deepcopy(self.params),
            "last_check": self.last_check,
            "evaluation": self.last_evaluation.to_dict() if self.last_evaluation else None,
            "created_at": self.created_at,
        }

    @classmethod
    def from_content(cls, content: dict[str, Any]) -> Trigger:
        evaluation = content.get("evaluation")
        last_check = content.get("last_check")
        return cls(
            id=content["trigger_id"],
            type=_parse_trigger_type(content.get("type", "")),
            params=copy.deepcopy(content.get("params") or {}),
            last_check=int(last_check) if last_check is not None else None,
            last_evaluation=TriggerEvaluation.from_dict(evaluation) if evaluation else None,
            created_at=int(content.get("created_at") or 0),
        )


# =============================================================================
# Note
# =============================================================================


@dataclass(frozen=True)
class NoteMetadata:
    """Optional annotations attached to a note."""

    task_id: str | None = None
    category: str | None = None
    priority: float | None = None
    tags: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.task_id is not None:
            data["task_id"] = self.task_id
        if self.category is not None:
            data["category"] = self.category
        if self.priority is not None:
            data["priority"] = self.priority
        if self.tags:
            data["tags"] = sorted(self.tags)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> NoteMetadata | None:
        if not data:
            return None
        return cls(
            task_id=data.get("task_id"),
            category=data.get("category"),
            priority=data.get("priority"),
            tags=frozenset(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class Note:
    """
    A durable contextual fact, identified by its logical key.

    Attributes:
        id: Record identifier of the current value
        key: Logical key (unique among notes)
        value: Opaque value
        metadata: Optional annotations
        timestamp: Write time in epoch milliseconds
    """

    id: str
    key: str
    value: Any
    metadata: NoteMetadata | None = None
    timestamp: int = 0

    def to_content(self) -> dict[str, Any]:
        return {
            "text": f"Note: {self.key}",
            "key": self.key,
            "value": copy.deepcopy(self.value),
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_content(cls, record_id: str, content: dict[str, Any]) -> Note:
        return cls(
            id=record_id,
            key=content["key"],
            value=copy.deepcopy(content.get("value")),
            metadata=NoteMetadata.from_dict(content.get("metadata")),
            timestamp=int(content.get("timestamp") or 0),
        )
