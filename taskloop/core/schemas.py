"""
Structured completion result shapes.

LLM responses are validated with Pydantic so malformed output never reaches
the managers. Batch shapes keep their items as raw JSON values; each item is then
validated on its own so one malformed operation, even a non-object one,
cannot sink the batch.

Field names are snake_case; camelCase aliases are accepted because models
frequently answer in that style.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .types import NoteMetadata, TriggerType


class _ResultModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TaskCompletion(_ResultModel):
    """Completion judgment for one task."""

    is_complete: bool = Field(..., alias="isComplete")
    reason: str = Field(default="")


class TriggerDecision(_ResultModel):
    """Judgment of a dynamic trigger condition."""

    is_triggered: bool = Field(..., alias="isTriggered")
    reason: str = Field(default="")
    timestamp: int | None = None
    response: Any = None


class TriggerAdjustment(_ResultModel):
    """One proposed trigger operation."""

    action: Literal["add", "remove", "modify"]
    type: TriggerType | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class TriggerAdjustments(_ResultModel):
    """Batch of proposed trigger operations."""

    triggers: list[Any] = Field(default_factory=list)


class NoteMetadataModel(_ResultModel):
    task_id: str | None = Field(default=None, alias="taskId")
    category: str | None = None
    priority: float | None = None
    tags: list[str] = Field(default_factory=list)

    def to_metadata(self) -> NoteMetadata:
        return NoteMetadata(
            task_id=self.task_id,
            category=self.category,
            priority=self.priority,
            tags=frozenset(self.tags),
        )


class NoteOperation(_ResultModel):
    """One proposed note operation."""

    action: Literal["add", "update", "remove"]
    key: str = Field(..., min_length=1)
    value: Any = None
    metadata: NoteMetadataModel | None = None
    reason: str = Field(default="")


class NoteOperations(_ResultModel):
    """Batch of proposed note operations."""

    notes: list[Any] = Field(default_factory=list)
