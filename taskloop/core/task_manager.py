"""
Task Queue Manager.

Owns task lifecycle and ordering. The current task is never stored: it is
derived from persisted state on every read as the lowest-order task that
is not completed (ties broken by created_at, then id).

Order collisions between non-completed tasks are rejected with
ValidationError; tasks are never renumbered.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from taskloop.completion.templates import TASK_COMPLETION_TEMPLATE
from taskloop.errors import NotFoundError, ServiceFailure, ValidationError

from .collection import RecordCollection
from .schemas import TaskCompletion
from .types import Task

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from taskloop.completion.service import CompletionService
    from taskloop.loop.state import CycleState
    from taskloop.store.base import RecordStore

logger = logging.getLogger(__name__)


def select_current_task(tasks: Iterable[Task]) -> Task | None:
    """Lowest-order non-completed task, or None when the queue is exhausted."""
    active = [t for t in tasks if not t.is_completed]
    if not active:
        return None
    return min(active, key=Task.sort_key)


def _validate_text(task: Task) -> None:
    if not task.id:
        raise ValidationError("Task id is required")
    if not task.description or not task.description.strip():
        raise ValidationError(f"Task '{task.id}' has an empty description")
    if not task.definition_of_done or not task.definition_of_done.strip():
        raise ValidationError(f"Task '{task.id}' has an empty definition of done")


class TaskManager:
    """
    Persisted, ordered task queue for one session scope.

    Example:
        manager = TaskManager(store, completion, scope_id=room_id, author_id=agent_id)
        await manager.add_task(Task(id="t1", description="...", definition_of_done="..."))
        current = await manager.get_current_task()
    """

    def __init__(
        self,
        store: RecordStore,
        completion: CompletionService,
        *,
        scope_id: str,
        author_id: str,
        clock: Callable[[], int] | None = None,
    ):
        self._tasks = RecordCollection(
            store,
            scope_id=scope_id,
            author_id=author_id,
            key_field="task_id",
            clock=clock,
        )
        self._completion = completion

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_all_tasks(self) -> list[Task]:
        """All tasks, sorted by order."""
        records = await self._tasks.materialize()
        return sorted((Task.from_content(r.content) for r in records.values()), key=Task.sort_key)

    async def get_task(self, task_id: str) -> Task | None:
        record = await self._tasks.get(task_id)
        return Task.from_content(record.content) if record else None

    async def get_current_task(self) -> Task | None:
        return select_current_task(await self.get_all_tasks())

    # =========================================================================
    # Mutations
    # =========================================================================

    @staticmethod
    def _check_order(task: Task, others: Iterable[Task]) -> None:
        for other in others:
            if other.id != task.id and not other.is_completed and other.order == task.order:
                raise ValidationError(
                    f"Task '{task.id}' order {task.order} collides with task '{other.id}'"
                )

    async def add_task(self, task: Task) -> Task:
        """
        Add a new task to the queue.

        When order is None the task is appended (max order + 1, or 0 for an
        empty queue).

        Raises:
            ValidationError: Duplicate id, empty text fields, or order collision
        """
        _validate_text(task)
        existing = await self.get_all_tasks()

        if any(t.id == task.id for t in existing):
            raise ValidationError(f"Task '{task.id}' already exists")

        if task.order is None:
            orders = [t.order for t in existing if t.order is not None]
            task = replace(task, order=max(orders) + 1 if orders else 0)
        else:
            self._check_order(task, existing)

        if not task.created_at:
            task = replace(task, created_at=self._tasks.now())

        await self._tasks.put(task.id, task.to_content())
        logger.info(f"[task_manager] Added task {task.id} at order {task.order}")
        return task

    async def update_task(self, task: Task) -> Task:
        """
        Replace a task's persisted value.

        Rewriting a completed task with its identical value is a no-op.

        Raises:
            NotFoundError: Unknown task id
            ValidationError: Completed task mutation, empty text fields, or
                order collision
        """
        current = await self.get_task(task.id)
        if current is None:
            raise NotFoundError("Task", task.id)

        if task.order is None:
            task = replace(task, order=current.order)
        task = replace(task, created_at=current.created_at)

        if current.is_completed:
            if task == current:
                logger.debug(f"[task_manager] Task {task.id} already completed, unchanged")
                return current
            raise ValidationError(f"Task '{task.id}' is completed and cannot change")

        _validate_text(task)
        if task.order != current.order:
            self._check_order(task, await self.get_all_tasks())

        await self._tasks.put(task.id, task.to_content())
        if task.status != current.status:
            logger.info(
                f"[task_manager] Task {task.id}: {current.status.value} -> {task.status.value}"
            )
        return task

    # =========================================================================
    # Completion judgment
    # =========================================================================

    async def evaluate_task_completion(self, task: Task, state: CycleState) -> bool:
        """
        Ask the completion service whether task meets its definition of done.

        Never raises for service problems: a failed judgment means the task
        stays active for the next cycle.
        """
        prompt = TASK_COMPLETION_TEMPLATE.format(
            description=task.description,
            definition_of_done=task.definition_of_done,
            task_notes=state.render_notes(task_id=task.id),
            recent_messages=state.recent_messages,
        )

        try:
            verdict = await self._completion.generate_structured(prompt, TaskCompletion)
        except ServiceFailure as e:
            logger.error(
                f"[task_manager] Completion judgment failed for {task.id}: {e}",
                exc_info=True,
            )
            return False

        logger.info(
            f"[task_manager] Task {task.id} complete={verdict.is_complete}: {verdict.reason}"
        )
        return verdict.is_complete
