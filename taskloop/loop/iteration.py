"""
Iteration Orchestrator.

One cycle of the control loop:

    1. Derive the current task (none: queue exhausted)
    2. pending -> in_progress
    3. Evaluate triggers in engine order until the first fires (none: idle)
    4. Record the activation, generate the next message
    5. Record it, dispatch its action, run evaluators
    6. Judge completion; on completion reconcile triggers and notes

Service failures never abort a cycle. Store failures propagate out of
run_cycle and are handled by the loop driver.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING

from taskloop.completion.templates import NEXT_ACTION_TEMPLATE
from taskloop.core.types import TaskStatus
from taskloop.errors import PersistenceFailure, ServiceFailure

from .actions import create_callback
from .state import compose_state

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taskloop.completion.service import CompletionService, Content
    from taskloop.core.note_manager import NoteStore
    from taskloop.core.task_manager import TaskManager
    from taskloop.core.trigger_manager import TriggerEngine
    from taskloop.core.types import Task, Trigger, TriggerEvaluation

    from .actions import ActionHandler, Evaluator
    from .messages import MessageLog
    from .state import CycleState

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    """How a cycle ended."""

    QUEUE_EXHAUSTED = "queue_exhausted"  # Every task is completed
    IDLE = "idle"  # No trigger fired
    NO_RESPONSE = "no_response"  # Completion service produced nothing
    TASK_CONTINUED = "task_continued"  # Task judged incomplete
    TASK_COMPLETED = "task_completed"


class IterationOrchestrator:
    """
    Drives single cycles over the task, trigger and note managers.

    Example:
        orchestrator = IterationOrchestrator(
            tasks=tasks, triggers=triggers, notes=notes,
            messages=messages, completion=completion,
            action_handler=registry,
        )
        outcome = await orchestrator.run_cycle()
    """

    def __init__(
        self,
        *,
        tasks: TaskManager,
        triggers: TriggerEngine,
        notes: NoteStore,
        messages: MessageLog,
        completion: CompletionService,
        agent_name: str = "Agent",
        mission: str = "",
        action_handler: ActionHandler | None = None,
        evaluators: Sequence[Evaluator] = (),
    ):
        self._tasks = tasks
        self._triggers = triggers
        self._notes = notes
        self._messages = messages
        self._completion = completion
        self._agent_name = agent_name
        self._mission = mission
        self._action_handler = action_handler
        self._evaluators = list(evaluators)

    async def compose_state(self) -> CycleState:
        return await compose_state(
            self._tasks,
            self._triggers,
            self._notes,
            self._messages,
            agent_name=self._agent_name,
        )

    async def _first_triggered(
        self,
        state: CycleState,
    ) -> tuple[Trigger, TriggerEvaluation] | None:
        for trigger in state.triggers:
            evaluation = await self._triggers.evaluate_trigger(trigger, state)
            logger.debug(
                f"[orchestrator] Trigger {trigger.id} ({trigger.type_name}): "
                f"triggered={evaluation.is_triggered} ({evaluation.reason})"
            )
            if evaluation.is_triggered:
                return trigger, evaluation
        return None

    def _actions_text(self) -> str:
        describe = getattr(self._action_handler, "describe", None)
        return describe() if callable(describe) else "- NONE: no actions are available"

    async def _generate(self, task: Task, trigger: Trigger, evaluation: TriggerEvaluation) -> Content | None:
        state = await self.compose_state()
        prompt = NEXT_ACTION_TEMPLATE.format(
            agent_name=self._agent_name,
            mission=self._mission,
            tasks=state.render_tasks(),
            current_task=state.render_current_task(),
            notes=state.render_notes(),
            triggers=state.render_triggers(),
            activation=f"{trigger.type_name} trigger fired: {evaluation.reason}",
            actions=self._actions_text(),
            recent_messages=state.recent_messages,
        )
        try:
            return await self._completion.generate_freeform(prompt)
        except ServiceFailure as e:
            logger.error(f"[orchestrator] Response generation failed for {task.id}: {e}", exc_info=True)
            return None

    async def _run_evaluators(self, content: Content) -> None:
        if not self._evaluators:
            return
        state = await self.compose_state()
        for evaluator in self._evaluators:
            try:
                await evaluator.evaluate(content, state)
            except PersistenceFailure:
                raise
            except Exception as e:
                logger.error(f"[orchestrator] Evaluator {evaluator.name} failed: {e}", exc_info=True)

    async def run_cycle(self) -> CycleOutcome:
        """
        Run one cycle.

        Raises:
            PersistenceFailure: If a store operation fails
        """
        task = await self._tasks.get_current_task()
        if task is None:
            logger.debug("[orchestrator] No current task, queue exhausted")
            return CycleOutcome.QUEUE_EXHAUSTED

        if task.status == TaskStatus.PENDING:
            task = await self._tasks.update_task(replace(task, status=TaskStatus.IN_PROGRESS))

        state = await self.compose_state()
        fired = await self._first_triggered(state)
        if fired is None:
            logger.debug(f"[orchestrator] No trigger fired for {task.id}")
            return CycleOutcome.IDLE

        trigger, evaluation = fired
        logger.info(f"[orchestrator] Trigger activated: {trigger.type_name} ({trigger.id})")
        await self._messages.append(
            f"Trigger activated: {trigger.type_name}",
            kind="trigger",
            extra={
                "trigger_id": trigger.id,
                "type": trigger.type_name,
                "params": trigger.params,
                "reason": evaluation.reason,
            },
        )

        content = await self._generate(task, trigger, evaluation)
        if content is None:
            logger.error(f"[orchestrator] No response generated for task {task.id}")
            return CycleOutcome.NO_RESPONSE

        response = await self._messages.append(
            content.text,
            action=content.action,
            extra={**content.extra, "task_id": task.id},
        )
        if self._action_handler is not None:
            await self._action_handler.handle(content, create_callback(self._messages, response.id))
        await self._run_evaluators(content)

        state = await self.compose_state()
        if not await self._tasks.evaluate_task_completion(task, state):
            logger.info(f"[orchestrator] Task {task.id} continues")
            return CycleOutcome.TASK_CONTINUED

        # Handlers may have rewritten the task during this cycle
        latest = await self._tasks.get_task(task.id) or task
        await self._tasks.update_task(replace(latest, status=TaskStatus.COMPLETED))
        logger.info(f"[orchestrator] Task {task.id} completed: {task.description}")

        state = await self.compose_state()
        await self._triggers.evaluate_and_adjust_triggers(state)
        await self._notes.evaluate_notes(state)
        return CycleOutcome.TASK_COMPLETED
