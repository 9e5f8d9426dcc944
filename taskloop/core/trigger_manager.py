"""
Trigger Engine.

Owns trigger lifecycle and per-kind evaluation. Evaluation is dispatched
through a registry keyed by trigger kind, so new kinds plug in with
register_evaluator() without touching the built-in evaluators.

Built-in kinds:
    polling: heartbeat, triggered once per interval. At most one exists and
             its params never change after creation.
    dynamic: natural-language condition judged by the completion service,
             debounced by its interval.
    price:   extension point, never triggers.

Debounce bookkeeping (last_check, last_evaluation) is written through an
internal path that bypasses the polling immutability rule.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as SchemaValidationError

from taskloop.completion.templates import (
    TRIGGER_ADJUSTMENT_TEMPLATE,
    TRIGGER_EVALUATION_TEMPLATE,
)
from taskloop.errors import NotFoundError, ServiceFailure, ValidationError

from .collection import RecordCollection
from .schemas import TriggerAdjustment, TriggerAdjustments, TriggerDecision
from .types import Trigger, TriggerEvaluation, TriggerType

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from taskloop.completion.service import CompletionService
    from taskloop.loop.state import CycleState
    from taskloop.store.base import RecordStore

    TriggerEvaluator = Callable[[Trigger, "CycleState | None"], Awaitable[TriggerEvaluation]]

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 5000
MIN_POLLING_INTERVAL_MS = 1000


def _polling_interval(value: Any) -> int:
    """Absent, non-numeric, or sub-second intervals fall back to the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_INTERVAL_MS
    if value < MIN_POLLING_INTERVAL_MS:
        return DEFAULT_INTERVAL_MS
    return int(value)


def _dynamic_interval(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        return DEFAULT_INTERVAL_MS
    return int(value)


def _validate_dynamic(trigger: Trigger) -> dict[str, Any]:
    condition = trigger.params.get("condition")
    if not isinstance(condition, str) or not condition.strip():
        raise ValidationError(f"Dynamic trigger '{trigger.id}' requires a condition")
    return {**trigger.params, "interval": _dynamic_interval(trigger.params.get("interval"))}


class TriggerEngine:
    """
    Persisted triggers of one session scope and their evaluation.

    Example:
        engine = TriggerEngine(store, completion, scope_id=room_id, author_id=agent_id)
        await engine.add_trigger(Trigger(id="heartbeat", type=TriggerType.POLLING))

        for trigger in await engine.get_all_triggers():
            result = await engine.evaluate_trigger(trigger, state)
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
        self._triggers = RecordCollection(
            store,
            scope_id=scope_id,
            author_id=author_id,
            key_field="trigger_id",
            clock=clock,
        )
        self._completion = completion
        self._evaluators: dict[str, TriggerEvaluator] = {
            TriggerType.POLLING.value: self._evaluate_polling,
            TriggerType.DYNAMIC.value: self._evaluate_dynamic,
            TriggerType.PRICE.value: self._evaluate_price,
        }

    def now(self) -> int:
        return self._triggers.now()

    def register_evaluator(self, kind: TriggerType | str, evaluator: TriggerEvaluator) -> None:
        """
        Register (or replace) the evaluator for a trigger kind.

        Args:
            kind: Trigger kind the evaluator handles
            evaluator: async callable (trigger, state) -> TriggerEvaluation
        """
        name = kind.value if isinstance(kind, TriggerType) else str(kind)
        if name in self._evaluators:
            logger.warning(f"[trigger_engine] Replacing evaluator for '{name}'")
        self._evaluators[name] = evaluator
        logger.debug(f"[trigger_engine] Registered evaluator for '{name}'")

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_all_triggers(self) -> list[Trigger]:
        """All triggers in engine order (created_at, then id)."""
        records = await self._triggers.materialize()
        triggers = (Trigger.from_content(r.content) for r in records.values())
        return sorted(triggers, key=lambda t: (t.created_at, t.id))

    async def get_trigger(self, trigger_id: str) -> Trigger | None:
        record = await self._triggers.get(trigger_id)
        return Trigger.from_content(record.content) if record else None

    async def get_triggers_by_type(self, kind: TriggerType | str) -> list[Trigger]:
        name = kind.value if isinstance(kind, TriggerType) else str(kind)
        return [t for t in await self.get_all_triggers() if t.type_name == name]

    # =========================================================================
    # Mutations
    # =========================================================================

    def _normalize(self, trigger: Trigger) -> Trigger:
        if trigger.type == TriggerType.POLLING:
            params = {**trigger.params, "interval": _polling_interval(trigger.params.get("interval"))}
        elif trigger.type == TriggerType.DYNAMIC:
            params = _validate_dynamic(trigger)
        elif trigger.type == TriggerType.PRICE:
            params = dict(trigger.params)
        else:
            raise ValidationError(f"Unknown trigger type: {trigger.type_name}")
        return replace(trigger, type=TriggerType(trigger.type_name), params=params)

    async def add_trigger(self, trigger: Trigger) -> Trigger | None:
        """
        Add a trigger.

        Adding a second polling trigger is a logged no-op and returns None.

        Raises:
            ValidationError: Unknown kind, dynamic trigger without condition,
                or duplicate id
        """
        trigger = self._normalize(trigger)
        if not trigger.id:
            trigger = replace(trigger, id=str(uuid.uuid4()))

        existing = await self.get_all_triggers()
        if trigger.type == TriggerType.POLLING and any(
            t.type_name == TriggerType.POLLING.value for t in existing
        ):
            logger.info("[trigger_engine] Polling trigger already exists, skipping add")
            return None
        if any(t.id == trigger.id for t in existing):
            raise ValidationError(f"Trigger '{trigger.id}' already exists")

        if not trigger.created_at:
            trigger = replace(trigger, created_at=self.now())

        await self._triggers.put(trigger.id, trigger.to_content())
        logger.info(f"[trigger_engine] Added {trigger.type_name} trigger {trigger.id}")
        return trigger

    async def update_trigger(self, trigger: Trigger) -> Trigger | None:
        """
        Replace a trigger's kind and params, keeping its bookkeeping.

        Polling triggers are immutable: updating one (or turning a trigger
        into one) is a logged no-op and returns None.

        Raises:
            NotFoundError: Unknown trigger id
            ValidationError: Unknown kind or dynamic trigger without condition
        """
        current = await self.get_trigger(trigger.id)
        if current is None:
            raise NotFoundError("Trigger", trigger.id)

        if TriggerType.POLLING.value in (current.type_name, trigger.type_name):
            logger.warning(f"[trigger_engine] Polling trigger {trigger.id} is immutable, skipping update")
            return None

        trigger = self._normalize(trigger)
        updated = replace(current, type=trigger.type, params=trigger.params)
        await self._triggers.put(updated.id, updated.to_content())
        logger.info(f"[trigger_engine] Updated {updated.type_name} trigger {updated.id}")
        return updated

    async def remove_trigger(self, trigger_id: str) -> None:
        """
        Remove a trigger.

        Raises:
            NotFoundError: Unknown trigger id
        """
        if not await self._triggers.delete(trigger_id):
            raise NotFoundError("Trigger", trigger_id)
        logger.info(f"[trigger_engine] Removed trigger {trigger_id}")

    async def _record_evaluation(self, trigger: Trigger, evaluation: TriggerEvaluation) -> None:
        """Persist last_check/last_evaluation on the stored trigger."""
        record = await self._triggers.get(trigger.id)
        if record is None:
            logger.debug(f"[trigger_engine] Trigger {trigger.id} removed before bookkeeping")
            return
        stored = Trigger.from_content(record.content)
        updated = replace(stored, last_check=evaluation.timestamp, last_evaluation=evaluation)
        await self._triggers.put(updated.id, updated.to_content())

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate_trigger(
        self,
        trigger: Trigger,
        state: CycleState | None = None,
    ) -> TriggerEvaluation:
        """
        Evaluate one trigger with the evaluator registered for its kind.

        Service problems never propagate; they yield a non-triggered result
        with the reason. Store failures do propagate.
        """
        evaluator = self._evaluators.get(trigger.type_name)
        if evaluator is None:
            return TriggerEvaluation(
                is_triggered=False,
                reason=f"Unknown trigger type: {trigger.type_name}",
                timestamp=self.now(),
            )
        return await evaluator(trigger, state)

    @staticmethod
    def _remaining(trigger: Trigger, interval: int, now: int) -> int | None:
        """Milliseconds left in the debounce window, or None when elapsed."""
        if trigger.last_check is None:
            return None
        elapsed = now - trigger.last_check
        return interval - elapsed if elapsed < interval else None

    async def _evaluate_polling(
        self,
        trigger: Trigger,
        state: CycleState | None,
    ) -> TriggerEvaluation:
        now = self.now()
        interval = _polling_interval(trigger.params.get("interval"))

        remaining = self._remaining(trigger, interval, now)
        if remaining is not None:
            return TriggerEvaluation(
                is_triggered=False,
                reason=f"Polling interval not elapsed ({remaining}ms remaining)",
                timestamp=now,
            )

        evaluation = TriggerEvaluation(
            is_triggered=True,
            reason=f"Polling interval of {interval}ms elapsed",
            timestamp=now,
        )
        await self._record_evaluation(trigger, evaluation)
        return evaluation

    async def _evaluate_dynamic(
        self,
        trigger: Trigger,
        state: CycleState | None,
    ) -> TriggerEvaluation:
        now = self.now()
        interval = _dynamic_interval(trigger.params.get("interval"))

        remaining = self._remaining(trigger, interval, now)
        if remaining is not None:
            return TriggerEvaluation(
                is_triggered=False,
                reason=f"Debounce interval not elapsed ({remaining}ms remaining)",
                timestamp=now,
            )

        condition = trigger.params.get("condition")
        if not isinstance(condition, str) or not condition.strip():
            evaluation = TriggerEvaluation(False, "Dynamic trigger has no condition", now)
        elif state is None:
            evaluation = TriggerEvaluation(False, "No state supplied for condition evaluation", now)
        else:
            evaluation = await self._judge_condition(trigger, condition, state, now)

        await self._record_evaluation(trigger, evaluation)
        return evaluation

    async def _judge_condition(
        self,
        trigger: Trigger,
        condition: str,
        state: CycleState,
        now: int,
    ) -> TriggerEvaluation:
        prompt = TRIGGER_EVALUATION_TEMPLATE.format(
            condition=condition,
            current_task=state.render_current_task(),
            notes=state.render_notes(),
            recent_messages=state.recent_messages,
        )
        try:
            decision = await self._completion.generate_structured(prompt, TriggerDecision)
        except ServiceFailure as e:
            logger.error(
                f"[trigger_engine] Condition evaluation failed for {trigger.id}: {e}",
                exc_info=True,
            )
            return TriggerEvaluation(False, f"Condition evaluation failed: {e}", now)

        logger.debug(
            f"[trigger_engine] Dynamic trigger {trigger.id} triggered={decision.is_triggered}"
        )
        # The debounce window is measured on the engine clock, not the model's
        return TriggerEvaluation(
            is_triggered=decision.is_triggered,
            reason=decision.reason,
            timestamp=now,
            response=decision.response,
        )

    async def _evaluate_price(
        self,
        trigger: Trigger,
        state: CycleState | None,
    ) -> TriggerEvaluation:
        return TriggerEvaluation(
            is_triggered=False,
            reason="Price trigger evaluation not implemented",
            timestamp=self.now(),
        )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def _apply_adjustment(self, op: TriggerAdjustment) -> bool:
        if op.action == "add":
            if op.type is None:
                raise ValidationError("Trigger add requires a type")
            added = await self.add_trigger(Trigger(id="", type=op.type, params=op.params))
            return added is not None

        if not op.id:
            raise ValidationError(f"Trigger {op.action} requires an id")

        if op.action == "remove":
            await self.remove_trigger(op.id)
            return True

        current = await self.get_trigger(op.id)
        if current is None:
            raise NotFoundError("Trigger", op.id)
        updated = await self.update_trigger(
            replace(current, type=op.type or current.type, params={**current.params, **op.params})
        )
        return updated is not None

    async def evaluate_and_adjust_triggers(self, state: CycleState) -> int:
        """
        Ask the completion service which triggers should change and apply
        each proposed operation independently.

        Returns:
            Number of operations applied
        """
        prompt = TRIGGER_ADJUSTMENT_TEMPLATE.format(
            current_task=state.render_current_task(),
            tasks=state.render_tasks(),
            triggers=state.render_triggers(),
            notes=state.render_notes(),
            recent_messages=state.recent_messages,
        )
        try:
            batch = await self._completion.generate_structured(prompt, TriggerAdjustments)
        except ServiceFailure as e:
            logger.error(f"[trigger_engine] Trigger reconciliation failed: {e}", exc_info=True)
            return 0

        applied = 0
        for index, raw in enumerate(batch.triggers):
            try:
                op = TriggerAdjustment.model_validate(raw)
            except SchemaValidationError as e:
                logger.warning(f"[trigger_engine] Skipping malformed operation #{index}: {e}")
                continue

            try:
                if await self._apply_adjustment(op):
                    applied += 1
            except (ValidationError, NotFoundError) as e:
                logger.warning(f"[trigger_engine] Skipping {op.action} operation #{index}: {e}")

        logger.info(
            f"[trigger_engine] Reconciliation applied {applied}/{len(batch.triggers)} operations"
        )
        return applied
