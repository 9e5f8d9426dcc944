"""
Tests for the Iteration Orchestrator.

Tests cover:
- Cycle outcomes (exhausted, idle, no response, continued, completed)
- The three-task heartbeat scenario across two cycles
- Action dispatch, evaluators, and error propagation
"""

from unittest.mock import AsyncMock

import pytest

from taskloop.completion import Content
from taskloop.core import Task, TaskStatus, Trigger, TriggerType
from taskloop.core.schemas import (
    NoteOperations,
    TaskCompletion,
    TriggerAdjustments,
    TriggerDecision,
)
from taskloop.errors import PersistenceFailure, ServiceFailure
from taskloop.loop import ActionRegistry, CycleOutcome, IterationOrchestrator


async def seed_tasks(task_manager, count=3):
    for i in range(count):
        await task_manager.add_task(
            Task(id=f"t{i}", description=f"Step {i}", definition_of_done=f"Step {i} finished", order=i)
        )


async def add_heartbeat(trigger_engine, interval=5000):
    await trigger_engine.add_trigger(Trigger(id="heartbeat", type=TriggerType.POLLING, params={"interval": interval}))


def orchestrator_with(task_manager, trigger_engine, note_store, message_log, completion, **kwargs):
    return IterationOrchestrator(
        tasks=task_manager,
        triggers=trigger_engine,
        notes=note_store,
        messages=message_log,
        completion=completion,
        agent_name="Tester",
        **kwargs,
    )


class TestCycleOutcomes:
    """Tests for the early exits of a cycle."""

    @pytest.mark.asyncio
    async def test_empty_queue_is_exhausted(self, orchestrator, completion):
        assert await orchestrator.run_cycle() == CycleOutcome.QUEUE_EXHAUSTED
        assert completion.freeform_calls == []

    @pytest.mark.asyncio
    async def test_no_trigger_is_idle(self, orchestrator, task_manager, completion, stores):
        await seed_tasks(task_manager, 1)

        outcome = await orchestrator.run_cycle()

        assert outcome == CycleOutcome.IDLE
        assert (await task_manager.get_task("t0")).status == TaskStatus.IN_PROGRESS
        assert completion.freeform_calls == []
        assert completion.structured_calls == []
        assert stores["messages"].record_count() == 0

    @pytest.mark.asyncio
    async def test_debounced_heartbeat_is_idle(self, orchestrator, task_manager, trigger_engine, completion, clock):
        await seed_tasks(task_manager, 1)
        await trigger_engine.add_trigger(
            Trigger(id="hb", type=TriggerType.POLLING, params={"interval": 5000}, last_check=clock.now - 10)
        )

        assert await orchestrator.run_cycle() == CycleOutcome.IDLE
        assert completion.freeform_calls == []

    @pytest.mark.asyncio
    async def test_empty_response_aborts_cycle(self, orchestrator, task_manager, trigger_engine, completion, message_log):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)

        outcome = await orchestrator.run_cycle()

        assert outcome == CycleOutcome.NO_RESPONSE
        assert completion.calls_for(TaskCompletion) == []
        records = await message_log.recent()
        assert [r.content["kind"] for r in records] == ["trigger"]
        assert records[0].content["text"] == "Trigger activated: polling"

    @pytest.mark.asyncio
    async def test_generation_failure_aborts_cycle(self, orchestrator, task_manager, trigger_engine, completion):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)
        completion.script_freeform(ServiceFailure("model down"))

        assert await orchestrator.run_cycle() == CycleOutcome.NO_RESPONSE
        assert (await task_manager.get_task("t0")).status == TaskStatus.IN_PROGRESS


class TestHeartbeatScenario:
    """Three ordered tasks driven by a single polling trigger."""

    @pytest.mark.asyncio
    async def test_two_cycles_complete_first_task(self, orchestrator, task_manager, trigger_engine, completion, clock):
        await seed_tasks(task_manager, 3)
        await add_heartbeat(trigger_engine)
        completion.script_freeform("Analyzing step 0", "Step 0 is finished")
        completion.script(
            TaskCompletion,
            {"is_complete": False, "reason": "Still working"},
            {"is_complete": True, "reason": "Finished"},
        )
        completion.script(TriggerAdjustments, {"triggers": []})
        completion.script(NoteOperations, {"notes": []})

        first = await orchestrator.run_cycle()

        assert first == CycleOutcome.TASK_CONTINUED
        assert (await task_manager.get_task("t0")).status == TaskStatus.IN_PROGRESS
        assert (await task_manager.get_current_task()).id == "t0"

        clock.advance(5000)
        second = await orchestrator.run_cycle()

        assert second == CycleOutcome.TASK_COMPLETED
        assert (await task_manager.get_task("t0")).status == TaskStatus.COMPLETED
        current = await task_manager.get_current_task()
        assert current.id == "t1"
        assert current.order == 1
        assert current.status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_reconciliation_only_after_completion(self, orchestrator, task_manager, trigger_engine, completion, clock):
        await seed_tasks(task_manager, 2)
        await add_heartbeat(trigger_engine)
        completion.script_freeform("working", "done")
        completion.script(TaskCompletion, {"is_complete": False}, {"is_complete": True})
        completion.script(
            TriggerAdjustments,
            {"triggers": [{"action": "add", "type": "dynamic", "params": {"condition": "Step 1 ready"}}]},
        )
        completion.script(
            NoteOperations,
            {"notes": [{"action": "add", "key": "step0_result", "value": "ok", "metadata": {"task_id": "t0"}}]},
        )

        await orchestrator.run_cycle()
        assert completion.calls_for(TriggerAdjustments) == []
        assert completion.calls_for(NoteOperations) == []

        clock.advance(5000)
        await orchestrator.run_cycle()

        # Reconciliation sees the next task as current
        prompt = completion.calls_for(TriggerAdjustments)[0]
        assert "Description: Step 1\nDefinition of Done: Step 1 finished\nStatus: pending" in prompt
        assert len(await trigger_engine.get_triggers_by_type(TriggerType.DYNAMIC)) == 1
        assert [n.key for n in await orchestrator._notes.get_notes_by_task("t0")] == ["step0_result"]

    @pytest.mark.asyncio
    async def test_reconciliation_failures_do_not_abort(self, orchestrator, task_manager, trigger_engine, completion):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)
        completion.script_freeform("done")
        completion.script(TaskCompletion, {"is_complete": True})
        # No reconciliation answers scripted: both requests fail

        assert await orchestrator.run_cycle() == CycleOutcome.TASK_COMPLETED
        assert await orchestrator.run_cycle() == CycleOutcome.QUEUE_EXHAUSTED

    @pytest.mark.asyncio
    async def test_first_triggered_wins(self, orchestrator, task_manager, trigger_engine, completion, message_log, clock):
        await seed_tasks(task_manager, 1)
        await trigger_engine.add_trigger(
            Trigger(id="dyn", type=TriggerType.DYNAMIC, params={"condition": "volume spikes"})
        )
        clock.advance(1)
        await add_heartbeat(trigger_engine)
        clock.advance(1)
        await trigger_engine.add_trigger(
            Trigger(id="dyn2", type=TriggerType.DYNAMIC, params={"condition": "never asked"})
        )
        completion.script(TriggerDecision, {"is_triggered": False, "reason": "quiet"})
        completion.script_freeform("checking")
        completion.script(TaskCompletion, {"is_complete": False})

        assert await orchestrator.run_cycle() == CycleOutcome.TASK_CONTINUED

        decisions = completion.calls_for(TriggerDecision)
        assert len(decisions) == 1
        assert "volume spikes" in decisions[0]
        activation = (await message_log.recent())[0]
        assert activation.content["trigger_id"] == "heartbeat"


class TestSideEffects:
    """Tests for action dispatch, evaluators and store failures."""

    @pytest.mark.asyncio
    async def test_action_dispatched_with_callback(
        self, task_manager, trigger_engine, note_store, message_log, completion
    ):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)
        registry = ActionRegistry()
        handled = []

        async def open_position(content, callback):
            handled.append(content)
            records = await callback([Content(text="Position opened", action="OPEN_POSITION")])
            handled.append(records)

        registry.register("OPEN_POSITION", open_position, "Open the identified position")
        completion.script_freeform(Content(text="Opening", action="open_position"))
        completion.script(TaskCompletion, {"is_complete": False})
        orchestrator = orchestrator_with(
            task_manager, trigger_engine, note_store, message_log, completion, action_handler=registry
        )

        await orchestrator.run_cycle()

        assert handled[0].text == "Opening"
        records = await message_log.recent()
        kinds = [r.content["kind"] for r in records]
        assert kinds == ["trigger", "message", "action_result"]
        assert records[2].content["original_message_id"] == records[1].id
        assert handled[1][0].id == records[2].id
        assert "OPEN_POSITION: Open the identified position" in completion.freeform_calls[0]

    @pytest.mark.asyncio
    async def test_non_string_action_does_not_abort_cycle(
        self, task_manager, trigger_engine, note_store, message_log, completion
    ):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)
        registry = ActionRegistry()
        registry.register("OPEN_POSITION", AsyncMock(), "Open the identified position")
        completion.script_freeform(Content.from_dict({"text": "Opening", "action": 5}))
        completion.script(TaskCompletion, {"is_complete": False})
        orchestrator = orchestrator_with(
            task_manager, trigger_engine, note_store, message_log, completion, action_handler=registry
        )

        assert await orchestrator.run_cycle() == CycleOutcome.TASK_CONTINUED
        records = await message_log.recent()
        assert [r.content["kind"] for r in records] == ["trigger", "message"]
        assert "action" not in records[1].content

    @pytest.mark.asyncio
    async def test_evaluators_run_and_failures_are_contained(
        self, task_manager, trigger_engine, note_store, message_log, completion
    ):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)
        completion.script_freeform("hello")
        completion.script(TaskCompletion, {"is_complete": False})

        class Recorder:
            name = "recorder"

            def __init__(self):
                self.seen = []

            async def evaluate(self, content, state):
                self.seen.append((content.text, state.current_task.id))

        class Broken:
            name = "broken"

            async def evaluate(self, content, state):
                raise RuntimeError("boom")

        recorder = Recorder()
        orchestrator = orchestrator_with(
            task_manager, trigger_engine, note_store, message_log, completion, evaluators=[Broken(), recorder]
        )

        assert await orchestrator.run_cycle() == CycleOutcome.TASK_CONTINUED
        assert recorder.seen == [("hello", "t0")]

    @pytest.mark.asyncio
    async def test_persistence_failure_propagates(self, orchestrator, task_manager, trigger_engine, stores, completion):
        await seed_tasks(task_manager, 1)
        await add_heartbeat(trigger_engine)
        stores["messages"].create = AsyncMock(side_effect=PersistenceFailure("create", OSError("disk full")))

        with pytest.raises(PersistenceFailure):
            await orchestrator.run_cycle()
        assert completion.freeform_calls == []
