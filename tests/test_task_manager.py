"""
Tests for the Task Queue Manager.

Tests cover:
- Adding tasks (order assignment, validation, collisions)
- Updating tasks (materialization, completed-task immutability)
- Current task derivation
- Completion judgment with service failures
"""

import itertools
import random
from dataclasses import replace

import pytest

from taskloop.core import Note, NoteMetadata, Task, TaskStatus
from taskloop.core.schemas import TaskCompletion
from taskloop.core.task_manager import select_current_task
from taskloop.errors import NotFoundError, ServiceFailure, ValidationError
from taskloop.loop.state import CycleState


def make_task(task_id: str, order: int | None = None, status: TaskStatus = TaskStatus.PENDING) -> Task:
    return Task(
        id=task_id,
        description=f"Do {task_id}",
        definition_of_done=f"{task_id} is done",
        status=status,
        order=order,
    )


def make_state(notes=(), recent="No recent messages.") -> CycleState:
    return CycleState(
        agent_name="Tester",
        current_task=None,
        tasks=(),
        notes=tuple(notes),
        triggers=(),
        recent_messages=recent,
    )


# =============================================================================
# Adding Tasks
# =============================================================================


class TestAddTask:
    """Tests for TaskManager.add_task."""

    @pytest.mark.asyncio
    async def test_first_task_gets_order_zero(self, task_manager):
        task = await task_manager.add_task(make_task("t1"))

        assert task.order == 0
        assert task.status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_unspecified_order_appends(self, task_manager):
        await task_manager.add_task(make_task("t1"))
        await task_manager.add_task(make_task("t2", order=7))
        task = await task_manager.add_task(make_task("t3"))

        assert task.order == 8

    @pytest.mark.asyncio
    async def test_created_at_is_stamped(self, task_manager, clock):
        task = await task_manager.add_task(make_task("t1"))

        assert task.created_at == clock.now

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, task_manager):
        await task_manager.add_task(make_task("t1"))

        with pytest.raises(ValidationError, match="already exists"):
            await task_manager.add_task(make_task("t1"))

    @pytest.mark.asyncio
    async def test_order_collision_rejected(self, task_manager):
        await task_manager.add_task(make_task("t1", order=0))

        with pytest.raises(ValidationError, match="collides"):
            await task_manager.add_task(make_task("t2", order=0))

    @pytest.mark.asyncio
    async def test_order_of_completed_task_can_be_reused(self, task_manager):
        await task_manager.add_task(make_task("t1", order=0, status=TaskStatus.COMPLETED))

        task = await task_manager.add_task(make_task("t2", order=0))

        assert task.order == 0

    @pytest.mark.asyncio
    async def test_empty_description_rejected(self, task_manager):
        with pytest.raises(ValidationError):
            await task_manager.add_task(replace(make_task("t1"), description="  "))

    @pytest.mark.asyncio
    async def test_empty_definition_of_done_rejected(self, task_manager):
        with pytest.raises(ValidationError):
            await task_manager.add_task(replace(make_task("t1"), definition_of_done=""))

    @pytest.mark.asyncio
    async def test_round_trip_preserves_fields(self, task_manager):
        task = Task(
            id="t1",
            description="Analyze",
            definition_of_done="Analyzed",
            trigger_types=frozenset({"polling", "dynamic"}),
            data={"parameters": {"position": "sell"}},
        )
        await task_manager.add_task(task)

        stored = await task_manager.get_task("t1")

        assert stored.data == {"parameters": {"position": "sell"}}
        assert {getattr(t, "value", t) for t in stored.trigger_types} == {"polling", "dynamic"}


# =============================================================================
# Updating Tasks
# =============================================================================


class TestUpdateTask:
    """Tests for TaskManager.update_task."""

    @pytest.mark.asyncio
    async def test_unknown_task_not_found(self, task_manager):
        with pytest.raises(NotFoundError):
            await task_manager.update_task(make_task("missing"))

    @pytest.mark.asyncio
    async def test_update_is_idempotent(self, task_manager, stores):
        task = await task_manager.add_task(make_task("t1"))
        in_progress = replace(task, status=TaskStatus.IN_PROGRESS)

        await task_manager.update_task(in_progress)
        await task_manager.update_task(in_progress)

        assert stores["tasks"].record_count() == 1
        assert len(await task_manager.get_all_tasks()) == 1
        assert (await task_manager.get_task("t1")).status == TaskStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_update_keeps_created_at_and_order(self, task_manager, clock):
        task = await task_manager.add_task(make_task("t1"))
        clock.advance(1000)

        updated = await task_manager.update_task(replace(task, order=None, status=TaskStatus.IN_PROGRESS))

        assert updated.created_at == task.created_at
        assert updated.order == 0

    @pytest.mark.asyncio
    async def test_completed_task_is_terminal(self, task_manager):
        task = await task_manager.add_task(make_task("t1"))
        done = await task_manager.update_task(replace(task, status=TaskStatus.COMPLETED))

        with pytest.raises(ValidationError, match="completed"):
            await task_manager.update_task(replace(done, status=TaskStatus.IN_PROGRESS))

    @pytest.mark.asyncio
    async def test_rewriting_completed_task_unchanged_is_noop(self, task_manager, stores):
        task = await task_manager.add_task(make_task("t1"))
        done = await task_manager.update_task(replace(task, status=TaskStatus.COMPLETED))

        again = await task_manager.update_task(done)

        assert again == done
        assert stores["tasks"].record_count() == 1

    @pytest.mark.asyncio
    async def test_order_collision_on_update_rejected(self, task_manager):
        await task_manager.add_task(make_task("t1"))
        second = await task_manager.add_task(make_task("t2"))

        with pytest.raises(ValidationError, match="collides"):
            await task_manager.update_task(replace(second, order=0))


# =============================================================================
# Current Task Derivation
# =============================================================================


class TestCurrentTask:
    """Tests for the derived current task."""

    @pytest.mark.asyncio
    async def test_empty_queue_has_no_current_task(self, task_manager):
        assert await task_manager.get_current_task() is None

    @pytest.mark.asyncio
    async def test_current_task_is_lowest_non_completed_order(self, task_manager):
        for i in range(3):
            await task_manager.add_task(make_task(f"t{i}"))

        first = await task_manager.get_task("t0")
        await task_manager.update_task(replace(first, status=TaskStatus.COMPLETED))

        assert (await task_manager.get_current_task()).id == "t1"

    @pytest.mark.asyncio
    async def test_all_completed_exhausts_queue(self, task_manager):
        task = await task_manager.add_task(make_task("t0"))
        await task_manager.update_task(replace(task, status=TaskStatus.COMPLETED))

        assert await task_manager.get_current_task() is None

    def test_selection_matches_minimum_order_for_all_status_mixes(self):
        statuses = list(TaskStatus)
        orders = [3, 0, 2, 1]
        rng = random.Random(7)

        for combo in itertools.product(statuses, repeat=len(orders)):
            shuffled = list(zip(orders, combo))
            rng.shuffle(shuffled)
            tasks = [make_task(f"t{order}", order=order, status=status) for order, status in shuffled]

            expected = min(
                (t for t in tasks if t.status != TaskStatus.COMPLETED),
                key=lambda t: t.order,
                default=None,
            )
            assert select_current_task(tasks) == expected

    def test_ties_broken_by_created_at_then_id(self):
        a = replace(make_task("b", order=0), created_at=5)
        b = replace(make_task("a", order=0), created_at=5)
        c = replace(make_task("c", order=0), created_at=1)

        assert select_current_task([a, b, c]).id == "c"
        assert select_current_task([a, b]).id == "a"


# =============================================================================
# Completion Judgment
# =============================================================================


class TestEvaluateTaskCompletion:
    """Tests for TaskManager.evaluate_task_completion."""

    @pytest.mark.asyncio
    async def test_complete(self, task_manager, completion):
        completion.script(TaskCompletion, {"is_complete": True, "reason": "Done"})

        assert await task_manager.evaluate_task_completion(make_task("t1"), make_state()) is True

    @pytest.mark.asyncio
    async def test_camel_case_answer_accepted(self, task_manager, completion):
        completion.script(TaskCompletion, {"isComplete": False, "reason": "Not yet"})

        assert await task_manager.evaluate_task_completion(make_task("t1"), make_state()) is False

    @pytest.mark.asyncio
    async def test_service_failure_returns_false(self, task_manager, completion):
        completion.script(TaskCompletion, ServiceFailure("model unavailable"))

        assert await task_manager.evaluate_task_completion(make_task("t1"), make_state()) is False

    @pytest.mark.asyncio
    async def test_prompt_includes_task_notes_only(self, task_manager, completion):
        completion.script(TaskCompletion, {"is_complete": False, "reason": ""})
        notes = [
            Note(id="n1", key="strike", value=3200, metadata=NoteMetadata(task_id="t1")),
            Note(id="n2", key="unrelated", value="x", metadata=NoteMetadata(task_id="t9")),
        ]

        await task_manager.evaluate_task_completion(make_task("t1"), make_state(notes, recent="Tester: hi"))

        prompt = completion.calls_for(TaskCompletion)[0]
        assert "t1 is done" in prompt
        assert "strike" in prompt
        assert "unrelated" not in prompt
        assert "Tester: hi" in prompt


class TestStoredValueIsolation:
    """Returned tasks do not alias stored records."""

    @pytest.mark.asyncio
    async def test_mutating_returned_data_does_not_change_store(self, task_manager):
        data = {"parameters": {"position": "sell"}}
        await task_manager.add_task(Task(id="t1", description="A", definition_of_done="B", data=data))
        data["parameters"]["position"] = "changed before read"

        fetched = await task_manager.get_task("t1")
        fetched.data["parameters"]["position"] = "buy"

        assert (await task_manager.get_task("t1")).data == {"parameters": {"position": "sell"}}
