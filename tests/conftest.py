"""
Pytest configuration and fixtures for taskloop tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from taskloop.core import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from taskloop.completion import Content, ModelClass  # noqa: E402
from taskloop.core import NoteStore, TaskManager, TriggerEngine  # noqa: E402
from taskloop.errors import ServiceFailure  # noqa: E402
from taskloop.loop import IterationOrchestrator, MessageLog  # noqa: E402
from taskloop.store import InMemoryRecordStore  # noqa: E402

SCOPE_ID = "room-1"
AGENT_ID = "agent-1"


class FakeClock:
    """Controllable epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class ScriptedCompletion:
    """
    CompletionService returning queued answers.

    Structured answers are queued per result model name and may be dicts
    (validated with the model) or exceptions (raised). An empty queue
    raises ServiceFailure. Free-form answers may be Content, str, None or
    exceptions; an empty queue yields None.
    """

    def __init__(self):
        self._structured: dict[str, list] = {}
        self._freeform: list = []
        self.structured_calls: list[tuple[str, str, ModelClass]] = []
        self.freeform_calls: list[str] = []

    def script(self, schema, *answers):
        self._structured.setdefault(schema.__name__, []).extend(answers)
        return self

    def script_freeform(self, *answers):
        self._freeform.extend(answers)
        return self

    def calls_for(self, schema) -> list[str]:
        return [context for name, context, _ in self.structured_calls if name == schema.__name__]

    async def generate_structured(self, context, schema, model_class=ModelClass.SMALL):
        self.structured_calls.append((schema.__name__, context, model_class))
        queue = self._structured.get(schema.__name__)
        if not queue:
            raise ServiceFailure(f"No scripted {schema.__name__} answer")
        answer = queue.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return schema.model_validate(answer)

    async def generate_freeform(self, context, model_class=ModelClass.LARGE):
        self.freeform_calls.append(context)
        if not self._freeform:
            return None
        answer = self._freeform.pop(0)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, str):
            return Content(text=answer)
        return answer


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def completion():
    return ScriptedCompletion()


@pytest.fixture
def stores():
    return {table: InMemoryRecordStore(table=table) for table in ("tasks", "triggers", "notes", "messages")}


@pytest.fixture
def task_manager(stores, completion, clock):
    return TaskManager(stores["tasks"], completion, scope_id=SCOPE_ID, author_id=AGENT_ID, clock=clock)


@pytest.fixture
def trigger_engine(stores, completion, clock):
    return TriggerEngine(stores["triggers"], completion, scope_id=SCOPE_ID, author_id=AGENT_ID, clock=clock)


@pytest.fixture
def note_store(stores, completion, clock):
    return NoteStore(stores["notes"], completion, scope_id=SCOPE_ID, author_id=AGENT_ID, clock=clock)


@pytest.fixture
def message_log(stores, clock):
    return MessageLog(
        stores["messages"],
        scope_id=SCOPE_ID,
        agent_id=AGENT_ID,
        agent_name="Tester",
        clock=clock,
    )


@pytest.fixture
def orchestrator(task_manager, trigger_engine, note_store, message_log, completion):
    return IterationOrchestrator(
        tasks=task_manager,
        triggers=trigger_engine,
        notes=note_store,
        messages=message_log,
        completion=completion,
        agent_name="Tester",
    )
