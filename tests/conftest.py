"""
Pytest configuration and shared fixtures.
"""

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from langchain_core.messages import AIMessage

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taskpilot.agents.scheduler.executor import CalendarActionExecutor  # noqa: E402
from taskpilot.agents.scheduler.orchestrator import SchedulingOrchestrator  # noqa: E402
from taskpilot.config import Settings  # noqa: E402
from taskpilot.db.persistence import ConversationMemory  # noqa: E402

# Wednesday, February 7, 2024 at 8:15 AM in New York
FIXED_NOW = datetime(2024, 2, 7, 13, 15, tzinfo=timezone.utc)
NEW_YORK = "America/New_York"


class FakeClock:
    """Controllable clock returning timezone-aware UTC times."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeChatModel:
    """Chat model double: replays queued AIMessages and records every call."""

    def __init__(self, responses=None, delay: float = 0.0, error: Exception = None):
        self.responses = list(responses or [])
        self.delay = delay
        self.error = error
        self.calls = []
        self.bound_tools = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = list(tools)
        return self

    async def ainvoke(self, messages, **kwargs):
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return AIMessage(content='{"message": "How can I help with your schedule?"}')


class FakeCalendar:
    """Calendar client double with canned events."""

    def __init__(self, events=None, error: Exception = None):
        self.events = list(events or [])
        self.error = error
        self.list_calls = []
        self.inserted = []

    def list_events(self, time_min, time_max, max_results=10, calendar_id="primary"):
        self.list_calls.append({"time_min": time_min, "time_max": time_max, "max_results": max_results})
        if self.error is not None:
            raise self.error
        return list(self.events)

    def insert_event(self, task, time_zone, calendar_id="primary"):
        if self.error is not None:
            raise self.error
        self.inserted.append({"task": task, "time_zone": time_zone})
        return {"id": f"evt-{len(self.inserted)}", "summary": task.title}


class FakeCalendarFactory:
    """Stands in for GoogleCalendarClient(access_token)."""

    def __init__(self, calendar: FakeCalendar):
        self.calendar = calendar
        self.tokens = []

    def __call__(self, access_token):
        self.tokens.append(access_token)
        return self.calendar


def tool_call_message(name, args, call_id="call_1"):
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_model():
    return FakeChatModel()


@pytest.fixture
def fake_calendar():
    return FakeCalendar()


@pytest.fixture
def calendar_factory(fake_calendar):
    return FakeCalendarFactory(fake_calendar)


@pytest.fixture
def memory(clock):
    return ConversationMemory(clock=clock)


@pytest.fixture
def orchestrator(fake_model, memory, clock):
    return SchedulingOrchestrator(
        model=fake_model,
        memory=memory,
        timeout_seconds=1.0,
        default_timezone=NEW_YORK,
        clock=clock,
    )


@pytest.fixture
def executor(calendar_factory, clock):
    return CalendarActionExecutor(calendar_factory=calendar_factory, clock=clock)


@pytest.fixture
def test_settings():
    return Settings(
        APP_ENV="test",
        LLM_API_KEY="test-key",
        DEFAULT_TIMEZONE=NEW_YORK,
        GOOGLE_CLIENT_ID="client-id",
        GOOGLE_CLIENT_SECRET="client-secret",
        GOOGLE_REDIRECT_URI="http://testserver/api/auth/google",
    )
