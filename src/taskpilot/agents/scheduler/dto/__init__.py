"""
Scheduler Data Transfer Objects (DTOs)

This module contains all data models used by the scheduler components:
- Task and ProcessedTask (legacy single-shot extraction)
- ChatResponse, SuggestedAction and FunctionCall (conversational mode)
- Calendar events as returned by the calendar capability
- Normalizer results (resolved time ranges and ambiguity markers)

Pydantic models are the shapes that cross the HTTP boundary and use the
camelCase field names of the wire format as aliases.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


TaskStatus = Literal["pending", "scheduled", "completed"]
ActionType = Literal["schedule", "modify", "info"]
FunctionName = Literal["check_calendar", "schedule_event", "suggest_meeting_time"]


class Task(BaseModel):
    """A schedulable task. end_time is always after start_time once validated."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    status: TaskStatus = "pending"


class ProcessedTask(BaseModel):
    """Result of the legacy single-shot extraction."""
    model_config = ConfigDict(populate_by_name=True)

    task: Task
    confidence: float = Field(ge=0, le=1)
    needs_clarification: bool = Field(alias="needsClarification")
    clarification_questions: Optional[List[str]] = Field(
        default=None, alias="clarificationQuestions"
    )


class SuggestedAction(BaseModel):
    type: ActionType
    description: str


class FunctionCall(BaseModel):
    """A callable action selected by the model, pending execution."""
    name: FunctionName
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ChatReply(BaseModel):
    """Structured reply the model is asked to produce when it answers in text."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(description="The reply to show the user")
    suggested_actions: Optional[List[SuggestedAction]] = Field(
        default=None,
        alias="suggestedActions",
        description="Optional follow-up actions the user might want to take",
    )


class ChatResponse(BaseModel):
    """One reply per user turn in conversational mode."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    suggested_actions: Optional[List[SuggestedAction]] = Field(
        default=None, alias="suggestedActions"
    )
    function_call: Optional[FunctionCall] = Field(default=None, alias="functionCall")


class CalendarEvent(BaseModel):
    """Calendar event data as needed for rendering."""
    id: str = ""
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    all_day: bool = False


class AmbiguousDimension(str, Enum):
    TIME_OF_DAY = "time-of-day"
    DATE = "date"
    DURATION = "duration"


@dataclass(frozen=True)
class TimeRange:
    """Absolute start/end instants resolved from a time expression."""
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()


@dataclass(frozen=True)
class AmbiguityMarker:
    """Signals that an expression lacks information, naming what is missing."""
    missing: List[AmbiguousDimension] = field(default_factory=list)
    question: str = ""

    @property
    def dimension(self) -> AmbiguousDimension:
        return self.missing[0]
