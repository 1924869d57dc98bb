"""
Supervisor Data Transfer Objects (DTOs)

This module contains the data models used by the turn workflow:
- Turn phases of the explicit action state machine
- The graph state passed between workflow nodes
"""

from enum import Enum
from typing import Optional

from typing_extensions import TypedDict

from taskpilot.agents.scheduler.dto import ChatResponse


class TurnPhase(str, Enum):
    """Where a turn stands in the answer / pending-action / executed cycle."""
    AWAITING_ACTION_DECISION = "awaiting_action_decision"
    ANSWERED = "answered"
    ACTION_PENDING = "action_pending"
    ACTION_EXECUTED = "action_executed"
    AWAITING_CREDENTIALS = "awaiting_credentials"


class TurnState(TypedDict):
    text: str
    session_id: str
    access_token: Optional[str]
    timezone: Optional[str]
    phase: TurnPhase
    response: Optional[ChatResponse]
