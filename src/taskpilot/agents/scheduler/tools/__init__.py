"""
Scheduler Callable Actions

The actions the model may select instead of answering in text. Each tool
only validates its arguments and returns a directive; the calendar round
trip itself happens later in the CalendarActionExecutor, once the caller
has confirmed a credential is available.
"""

from typing import Any, Dict, List, Literal, Optional

from langchain_core.tools import BaseTool, tool


@tool(parse_docstring=True)
def check_calendar(timeframe: Literal["today", "tomorrow", "week"]) -> Dict[str, Any]:
    """Check the user's calendar for events in a specific time range.

    Args:
        timeframe: The time period to check
    """
    return {"name": "check_calendar", "arguments": {"timeframe": timeframe}}


@tool(parse_docstring=True)
def schedule_event(
    title: str,
    startTime: str,
    duration: int,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Schedule a new event in the calendar.

    Args:
        title: Title of the event
        startTime: Start time in ISO format (e.g., 2024-02-07T14:00:00-05:00)
        duration: Duration in minutes
        description: Description of the event (optional)
    """
    arguments: Dict[str, Any] = {"title": title, "startTime": startTime, "duration": duration}
    if description:
        arguments["description"] = description
    return {"name": "schedule_event", "arguments": arguments}


@tool(parse_docstring=True)
def suggest_meeting_time(
    duration: int,
    preferred_time: Optional[Literal["morning", "afternoon", "evening"]] = None,
) -> Dict[str, Any]:
    """Suggest available time slots for a meeting based on calendar availability.

    Args:
        duration: Duration of the meeting in minutes
        preferred_time: Preferred time of day (morning, afternoon, evening)
    """
    arguments: Dict[str, Any] = {"duration": duration}
    if preferred_time:
        arguments["preferred_time"] = preferred_time
    return {"name": "suggest_meeting_time", "arguments": arguments}


SCHEDULER_TOOLS: Dict[str, BaseTool] = {
    check_calendar.name: check_calendar,
    schedule_event.name: schedule_event,
    suggest_meeting_time.name: suggest_meeting_time,
}


def get_registered_tools(include_suggestions: bool = False) -> List[BaseTool]:
    """Tools offered to the model. suggest_meeting_time is opt-in."""
    tools = [check_calendar, schedule_event]
    if include_suggestions:
        tools.append(suggest_meeting_time)
    return tools
