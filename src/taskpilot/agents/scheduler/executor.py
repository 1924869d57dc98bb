"""
Calendar Action Executor

Carries out a function call selected by the orchestrator against the user's
calendar and turns the raw result into a user-facing ChatResponse:
- check_calendar: list events for today / tomorrow / the coming week
- schedule_event: build, validate and insert a task
- suggest_meeting_time: propose free slots around existing events

A broken calendar round trip must not end the conversation, so calendar
failures never leave this module; they become a fixed apology message.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from taskpilot.agents.scheduler.calendar_client import GoogleCalendarClient
from taskpilot.agents.scheduler.constants import SUGGESTION_SETTINGS
from taskpilot.agents.scheduler.dto import (
    CalendarEvent,
    ChatResponse,
    FunctionCall,
    SuggestedAction,
    TimeRange,
)
from taskpilot.agents.scheduler.utils.datetime_utils import (
    MAX_DURATION_MINUTES,
    NAMED_ANCHORS,
    combine_local,
    format_local_datetime,
    format_local_time,
    get_timezone,
    localize_naive,
    normalize,
    parse_google_calendar_datetime,
    parse_iso_datetime,
    resolve_timeframe,
)
from taskpilot.agents.scheduler.utils.validation import validate_task
from taskpilot.constants import MESSAGES
from taskpilot.exceptions import (
    CalendarActionError,
    TaskValidationError,
    ValidationErrorKind,
)

logger = logging.getLogger(__name__)

CalendarFactory = Callable[[str], GoogleCalendarClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalendarActionExecutor:
    """
    Executes pending calendar actions on behalf of the caller.

    Args:
        calendar_factory: Builds a calendar client from an access token
        clock: Returns the current timezone-aware time (injectable for tests)
    """

    def __init__(
        self,
        calendar_factory: CalendarFactory = GoogleCalendarClient,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.calendar_factory = calendar_factory
        self._clock = clock or _utcnow
        self._handlers = {
            "check_calendar": self._check_calendar,
            "schedule_event": self._schedule_event,
            "suggest_meeting_time": self._suggest_meeting_time,
        }

    @staticmethod
    def login_required() -> ChatResponse:
        """Guided prompt used when an action needs calendar access but none is present."""
        return ChatResponse(
            message=MESSAGES.LOGIN_REQUIRED,
            suggested_actions=[
                SuggestedAction(type="info", description="Log in with Google Calendar"),
            ],
        )

    def execute(
        self,
        function_call: FunctionCall,
        access_token: Optional[str],
        timezone_name: str = "UTC",
    ) -> ChatResponse:
        """
        Execute one function call and describe the outcome.

        Args:
            function_call: Action selected by the model
            access_token: Opaque bearer credential for the calendar
            timezone_name: Caller's IANA timezone

        Returns:
            ChatResponse with the result message and suggested follow-ups
        """
        if not access_token:
            return self.login_required()

        try:
            handler = self._handlers.get(function_call.name)
            if handler is None:
                raise CalendarActionError(f"Unsupported action: {function_call.name}")
            calendar = self._connect(access_token)
            return handler(calendar, function_call.arguments, timezone_name)
        except TaskValidationError as e:
            logger.warning(f"Rejected {function_call.name} directive: {e.kind.value} {e.message}")
            return ChatResponse(
                message=f"I couldn't schedule that event: {e.message}.",
                suggested_actions=[
                    SuggestedAction(type="modify", description="Change the event details"),
                ],
            )
        except CalendarActionError as e:
            logger.error(f"Error executing function {function_call.name}: {str(e)}")
            return ChatResponse(message=MESSAGES.CALENDAR_ERROR, suggested_actions=[])

    def _connect(self, access_token: str) -> GoogleCalendarClient:
        try:
            return self.calendar_factory(access_token)
        except Exception as e:
            raise CalendarActionError(f"Could not connect to calendar: {str(e)}") from e

    def _check_calendar(
        self,
        calendar: GoogleCalendarClient,
        arguments: Dict[str, Any],
        timezone_name: str,
    ) -> ChatResponse:
        timeframe = arguments.get("timeframe")
        try:
            window = resolve_timeframe(timeframe, self._clock(), timezone_name)
        except ValueError as e:
            raise CalendarActionError(str(e)) from e

        events = self._list_events(calendar, window, timezone_name)
        if not events:
            message = f"I checked your calendar and you have no events scheduled for {timeframe}."
        else:
            message = f"Here are your events for {timeframe}:\n"
            for event in events:
                message += f"\n• {event.title} ({self._describe_times(event, timeframe, timezone_name)})"

        return ChatResponse(
            message=message,
            suggested_actions=[
                SuggestedAction(type="schedule", description=f"Schedule a new event for {timeframe}"),
            ],
        )

    def _schedule_event(
        self,
        calendar: GoogleCalendarClient,
        arguments: Dict[str, Any],
        timezone_name: str,
    ) -> ChatResponse:
        start = self._resolve_start(arguments.get("startTime"), timezone_name)
        try:
            end = start + timedelta(minutes=float(arguments.get("duration")))
        except (TypeError, ValueError, OverflowError):
            raise TaskValidationError(ValidationErrorKind.INVALID_END_TIME, "Invalid duration")

        description = arguments.get("description") or None
        task = validate_task({
            "title": arguments.get("title"),
            "description": description,
            "startTime": start.isoformat(),
            "endTime": end.isoformat(),
            "status": "pending",
        })

        try:
            created = calendar.insert_event(task, timezone_name)
        except Exception as e:
            raise CalendarActionError(f"Failed to create event: {str(e)}") from e

        task = task.model_copy(update={"id": created.get("id"), "status": "scheduled"})
        logger.info(f"Scheduled task {task.id}: {task.title} {task.start_time} - {task.end_time}")

        message = f'Great! I\'ve scheduled "{task.title}" for {format_local_datetime(start, timezone_name)}'
        if description:
            message += f" with the description: {description}"
        message += ". The event has been added to your calendar."

        return ChatResponse(
            message=message,
            suggested_actions=[
                SuggestedAction(type="info", description="Check my schedule"),
                SuggestedAction(type="schedule", description="Schedule another event"),
            ],
        )

    def _suggest_meeting_time(
        self,
        calendar: GoogleCalendarClient,
        arguments: Dict[str, Any],
        timezone_name: str,
    ) -> ChatResponse:
        try:
            duration = int(float(arguments.get("duration") or 60))
        except (TypeError, ValueError, OverflowError) as e:
            raise CalendarActionError("Invalid meeting duration") from e
        if not 0 < duration <= MAX_DURATION_MINUTES:
            raise CalendarActionError("Invalid meeting duration")

        preferred = arguments.get("preferred_time") or "morning"
        anchor = NAMED_ANCHORS.get(preferred, NAMED_ANCHORS["morning"])
        day_end = SUGGESTION_SETTINGS.EVENING_END if preferred == "evening" else SUGGESTION_SETTINGS.WORKDAY_END

        now = self._clock().astimezone(get_timezone(timezone_name))
        window = TimeRange(start=now, end=now + timedelta(days=SUGGESTION_SETTINGS.SEARCH_DAYS))
        busy = [
            (event.start_time, event.end_time or event.start_time)
            for event in self._list_events(
                calendar, window, timezone_name, max_results=SUGGESTION_SETTINGS.MAX_EVENTS
            )
        ]

        slots = self._free_slots(now, window.end, duration, anchor, day_end, busy, timezone_name)
        if not slots:
            return ChatResponse(
                message=(
                    f"I couldn't find a free {duration}-minute slot in the next "
                    f"{SUGGESTION_SETTINGS.SEARCH_DAYS} days."
                ),
                suggested_actions=[SuggestedAction(type="info", description="Check my schedule")],
            )

        message = f"Here are some times that work for a {duration}-minute meeting:\n"
        actions = []
        for slot in slots:
            label = format_local_datetime(slot, timezone_name)
            message += f"\n• {label}"
            actions.append(SuggestedAction(type="schedule", description=f"Schedule a meeting on {label}"))
        return ChatResponse(message=message, suggested_actions=actions)

    @staticmethod
    def _free_slots(
        now: datetime,
        until: datetime,
        duration: int,
        anchor: Tuple[int, int],
        day_end: Tuple[int, int],
        busy: List[Tuple[datetime, datetime]],
        timezone_name: str,
    ) -> List[datetime]:
        slots: List[datetime] = []
        step = timedelta(minutes=SUGGESTION_SETTINGS.SLOT_STEP_MINUTES)
        length = timedelta(minutes=duration)

        for offset in range(SUGGESTION_SETTINGS.SEARCH_DAYS + 1):
            day = now.date() + timedelta(days=offset)
            candidate = combine_local(day, anchor, timezone_name)
            closing = combine_local(day, day_end, timezone_name)
            while candidate + length <= closing and candidate < until:
                overlaps = any(candidate < end and start < candidate + length for start, end in busy)
                if candidate > now and not overlaps:
                    slots.append(candidate)
                    if len(slots) >= SUGGESTION_SETTINGS.MAX_SUGGESTIONS:
                        return slots
                candidate += step
        return slots

    def _resolve_start(self, start_raw: Any, timezone_name: str) -> datetime:
        """ISO start time, localized when naive; anything else goes through the normalizer."""
        parsed = parse_iso_datetime(start_raw)
        if parsed is not None:
            try:
                return localize_naive(parsed, timezone_name)
            except OverflowError:
                raise TaskValidationError(ValidationErrorKind.INVALID_START_TIME, "Invalid start time format")

        if isinstance(start_raw, str) and start_raw.strip():
            resolved = normalize(start_raw, self._clock(), timezone_name)
            if isinstance(resolved, TimeRange):
                logger.info(f"Resolved start time {start_raw!r} to {resolved.start_iso}")
                return resolved.start

        raise TaskValidationError(ValidationErrorKind.INVALID_START_TIME, "Invalid start time format")

    def _list_events(
        self,
        calendar: GoogleCalendarClient,
        window: TimeRange,
        timezone_name: str,
        **kwargs,
    ) -> List[CalendarEvent]:
        try:
            raw_events = calendar.list_events(window.start, window.end, **kwargs)
            return [self._to_calendar_event(event, timezone_name) for event in raw_events]
        except Exception as e:
            raise CalendarActionError(f"Failed to fetch events: {str(e)}") from e

    @staticmethod
    def _to_calendar_event(google_event: Dict[str, Any], timezone_name: str) -> CalendarEvent:
        start_time, all_day = parse_google_calendar_datetime(google_event.get("start", {}), timezone_name)
        end_time = None
        if google_event.get("end"):
            end_time, _ = parse_google_calendar_datetime(google_event["end"], timezone_name)

        return CalendarEvent(
            id=google_event.get("id", ""),
            title=google_event.get("summary", "Untitled Event"),
            description=google_event.get("description"),
            start_time=start_time,
            end_time=end_time,
            all_day=all_day,
        )

    @staticmethod
    def _describe_times(event: CalendarEvent, timeframe: str, timezone_name: str) -> str:
        if event.all_day:
            times = "all day"
        else:
            times = format_local_time(event.start_time, timezone_name)
            if event.end_time:
                times += f" - {format_local_time(event.end_time, timezone_name)}"
        if timeframe == "week":
            local = event.start_time.astimezone(get_timezone(timezone_name))
            times = f"{local.strftime('%a %b')} {local.day}, {times}"
        return times
