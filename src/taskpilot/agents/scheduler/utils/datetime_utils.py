"""
Scheduler Datetime Utilities

This module turns natural-language time expressions into absolute instants:
- normalize: Resolve an expression against a reference "now" and timezone
- resolve_timeframe: Concrete [start, end) range for a check_calendar timeframe
- parse_iso_datetime: Parse an ISO-8601 string, tolerating a trailing 'Z'
- detect_offset: Extract the UTC offset embedded in an ISO-8601 string
- parse_google_calendar_datetime: Parse Google Calendar start/end dicts
- format_local_time / format_local_datetime: Human-readable local rendering

Resolution rules (fixed precedence, first match wins):
1. A mentioned time is always the start time, never the end time.
2. Hours without AM/PM: 1-6 are PM, 7-11 are AM, 12 is PM.
3. Named anchors: morning 09:00, afternoon 14:00, evening 18:00,
   night 20:00, noon 12:00, midnight 00:00.
4. Day anchors: "tomorrow" is the next calendar day, "next <weekday>" the
   next future occurrence, "this <weekday>" this week's occurrence if
   still upcoming, otherwise next week's.
5. A date without a time starts at 09:00.
6. Duration: 60 minutes by default, 30 for quick/brief, 120 for long.
"""

import re
from datetime import date, datetime, time, timedelta
from typing import Dict, Optional, Tuple, Union

import pytz

from taskpilot.agents.scheduler.dto import (
    AmbiguityMarker,
    AmbiguousDimension,
    TimeRange,
)

WEEKDAYS: Dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

NAMED_ANCHORS: Dict[str, Tuple[int, int]] = {
    "noon": (12, 0),
    "midnight": (0, 0),
    "morning": (9, 0),
    "afternoon": (14, 0),
    "evening": (18, 0),
    "tonight": (20, 0),
    "night": (20, 0),
}

DEFAULT_START = (9, 0)
DEFAULT_DURATION_MINUTES = 60
SHORT_DURATION_MINUTES = 30
LONG_DURATION_MINUTES = 120
MAX_DURATION_MINUTES = 7 * 24 * 60

_WEEKDAY_PATTERN = "|".join(WEEKDAYS)

_EXPLICIT_DURATION_RE = re.compile(
    r"\b(?:for\s+)?(\d+(?:\.\d+)?)[\s-]*(minutes?|mins?|hours?|hrs?|hr|h)\b"
)
_HALF_HOUR_RE = re.compile(r"\b(?:for\s+)?half\s+an\s+hour\b")
_ONE_HOUR_RE = re.compile(r"\bfor\s+(?:an|one)\s+hour\b")
_VAGUE_DURATION_RE = re.compile(r"\b(?:a\s+while|a\s+few\s+hours|some\s+time)\b")
_SHORT_RE = re.compile(r"\b(?:quick|brief)\b")
_LONG_RE = re.compile(r"\blong\b")

_MERIDIEM_TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(a\.?m\.?|p\.?m\.?)(?=\W|$)")
_COLON_TIME_RE = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_BARE_HOUR_RE = re.compile(
    rf"\b(?:at|@|around|today|tonight|tomorrow|{_WEEKDAY_PATTERN})\s+(\d{{1,2}})\b(?!\s*(?:st|nd|rd|th|/|-))"
)

_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_NEXT_WEEKDAY_RE = re.compile(rf"\bnext\s+({_WEEKDAY_PATTERN})\b")
_THIS_WEEKDAY_RE = re.compile(rf"\b(?:this\s+)?({_WEEKDAY_PATTERN})\b")
_OFFSET_RE = re.compile(r"([+-]\d{2}:?\d{2}|Z)$")

_VAGUE = object()


def get_timezone(timezone_name: str):
    """
    Resolve an IANA timezone name.

    Raises:
        pytz.UnknownTimeZoneError: if the name is not a known zone
    """
    return pytz.timezone(timezone_name)


def normalize(
    expression: str,
    reference_now: datetime,
    timezone_name: str,
) -> Union[TimeRange, AmbiguityMarker]:
    """
    Resolve a natural-language time expression into absolute start/end instants.

    Args:
        expression: Free text such as "quick sync tomorrow at 2"
        reference_now: Timezone-aware "now" the expression is relative to
        timezone_name: IANA timezone of the caller

    Returns:
        TimeRange with offset-aware start/end, or an AmbiguityMarker naming
        the missing dimension(s) when the expression cannot be resolved
    """
    tz = get_timezone(timezone_name)
    now = _to_timezone(reference_now, tz)
    text = " ".join(expression.lower().split())

    duration, text = _extract_duration(text)
    if duration is _VAGUE:
        return AmbiguityMarker(
            missing=[AmbiguousDimension.DURATION],
            question="How long should it last?",
        )

    day = _extract_day(text, now.date())
    clock = _extract_clock_time(text)
    if clock is None:
        clock = _extract_named_anchor(text)

    if day is None and clock is None:
        return AmbiguityMarker(
            missing=[AmbiguousDimension.DATE, AmbiguousDimension.TIME_OF_DAY],
            question="What day and time would you like to schedule it for?",
        )

    if clock is None:
        clock = DEFAULT_START

    try:
        if day is None:
            start = _localize(tz, now.date(), clock)
            if start <= now:
                start = _localize(tz, now.date() + timedelta(days=1), clock)
        else:
            start = _localize(tz, day, clock)
        end = tz.normalize(start + timedelta(minutes=duration))
    except OverflowError:
        return AmbiguityMarker(
            missing=[AmbiguousDimension.DATE],
            question="What day would you like to schedule it for?",
        )
    return TimeRange(start=start, end=end)


def resolve_timeframe(timeframe: str, now: datetime, timezone_name: str) -> TimeRange:
    """
    Map a check_calendar timeframe to a concrete [start, end) range.

    today: start of today to start of tomorrow
    tomorrow: start of tomorrow to start of the day after
    week: now to now + 7 days
    """
    tz = get_timezone(timezone_name)
    local_now = _to_timezone(now, tz)
    today = local_now.date()

    if timeframe == "today":
        return TimeRange(
            start=_localize(tz, today, (0, 0)),
            end=_localize(tz, today + timedelta(days=1), (0, 0)),
        )
    if timeframe == "tomorrow":
        return TimeRange(
            start=_localize(tz, today + timedelta(days=1), (0, 0)),
            end=_localize(tz, today + timedelta(days=2), (0, 0)),
        )
    if timeframe == "week":
        return TimeRange(start=local_now, end=tz.normalize(local_now + timedelta(days=7)))

    raise ValueError(f"Invalid timeframe specified: {timeframe}")


def parse_iso_datetime(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 string. Returns None when it is not parseable."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def detect_offset(iso_value: str) -> str:
    """Return the trailing UTC offset of an ISO string, or 'Z' if there is none."""
    match = _OFFSET_RE.search(iso_value or "")
    return match.group(1) if match else "Z"


def localize_naive(dt: datetime, timezone_name: str) -> datetime:
    """Attach the caller's timezone to a naive datetime; aware values pass through."""
    if dt.tzinfo is not None:
        return dt
    return get_timezone(timezone_name).localize(dt)


def parse_google_calendar_datetime(date_dict: dict, timezone_name: str) -> Tuple[datetime, bool]:
    """
    Parse Google Calendar datetime format.

    Args:
        date_dict: Google Calendar start/end dict ("dateTime" or "date")
        timezone_name: Timezone for all-day events

    Returns:
        (datetime, is_all_day)
    """
    if date_dict.get("dateTime"):
        parsed = parse_iso_datetime(date_dict["dateTime"])
        if parsed is None:
            raise ValueError(f"Unparseable event time: {date_dict['dateTime']}")
        return parsed, False
    if date_dict.get("date"):
        day = datetime.strptime(date_dict["date"], "%Y-%m-%d").date()
        return _localize(get_timezone(timezone_name), day, (0, 0)), True
    raise ValueError("Event has neither dateTime nor date")


def format_local_time(dt: datetime, timezone_name: str) -> str:
    """Format as a local clock time, e.g. '2:00 PM'."""
    local = dt.astimezone(get_timezone(timezone_name))
    return local.strftime("%I:%M %p").lstrip("0")


def format_local_datetime(dt: datetime, timezone_name: str) -> str:
    """Format as a local date and time, e.g. 'Wednesday, February 7, 2024 at 9:00 AM'."""
    local = dt.astimezone(get_timezone(timezone_name))
    return f"{local.strftime('%A, %B')} {local.day}, {local.year} at {format_local_time(local, timezone_name)}"


def format_prompt_time(now: datetime, timezone_name: str) -> str:
    """Current time as given to the model, e.g. '02/07/2024, 08:15:00 AM'."""
    return now.astimezone(get_timezone(timezone_name)).strftime("%m/%d/%Y, %I:%M:%S %p")


def _to_timezone(dt: datetime, tz) -> datetime:
    if dt.tzinfo is None:
        return tz.localize(dt)
    return dt.astimezone(tz)


def _localize(tz, day: date, clock: Tuple[int, int]) -> datetime:
    return tz.localize(datetime.combine(day, time(clock[0], clock[1])))


def _extract_duration(text: str):
    """Return (duration_minutes or _VAGUE, text without the duration phrase)."""
    match = _EXPLICIT_DURATION_RE.search(text)
    if match:
        amount = float(match.group(1))
        minutes = amount * 60 if match.group(2).startswith("h") else amount
        if minutes > MAX_DURATION_MINUTES:
            return _VAGUE, text
        if minutes > 0:
            return int(round(minutes)), _remove(text, match)

    match = _HALF_HOUR_RE.search(text)
    if match:
        return 30, _remove(text, match)

    match = _ONE_HOUR_RE.search(text)
    if match:
        return 60, _remove(text, match)

    if _VAGUE_DURATION_RE.search(text):
        return _VAGUE, text
    if _SHORT_RE.search(text):
        return SHORT_DURATION_MINUTES, text
    if _LONG_RE.search(text):
        return LONG_DURATION_MINUTES, text
    return DEFAULT_DURATION_MINUTES, text


def _extract_clock_time(text: str) -> Optional[Tuple[int, int]]:
    match = _MERIDIEM_TIME_RE.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2) or 0)
        if 1 <= hour <= 12 and minute < 60:
            is_pm = match.group(3).startswith("p")
            if hour == 12:
                hour = 12 if is_pm else 0
            elif is_pm:
                hour += 12
            return hour, minute

    match = _COLON_TIME_RE.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour < 24 and minute < 60:
            return _infer_meridiem(hour), minute

    match = _BARE_HOUR_RE.search(text)
    if match:
        hour = int(match.group(1))
        if 1 <= hour <= 12:
            return _infer_meridiem(hour), 0

    return None


def _infer_meridiem(hour: int) -> int:
    """Hours without AM/PM: 1-6 are PM, 7-11 AM, 12 PM. 0 and 13-23 are literal."""
    if 1 <= hour <= 6:
        return hour + 12
    return hour


def _extract_named_anchor(text: str) -> Optional[Tuple[int, int]]:
    for name, clock in NAMED_ANCHORS.items():
        if re.search(rf"\b{name}\b", text):
            return clock
    return None


def _extract_day(text: str, today: date) -> Optional[date]:
    match = _ISO_DATE_RE.search(text)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            pass

    if re.search(r"\bday\s+after\s+tomorrow\b", text):
        return today + timedelta(days=2)
    if re.search(r"\btomorrow\b", text):
        return today + timedelta(days=1)
    if re.search(r"\b(?:today|tonight)\b", text):
        return today

    match = _NEXT_WEEKDAY_RE.search(text)
    if match:
        days_ahead = (WEEKDAYS[match.group(1)] - today.weekday()) % 7 or 7
        return today + timedelta(days=days_ahead)

    match = _THIS_WEEKDAY_RE.search(text)
    if match:
        week_start = today - timedelta(days=today.weekday())
        candidate = week_start + timedelta(days=WEEKDAYS[match.group(1)])
        if candidate < today:
            candidate += timedelta(days=7)
        return candidate

    return None


def _remove(text: str, match) -> str:
    return (text[: match.start()] + " " + text[match.end():]).strip()


def combine_local(day: date, clock: Tuple[int, int], timezone_name: str) -> datetime:
    """Aware datetime for a wall-clock time on a given day in the caller's timezone."""
    return _localize(get_timezone(timezone_name), day, clock)
