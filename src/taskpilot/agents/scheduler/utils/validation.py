"""
Task validation.

Checks run in a fixed order and stop at the first failure; a failing
candidate never yields a partial Task.
"""

from typing import Any, Mapping, get_args

from taskpilot.agents.scheduler.dto import ProcessedTask, Task, TaskStatus
from taskpilot.agents.scheduler.utils.datetime_utils import parse_iso_datetime
from taskpilot.constants import TASK_SETTINGS
from taskpilot.exceptions import TaskValidationError, ValidationErrorKind


def _field(candidate: Mapping[str, Any], camel: str, snake: str, default=None):
    if camel in candidate:
        return candidate[camel]
    return candidate.get(snake, default)


def validate_task(candidate: Mapping[str, Any]) -> Task:
    """
    Validate a candidate task dict and build a Task.

    Checks:
    1. Title is non-empty and at most 100 characters
    2. Description is at most 1000 characters, if present
    3. Both timestamps parse as instants with a UTC offset
    4. End time is after start time
    5. Status, if present, is a known task status and id, if present, is a string

    Raises:
        TaskValidationError: with the kind of the first failing check
    """
    title = candidate.get("title")
    title = title.strip() if isinstance(title, str) else ""
    if not title:
        raise TaskValidationError(ValidationErrorKind.TITLE_EMPTY, "Title cannot be empty")
    if len(title) > TASK_SETTINGS.MAX_TITLE_LENGTH:
        raise TaskValidationError(ValidationErrorKind.TITLE_TOO_LONG, "Title is too long")

    description = candidate.get("description")
    if not isinstance(description, str):
        description = None
    if description is not None and len(description) > TASK_SETTINGS.MAX_DESCRIPTION_LENGTH:
        raise TaskValidationError(
            ValidationErrorKind.DESCRIPTION_TOO_LONG, "Description is too long"
        )

    start_raw = _field(candidate, "startTime", "start_time")
    end_raw = _field(candidate, "endTime", "end_time")
    start = parse_iso_datetime(start_raw)
    if start is None or start.tzinfo is None:
        raise TaskValidationError(
            ValidationErrorKind.INVALID_START_TIME, "Invalid start time format"
        )
    end = parse_iso_datetime(end_raw)
    if end is None or end.tzinfo is None:
        raise TaskValidationError(
            ValidationErrorKind.INVALID_END_TIME, "Invalid end time format"
        )

    if end <= start:
        raise TaskValidationError(
            ValidationErrorKind.INVALID_TIME_ORDER, "End time must be after start time"
        )

    status = candidate.get("status") or "pending"
    if status not in get_args(TaskStatus):
        raise TaskValidationError(ValidationErrorKind.INVALID_STATUS, f"Unknown task status: {status}")
    task_id = candidate.get("id")
    if task_id is not None and not isinstance(task_id, str):
        raise TaskValidationError(ValidationErrorKind.INVALID_ID, "Task id must be a string")

    return Task(
        id=task_id,
        title=title,
        description=description or None,
        start_time=start_raw,
        end_time=end_raw,
        status=status,
    )


def validate_processed_task(candidate: Mapping[str, Any]) -> ProcessedTask:
    """
    Validate a legacy single-shot extraction result.

    Runs the task checks, then requires confidence in [0, 1] and a non-empty
    question list whenever clarification is requested.
    """
    task = candidate.get("task")
    task = validate_task(task if isinstance(task, Mapping) else {})

    confidence = candidate.get("confidence")
    if (
        isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
        or not 0 <= confidence <= 1
    ):
        raise TaskValidationError(
            ValidationErrorKind.CONFIDENCE_OUT_OF_RANGE,
            "Confidence must be between 0 and 1",
        )

    needs_clarification = bool(_field(candidate, "needsClarification", "needs_clarification", False))
    questions = _field(candidate, "clarificationQuestions", "clarification_questions")
    questions = [q for q in (questions or []) if isinstance(q, str) and q.strip()]
    if needs_clarification and not questions:
        raise TaskValidationError(
            ValidationErrorKind.MISSING_CLARIFICATION_QUESTIONS,
            "Clarification was requested without any questions",
        )

    return ProcessedTask(
        task=task,
        confidence=float(confidence),
        needs_clarification=needs_clarification,
        clarification_questions=questions or None,
    )
