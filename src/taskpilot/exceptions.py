"""
TaskPilot error taxonomy

- InputValidationError: raw user input rejected before any external call
- ProcessingError: the model call failed or returned something unusable
- LLMTimeoutError: the model did not answer in time (never retried)
- TaskValidationError: a candidate task failed validation, carries the failing kind
- CalendarActionError: the calendar round trip failed, never leaves the executor
"""

from enum import Enum


class TaskPilotError(Exception):
    """Base class for all TaskPilot errors."""


class InputValidationError(TaskPilotError):
    """User input is empty, oversized or contains unsafe characters."""


class ProcessingError(TaskPilotError):
    """The model call failed or its output could not be used."""


class LLMTimeoutError(ProcessingError):
    """The model did not respond within the configured timeout."""


class ValidationErrorKind(str, Enum):
    TITLE_EMPTY = "TitleEmpty"
    TITLE_TOO_LONG = "TitleTooLong"
    DESCRIPTION_TOO_LONG = "DescriptionTooLong"
    INVALID_START_TIME = "InvalidStartTime"
    INVALID_END_TIME = "InvalidEndTime"
    INVALID_TIME_ORDER = "InvalidTimeOrder"
    INVALID_STATUS = "InvalidStatus"
    INVALID_ID = "InvalidId"
    CONFIDENCE_OUT_OF_RANGE = "ConfidenceOutOfRange"
    MISSING_CLARIFICATION_QUESTIONS = "MissingClarificationQuestions"


class TaskValidationError(TaskPilotError):
    """A candidate task failed validation."""

    def __init__(self, kind: ValidationErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class CalendarActionError(TaskPilotError):
    """The external calendar call failed or the directive could not be executed."""
