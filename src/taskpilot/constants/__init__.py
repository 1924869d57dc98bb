"""
Application-wide constants
"""


class APP_SETTINGS:
    """Application metadata"""
    APP_NAME = "TaskPilot"
    VERSION = "1.0.0"
    DESCRIPTION = "Conversational task scheduling on top of Google Calendar"


class INPUT_SETTINGS:
    """Limits applied to raw user input before any model call"""
    MAX_LENGTH = 500
    FORBIDDEN_CHARACTERS = "<>{}"


class TASK_SETTINGS:
    """Task field limits"""
    MAX_TITLE_LENGTH = 100
    MAX_DESCRIPTION_LENGTH = 1000


class SESSION_SETTINGS:
    """Session cookie settings"""
    COOKIE_NAME = "sessionId"
    COOKIE_MAX_AGE_SECONDS = 60 * 60 * 24  # 24 hours
    COOKIE_PATH = "/"
    COOKIE_SAMESITE = "strict"


class MESSAGES:
    """Fixed user-facing messages"""
    CHECKING_CALENDAR = "Let me check your calendar..."
    LOGIN_REQUIRED = (
        "I need access to your Google Calendar to check your schedule. "
        "Please log in first."
    )
    CALENDAR_ERROR = (
        "I encountered an error while working with your calendar. "
        "Please try again later."
    )
    PROCESSING_ERROR = "I'm sorry, I couldn't process your request right now. Please try again."
    TIMEOUT_ERROR = "I'm sorry, that took too long. Please try again."
