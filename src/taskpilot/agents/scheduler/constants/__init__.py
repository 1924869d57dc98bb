"""
Scheduler Agent Constants
"""


class CALENDAR_SETTINGS:
    """Calendar settings"""
    PRIMARY_CALENDAR_ID = "primary"
    MAX_RESULTS = 10
    ORDER_BY = "startTime"


class GOOGLE_CALENDAR_SETTINGS:
    """Google Calendar settings"""
    SCOPES = [
        "https://www.googleapis.com/auth/calendar.events",
        "https://www.googleapis.com/auth/calendar.readonly",
    ]
    API_VERSION = "v3"
    AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URI = "https://oauth2.googleapis.com/token"


class SUGGESTION_SETTINGS:
    """Free-slot search for suggest_meeting_time"""
    SEARCH_DAYS = 2
    MAX_SUGGESTIONS = 3
    SLOT_STEP_MINUTES = 30
    WORKDAY_END = (18, 0)
    EVENING_END = (21, 0)
    MAX_EVENTS = 50
