"""
Google Calendar Client

Thin adapter over the Google Calendar API for the two operations the
scheduler needs (list events in a range, insert an event), plus the OAuth
helpers used by the login redirect.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build

from taskpilot.agents.scheduler.constants import CALENDAR_SETTINGS, GOOGLE_CALENDAR_SETTINGS
from taskpilot.agents.scheduler.dto import Task
from taskpilot.agents.scheduler.utils.datetime_utils import detect_offset
from taskpilot.config import Settings, settings

# Set up logging
logger = logging.getLogger(__name__)


def mask_token(token: Optional[str]) -> Optional[str]:
    """Log-safe prefix of a bearer token."""
    if not token:
        return None
    return token[:10] + "..."


class GoogleCalendarClient:
    """
    Google Calendar access on behalf of one user.

    The access token is treated as an opaque bearer credential; refreshing
    it is the login flow's concern, not this client's.
    """

    def __init__(self, access_token: str, service=None):
        """
        Initialize the Google Calendar client.

        Args:
            access_token: OAuth access token from the login redirect
            service: Prebuilt API service (tests)
        """
        self.access_token = access_token
        self.service = service or build(
            "calendar",
            GOOGLE_CALENDAR_SETTINGS.API_VERSION,
            credentials=Credentials(token=access_token),
            cache_discovery=False,
        )

    def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
        max_results: int = CALENDAR_SETTINGS.MAX_RESULTS,
        calendar_id: str = CALENDAR_SETTINGS.PRIMARY_CALENDAR_ID,
    ) -> List[Dict[str, Any]]:
        """
        Retrieve events between two instants, recurring events expanded.

        Args:
            time_min: Inclusive lower bound (timezone-aware)
            time_max: Exclusive upper bound (timezone-aware)
            max_results: Maximum number of events to return
            calendar_id: ID of the calendar to query

        Returns:
            Raw Google Calendar event dicts ordered by start time
        """
        time_min_iso = time_min.astimezone(timezone.utc).isoformat()
        time_max_iso = time_max.astimezone(timezone.utc).isoformat()
        logger.info(f"Fetching calendar events from: {time_min_iso} to: {time_max_iso}")

        events_result = self.service.events().list(
            calendarId=calendar_id,
            timeMin=time_min_iso,
            timeMax=time_max_iso,
            maxResults=max_results,
            singleEvents=True,
            orderBy=CALENDAR_SETTINGS.ORDER_BY,
        ).execute()

        events = events_result.get("items", [])
        logger.info(f"Calendar API returned {len(events)} events")
        return events

    def insert_event(
        self,
        task: Task,
        time_zone: str,
        calendar_id: str = CALENDAR_SETTINGS.PRIMARY_CALENDAR_ID,
    ) -> Dict[str, Any]:
        """
        Create a calendar event for a validated task.

        Args:
            task: Validated task with offset-aware ISO start/end
            time_zone: Caller's IANA timezone, tagged on both start and end

        Returns:
            The created event, including its assigned id
        """
        logger.info(f"Detected timezone offset: {detect_offset(task.start_time)}")

        event = {
            "summary": task.title,
            "start": {"dateTime": task.start_time, "timeZone": time_zone},
            "end": {"dateTime": task.end_time, "timeZone": time_zone},
            "reminders": {"useDefault": True},
        }
        if task.description:
            event["description"] = task.description
        logger.info(f"Calendar event payload: {event}")

        created = self.service.events().insert(calendarId=calendar_id, body=event).execute()
        logger.info(f"Created calendar event {created.get('id')}")
        return created


def build_oauth_flow(config: Settings = settings) -> Flow:
    """OAuth flow for the web redirect login."""
    client_config = {
        "web": {
            "client_id": config.GOOGLE_CLIENT_ID,
            "client_secret": config.GOOGLE_CLIENT_SECRET,
            "auth_uri": GOOGLE_CALENDAR_SETTINGS.AUTH_URI,
            "token_uri": GOOGLE_CALENDAR_SETTINGS.TOKEN_URI,
            "redirect_uris": [config.GOOGLE_REDIRECT_URI],
        }
    }
    return Flow.from_client_config(
        client_config,
        scopes=GOOGLE_CALENDAR_SETTINGS.SCOPES,
        redirect_uri=config.GOOGLE_REDIRECT_URI,
        autogenerate_code_verifier=False,
    )


def get_auth_url(config: Settings = settings) -> str:
    """Google consent URL requesting offline access."""
    auth_url, _ = build_oauth_flow(config).authorization_url(
        access_type="offline",
        prompt="consent",
    )
    return auth_url


def get_tokens(code: str, config: Settings = settings) -> Dict[str, Any]:
    """
    Exchange an authorization code for tokens.

    Returns:
        {access_token, expiry_date (epoch milliseconds), refresh_token}
    """
    logger.info(f"Getting tokens for code: {mask_token(code)}")
    flow = build_oauth_flow(config)
    flow.fetch_token(code=code)
    credentials = flow.credentials

    expiry_date = None
    if credentials.expiry is not None:
        expiry = credentials.expiry.replace(tzinfo=timezone.utc)
        expiry_date = int(expiry.timestamp() * 1000)

    tokens = {
        "access_token": credentials.token,
        "expiry_date": expiry_date,
        "refresh_token": credentials.refresh_token,
    }
    logger.info(
        f"Received tokens: access_token={mask_token(tokens['access_token'])} "
        f"refresh_token={mask_token(tokens['refresh_token'])} expiry_date={expiry_date}"
    )
    return tokens
