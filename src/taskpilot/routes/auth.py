import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from taskpilot.agents.scheduler.calendar_client import get_auth_url, get_tokens

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_ERROR_MESSAGE = "Failed to authenticate with Google"


@router.get("/google")
def google_auth(request: Request, code: Optional[str] = None):
    """
    Google OAuth redirect login.

    Without a code the caller is sent to the Google consent screen; with one
    the code is exchanged and the token is handed to the page in the URL hash.
    """
    config = request.app.state.settings
    home = str(request.base_url)
    try:
        if not code:
            return RedirectResponse(get_auth_url(config))

        tokens = get_tokens(code, config)
        fragment = urlencode({
            "access_token": tokens["access_token"],
            "expiry_date": tokens["expiry_date"],
        })
        return RedirectResponse(f"{home}#{fragment}")
    except Exception as e:
        logger.error(f"Error in auth: {str(e)}")
        return RedirectResponse(f"{home}?{urlencode({'error': AUTH_ERROR_MESSAGE})}")
