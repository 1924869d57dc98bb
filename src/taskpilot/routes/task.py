import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from taskpilot.agents.scheduler.calendar_client import mask_token
from taskpilot.constants import MESSAGES, SESSION_SETTINGS
from taskpilot.exceptions import InputValidationError, LLMTimeoutError, ProcessingError
from taskpilot.routes.dto import ApiResponse, TaskRequest

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter()


def _envelope(
    status_code: int,
    data: Optional[BaseModel] = None,
    error: Optional[str] = None,
) -> JSONResponse:
    payload = ApiResponse(
        success=error is None,
        data=data.model_dump(by_alias=True, exclude_none=True) if data is not None else None,
        error=error,
    )
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


def _session_id(request: Request) -> tuple:
    """Existing session id from the cookie, or a fresh one. Returns (id, is_new)."""
    existing = request.cookies.get(SESSION_SETTINGS.COOKIE_NAME)
    if existing:
        return existing, False
    return str(uuid.uuid4()), True


def _attach_session(response: JSONResponse, request: Request, session_id: str, is_new: bool) -> JSONResponse:
    if is_new:
        response.set_cookie(
            SESSION_SETTINGS.COOKIE_NAME,
            session_id,
            max_age=SESSION_SETTINGS.COOKIE_MAX_AGE_SECONDS,
            path=SESSION_SETTINGS.COOKIE_PATH,
            samesite=SESSION_SETTINGS.COOKIE_SAMESITE,
            secure=request.app.state.settings.APP_ENV == "production",
            httponly=True,
        )
    return response


def _error_response(e: Exception) -> JSONResponse:
    if isinstance(e, InputValidationError):
        return _envelope(400, error=str(e))
    if isinstance(e, LLMTimeoutError):
        logger.error(f"Model timed out: {str(e)}")
        return _envelope(504, error=MESSAGES.TIMEOUT_ERROR)
    logger.error(f"Error processing request: {str(e)}")
    return _envelope(500, error=MESSAGES.PROCESSING_ERROR)


@router.post("")
async def process_task(body: TaskRequest, request: Request):
    """
    Process one conversational turn.

    Flow:
    1. Resolve the session from the sessionId cookie (issued on first contact)
    2. Run the turn workflow: the model answers or selects a calendar action
    3. Execute the action when an access token is present, otherwise ask for login
    """
    session_id, is_new = _session_id(request)
    logger.info(
        f"Received request: text={body.text!r} accessToken={mask_token(body.access_token)} "
        f"session={session_id}"
    )

    if not body.text:
        return _attach_session(_envelope(400, error="No text provided"), request, session_id, is_new)

    try:
        result = await request.app.state.workflow.run(
            body.text,
            session_id,
            access_token=body.access_token,
            timezone=body.timezone,
        )
        response = _envelope(200, data=result)
    except (InputValidationError, ProcessingError) as e:
        response = _error_response(e)

    return _attach_session(response, request, session_id, is_new)


@router.post("/extract")
async def extract_task(body: TaskRequest, request: Request):
    """Legacy single-shot mode: extract one validated task from the text."""
    session_id, is_new = _session_id(request)

    if not body.text:
        return _attach_session(_envelope(400, error="No text provided"), request, session_id, is_new)

    try:
        result = await request.app.state.orchestrator.extract_task(body.text, session_id, body.timezone)
        response = _envelope(200, data=result)
    except (InputValidationError, ProcessingError) as e:
        response = _error_response(e)

    return _attach_session(response, request, session_id, is_new)
