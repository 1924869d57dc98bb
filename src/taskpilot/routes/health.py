from fastapi import APIRouter, Request

from taskpilot.routes.dto import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def health_check(request: Request):
    """Health check with component readiness (no secrets exposed)."""
    state = request.app.state
    config = state.settings
    components = {
        "llm": "configured" if config.LLM_API_KEY else "missing",
        "google_oauth": "configured" if config.GOOGLE_CLIENT_ID else "missing",
        "memory": state.memory.get_storage_stats(),
    }
    return HealthResponse(status="ok", service="taskpilot", components=components)
