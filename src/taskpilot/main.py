import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from langchain_core.language_models import BaseChatModel

from taskpilot.agents.scheduler.calendar_client import GoogleCalendarClient
from taskpilot.agents.scheduler.executor import CalendarActionExecutor
from taskpilot.agents.scheduler.orchestrator import SchedulingOrchestrator, build_chat_model
from taskpilot.config import Settings, settings
from taskpilot.constants import APP_SETTINGS
from taskpilot.db.persistence import ConversationMemory
from taskpilot.routes import auth, health, task
from taskpilot.supervisor.workflow import TurnWorkflow

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s"
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide collaborators, constructed once and shared by all requests."""
    settings: Settings
    memory: ConversationMemory
    orchestrator: SchedulingOrchestrator
    executor: CalendarActionExecutor
    workflow: TurnWorkflow


def build_services(
    config: Settings = settings,
    model: Optional[BaseChatModel] = None,
    calendar_factory: Optional[Callable[[str], GoogleCalendarClient]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Services:
    memory = ConversationMemory(
        ttl=timedelta(hours=config.SESSION_TTL_HOURS),
        max_turns=config.MEMORY_MAX_TURNS,
        clock=clock,
    )
    orchestrator = SchedulingOrchestrator(
        model=model or build_chat_model(config),
        memory=memory,
        timeout_seconds=config.LLM_TIMEOUT_SECONDS,
        default_timezone=config.DEFAULT_TIMEZONE,
        include_suggestions=config.ENABLE_SUGGEST_MEETING_TIME,
        clock=clock,
    )
    executor = CalendarActionExecutor(
        calendar_factory=calendar_factory or GoogleCalendarClient,
        clock=clock,
    )
    return Services(
        settings=config,
        memory=memory,
        orchestrator=orchestrator,
        executor=executor,
        workflow=TurnWorkflow(orchestrator, executor),
    )


def _install(app: FastAPI, services: Services) -> None:
    app.state.settings = services.settings
    app.state.memory = services.memory
    app.state.orchestrator = services.orchestrator
    app.state.executor = services.executor
    app.state.workflow = services.workflow


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title=APP_SETTINGS.APP_NAME,
        version=APP_SETTINGS.VERSION,
        description=APP_SETTINGS.DESCRIPTION
    )
    app.state.settings = settings
    if services is not None:
        _install(app, services)

    @app.on_event("startup")
    async def startup_event():
        """Validate configuration and build the services on startup"""
        if services is not None:
            return
        from taskpilot.config import validate_required_keys
        try:
            validate_required_keys()
            logger.info("Configuration validation passed")
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise
        _install(app, build_services(settings))

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup resources on shutdown"""
        logger.info("Shutting down gracefully...")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    @app.get("/")
    async def root():
        return {"message": f"Welcome to {APP_SETTINGS.APP_NAME}"}

    app.include_router(health.router, prefix="/health", tags=["Health"])
    app.include_router(task.router, prefix="/api/task", tags=["Task"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run(
        "taskpilot.main:app",
        host="0.0.0.0",
        port=settings.APP_PORT,
        reload=settings.APP_ENV != "production"
    )


if __name__ == "__main__":
    main()
