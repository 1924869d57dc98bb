"""
LangGraph Turn Workflow

One user turn as an explicit state machine:

    decide ──► answered ─────────────────────────────► END
       │
       └─► action_pending ─┬─► execute_action ──► action_executed ──► END
                           └─► request_login ───► awaiting_credentials ──► END

The orchestrator decides between answering and selecting an action; the
executor performs a pending action once a calendar credential is known.
Orchestrator errors are not caught here, they surface to the HTTP layer.
"""

import asyncio
import logging
from typing import Optional

from langgraph.graph import END, START, StateGraph

from taskpilot.agents.scheduler.dto import ChatResponse
from taskpilot.agents.scheduler.executor import CalendarActionExecutor
from taskpilot.agents.scheduler.orchestrator import SchedulingOrchestrator
from taskpilot.supervisor.dto import TurnPhase, TurnState

logger = logging.getLogger(__name__)


class TurnWorkflow:
    """Compiled turn graph wiring the orchestrator to the action executor."""

    def __init__(self, orchestrator: SchedulingOrchestrator, executor: CalendarActionExecutor):
        self.orchestrator = orchestrator
        self.executor = executor
        self.graph = self._build()

    def _build(self):
        builder = StateGraph(TurnState)

        # Nodes
        builder.add_node("decide", self.decide)
        builder.add_node("execute_action", self.execute_action)
        builder.add_node("request_login", self.request_login)

        # Edges
        builder.add_edge(START, "decide")
        builder.add_conditional_edges(
            "decide",
            self.route_after_decision,
            ["execute_action", "request_login", END],
        )
        builder.add_edge("execute_action", END)
        builder.add_edge("request_login", END)

        return builder.compile()

    async def run(
        self,
        text: str,
        session_id: str,
        access_token: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> ChatResponse:
        """Run one turn to completion and return the reply for the caller."""
        final_state = await self.graph.ainvoke({
            "text": text,
            "session_id": session_id,
            "access_token": access_token,
            "timezone": timezone,
            "phase": TurnPhase.AWAITING_ACTION_DECISION,
            "response": None,
        })
        logger.info(f"Turn for session {session_id} finished in phase {final_state['phase'].value}")
        return final_state["response"]

    async def decide(self, state: TurnState) -> dict:
        response = await self.orchestrator.process(
            state["text"],
            state["session_id"],
            state.get("timezone"),
        )
        phase = TurnPhase.ACTION_PENDING if response.function_call else TurnPhase.ANSWERED
        return {
            "phase": phase,
            "response": response,
            "timezone": self.orchestrator.resolve_timezone(state.get("timezone")),
        }

    @staticmethod
    def route_after_decision(state: TurnState) -> str:
        if state["phase"] != TurnPhase.ACTION_PENDING:
            return END
        if not state.get("access_token"):
            return "request_login"
        return "execute_action"

    async def execute_action(self, state: TurnState) -> dict:
        # The calendar client is synchronous
        response = await asyncio.to_thread(
            self.executor.execute,
            state["response"].function_call,
            state["access_token"],
            state["timezone"],
        )
        return {"phase": TurnPhase.ACTION_EXECUTED, "response": response}

    def request_login(self, state: TurnState) -> dict:
        logger.info(f"Calendar action {state['response'].function_call.name} needs login")
        return {
            "phase": TurnPhase.AWAITING_CREDENTIALS,
            "response": self.executor.login_required(),
        }
