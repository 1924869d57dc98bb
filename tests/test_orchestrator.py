"""
Tests for the scheduling orchestrator.
"""

import asyncio
import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from conftest import FakeChatModel, tool_call_message
from taskpilot.agents.scheduler.orchestrator import SchedulingOrchestrator
from taskpilot.constants import MESSAGES
from taskpilot.db.persistence import ConversationMemory
from taskpilot.exceptions import InputValidationError, LLMTimeoutError, ProcessingError


class TestInputValidation:
    def test_501_characters_rejected_before_model_call(self, orchestrator, fake_model):
        with pytest.raises(InputValidationError, match="too long"):
            asyncio.run(orchestrator.process("a" * 501, "s1"))
        assert fake_model.calls == []

    def test_500_characters_accepted(self, orchestrator, fake_model):
        asyncio.run(orchestrator.process("a" * 500, "s1"))
        assert len(fake_model.calls) == 1

    def test_empty_input(self, orchestrator, fake_model):
        with pytest.raises(InputValidationError, match="empty"):
            asyncio.run(orchestrator.process("", "s1"))
        assert fake_model.calls == []

    @pytest.mark.parametrize("text", ["<script>", "use {braces}", "a > b"])
    def test_forbidden_characters(self, orchestrator, fake_model, text):
        with pytest.raises(InputValidationError, match="invalid characters"):
            asyncio.run(orchestrator.process(text, "s1"))
        assert fake_model.calls == []

    def test_unknown_timezone_falls_back_to_default(self, orchestrator):
        assert orchestrator.resolve_timezone("Mars/Olympus_Mons") == "America/New_York"

    def test_undeterminable_timezone(self, memory, clock):
        orchestrator = SchedulingOrchestrator(
            model=FakeChatModel(), memory=memory, default_timezone="Nowhere/Special", clock=clock
        )
        with pytest.raises(InputValidationError, match="timezone"):
            orchestrator.resolve_timezone(None)


class TestProcess:
    def test_structured_reply(self, orchestrator, fake_model):
        fake_model.queue(AIMessage(content=json.dumps({
            "message": "You're free all afternoon.",
            "suggestedActions": [{"type": "schedule", "description": "Book focus time"}],
        })))
        response = asyncio.run(orchestrator.process("Am I free this afternoon?", "s1"))
        assert response.message == "You're free all afternoon."
        assert response.suggested_actions[0].type == "schedule"
        assert response.function_call is None

    def test_unparseable_reply_degrades_to_plain_message(self, orchestrator, fake_model):
        fake_model.queue(AIMessage(content="Sure, happy to help with that."))
        response = asyncio.run(orchestrator.process("hello", "s1"))
        assert response.message == "Sure, happy to help with that."
        assert response.suggested_actions == []

    def test_schema_mismatch_strips_json_punctuation(self, orchestrator, fake_model):
        fake_model.queue(AIMessage(content='```json\n{"note": "Free all afternoon"}\n```'))
        response = asyncio.run(orchestrator.process("hello", "s1"))
        assert response.message == "note: Free all afternoon"
        assert response.suggested_actions == []

    def test_system_prompt_carries_time_and_timezone(self, orchestrator, fake_model):
        asyncio.run(orchestrator.process("hello", "s1"))
        system = fake_model.calls[0][0]
        assert isinstance(system, SystemMessage)
        assert "02/07/2024, 08:15:00 AM" in system.content
        assert "America/New_York" in system.content
        assert "ANY TIME MENTIONED IS THE START TIME" in system.content

    def test_registered_tools(self, orchestrator, fake_model):
        asyncio.run(orchestrator.process("hello", "s1"))
        assert [t.name for t in fake_model.bound_tools] == ["check_calendar", "schedule_event"]

    def test_suggestions_tool_is_opt_in(self, memory, clock):
        model = FakeChatModel()
        orchestrator = SchedulingOrchestrator(model=model, memory=memory, include_suggestions=True, clock=clock)
        asyncio.run(orchestrator.process("hello", "s1"))
        assert "suggest_meeting_time" in [t.name for t in model.bound_tools]

    def test_function_call(self, orchestrator, fake_model, memory):
        fake_model.queue(tool_call_message("check_calendar", {"timeframe": "tomorrow"}))
        response = asyncio.run(orchestrator.process("What's my schedule for tomorrow?", "s1"))

        assert response.message == MESSAGES.CHECKING_CALENDAR
        assert response.function_call.name == "check_calendar"
        assert response.function_call.arguments == {"timeframe": "tomorrow"}
        assert response.suggested_actions == []

        turn = memory.get("s1")[0]
        assert turn.input == "What's my schedule for tomorrow?"
        assert turn.output.startswith("[check_calendar]")

    def test_schedule_event_call_keeps_description(self, orchestrator, fake_model):
        fake_model.queue(tool_call_message("schedule_event", {
            "title": "Standup",
            "startTime": "2024-02-07T09:00:00-05:00",
            "duration": 30,
            "description": "Daily sync",
        }))
        response = asyncio.run(orchestrator.process("Schedule standup at 9 for 30 minutes", "s1"))
        assert response.function_call.arguments == {
            "title": "Standup",
            "startTime": "2024-02-07T09:00:00-05:00",
            "duration": 30,
            "description": "Daily sync",
        }

    def test_legacy_function_call_payload(self, orchestrator, fake_model):
        fake_model.queue(AIMessage(content="", additional_kwargs={
            "function_call": {"name": "check_calendar", "arguments": '{"timeframe": "week"}'},
        }))
        response = asyncio.run(orchestrator.process("How does my week look?", "s1"))
        assert response.function_call.name == "check_calendar"
        assert response.function_call.arguments == {"timeframe": "week"}

    def test_invalid_function_arguments(self, orchestrator, fake_model, memory):
        fake_model.queue(tool_call_message("check_calendar", {"timeframe": "month"}))
        with pytest.raises(ProcessingError):
            asyncio.run(orchestrator.process("What about this month?", "s1"))
        assert len(memory.get("s1")) == 1

    def test_unknown_function(self, orchestrator, fake_model):
        fake_model.queue(tool_call_message("delete_everything", {}))
        with pytest.raises(ProcessingError, match="unknown action"):
            asyncio.run(orchestrator.process("hello", "s1"))

    def test_empty_response(self, orchestrator, fake_model):
        fake_model.queue(AIMessage(content=""))
        with pytest.raises(ProcessingError):
            asyncio.run(orchestrator.process("hello", "s1"))

    def test_non_message_response(self, orchestrator, fake_model):
        fake_model.queue("just a string")
        with pytest.raises(ProcessingError, match="Invalid response format"):
            asyncio.run(orchestrator.process("hello", "s1"))

    def test_model_failure(self, memory, clock):
        orchestrator = SchedulingOrchestrator(
            model=FakeChatModel(error=RuntimeError("upstream 503")), memory=memory, clock=clock
        )
        with pytest.raises(ProcessingError, match="upstream 503"):
            asyncio.run(orchestrator.process("hello", "s1"))

    def test_timeout(self, memory, clock):
        orchestrator = SchedulingOrchestrator(
            model=FakeChatModel(delay=0.5), memory=memory, timeout_seconds=0.05, clock=clock
        )
        with pytest.raises(LLMTimeoutError):
            asyncio.run(orchestrator.process("hello", "s1"))
        assert memory.get("s1") == []

    def test_timeout_is_a_processing_error(self):
        assert issubclass(LLMTimeoutError, ProcessingError)


class TestMemory:
    def test_second_turn_includes_previous_turn(self, orchestrator, fake_model):
        fake_model.queue(
            AIMessage(content='{"message": "What time works for you?"}'),
            AIMessage(content='{"message": "Done."}'),
        )
        asyncio.run(orchestrator.process("Book a dentist appointment", "s1"))
        asyncio.run(orchestrator.process("3pm please", "s1"))

        second_call = fake_model.calls[1]
        human_texts = [m.content for m in second_call if isinstance(m, HumanMessage)]
        ai_texts = [m.content for m in second_call if isinstance(m, AIMessage)]
        assert human_texts == ["Book a dentist appointment", "3pm please"]
        assert ai_texts == ['{"message": "What time works for you?"}']

    def test_sessions_do_not_share_history(self, orchestrator, fake_model):
        asyncio.run(orchestrator.process("first session", "s1"))
        asyncio.run(orchestrator.process("second session", "s2"))
        human_texts = [m.content for m in fake_model.calls[1] if isinstance(m, HumanMessage)]
        assert human_texts == ["second session"]

    def test_history_is_bounded(self, fake_model, clock):
        memory = ConversationMemory(max_turns=2, clock=clock)
        orchestrator = SchedulingOrchestrator(model=fake_model, memory=memory, clock=clock)
        for i in range(4):
            asyncio.run(orchestrator.process(f"turn {i}", "s1"))
        human_texts = [m.content for m in fake_model.calls[-1] if isinstance(m, HumanMessage)]
        assert human_texts == ["turn 1", "turn 2", "turn 3"]


class TestExtractTask:
    def _reply(self, task, **extra):
        payload = {"task": task, "confidence": 0.9, "needsClarification": False}
        payload.update(extra)
        return AIMessage(content=json.dumps(payload))

    def test_valid_extraction(self, orchestrator, fake_model, memory):
        fake_model.queue(self._reply({
            "title": "Team sync",
            "startTime": "2024-02-08T14:00:00-05:00",
            "endTime": "2024-02-08T15:00:00-05:00",
        }))
        processed = asyncio.run(orchestrator.extract_task("Team sync tomorrow at 2pm", "s1"))
        assert processed.task.title == "Team sync"
        assert processed.task.start_time == "2024-02-08T14:00:00-05:00"
        assert len(memory.get("s1")) == 1

    def test_prompt_carries_resolved_hint(self, orchestrator, fake_model):
        fake_model.queue(self._reply({
            "title": "Team sync",
            "startTime": "2024-02-08T14:00:00-05:00",
            "endTime": "2024-02-08T15:00:00-05:00",
        }))
        asyncio.run(orchestrator.extract_task("Team sync tomorrow at 2pm", "s1"))
        prompt = fake_model.calls[0][0].content
        assert "2024-02-08T14:00:00-05:00" in prompt
        assert "Team sync tomorrow at 2pm" in prompt

    def test_bad_model_times_replaced_by_resolved_range(self, orchestrator, fake_model):
        fake_model.queue(self._reply({
            "title": "Team sync",
            "startTime": "2024-02-08T14:00:00-05:00",
            "endTime": "2024-02-08T13:00:00-05:00",
        }))
        processed = asyncio.run(orchestrator.extract_task("Team sync tomorrow at 2pm", "s1"))
        assert processed.task.start_time == "2024-02-08T14:00:00-05:00"
        assert processed.task.end_time == "2024-02-08T15:00:00-05:00"

    def test_clarification_question_filled_from_ambiguity(self, orchestrator, fake_model):
        fake_model.queue(self._reply(
            {
                "title": "Meeting with Sam",
                "startTime": "2024-02-08T09:00:00-05:00",
                "endTime": "2024-02-08T10:00:00-05:00",
            },
            confidence=0.3,
            needsClarification=True,
        ))
        processed = asyncio.run(orchestrator.extract_task("Schedule a meeting with Sam", "s1"))
        assert processed.needs_clarification is True
        assert processed.clarification_questions == ["What day and time would you like to schedule it for?"]

    def test_invalid_output_fails(self, orchestrator, fake_model):
        fake_model.queue(self._reply({
            "title": "",
            "startTime": "2024-02-08T14:00:00-05:00",
            "endTime": "2024-02-08T15:00:00-05:00",
        }))
        with pytest.raises(ProcessingError, match="invalid task"):
            asyncio.run(orchestrator.extract_task("sync tomorrow at 2pm", "s1"))

    def test_non_json_output_fails(self, orchestrator, fake_model):
        fake_model.queue(AIMessage(content="I could not find a task."))
        with pytest.raises(ProcessingError):
            asyncio.run(orchestrator.extract_task("sync tomorrow at 2pm", "s1"))

    def test_unknown_task_status_fails(self, orchestrator, fake_model):
        fake_model.queue(self._reply({
            "title": "Team sync",
            "startTime": "2024-02-08T14:00:00-05:00",
            "endTime": "2024-02-08T15:00:00-05:00",
            "status": "done",
        }))
        with pytest.raises(ProcessingError, match="invalid task"):
            asyncio.run(orchestrator.extract_task("Team sync tomorrow at 2pm", "s1"))

    def test_oversized_duration_in_text(self, orchestrator, fake_model):
        fake_model.queue(self._reply({
            "title": "Meeting",
            "startTime": "2024-02-08T09:00:00-05:00",
            "endTime": "2024-02-08T10:00:00-05:00",
        }))
        processed = asyncio.run(orchestrator.extract_task("meeting tomorrow for 99999999999 hours", "s1"))
        assert processed.task.title == "Meeting"
        assert "does not specify the duration" in fake_model.calls[0][0].content
