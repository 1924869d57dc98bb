"""
Scheduling Orchestrator - LLM-Driven Turn Processing

Turns one user utterance into either a chat reply or a pending calendar
action:
- Validates raw input before any model call
- Builds the prompt from the system rules, prior turns and the utterance
- Calls the model with the callable actions registered, under a hard timeout
- Records the turn in conversation memory
- Treats model output as untrusted: a selected action is validated against
  its tool schema, free text is parsed against the reply schema and degrades
  to a plain message when it does not fit

Also keeps the legacy single-shot extraction that produces a ProcessedTask.
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import pytz
from langchain.chat_models import init_chat_model
from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.output_parsers import JsonOutputParser, PydanticOutputParser

from taskpilot.agents.scheduler.dto import (
    AmbiguityMarker,
    ChatReply,
    ChatResponse,
    FunctionCall,
    ProcessedTask,
    TimeRange,
)
from taskpilot.agents.scheduler.prompts import chat_prompt, task_extraction_prompt
from taskpilot.agents.scheduler.tools import SCHEDULER_TOOLS, get_registered_tools
from taskpilot.agents.scheduler.utils.datetime_utils import format_prompt_time, normalize
from taskpilot.agents.scheduler.utils.validation import validate_processed_task
from taskpilot.config import Settings
from taskpilot.constants import INPUT_SETTINGS, MESSAGES
from taskpilot.db.persistence import ConversationMemory, Turn
from taskpilot.exceptions import (
    InputValidationError,
    LLMTimeoutError,
    ProcessingError,
    TaskValidationError,
    ValidationErrorKind,
)

logger = logging.getLogger(__name__)

_FORBIDDEN_RE = re.compile(f"[{re.escape(INPUT_SETTINGS.FORBIDDEN_CHARACTERS)}]")
_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```")
_JSON_PUNCTUATION_RE = re.compile(r'[{}\[\]"]')

_TIME_KINDS = {
    ValidationErrorKind.INVALID_START_TIME,
    ValidationErrorKind.INVALID_END_TIME,
    ValidationErrorKind.INVALID_TIME_ORDER,
}


def build_chat_model(config: Settings) -> BaseChatModel:
    """Create the chat model described by the settings."""
    kwargs: Dict[str, Any] = {
        "model": config.LLM_MODEL,
        "model_provider": config.LLM_PROVIDER,
        "temperature": config.LLM_TEMPERATURE,
        "api_key": config.LLM_API_KEY,
    }
    if config.LLM_PROVIDER == "azure_openai":
        kwargs.update(
            azure_endpoint=config.AZURE_OPENAI_ENDPOINT,
            api_version=config.AZURE_OPENAI_API_VERSION,
            azure_deployment=config.AZURE_OPENAI_DEPLOYMENT or config.LLM_MODEL,
        )
    return init_chat_model(**kwargs)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulingOrchestrator:
    """
    Decides, for each user turn, between answering and invoking a calendar action.

    Args:
        model: Chat model supporting bind_tools/ainvoke
        memory: Conversation memory shared across turns
        timeout_seconds: Upper bound for a single model call
        default_timezone: Caller timezone when the request carries none
        include_suggestions: Also register suggest_meeting_time with the model
        clock: Returns the current timezone-aware time (injectable for tests)
    """

    def __init__(
        self,
        model: BaseChatModel,
        memory: ConversationMemory,
        timeout_seconds: float = 30.0,
        default_timezone: str = "UTC",
        include_suggestions: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.model = model
        self.memory = memory
        self.timeout_seconds = timeout_seconds
        self.default_timezone = default_timezone
        self.tools = get_registered_tools(include_suggestions)
        self._clock = clock or _utcnow
        self.reply_parser = PydanticOutputParser(pydantic_object=ChatReply)
        self.task_parser = PydanticOutputParser(pydantic_object=ProcessedTask)
        self.json_parser = JsonOutputParser()

    @staticmethod
    def validate_input(text: str) -> str:
        """Reject empty, oversized or unsafe input before any model call."""
        if not isinstance(text, str) or len(text) < 1:
            raise InputValidationError("Input cannot be empty")
        if len(text) > INPUT_SETTINGS.MAX_LENGTH:
            raise InputValidationError(
                f"Input is too long. Please keep it under {INPUT_SETTINGS.MAX_LENGTH} characters"
            )
        if _FORBIDDEN_RE.search(text):
            raise InputValidationError("Input contains invalid characters")
        return text

    def resolve_timezone(self, requested: Optional[str] = None) -> str:
        """Return a valid IANA timezone name for the caller."""
        for candidate in (requested, self.default_timezone):
            if not candidate or not candidate.strip():
                continue
            try:
                pytz.timezone(candidate.strip())
                return candidate.strip()
            except pytz.UnknownTimeZoneError:
                logger.warning(f"Ignoring unknown timezone: {candidate}")
        raise InputValidationError("Could not determine user timezone")

    async def process(
        self,
        text: str,
        session_id: str,
        timezone_name: Optional[str] = None,
    ) -> ChatResponse:
        """
        Process one conversational turn.

        Returns:
            ChatResponse carrying either a message (with optional suggested
            actions) or a pending function call for the executor

        Raises:
            InputValidationError: bad input or undeterminable timezone
            LLMTimeoutError: the model did not answer in time
            ProcessingError: the model call failed or returned a non-text result
        """
        self.validate_input(text)
        tz_name = self.resolve_timezone(timezone_name)
        now = self._clock()
        history = self.memory.get(session_id)

        messages = chat_prompt.format_messages(
            current_time=format_prompt_time(now, tz_name),
            timezone=tz_name,
            format_instructions=self.reply_parser.get_format_instructions(),
            chat_history=self._history_messages(history),
            input=text,
        )

        response = await self._invoke(self.model.bind_tools(self.tools), messages)
        raw_text = self._message_text(response.content)
        try:
            function_call = self._extract_function_call(response)
        except ProcessingError:
            self.memory.append(session_id, text, raw_text)
            raise
        self.memory.append(session_id, text, raw_text or self._describe_call(function_call))

        if function_call is not None:
            logger.info(f"Function call detected: {function_call.name} {function_call.arguments}")
            return ChatResponse(
                message=MESSAGES.CHECKING_CALENDAR,
                function_call=function_call,
                suggested_actions=[],
            )

        if not raw_text:
            raise ProcessingError("Model returned an empty or non-text response")
        return self._parse_reply(raw_text)

    async def extract_task(
        self,
        text: str,
        session_id: str,
        timezone_name: Optional[str] = None,
    ) -> ProcessedTask:
        """
        Legacy single-shot mode: extract one validated task from the utterance.

        Raises:
            InputValidationError: bad input or undeterminable timezone
            LLMTimeoutError: the model did not answer in time
            ProcessingError: the call failed or the output did not validate
        """
        self.validate_input(text)
        tz_name = self.resolve_timezone(timezone_name)
        now = self._clock()
        history = self.memory.get(session_id)
        hint = normalize(text, now, tz_name)

        prompt_text = task_extraction_prompt.format(
            input=text,
            current_time=format_prompt_time(now, tz_name),
            timezone=tz_name,
            chat_history=self._history_text(history),
            time_hint=self._hint_text(hint),
            format_instructions=self.task_parser.get_format_instructions(),
        )

        response = await self._invoke(self.model, [HumanMessage(content=prompt_text)])
        raw_text = self._message_text(response.content)
        self.memory.append(session_id, text, raw_text)
        if not raw_text:
            raise ProcessingError("Model returned an empty or non-text response")

        try:
            candidate = self.json_parser.parse(raw_text)
        except OutputParserException as e:
            logger.error(f"Failed to parse task extraction output: {raw_text!r}")
            raise ProcessingError("Failed to parse task from model response") from e
        if not isinstance(candidate, dict):
            raise ProcessingError("Model response is not a task object")

        return self._validate_extraction(candidate, hint)

    async def _invoke(self, runnable, messages: List[BaseMessage]) -> AIMessage:
        """Race the model call against the timeout; the first to finish wins."""
        try:
            result = await asyncio.wait_for(runnable.ainvoke(messages), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(f"Model call timed out after {self.timeout_seconds}s")
            raise LLMTimeoutError("Request timeout") from e
        except Exception as e:
            logger.error(f"Model call failed: {str(e)}")
            raise ProcessingError(f"Failed to get model response: {str(e)}") from e

        if not isinstance(result, AIMessage):
            raise ProcessingError("Invalid response format from model")
        return result

    def _extract_function_call(self, response: AIMessage) -> Optional[FunctionCall]:
        if response.invalid_tool_calls:
            bad = response.invalid_tool_calls[0]
            raise ProcessingError(f"Model returned malformed arguments for {bad.get('name')}")

        if response.tool_calls:
            call = response.tool_calls[0]
            name, arguments = call["name"], call["args"]
        else:
            legacy_call = response.additional_kwargs.get("function_call")
            if not legacy_call:
                return None
            name = legacy_call.get("name")
            try:
                arguments = json.loads(legacy_call.get("arguments") or "{}")
            except json.JSONDecodeError as e:
                raise ProcessingError(f"Model returned malformed arguments for {name}") from e

        action = SCHEDULER_TOOLS.get(name)
        if action is None:
            raise ProcessingError(f"Model selected an unknown action: {name}")
        try:
            directive = action.invoke(arguments)
        except Exception as e:
            raise ProcessingError(f"Invalid arguments for {name}: {str(e)}") from e
        return FunctionCall(**directive)

    def _parse_reply(self, raw_text: str) -> ChatResponse:
        try:
            reply = self.reply_parser.parse(raw_text)
            return ChatResponse(message=reply.message, suggested_actions=reply.suggested_actions)
        except OutputParserException as e:
            logger.warning(f"Failed to parse chat response, using fallback: {str(e)}")
            cleaned = _JSON_PUNCTUATION_RE.sub("", _CODE_FENCE_RE.sub("", raw_text)).strip()
            return ChatResponse(message=cleaned or raw_text.strip(), suggested_actions=[])

    def _validate_extraction(
        self,
        candidate: Dict[str, Any],
        hint: Union[TimeRange, AmbiguityMarker],
    ) -> ProcessedTask:
        candidate = dict(candidate)
        if (
            isinstance(hint, AmbiguityMarker)
            and candidate.get("needsClarification")
            and not candidate.get("clarificationQuestions")
        ):
            candidate["clarificationQuestions"] = [hint.question]

        try:
            return validate_processed_task(candidate)
        except TaskValidationError as e:
            if not (isinstance(hint, TimeRange) and e.kind in _TIME_KINDS):
                raise ProcessingError(f"Model returned an invalid task: {e.message}") from e
            logger.warning(f"Model times rejected ({e.kind.value}), using resolved range")

        task = candidate.get("task")
        candidate["task"] = {
            **(task if isinstance(task, dict) else {}),
            "startTime": hint.start_iso,
            "endTime": hint.end_iso,
        }
        try:
            return validate_processed_task(candidate)
        except TaskValidationError as e:
            raise ProcessingError(f"Model returned an invalid task: {e.message}") from e

    @staticmethod
    def _message_text(content: Any) -> str:
        if isinstance(content, str):
            return content.strip()
        if isinstance(content, list):
            chunks = []
            for item in content:
                if isinstance(item, str):
                    chunks.append(item)
                elif isinstance(item, dict) and isinstance(item.get("text"), str):
                    chunks.append(item["text"])
            return "".join(chunks).strip()
        return ""

    @staticmethod
    def _describe_call(function_call: Optional[FunctionCall]) -> str:
        if function_call is None:
            return ""
        return f"[{function_call.name}] {json.dumps(function_call.arguments)}"

    @staticmethod
    def _history_messages(history: List[Turn]) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        for turn in history:
            messages.append(HumanMessage(content=turn.input))
            messages.append(AIMessage(content=turn.output))
        return messages

    @staticmethod
    def _history_text(history: List[Turn]) -> str:
        if not history:
            return "(none)"
        return "\n".join(f"Human: {turn.input}\nAI: {turn.output}" for turn in history)

    @staticmethod
    def _hint_text(hint: Union[TimeRange, AmbiguityMarker]) -> str:
        if isinstance(hint, TimeRange):
            return (
                f"Resolved time hint: startTime {hint.start_iso}, endTime {hint.end_iso} "
                f"({hint.duration_minutes} minutes)."
            )
        missing = ", ".join(d.value for d in hint.missing)
        return f"Resolved time hint: the request does not specify the {missing}."
