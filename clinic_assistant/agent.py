"""Turn orchestration for the clinic assistant.

Architecture:
  One chat turn runs as a small LangGraph StateGraph:

    1. **chatbot** — the Claude model with the tool catalog bound; it either
                     answers directly or asks for a function call
    2. **tools**   — runs each requested call through the ToolExecutor
                     (authorization gate, scoping, dispatch) and feeds the
                     result back as a ToolMessage

  Routing:
    chatbot → (has tool calls?) → tools → chatbot (loop)
            → (no tool calls?)  → END

  The loop is bounded by ``MAX_FUNCTION_CALLS_PER_TURN``: the call that
  would exceed it aborts the turn before it reaches the clinic backend.

  Around the graph, :class:`ClinicAssistant` screens the message, loads
  the trimmed history, persists both sides of the turn for signed-in
  users, and turns every failure into a short, non-leaking error.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Annotated

from anthropic import APITimeoutError, RateLimitError
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from clinic_assistant.config import (
    ANTHROPIC_API_KEY,
    INFERENCE_TIMEOUT_SECONDS,
    MAX_FUNCTION_CALLS_PER_TURN,
    MAX_HISTORY_MESSAGES,
    MODEL_MAX_TOKENS,
    MODEL_NAME,
    MODEL_TEMPERATURE,
)
from clinic_assistant.models import Message
from clinic_assistant.prompts import get_system_prompt
from clinic_assistant.sanitizer import sanitize
from clinic_assistant.services.history import ChatHistoryService
from clinic_assistant.services.metrics import metrics
from clinic_assistant.tools.authorization import CallerContext
from clinic_assistant.tools.catalog import declarations
from clinic_assistant.tools.executor import ToolExecutor

logger = logging.getLogger(__name__)

# ── User-facing error messages ───────────────────────────────────────

ERROR_TOO_COMPLEX = "This request is too complex. Please simplify your question or ask one thing at a time."
ERROR_NO_RESPONSE = "No response from the assistant. Please try again."
ERROR_RATE_LIMITED = "The assistant is receiving too many requests right now. Please wait a moment and try again."
ERROR_TIMEOUT = "The assistant took too long to respond. Please try again."
ERROR_GENERIC = "Something went wrong while processing your request. Please try again."


class TooManyFunctionCallsError(RuntimeError):
    """The model kept requesting tools past the per-turn limit."""


class EmptyResponseError(RuntimeError):
    """The model returned no usable text."""


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict):
    """State carried through one turn of the graph.

    ``messages`` uses the ``add_messages`` reducer so nodes only return
    what they append.  ``function_calls`` counts tool requests in this
    turn only; ``last_function`` labels the persisted assistant reply.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    caller: CallerContext
    function_calls: int
    last_function: str | None


@dataclass
class TurnResult:
    success: bool
    response: str | None = None
    error: str | None = None
    conversation_id: int | None = None
    function_called: str | None = None
    rejected: bool = False
    rate_limited: bool = False


# ── LLM builder ─────────────────────────────────────────────────────


def _build_llm():
    """Build the Claude model with the tool catalog bound.

    Retries are disabled: a failed or timed-out call fails the turn.
    """
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=MODEL_TEMPERATURE,
        max_tokens=MODEL_MAX_TOKENS,
        timeout=INFERENCE_TIMEOUT_SECONDS,
        max_retries=0,
    )
    return llm.bind_tools(declarations())


def message_text(message: BaseMessage) -> str:
    """Plain text of a model message (content may be a list of blocks)."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts: list[str] = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


# ── Nodes ────────────────────────────────────────────────────────────


def _make_chatbot_node(llm):
    def chatbot_node(state: TurnState) -> dict:
        """Send the conversation so far to the model."""
        t0 = time.perf_counter()
        try:
            response = llm.invoke(state["messages"])
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_call("anthropic", "llm_invoke", elapsed, error_type=type(exc).__name__)
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_call("anthropic", "llm_invoke", elapsed)
        logger.debug("chatbot responded in %.0fms", elapsed)
        return {"messages": [response]}

    return chatbot_node


def _make_tools_node(executor: ToolExecutor, max_calls: int):
    def tools_node(state: TurnState) -> dict:
        """Run every tool call in the last model message, within the turn limit."""
        caller = state["caller"]
        calls = state["function_calls"]
        last_function = state.get("last_function")
        results: list[ToolMessage] = []

        for tool_call in state["messages"][-1].tool_calls:
            if calls >= max_calls:
                logger.warning(
                    "Function call limit (%d) reached for %s; aborting turn at %s",
                    max_calls, caller.describe(), tool_call["name"],
                )
                raise TooManyFunctionCallsError(f"more than {max_calls} function calls in one turn")
            calls += 1
            result = executor.execute(tool_call["name"], tool_call.get("args"), caller)
            last_function = tool_call["name"]
            results.append(ToolMessage(
                content=json.dumps(result, default=str),
                tool_call_id=tool_call["id"],
                name=tool_call["name"],
            ))

        return {"messages": results, "function_calls": calls, "last_function": last_function}

    return tools_node


def should_use_tools(state: TurnState) -> str:
    """Route to the tools node when the model asked for a function call."""
    last_message = state["messages"][-1]
    if getattr(last_message, "tool_calls", None):
        return "tools"
    return END


def create_turn_graph(executor: ToolExecutor, llm=None, max_calls: int = MAX_FUNCTION_CALLS_PER_TURN):
    """Build and compile the per-turn graph.

    No checkpointer is attached: history lives in the database and is
    passed in with every invocation.
    """
    graph = StateGraph(TurnState)
    graph.add_node("chatbot", _make_chatbot_node(llm if llm is not None else _build_llm()))
    graph.add_node("tools", _make_tools_node(executor, max_calls))
    graph.set_entry_point("chatbot")
    graph.add_conditional_edges("chatbot", should_use_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "chatbot")
    return graph.compile()


# ── Orchestrator ─────────────────────────────────────────────────────


def _history_to_messages(history: list[Message]) -> list[AnyMessage]:
    converted: list[AnyMessage] = []
    for msg in history:
        if msg.role == "user":
            converted.append(HumanMessage(content=msg.content))
        else:
            converted.append(AIMessage(content=msg.content))
    return converted


class ClinicAssistant:
    """Drives one chat turn end-to-end for a caller."""

    def __init__(
        self,
        history: ChatHistoryService,
        executor: ToolExecutor,
        llm=None,
        *,
        history_limit: int = MAX_HISTORY_MESSAGES,
        max_function_calls: int = MAX_FUNCTION_CALLS_PER_TURN,
    ) -> None:
        self._history = history
        self._history_limit = history_limit
        self._graph = create_turn_graph(executor, llm, max_function_calls)

    def build_context(
        self,
        message: str,
        caller: CallerContext,
        conversation_id: int | None,
        exclude_message_id: int | None = None,
    ) -> list[AnyMessage]:
        """System instruction, trimmed history and the new user message."""
        history = self._history.recent_messages(
            conversation_id, self._history_limit, exclude_message_id=exclude_message_id,
        )
        return [
            SystemMessage(content=get_system_prompt(caller)),
            *_history_to_messages(history),
            HumanMessage(content=message),
        ]

    def handle_chat(
        self,
        message: str,
        caller: CallerContext,
        conversation_id: int | None = None,
    ) -> TurnResult:
        screening = sanitize(message)
        if not screening.ok:
            return TurnResult(success=False, error=screening.reason, rejected=True)

        conv_id: int | None = None
        user_message: Message | None = None
        try:
            conversation = self._history.get_or_create(caller.user_id, conversation_id)
            conv_id = conversation.id if conversation is not None else None
            # Stored before the model call so the question survives a failure.
            user_message = self._history.append(conv_id, "user", message)

            state = self._graph.invoke({
                "messages": self.build_context(
                    message, caller, conv_id,
                    exclude_message_id=user_message.id if user_message else None,
                ),
                "caller": caller,
                "function_calls": 0,
                "last_function": None,
            })
            final = state["messages"][-1]
            reply = message_text(final) if isinstance(final, AIMessage) else ""
            if not reply:
                raise EmptyResponseError("model returned no text")

            function_called = state.get("last_function")
            self._history.append(conv_id, "assistant", reply, function_called=function_called)
        except KeyboardInterrupt:
            if user_message is not None:
                self._history.delete_message(user_message.id)
                logger.info("Turn cancelled; removed message %s", user_message.id)
            raise
        except Exception as exc:
            return self._failure(exc, caller, conv_id)

        return TurnResult(
            success=True,
            response=reply,
            conversation_id=conv_id,
            function_called=function_called,
        )

    def cancel_last_turn(self, conversation_id: int) -> bool:
        """Compensating action for an aborted turn: drop the last user message."""
        return self._history.delete_last_user_message(conversation_id)

    @staticmethod
    def _failure(exc: Exception, caller: CallerContext, conversation_id: int | None) -> TurnResult:
        rate_limited = False
        if isinstance(exc, TooManyFunctionCallsError):
            error = ERROR_TOO_COMPLEX
        elif isinstance(exc, EmptyResponseError):
            logger.warning("Empty model response for %s", caller.describe())
            error = ERROR_NO_RESPONSE
        elif isinstance(exc, RateLimitError):
            logger.warning("Inference service rate limited the request for %s", caller.describe())
            error = ERROR_RATE_LIMITED
            rate_limited = True
        elif isinstance(exc, APITimeoutError):
            logger.warning("Inference service timed out for %s", caller.describe())
            error = ERROR_TIMEOUT
        else:
            logger.exception("Chat turn failed for %s", caller.describe())
            error = ERROR_GENERIC
        return TurnResult(
            success=False, error=error, conversation_id=conversation_id, rate_limited=rate_limited,
        )
