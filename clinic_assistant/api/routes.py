"""FastAPI route definitions for the clinic assistant API.

Caller identity is not established here: the API sits behind the clinic's
gateway, which authenticates the user and forwards ``X-User-Id``,
``X-User-Role`` and ``X-User-Name``.  The guest endpoint ignores them.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from clinic_assistant.agent import ClinicAssistant, TurnResult
from clinic_assistant.api.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationSummary,
    ErrorResponse,
    GuestChatRequest,
    GuestChatResponse,
    HealthResponse,
    MessageOut,
)
from clinic_assistant.config import CONVERSATION_LIST_LIMIT
from clinic_assistant.services.history import ChatHistoryService
from clinic_assistant.tools.authorization import CallerContext, Role

logger = logging.getLogger(__name__)

router = APIRouter()

UNTITLED = "Untitled Chat"
RATE_LIMITED = "Too many requests. Please wait a minute and try again."

# Role ids used by the clinic's user directory.
_ROLE_IDS = {"1": Role.ADMIN, "2": Role.DENTIST}


# ── Dependencies ─────────────────────────────────────────────────────


def _get_assistant(request: Request) -> ClinicAssistant:
    """Retrieve the assistant built during the FastAPI lifespan."""
    assistant = getattr(request.app.state, "assistant", None)
    if assistant is None:
        raise HTTPException(
            status_code=503,
            detail="The assistant is still starting up. Please try again in a moment.",
        )
    return assistant


def _get_history(request: Request) -> ChatHistoryService:
    history = getattr(request.app.state, "history", None)
    if history is None:
        raise HTTPException(status_code=503, detail="Chat history is not available yet.")
    return history


def parse_role(value: str | None) -> Role:
    """Map the gateway's role header (name or numeric id) to a Role."""
    if not value:
        return Role.NONE
    value = value.strip().lower()
    if value in _ROLE_IDS:
        return _ROLE_IDS[value]
    try:
        return Role(value)
    except ValueError:
        return Role.NONE


def get_caller(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_user_name: str | None = Header(None),
) -> CallerContext:
    """Build the caller from the gateway headers; 401 when unauthenticated."""
    if not x_user_id or not x_user_id.strip().isdigit():
        raise HTTPException(status_code=401, detail="Authentication required.")
    return CallerContext(
        user_id=int(x_user_id.strip()),
        role=parse_role(x_user_role),
        name=(x_user_name or "").strip() or None,
    )


def _rate_limited(request: Request, limiter_name: str, key: str) -> bool:
    limiter = getattr(request.app.state, limiter_name, None)
    if limiter is None:
        return False
    return not limiter.check_and_increment(key)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _turn_error(result: TurnResult) -> JSONResponse:
    if result.rejected:
        status_code = 400
    elif result.rate_limited:
        status_code = 429
    else:
        status_code = 500
    return _error(status_code, result.error or "Request failed.")


async def _owned_conversation(history: ChatHistoryService, user_id: int, conversation_id: int, detail: str):
    """404 unless *user_id* owns the conversation (no existence leak)."""
    conversation = await asyncio.to_thread(history.get_conversation, user_id, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=detail)
    return conversation


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def chat(
    body: ChatRequest,
    http_request: Request,
    caller: CallerContext = Depends(get_caller),
):
    """Run one chat turn for a signed-in user.

    ``handle_chat`` blocks on the inference and clinic APIs, so it is
    offloaded with ``asyncio.to_thread`` to keep the event loop free.
    """
    assistant = _get_assistant(http_request)
    request_id = getattr(http_request.state, "request_id", "?")

    if _rate_limited(http_request, "chat_limiter", f"user:{caller.user_id}"):
        logger.warning("[%s] Rate limit hit for %s", request_id, caller.describe())
        return _error(429, RATE_LIMITED)

    result = await asyncio.to_thread(assistant.handle_chat, body.message, caller, body.conversation_id)
    if not result.success:
        logger.info("[%s] Chat turn for %s did not succeed", request_id, caller.describe())
        return _turn_error(result)

    return ChatResponse(
        response=result.response,
        conversation_id=result.conversation_id,
        function_called=result.function_called,
    )


@router.post(
    "/chat/guest",
    response_model=GuestChatResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def guest_chat(body: GuestChatRequest, http_request: Request):
    """Run one chat turn for an anonymous visitor.  Nothing is stored."""
    assistant = _get_assistant(http_request)
    client_host = http_request.client.host if http_request.client else "unknown"

    if _rate_limited(http_request, "guest_limiter", f"guest:{client_host}"):
        logger.warning("Guest rate limit hit for %s", client_host)
        return _error(429, RATE_LIMITED)

    result = await asyncio.to_thread(assistant.handle_chat, body.message, CallerContext.guest(), None)
    if not result.success:
        return _turn_error(result)
    return GuestChatResponse(response=result.response)


@router.get("/chat/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    http_request: Request,
    caller: CallerContext = Depends(get_caller),
):
    history = _get_history(http_request)
    conversations = await asyncio.to_thread(history.list_conversations, caller.user_id, CONVERSATION_LIST_LIMIT)
    return [
        ConversationSummary(
            id=c.id,
            title=c.title or UNTITLED,
            created_at=c.created_at,
            updated_at=c.updated_at,
        )
        for c in conversations
    ]


@router.get("/chat/conversations/{conversation_id}/messages", response_model=list[MessageOut])
async def conversation_messages(
    conversation_id: int,
    http_request: Request,
    caller: CallerContext = Depends(get_caller),
):
    history = _get_history(http_request)
    await _owned_conversation(history, caller.user_id, conversation_id, "Conversation not found.")
    messages = await asyncio.to_thread(history.messages, conversation_id)
    return [
        MessageOut(
            id=m.id,
            role=m.role,
            content=m.content,
            function_called=m.function_called,
            created_at=m.created_at,
        )
        for m in messages
    ]


@router.delete("/chat/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: int,
    http_request: Request,
    caller: CallerContext = Depends(get_caller),
):
    history = _get_history(http_request)
    await _owned_conversation(history, caller.user_id, conversation_id, "Conversation not found.")
    await asyncio.to_thread(history.delete_conversation, conversation_id)
    return Response(status_code=204)


@router.delete("/chat/conversations/{conversation_id}/cancel")
async def cancel_last_message(
    conversation_id: int,
    http_request: Request,
    caller: CallerContext = Depends(get_caller),
):
    """Undo the last user message of a turn the client aborted."""
    assistant = _get_assistant(http_request)
    history = _get_history(http_request)
    await _owned_conversation(history, caller.user_id, conversation_id, "Conversation not found.")
    removed = await asyncio.to_thread(assistant.cancel_last_turn, conversation_id)
    return {"success": True, "removed": removed}


@router.delete("/chat/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    http_request: Request,
    caller: CallerContext = Depends(get_caller),
):
    history = _get_history(http_request)
    message = await asyncio.to_thread(history.get_message, message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found.")
    await _owned_conversation(history, caller.user_id, message.conversation_id, "Message not found.")
    await asyncio.to_thread(history.delete_message, message_id)
    return Response(status_code=204)
