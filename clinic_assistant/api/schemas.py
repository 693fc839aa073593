"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat message from a signed-in user."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")
    conversation_id: int | None = Field(
        None,
        gt=0,
        description="Conversation to continue; omit to start a new one",
    )


class GuestChatRequest(BaseModel):
    """Incoming chat message from a guest (no conversation is kept)."""

    message: str = Field(..., min_length=1, max_length=2000, description="The user's message")


class ChatResponse(BaseModel):
    success: bool = True
    response: str = Field(..., description="The assistant's reply")
    conversation_id: int | None = Field(None, description="Conversation the turn was stored in")
    function_called: str | None = Field(None, description="Last tool used to answer, if any")


class GuestChatResponse(BaseModel):
    success: bool = True
    response: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class ConversationSummary(BaseModel):
    id: int
    title: str
    created_at: datetime
    updated_at: datetime


class MessageOut(BaseModel):
    id: int
    role: str
    content: str
    function_called: str | None = None
    created_at: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "clinic-assistant"
