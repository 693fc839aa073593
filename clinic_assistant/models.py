"""SQLModel tables for chat history and the tool audit trail."""

from datetime import UTC, datetime
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class Conversation(SQLModel, table=True):
    """A chat thread owned by one signed-in user.  Guests never get one."""

    __tablename__ = "chat_conversations"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, nullable=False)
    title: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, index=True)


class Message(SQLModel, table=True):
    """One user or assistant turn.  ``function_called`` labels tool-backed replies."""

    __tablename__ = "chat_messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="chat_conversations.id", index=True, nullable=False)
    role: str = Field(max_length=20)  # "user" or "assistant"
    content: str
    function_called: Optional[str] = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=utcnow, index=True)


class AuditRecord(SQLModel, table=True):
    """Append-only record of a sensitive tool invocation (arguments redacted)."""

    __tablename__ = "chat_audit_records"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    role: str = Field(max_length=20)
    tool_name: str = Field(max_length=100, index=True)
    arguments: str = Field(default="{}")
    created_at: datetime = Field(default_factory=utcnow, index=True)
