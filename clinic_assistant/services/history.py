"""Conversation and message storage for signed-in users.

Guests have no conversations: every method accepts ``None`` for the user
or conversation id and then does nothing (reads return empty results).
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from clinic_assistant.config import CONVERSATION_LIST_LIMIT, MAX_HISTORY_MESSAGES
from clinic_assistant.models import Conversation, Message, utcnow

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50


def make_title(text: str) -> str:
    """Short conversation title derived from the first user message."""
    text = " ".join(text.split())
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


class ChatHistoryService:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    # ── Conversations ────────────────────────────────────────────────

    def get_or_create(self, user_id: int | None, conversation_id: int | None = None) -> Conversation | None:
        """Return the caller's conversation, or start a new untitled one.

        An id that does not exist or belongs to someone else silently
        starts a new conversation.
        """
        if user_id is None:
            return None
        with self._session() as session:
            if conversation_id is not None:
                conversation = session.exec(
                    select(Conversation).where(
                        Conversation.id == conversation_id,
                        Conversation.user_id == user_id,
                    )
                ).first()
                if conversation is not None:
                    return conversation
                logger.info("Conversation %s not found for user %s; starting a new one", conversation_id, user_id)

            conversation = Conversation(user_id=user_id)
            session.add(conversation)
            session.commit()
            session.refresh(conversation)
            logger.debug("Created conversation %s for user %s", conversation.id, user_id)
            return conversation

    def get_conversation(self, user_id: int, conversation_id: int) -> Conversation | None:
        """Fetch a conversation only if *user_id* owns it."""
        with self._session() as session:
            return session.exec(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            ).first()

    def list_conversations(self, user_id: int, limit: int = CONVERSATION_LIST_LIMIT) -> list[Conversation]:
        """Most recently updated first."""
        with self._session() as session:
            return list(session.exec(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(col(Conversation.updated_at).desc(), col(Conversation.id).desc())
                .limit(limit)
            ).all())

    def delete_conversation(self, conversation_id: int) -> None:
        """Delete a conversation and all of its messages."""
        with self._session() as session:
            for message in session.exec(select(Message).where(Message.conversation_id == conversation_id)).all():
                session.delete(message)
            session.flush()
            conversation = session.get(Conversation, conversation_id)
            if conversation is not None:
                session.delete(conversation)
            session.commit()
        logger.info("Deleted conversation %s", conversation_id)

    # ── Messages ─────────────────────────────────────────────────────

    def append(
        self,
        conversation_id: int | None,
        role: str,
        content: str,
        function_called: str | None = None,
    ) -> Message | None:
        """Store a message, touch the conversation and title it on first user message."""
        if conversation_id is None:
            return None
        with self._session() as session:
            message = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                function_called=function_called,
            )
            session.add(message)

            conversation = session.get(Conversation, conversation_id)
            if conversation is not None:
                conversation.updated_at = utcnow()
                if role == "user" and not conversation.title:
                    conversation.title = make_title(content)
                session.add(conversation)

            session.commit()
            session.refresh(message)
            return message

    def messages(self, conversation_id: int) -> list[Message]:
        """All messages of a conversation in the order they were written."""
        with self._session() as session:
            return list(session.exec(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(col(Message.created_at), col(Message.id))
            ).all())

    def recent_messages(
        self,
        conversation_id: int | None,
        limit: int = MAX_HISTORY_MESSAGES,
        exclude_message_id: int | None = None,
    ) -> list[Message]:
        """The newest *limit* messages, oldest first.

        ``exclude_message_id`` keeps the in-flight user message out of the
        window, since it is sent to the model separately.
        """
        if conversation_id is None or limit <= 0:
            return []
        with self._session() as session:
            query = select(Message).where(Message.conversation_id == conversation_id)
            if exclude_message_id is not None:
                query = query.where(Message.id != exclude_message_id)
            newest_first = session.exec(
                query.order_by(col(Message.created_at).desc(), col(Message.id).desc()).limit(limit)
            ).all()
        return list(reversed(newest_first))

    def get_message(self, message_id: int) -> Message | None:
        with self._session() as session:
            return session.get(Message, message_id)

    def delete_message(self, message_id: int) -> bool:
        with self._session() as session:
            message = session.get(Message, message_id)
            if message is None:
                return False
            session.delete(message)
            session.commit()
            return True

    def delete_last_user_message(self, conversation_id: int) -> bool:
        """Remove the newest user message (cancelled turn).  Returns whether one existed."""
        with self._session() as session:
            message = session.exec(
                select(Message)
                .where(Message.conversation_id == conversation_id, Message.role == "user")
                .order_by(col(Message.created_at).desc(), col(Message.id).desc())
                .limit(1)
            ).first()
            if message is None:
                return False
            session.delete(message)
            session.commit()
            logger.info("Removed last user message %s from conversation %s", message.id, conversation_id)
            return True
