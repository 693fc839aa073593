"""Tests for conversation and message storage."""

from __future__ import annotations

from datetime import datetime

from sqlmodel import Session, select

from clinic_assistant.models import AuditRecord
from clinic_assistant.services.audit import AuditSink
from clinic_assistant.services.history import TITLE_MAX_CHARS, make_title
from clinic_assistant.tools.authorization import CallerContext, Role


class TestMakeTitle:
    def test_short_message_is_kept(self):
        assert make_title("When is my next cleaning?") == "When is my next cleaning?"

    def test_long_message_is_truncated_with_ellipsis(self):
        title = make_title("a" * 80)
        assert title == "a" * TITLE_MAX_CHARS + "..."

    def test_whitespace_is_collapsed(self):
        assert make_title("  hello \n  there ") == "hello there"


class TestConversations:
    def test_guest_gets_no_conversation(self, history):
        assert history.get_or_create(None) is None
        assert history.append(None, "user", "hi") is None
        assert history.recent_messages(None) == []

    def test_creates_and_reuses(self, history):
        first = history.get_or_create(7)
        again = history.get_or_create(7, first.id)
        assert again.id == first.id

    def test_someone_elses_conversation_starts_a_new_one(self, history):
        mine = history.get_or_create(7)
        theirs = history.get_or_create(8, mine.id)
        assert theirs.id != mine.id
        assert theirs.user_id == 8

    def test_missing_conversation_starts_a_new_one(self, history):
        conversation = history.get_or_create(7, 12345)
        assert conversation.id != 12345

    def test_first_user_message_sets_title(self, history):
        conversation = history.get_or_create(7)
        history.append(conversation.id, "user", "Show my schedule for tomorrow please")
        history.append(conversation.id, "assistant", "Here it is")
        history.append(conversation.id, "user", "Thanks")
        assert history.get_conversation(7, conversation.id).title == "Show my schedule for tomorrow please"

    def test_list_is_owned_and_most_recent_first(self, history):
        a = history.get_or_create(7)
        b = history.get_or_create(7)
        history.get_or_create(8)
        history.append(a.id, "user", "bump a")

        listed = history.list_conversations(7)
        assert [c.id for c in listed] == [a.id, b.id]

    def test_list_limit(self, history):
        for _ in range(5):
            history.get_or_create(7)
        assert len(history.list_conversations(7, limit=3)) == 3

    def test_get_conversation_checks_owner(self, history):
        conversation = history.get_or_create(7)
        assert history.get_conversation(8, conversation.id) is None

    def test_delete_removes_messages(self, history):
        conversation = history.get_or_create(7)
        history.append(conversation.id, "user", "hello")
        history.delete_conversation(conversation.id)
        assert history.get_conversation(7, conversation.id) is None
        assert history.messages(conversation.id) == []


class TestMessages:
    def test_round_trip_preserves_order_and_labels(self, history):
        conversation = history.get_or_create(7)
        history.append(conversation.id, "user", "Who are my patients?")
        history.append(conversation.id, "assistant", "You have 2 patients.", function_called="get_all_patients")

        stored = history.messages(conversation.id)
        assert [(m.role, m.content, m.function_called) for m in stored] == [
            ("user", "Who are my patients?", None),
            ("assistant", "You have 2 patients.", "get_all_patients"),
        ]

    def test_recent_messages_keeps_the_newest_window(self, history):
        conversation = history.get_or_create(7)
        for i in range(21):
            history.append(conversation.id, "user" if i % 2 == 0 else "assistant", f"message {i}")

        recent = history.recent_messages(conversation.id, limit=20)
        assert len(recent) == 20
        assert recent[0].content == "message 1"
        assert recent[-1].content == "message 20"

    def test_recent_messages_can_exclude_the_current_message(self, history):
        conversation = history.get_or_create(7)
        history.append(conversation.id, "user", "earlier")
        current = history.append(conversation.id, "user", "now")
        recent = history.recent_messages(conversation.id, exclude_message_id=current.id)
        assert [m.content for m in recent] == ["earlier"]

    def test_delete_last_user_message(self, history):
        conversation = history.get_or_create(7)
        history.append(conversation.id, "user", "first")
        history.append(conversation.id, "assistant", "reply")
        history.append(conversation.id, "user", "second")

        assert history.delete_last_user_message(conversation.id) is True
        assert [m.content for m in history.messages(conversation.id)] == ["first", "reply"]

    def test_delete_last_user_message_when_none(self, history):
        conversation = history.get_or_create(7)
        assert history.delete_last_user_message(conversation.id) is False

    def test_delete_message(self, history):
        conversation = history.get_or_create(7)
        message = history.append(conversation.id, "user", "oops")
        assert history.delete_message(message.id) is True
        assert history.get_message(message.id) is None
        assert history.delete_message(message.id) is False


class TestTimestamps:
    def test_stored_rows_read_back_with_timestamps(self, history):
        conversation = history.get_or_create(7)
        history.append(conversation.id, "user", "When is my next appointment?")

        stored = history.get_conversation(7, conversation.id)
        [message] = history.messages(conversation.id)
        assert isinstance(stored.created_at, datetime)
        assert stored.updated_at >= stored.created_at
        assert message.created_at >= stored.created_at

    def test_audit_rows_are_written(self, engine):
        sink = AuditSink(engine)
        sink.record(CallerContext(user_id=7, role=Role.DENTIST), "get_patient_details", {"patient_id": 3})
        with Session(engine) as session:
            [row] = session.exec(select(AuditRecord)).all()
        assert row.tool_name == "get_patient_details"
        assert isinstance(row.created_at, datetime)
