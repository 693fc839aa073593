"""Tests for argument redaction used in logs and audit records."""

from __future__ import annotations

from clinic_assistant.services.audit import MAX_VALUE_CHARS, REDACTED, redact_arguments


class TestRedactArguments:
    def test_pii_fields_are_replaced(self):
        redacted = redact_arguments({"patient_name": "Jane Doe", "query": "555-0100", "dentist_id": 7})
        assert redacted == {"patient_name": REDACTED, "query": REDACTED, "dentist_id": 7}

    def test_empty_pii_value_is_left_alone(self):
        assert redact_arguments({"patient_name": ""}) == {"patient_name": ""}

    def test_long_strings_are_truncated(self):
        redacted = redact_arguments({"status": "x" * 250})
        assert redacted["status"] == "x" * MAX_VALUE_CHARS + "..."

    def test_input_is_not_modified(self):
        arguments = {"patient_name": "Jane Doe"}
        redact_arguments(arguments)
        assert arguments == {"patient_name": "Jane Doe"}
