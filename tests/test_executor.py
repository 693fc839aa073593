"""Tests for the tool executor: validation, gating, scoping, envelope, audit."""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock, patch

import pytest
from sqlmodel import Session, select

from clinic_assistant.models import AuditRecord
from clinic_assistant.services.audit import AuditSink
from clinic_assistant.services.clinic_client import ClinicAPIError
from clinic_assistant.tools.authorization import CallerContext, Role
from clinic_assistant.tools.catalog import TOOLS, AuthClass, get_tool
from clinic_assistant.tools.executor import (
    ToolArgumentError,
    ToolExecutor,
    normalize_arguments,
    wrap_result,
)

GUEST = CallerContext.guest()
DENTIST = CallerContext(user_id=7, role=Role.DENTIST)
ADMIN = CallerContext(user_id=1, role=Role.ADMIN)


# ── Argument normalization ───────────────────────────────────────────


class TestNormalizeArguments:
    def test_none_means_no_arguments(self):
        assert normalize_arguments(get_tool("list_treatments"), None) == {}

    def test_json_string_is_parsed(self):
        spec = get_tool("get_treatment_info")
        assert normalize_arguments(spec, '{"treatment_name": " Cleaning "}') == {"treatment_name": "Cleaning"}

    def test_missing_required_field(self):
        with pytest.raises(ToolArgumentError, match="patient_name is required"):
            normalize_arguments(get_tool("find_next_appointment"), {"patient_name": "   "})

    def test_non_object_rejected(self):
        with pytest.raises(ToolArgumentError):
            normalize_arguments(get_tool("list_treatments"), ["a", "b"])

    def test_integer_coercion(self):
        spec = get_tool("get_appointment_details")
        assert normalize_arguments(spec, {"appointment_id": "42"}) == {"appointment_id": 42}
        assert normalize_arguments(spec, {"appointment_id": 42.0}) == {"appointment_id": 42}
        with pytest.raises(ToolArgumentError, match="must be an integer"):
            normalize_arguments(spec, {"appointment_id": "forty-two"})
        with pytest.raises(ToolArgumentError):
            normalize_arguments(spec, {"appointment_id": True})

    @pytest.mark.parametrize("value", ["--5", "\u00b2", "4 2"])
    def test_digit_like_strings_that_are_not_integers(self, value):
        with pytest.raises(ToolArgumentError, match="appointment_id must be an integer"):
            normalize_arguments(get_tool("get_appointment_details"), {"appointment_id": value})

    def test_boolean_coercion(self):
        spec = get_tool("find_appointment_creator")
        assert normalize_arguments(spec, {"get_last": "yes"}) == {"get_last": True}
        assert normalize_arguments(spec, {"get_last": 0}) == {"get_last": False}

    def test_comma_separated_string_becomes_array(self):
        spec = get_tool("estimate_treatment_cost")
        args = normalize_arguments(spec, {"treatment_names": "Extraction, Cleaning"})
        assert args == {"treatment_names": ["Extraction", "Cleaning"]}

    def test_undeclared_keys_are_dropped(self):
        args = normalize_arguments(get_tool("get_all_patients"), {"dentist_id": 99, "role": "admin"})
        assert args == {}


# ── Result envelope ──────────────────────────────────────────────────


class TestWrapResult:
    def test_list_result(self):
        result = wrap_result(get_tool("list_treatments"), [{"name": "Cleaning"}], {})
        assert result == {"found": True, "count": 1, "treatments": [{"name": "Cleaning"}]}

    def test_mapping_result_is_merged(self):
        result = wrap_result(get_tool("get_revenue_estimate"), {"total": 1200}, {})
        assert result == {"found": True, "total": 1200}

    def test_scalar_result(self):
        result = wrap_result(get_tool("check_clinic_status"), "open", {})
        assert result == {"found": True, "status": "open"}

    @pytest.mark.parametrize("empty", [None, [], {}])
    def test_empty_result_uses_not_found_message(self, empty):
        result = wrap_result(get_tool("find_next_appointment"), empty, {"patient_name": "Ana"})
        assert result == {"found": False, "message": "No upcoming appointments found for 'Ana'."}

    def test_missing_date_defaults_to_today(self):
        result = wrap_result(get_tool("get_daily_schedule"), [], {"dentist_id": 7})
        assert result["message"] == "You have no appointments scheduled for today."


# ── Execution ────────────────────────────────────────────────────────


class TestExecute:
    def test_unknown_tool_is_an_error_result(self, queries):
        result = ToolExecutor(queries).execute("drop_tables", {}, ADMIN)
        assert result == {"error": "Unknown function: drop_tables"}
        assert queries.calls == []

    def test_invalid_arguments_never_reach_the_backend(self, queries):
        result = ToolExecutor(queries).execute("find_next_appointment", {}, DENTIST)
        assert result == {"error": "patient_name is required"}
        assert queries.calls == []

    def test_malformed_integer_is_an_error_result(self, queries):
        result = ToolExecutor(queries).execute("get_appointment_details", {"appointment_id": "--5"}, DENTIST)
        assert result == {"error": "appointment_id must be an integer"}
        assert queries.calls == []

    def test_denied_call_never_reaches_the_backend(self, queries):
        result = ToolExecutor(queries).execute("get_revenue_estimate", {}, DENTIST)
        assert "administrators" in result["error"]
        assert queries.calls == []

    def test_guest_public_tool(self, queries):
        queries.responses["list_treatments"] = [{"name": "Cleaning", "cost": 80}]
        result = ToolExecutor(queries).execute("list_treatments", {}, GUEST)
        assert result["found"] is True
        assert result["count"] == 1
        assert queries.calls == [("list_treatments", {})]

    def test_forged_dentist_id_is_overridden(self, queries):
        queries.responses["search_patients"] = [{"name": "Ana"}]
        ToolExecutor(queries).execute("search_patients", {"query": "Ana", "dentist_id": 99}, DENTIST)
        assert queries.calls == [("search_patients", {"query": "Ana", "dentist_id": 7})]

    def test_personal_tool_is_scoped_to_caller(self, queries):
        ToolExecutor(queries).execute("get_weekly_patients", {"dentist_id": 99}, DENTIST)
        assert queries.calls == [("get_weekly_patients", {"dentist_id": 7})]

    def test_admin_is_not_narrowed(self, queries):
        ToolExecutor(queries).execute("count_appointments", {"status": "Cancelled"}, ADMIN)
        assert queries.calls == [("count_appointments", {"status": "Cancelled"})]

    def test_backend_failure_propagates(self, queries):
        queries.responses["list_treatments"] = ClinicAPIError("boom", status_code=502)
        with pytest.raises(ClinicAPIError):
            ToolExecutor(queries).execute("list_treatments", {}, GUEST)

    def test_log_line_redacts_patient_names(self, queries, caplog):
        with caplog.at_level(logging.INFO, logger="clinic_assistant.tools.executor"):
            ToolExecutor(queries).execute("find_next_appointment", {"patient_name": "Jane Doe"}, DENTIST)
        assert "Jane Doe" not in caplog.text
        assert "[REDACTED]" in caplog.text
        assert "find_next_appointment" in caplog.text


class TestEveryToolForEveryRole:
    """Each tool either reaches the backend or is refused, per its auth class."""

    @pytest.mark.parametrize("spec", list(TOOLS.values()), ids=lambda s: s.name)
    def test_dispatch_outcome(self, spec, queries):
        executor = ToolExecutor(queries)
        args = {p.name: (1 if p.type == "integer" else ["x"] if p.type == "array" else "x") for p in spec.params if p.required}
        for caller in (GUEST, DENTIST, ADMIN):
            queries.calls.clear()
            result = executor.execute(spec.name, args, caller)
            refused = (
                (spec.auth is not AuthClass.GUEST and caller.is_guest)
                or (spec.auth is AuthClass.ADMIN_ONLY and caller is not ADMIN)
                or (spec.auth is AuthClass.DENTIST_ONLY and caller is not DENTIST)
            )
            if refused:
                assert "error" in result
                assert queries.calls == []
            else:
                assert result["found"] is False
                assert len(queries.calls) == 1


# ── Audit ────────────────────────────────────────────────────────────


class TestAudit:
    def test_sensitive_tool_writes_redacted_record(self, queries, engine):
        queries.responses["find_entity_creator"] = {"created_by": "admin"}
        executor = ToolExecutor(queries, audit=AuditSink(engine))
        executor.execute("find_entity_creator", {"entity_name": "Implants"}, ADMIN)

        with Session(engine) as session:
            records = session.exec(select(AuditRecord)).all()
        assert len(records) == 1
        assert records[0].tool_name == "find_entity_creator"
        assert records[0].user_id == 1
        assert records[0].role == "admin"
        assert json.loads(records[0].arguments) == {"entity_name": "[REDACTED]"}

    def test_non_sensitive_tool_is_not_audited(self, queries):
        audit = MagicMock()
        ToolExecutor(queries, audit=audit).execute("list_treatments", {}, GUEST)
        audit.record.assert_not_called()

    def test_denied_sensitive_call_is_not_audited(self, queries):
        audit = MagicMock()
        ToolExecutor(queries, audit=audit).execute("get_revenue_estimate", {}, DENTIST)
        audit.record.assert_not_called()

    def test_audit_failure_does_not_change_the_result(self, queries, engine, caplog):
        queries.responses["get_revenue_estimate"] = {"total": 10}
        executor = ToolExecutor(queries, audit=AuditSink(engine))
        with (
            patch("clinic_assistant.services.audit.Session", side_effect=RuntimeError("db down")),
            caplog.at_level(logging.WARNING),
        ):
            result = executor.execute("get_revenue_estimate", {}, ADMIN)
        assert result == {"found": True, "total": 10}
        assert "Failed to write audit record" in caplog.text
