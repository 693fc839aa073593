"""Declarative catalog of the tools the assistant can call.

Each :class:`ToolSpec` carries two kinds of information:

* what the model sees — name, description and a flat parameter schema
  (rendered by :meth:`ToolSpec.declaration`), and
* what only the server sees — the authorization class, the argument that
  gets narrowed to the caller's own id, whether invocations are written to
  the audit trail, and the message used when the query finds nothing.

The catalog is built once at import time and never changes while the
process runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class AuthClass(StrEnum):
    """Server-side authorization requirement of a tool."""

    GUEST = "guest"                  # public, non-personal data
    AUTHENTICATED = "authenticated"  # any signed-in user
    ROLE_SCOPED = "role_scoped"      # signed-in; dentists are narrowed to their own records
    DENTIST_ONLY = "dentist_only"    # the caller's personal schedule / patients
    ADMIN_ONLY = "admin_only"


class ParamType(StrEnum):
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    STRING_ARRAY = "array"


@dataclass(frozen=True)
class Param:
    name: str
    type: ParamType
    description: str
    required: bool = False

    def schema(self) -> dict[str, Any]:
        prop: dict[str, Any] = {"type": self.type.value, "description": self.description}
        if self.type is ParamType.STRING_ARRAY:
            prop["items"] = {"type": "string"}
        return prop


@dataclass(frozen=True)
class ToolSpec:
    """One entry in the catalog."""

    name: str
    description: str
    auth: AuthClass
    params: tuple[Param, ...] = ()
    result_key: str = "results"
    not_found: str = "No matching records were found."
    sensitive: bool = False
    scope_field: str | None = None
    admin_alternative: str | None = None

    @property
    def required_params(self) -> list[str]:
        return [p.name for p in self.params if p.required]

    def declaration(self) -> dict[str, Any]:
        """Render the model-facing function declaration (no auth metadata)."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {p.name: p.schema() for p in self.params},
                "required": self.required_params,
            },
        }


# ── Shared parameters ────────────────────────────────────────────────

_PATIENT_NAME = Param("patient_name", ParamType.STRING, "The patient's full or partial name.", required=True)
_DENTIST_ID = Param(
    "dentist_id", ParamType.INTEGER,
    "Optional dentist id to filter by. Leave empty to search across the clinic.",
)
_DENTIST_NAME = Param("dentist_name", ParamType.STRING, "Optional dentist name to filter by.")
_START_DATE = Param("start_date", ParamType.STRING, "Start date in YYYY-MM-DD format (optional).")
_END_DATE = Param("end_date", ParamType.STRING, "End date in YYYY-MM-DD format (optional).")
_DATE = Param(
    "date", ParamType.STRING,
    'Date in YYYY-MM-DD format or natural language like "today" or "tomorrow" (defaults to today).',
)


def _scoped(name: str, description: str, *params: Param, result_key: str, not_found: str,
            sensitive: bool = False) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=description,
        auth=AuthClass.ROLE_SCOPED,
        params=(*params, _DENTIST_ID),
        result_key=result_key,
        not_found=not_found,
        sensitive=sensitive,
        scope_field="dentist_id",
    )


def _personal(name: str, description: str, *params: Param, result_key: str, not_found: str,
              admin_alternative: str, sensitive: bool = False) -> ToolSpec:
    return ToolSpec(
        name=name,
        description=description,
        auth=AuthClass.DENTIST_ONLY,
        params=params,
        result_key=result_key,
        not_found=not_found,
        sensitive=sensitive,
        scope_field="dentist_id",
        admin_alternative=admin_alternative,
    )


_TOOL_SPECS: tuple[ToolSpec, ...] = (
    # ── Guest-accessible: services, specializations, dentists, hours ──
    ToolSpec(
        name="list_treatments",
        description="List all dental treatments and services the clinic offers, with cost and duration.",
        auth=AuthClass.GUEST,
        result_key="treatments",
        not_found="The clinic has no active treatments listed at the moment.",
    ),
    ToolSpec(
        name="get_treatment_info",
        description="Get information about a dental treatment including cost and duration.",
        auth=AuthClass.GUEST,
        params=(Param(
            "treatment_name", ParamType.STRING,
            "The name of the treatment to check (e.g. Cleaning, Root Canal).", required=True,
        ),),
        result_key="treatments",
        not_found="No active treatments found matching '{treatment_name}'.",
    ),
    ToolSpec(
        name="estimate_treatment_cost",
        description="Estimate the total cost for one or more treatments.",
        auth=AuthClass.GUEST,
        params=(Param(
            "treatment_names", ParamType.STRING_ARRAY,
            'List of treatment names (e.g. ["Extraction", "Cleaning"]).', required=True,
        ),),
        result_key="estimate",
        not_found="None of the requested treatments could be found.",
    ),
    ToolSpec(
        name="get_clinic_hours",
        description="Get the clinic's operating hours, either the weekly schedule or a specific day.",
        auth=AuthClass.GUEST,
        params=(Param(
            "day_query", ParamType.STRING,
            'The day to check (e.g. "Monday", "today", "tomorrow"). Leave empty for the weekly schedule.',
        ),),
        result_key="hours",
        not_found="Clinic hours are not configured yet.",
    ),
    ToolSpec(
        name="check_clinic_status",
        description="Check whether the clinic is open right now.",
        auth=AuthClass.GUEST,
        result_key="status",
        not_found="The clinic status is unavailable right now.",
    ),
    ToolSpec(
        name="get_clinic_closures",
        description="List upcoming dates when the clinic is closed (holidays and exceptions).",
        auth=AuthClass.GUEST,
        params=(Param("limit", ParamType.INTEGER, "Maximum number of closures to return (default 5)."),),
        result_key="closures",
        not_found="There are no upcoming clinic closures.",
    ),
    ToolSpec(
        name="list_specializations",
        description="List the dental specializations available at the clinic.",
        auth=AuthClass.GUEST,
        result_key="specializations",
        not_found="No specializations are listed.",
    ),
    ToolSpec(
        name="list_public_dentists",
        description="List the clinic's dentists and their specializations, optionally filtered by specialization.",
        auth=AuthClass.GUEST,
        params=(Param("specialization", ParamType.STRING, "Optional specialization to filter by."),),
        result_key="dentists",
        not_found="No dentists found for that specialization.",
    ),

    # ── Authenticated, narrowed to the caller for dentists ────────────
    _scoped(
        "find_next_appointment",
        "Find the next scheduled appointment for a patient by name.",
        _PATIENT_NAME,
        result_key="appointment",
        not_found="No upcoming appointments found for '{patient_name}'.",
    ),
    _scoped(
        "get_patient_appointment_history",
        "Get past appointment history for a patient.",
        _PATIENT_NAME,
        result_key="history",
        not_found="No appointment history found for '{patient_name}'.",
    ),
    _scoped(
        "search_patients",
        "Search patients by name, phone or email.",
        Param("query", ParamType.STRING, "Name, phone number or email to search for.", required=True),
        result_key="patients",
        not_found="No patients found matching '{query}'.",
    ),
    _scoped(
        "get_treatment_history",
        "Get the treatment records (procedures, teeth, dates) for a patient.",
        _PATIENT_NAME,
        result_key="treatments",
        not_found="No treatment records found for '{patient_name}'.",
    ),
    _scoped(
        "get_upcoming_birthdays",
        "List patients with birthdays coming up.",
        Param("days_ahead", ParamType.INTEGER, "How many days ahead to look (default 7)."),
        result_key="patients",
        not_found="No patient birthdays in that period.",
    ),
    _scoped(
        "get_appointment_details",
        "Get full details of one appointment by its id.",
        Param("appointment_id", ParamType.INTEGER, "The appointment id.", required=True),
        result_key="appointment",
        not_found="Appointment {appointment_id} was not found.",
    ),
    _scoped(
        "count_appointments",
        "Count appointments by status within an optional date range.",
        Param("status", ParamType.STRING, "Optional status filter (Scheduled, Completed, Cancelled)."),
        _START_DATE,
        _END_DATE,
        result_key="counts",
        not_found="No appointments found in that period.",
    ),
    _scoped(
        "get_cancelled_appointments",
        "List cancelled appointments within an optional date range, with reasons.",
        _START_DATE,
        _END_DATE,
        result_key="appointments",
        not_found="No cancelled appointments found in that period.",
    ),

    # ── Authenticated, unscoped ───────────────────────────────────────
    ToolSpec(
        name="find_dentist_availability",
        description="Check a dentist's free appointment slots on a given date.",
        auth=AuthClass.AUTHENTICATED,
        params=(
            Param("dentist_name", ParamType.STRING, "The dentist's name.", required=True),
            _DATE,
        ),
        result_key="availability",
        not_found="No free slots found for that dentist on that date.",
    ),

    # ── Dentist-only: the caller's own schedule and patients ──────────
    _personal(
        "get_weekly_patients",
        "Get the unique patients scheduled with me for the current week.",
        result_key="patients",
        not_found="You have no patients scheduled this week.",
        admin_alternative="list_all_patients",
    ),
    _personal(
        "get_daily_schedule",
        "Get my appointment schedule for a day.",
        _DATE,
        result_key="schedule",
        not_found="You have no appointments scheduled for {date}.",
        admin_alternative="get_clinic_schedule",
    ),
    _personal(
        "get_all_patients",
        "Get all patients assigned to me (all time, not just this week).",
        result_key="patients",
        not_found="You have no patients assigned to you.",
        admin_alternative="list_all_patients",
        sensitive=True,
    ),
    _personal(
        "get_my_profile",
        "Get my dentist profile: specializations, contact details and working days.",
        result_key="profile",
        not_found="Your dentist profile could not be found.",
        admin_alternative="list_employed_dentists",
    ),

    # ── Admin-only ────────────────────────────────────────────────────
    ToolSpec(
        name="list_employed_dentists",
        description="List all employed dentists with their specializations and employment status.",
        auth=AuthClass.ADMIN_ONLY,
        result_key="dentists",
        not_found="No employed dentists found.",
    ),
    ToolSpec(
        name="find_dentists_by_specialization",
        description="Find dentists by their specialization.",
        auth=AuthClass.ADMIN_ONLY,
        params=(Param(
            "specialization", ParamType.STRING,
            'The specialization to search for (e.g. "Orthodontics", "Endodontics").', required=True,
        ),),
        result_key="dentists",
        not_found="No dentists found with specialization '{specialization}'.",
    ),
    ToolSpec(
        name="list_all_patients",
        description="List every patient registered at the clinic.",
        auth=AuthClass.ADMIN_ONLY,
        params=(Param("limit", ParamType.INTEGER, "Maximum number of patients to return."),),
        result_key="patients",
        not_found="There are no registered patients.",
        sensitive=True,
    ),
    ToolSpec(
        name="get_clinic_schedule",
        description="Get the clinic-wide appointment schedule for a day, optionally for one dentist.",
        auth=AuthClass.ADMIN_ONLY,
        params=(_DATE, _DENTIST_NAME),
        result_key="schedule",
        not_found="No appointments are scheduled for {date}.",
    ),
    ToolSpec(
        name="get_revenue_estimate",
        description="Estimate revenue from completed treatments within a date range.",
        auth=AuthClass.ADMIN_ONLY,
        params=(_START_DATE, _END_DATE, _DENTIST_NAME),
        result_key="revenue",
        not_found="No completed treatments were recorded in that period.",
        sensitive=True,
    ),
    ToolSpec(
        name="get_treatment_statistics",
        description="Get the most common treatments and their counts within a date range.",
        auth=AuthClass.ADMIN_ONLY,
        params=(_START_DATE, _END_DATE),
        result_key="statistics",
        not_found="No treatments were recorded in that period.",
    ),
    ToolSpec(
        name="compare_dentist_performance",
        description="Compare dentists by completed appointments, cancellations and revenue within a date range.",
        auth=AuthClass.ADMIN_ONLY,
        params=(_START_DATE, _END_DATE),
        result_key="dentists",
        not_found="No dentist activity was recorded in that period.",
        sensitive=True,
    ),
    ToolSpec(
        name="get_dentist_workload",
        description="Get appointment workload per dentist, or for one dentist, within a date range.",
        auth=AuthClass.ADMIN_ONLY,
        params=(_DENTIST_NAME, _START_DATE, _END_DATE),
        result_key="workload",
        not_found="No workload data found for that period.",
        sensitive=True,
    ),
    ToolSpec(
        name="search_audit_logs",
        description="Search the admin audit log for a target type (appointment, patient, dentist, ...).",
        auth=AuthClass.ADMIN_ONLY,
        params=(
            Param("target_type", ParamType.STRING, "The kind of record (appointment, patient, dentist).", required=True),
            Param("target_id", ParamType.INTEGER, "Optional id of the record."),
            Param("action", ParamType.STRING, "Optional action filter (created, updated, deleted)."),
        ),
        result_key="logs",
        not_found="No audit logs found for {target_type}.",
        sensitive=True,
    ),
    ToolSpec(
        name="find_appointment_creator",
        description="Find who created an appointment, by appointment id, patient name, or the most recent one.",
        auth=AuthClass.ADMIN_ONLY,
        params=(
            Param("appointment_id", ParamType.INTEGER, "Optional appointment id."),
            Param("patient_name", ParamType.STRING, "Optional patient name."),
            Param("get_last", ParamType.BOOLEAN, "Set to true to look up the most recently created appointment."),
        ),
        result_key="audit",
        not_found="No matching appointment was found in the audit log.",
        sensitive=True,
    ),
    ToolSpec(
        name="get_recent_activity",
        description="Get the most recent admin activity for a module (appointments, patients, dentists, ...).",
        auth=AuthClass.ADMIN_ONLY,
        params=(
            Param("module_type", ParamType.STRING, "The module to inspect.", required=True),
            Param("limit", ParamType.INTEGER, "Maximum number of entries (default 10)."),
        ),
        result_key="activity",
        not_found="No recent activity found for {module_type}.",
        sensitive=True,
    ),
    ToolSpec(
        name="find_entity_creator",
        description="Find who created a named record such as a treatment type, specialization or dentist.",
        auth=AuthClass.ADMIN_ONLY,
        params=(Param("entity_name", ParamType.STRING, "The name of the record.", required=True),),
        result_key="audit",
        not_found="No creation record found for '{entity_name}'.",
        sensitive=True,
    ),
    ToolSpec(
        name="search_by_activity",
        description="Search the audit log by activity title, module or keyword.",
        auth=AuthClass.ADMIN_ONLY,
        params=(
            Param("activity", ParamType.STRING, "Optional activity title (e.g. Dentist Created)."),
            Param("module_type", ParamType.STRING, "Optional module filter."),
            Param("keyword", ParamType.STRING, "Optional keyword found in the log message."),
        ),
        result_key="logs",
        not_found="No audit entries matched that search.",
        sensitive=True,
    ),
)

TOOLS: dict[str, ToolSpec] = {spec.name: spec for spec in _TOOL_SPECS}

SENSITIVE_TOOLS: frozenset[str] = frozenset(name for name, spec in TOOLS.items() if spec.sensitive)


def get_tool(name: str) -> ToolSpec | None:
    return TOOLS.get(name)


def declarations() -> list[dict[str, Any]]:
    """All tool declarations, in catalog order, as sent to the model."""
    return [spec.declaration() for spec in _TOOL_SPECS]
