"""Caller identity and the single authorization gate for tool calls.

The gate is the only place that knows which roles may run which tools.
It never sees the model's arguments; when a tool is narrowed to the
caller's own records, it hands back a scope override that the executor
merges over whatever the model asked for.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from clinic_assistant.tools.catalog import AuthClass, ToolSpec, get_tool

logger = logging.getLogger(__name__)


class Role(StrEnum):
    NONE = "none"
    DENTIST = "dentist"
    ADMIN = "admin"


@dataclass(frozen=True)
class CallerContext:
    """Who is asking, resolved by the caller before a turn starts.

    ``user_id`` is ``None`` for guests.  Lives for one turn only.
    """

    user_id: int | None = None
    role: Role = Role.NONE
    name: str | None = None

    @classmethod
    def guest(cls) -> CallerContext:
        return cls()

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def describe(self) -> str:
        if self.is_guest:
            return "guest"
        return f"user:{self.user_id}/{self.role.value}"


@dataclass(frozen=True)
class Allowed:
    scope: dict[str, Any] = field(default_factory=dict)

    def apply(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Return *arguments* with the scope override forced on top."""
        return {**arguments, **self.scope}


@dataclass(frozen=True)
class Denied:
    reason: str


Decision = Allowed | Denied


def _personal_tool_hint(spec: ToolSpec, caller: CallerContext) -> str:
    if caller.role is Role.ADMIN and spec.admin_alternative:
        return (
            "This function is only available to dentists because it reads their personal "
            f"schedule. Administrators can use '{spec.admin_alternative}' instead."
        )
    return "This function is only available to dentists."


def check(spec: ToolSpec, caller: CallerContext) -> Decision:
    """Apply the decision table to an already resolved catalog entry."""
    if spec.auth is not AuthClass.GUEST and caller.is_guest:
        return Denied("Authentication required. Please sign in to access this information.")

    if spec.auth is AuthClass.ADMIN_ONLY and caller.role is not Role.ADMIN:
        return Denied("Permission denied. This function is only available to administrators.")

    if spec.auth is AuthClass.DENTIST_ONLY:
        if caller.role is not Role.DENTIST:
            return Denied(_personal_tool_hint(spec, caller))
        return Allowed(scope={spec.scope_field: caller.user_id})

    if spec.auth is AuthClass.ROLE_SCOPED:
        if caller.role is Role.ADMIN:
            return Allowed()
        # Dentists (and any other signed-in role) only ever see their own records.
        return Allowed(scope={spec.scope_field: caller.user_id})

    return Allowed()


def authorize(tool_name: str, caller: CallerContext) -> Decision:
    """Decide whether *caller* may run *tool_name*, and how it is scoped."""
    spec = get_tool(tool_name)
    if spec is None:
        return Denied(f"Unknown function: {tool_name}")
    decision = check(spec, caller)
    if isinstance(decision, Denied):
        logger.info("Denied %s for %s: %s", tool_name, caller.describe(), decision.reason)
    return decision
