"""Audit trail for sensitive tool invocations, and argument redaction.

Writes are best effort: a failing audit write is logged and swallowed so
it can never change the outcome of a chat turn.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy.engine import Engine
from sqlmodel import Session

from clinic_assistant.models import AuditRecord

if TYPE_CHECKING:
    from clinic_assistant.tools.authorization import CallerContext

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
PII_FIELDS = frozenset({"patient_name", "dentist_name", "name", "entity_name", "query", "keyword"})
MAX_VALUE_CHARS = 100


def redact_arguments(arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of *arguments* safe to write to logs."""
    redacted: dict[str, Any] = {}
    for key, value in arguments.items():
        if key in PII_FIELDS and value not in (None, ""):
            redacted[key] = REDACTED
        elif isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            redacted[key] = value[:MAX_VALUE_CHARS] + "..."
        else:
            redacted[key] = value
    return redacted


class AuditSink:
    """Appends :class:`AuditRecord` rows; never updates or deletes them."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def record(self, caller: CallerContext, tool_name: str, arguments: Mapping[str, Any]) -> None:
        try:
            entry = AuditRecord(
                user_id=caller.user_id,
                role=caller.role.value,
                tool_name=tool_name,
                arguments=json.dumps(redact_arguments(arguments), default=str, sort_keys=True),
            )
            with Session(self._engine) as session:
                session.add(entry)
                session.commit()
            logger.debug("Audit: %s invoked %s", caller.describe(), tool_name)
        except Exception as exc:
            logger.warning("Failed to write audit record for %s: %s", tool_name, exc)
