"""Executes the model's function calls against the clinic backend.

Every call goes through the same steps:

1. look the tool up in the catalog (unknown names become an error result),
2. normalize and validate the raw arguments against the declared schema,
3. ask the authorization gate, and apply its scope override,
4. log the call with PII-bearing arguments redacted,
5. run the domain query and wrap its data in the ``found`` envelope,
6. write an audit record for sensitive tools (best effort).

Refusals, validation problems and empty results are returned as plain
dicts so the model can explain them to the user.  Only failures of the
domain query itself propagate as exceptions.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Protocol

from clinic_assistant.services.audit import AuditSink, redact_arguments
from clinic_assistant.services.metrics import metrics
from clinic_assistant.tools.authorization import Allowed, CallerContext, Denied, check
from clinic_assistant.tools.catalog import TOOLS, Param, ParamType, ToolSpec

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "1", "y"}
_FALSE_STRINGS = {"false", "no", "0", "n"}


class DomainQueryService(Protocol):
    """Anything that can run a named clinic query."""

    def call(self, name: str, arguments: dict[str, Any]) -> Any: ...


class ToolArgumentError(ValueError):
    """Raised when the model's arguments do not fit the tool's schema."""


# ── Argument normalization ───────────────────────────────────────────


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip()) or value == []


def _coerce(param: Param, value: Any) -> Any:
    if param.type is ParamType.STRING:
        if isinstance(value, (list, dict)):
            raise ToolArgumentError(f"{param.name} must be a string")
        return str(value).strip()

    if param.type is ParamType.INTEGER:
        if isinstance(value, bool):
            raise ToolArgumentError(f"{param.name} must be an integer")
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise ToolArgumentError(f"{param.name} must be an integer") from None
        raise ToolArgumentError(f"{param.name} must be an integer")

    if param.type is ParamType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
            return value.strip().lower() in _TRUE_STRINGS
        raise ToolArgumentError(f"{param.name} must be true or false")

    # STRING_ARRAY
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ToolArgumentError(f"{param.name} must be a list of strings")
    cleaned = [str(item).strip() for item in items if not _is_blank(item)]
    return [item for item in cleaned if item]


def normalize_arguments(spec: ToolSpec, raw: Any) -> dict[str, Any]:
    """Validate *raw* against the tool's parameters and coerce the types.

    Unknown keys are dropped; blank optional values are omitted.
    """
    if raw is None:
        raw = {}
    elif isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise ToolArgumentError("arguments must be a JSON object") from exc
    if not isinstance(raw, Mapping):
        raise ToolArgumentError("arguments must be an object")

    arguments: dict[str, Any] = {}
    for param in spec.params:
        value = raw.get(param.name)
        if not _is_blank(value):
            value = _coerce(param, value)
        if _is_blank(value):
            if param.required:
                raise ToolArgumentError(f"{param.name} is required")
            continue
        arguments[param.name] = value

    ignored = set(raw) - {p.name for p in spec.params}
    if ignored:
        logger.debug("Ignoring undeclared arguments for %s: %s", spec.name, sorted(ignored))
    return arguments


# ── Result envelope ──────────────────────────────────────────────────


def _is_empty(data: Any) -> bool:
    if data is None:
        return True
    if isinstance(data, (list, tuple, dict, str)):
        return len(data) == 0
    return False


def wrap_result(spec: ToolSpec, data: Any, arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Wrap query output in the ``found`` / ``message`` convention."""
    if _is_empty(data):
        placeholders = defaultdict(lambda: "the requested period", arguments)
        if "date" not in arguments:
            placeholders["date"] = "today"
        return {"found": False, "message": spec.not_found.format_map(placeholders)}

    if isinstance(data, Mapping):
        return {"found": True, **data}
    if isinstance(data, (list, tuple)):
        return {"found": True, "count": len(data), spec.result_key: list(data)}
    return {"found": True, spec.result_key: data}


# ── Executor ─────────────────────────────────────────────────────────


class ToolExecutor:
    """Runs catalog tools for one caller at a time; holds no per-turn state."""

    def __init__(
        self,
        queries: DomainQueryService,
        audit: AuditSink | None = None,
        catalog: Mapping[str, ToolSpec] | None = None,
    ) -> None:
        self._queries = queries
        self._audit = audit
        self._catalog = catalog if catalog is not None else TOOLS

    def execute(self, tool_name: str, raw_arguments: Any, caller: CallerContext) -> dict[str, Any]:
        spec = self._catalog.get(tool_name)
        if spec is None:
            logger.warning("Model requested unknown tool %r", tool_name)
            metrics.record_tool_dispatch(tool_name, "unknown")
            return {"error": f"Unknown function: {tool_name}"}

        try:
            arguments = normalize_arguments(spec, raw_arguments)
        except ToolArgumentError as exc:
            logger.info("Invalid arguments for %s: %s", tool_name, exc)
            metrics.record_tool_dispatch(tool_name, "invalid")
            return {"error": str(exc)}

        decision = check(spec, caller)
        if isinstance(decision, Denied):
            logger.info("Denied %s for %s: %s", tool_name, caller.describe(), decision.reason)
            metrics.record_tool_dispatch(tool_name, "denied")
            return {"error": decision.reason}

        return self._dispatch(spec, arguments, decision, caller)

    def _dispatch(
        self,
        spec: ToolSpec,
        arguments: dict[str, Any],
        decision: Allowed,
        caller: CallerContext,
    ) -> dict[str, Any]:
        if not isinstance(decision, Allowed):
            raise TypeError("dispatch requires an Allowed decision from the authorization gate")

        effective = decision.apply(arguments)
        logger.info(
            "Tool call: %s args=%s caller=%s",
            spec.name, redact_arguments(effective), caller.describe(),
        )
        data = self._queries.call(spec.name, effective)
        metrics.record_tool_dispatch(spec.name, "allowed")

        result = wrap_result(spec, data, effective)
        if spec.sensitive and self._audit is not None:
            self._audit.record(caller, spec.name, effective)
        return result
