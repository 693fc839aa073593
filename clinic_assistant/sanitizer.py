"""Prompt-injection screening for incoming chat messages.

Every message is checked against an ordered list of pattern classes before
anything is persisted or sent to the model.  The first match wins and the
message is rejected with a generic reason; the matched class and a short
preview are logged for security review.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REJECTION_MESSAGE = (
    "Your message contains disallowed patterns and cannot be processed. "
    "Please rephrase your question."
)
PREVIEW_CHARS = 50

_ROLE_WORDS = r"(?:admin|administrator|dentist|doctor|root|superuser|system|developer|owner)"

# (pattern class, regex), evaluated in order
_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "instruction_override",
        re.compile(
            r"\b(?:ignore|disregard|forget|override|bypass|skip)\s+"
            r"(?:(?:all|any|the|your|my|these|those|of)\s+)*"
            r"(?:previous|prior|above|earlier|preceding|original|system|safety)?\s*"
            r"(?:instructions?|prompts?|rules|directives|guidelines|restrictions)\b",
        ),
    ),
    (
        "instruction_override",
        re.compile(r"\bnew\s+(?:system\s+)?instructions?\s*:"),
    ),
    (
        "role_elevation",
        re.compile(rf"\byou\s+are\s+now\s+(?:an?\s+|the\s+|in\s+)?{_ROLE_WORDS}\b"),
    ),
    (
        "role_elevation",
        re.compile(rf"\b(?:act|behave|pretend|respond)\s+(?:as|like)\s+(?:if\s+i\s+(?:am|was|were)\s+)?(?:an?\s+|the\s+)?{_ROLE_WORDS}\b"),
    ),
    (
        "role_elevation",
        re.compile(r"\b(?:enable|enter|activate|switch\s+to)\s+(?:developer|admin|god|dan|debug)\s+mode\b"),
    ),
    (
        "role_elevation",
        re.compile(r"\b(?:grant|give)\s+me\s+(?:admin|administrator|root|full)\s+(?:access|privileges|rights|role)\b"),
    ),
    (
        "structural_marker",
        re.compile(r"\[/?\s*(?:system|inst|instructions?|sys)\s*\]"),
    ),
    (
        "structural_marker",
        re.compile(r"<\|?/?\s*(?:system|im_start|im_end|endoftext|assistant)\s*\|?>"),
    ),
    (
        "structural_marker",
        re.compile(r"<<\s*/?\s*sys\s*>>"),
    ),
    (
        "structural_marker",
        re.compile(r"(?:^|\n)\s*#{0,3}\s*(?:system|assistant)\s*:", re.MULTILINE),
    ),
]


@dataclass(frozen=True)
class SanitizeResult:
    """Outcome of screening one message."""

    ok: bool
    reason: str | None = None
    pattern_class: str | None = None


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) > PREVIEW_CHARS:
        return flat[:PREVIEW_CHARS] + "..."
    return flat


def sanitize(text: str) -> SanitizeResult:
    """Screen *text* for prompt-injection and role-escalation attempts."""
    lowered = text.lower()
    for pattern_class, pattern in _PATTERNS:
        if pattern.search(lowered):
            logger.warning(
                "Blocked chat input (pattern=%s): %r", pattern_class, _preview(text),
            )
            return SanitizeResult(ok=False, reason=REJECTION_MESSAGE, pattern_class=pattern_class)
    return SanitizeResult(ok=True)
