"""HTTP client for the clinic backend's named query endpoints.

Each catalog tool maps to ``POST {CLINIC_API_BASE_URL}/queries/<tool_name>``
with the (already authorized and scoped) arguments as the JSON body.  The
backend answers ``{"data": ...}``; a 404 or a null/empty ``data`` means
nothing was found.

Requests are never retried: a timeout or error response becomes a
:class:`ClinicAPIError` for the orchestrator to report.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx

from clinic_assistant.config import CLINIC_API_BASE_URL, CLINIC_API_TIMEOUT_SECONDS, CLINIC_API_TOKEN
from clinic_assistant.services.metrics import metrics

logger = logging.getLogger(__name__)


class ClinicAPIError(Exception):
    """Raised when a clinic query cannot be completed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ClinicQueryClient:
    """Thin wrapper around the clinic backend's query API."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        timeout: float = CLINIC_API_TIMEOUT_SECONDS,
    ):
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = token or CLINIC_API_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url or CLINIC_API_BASE_URL,
            headers=headers,
            timeout=timeout,
        )

    def call(self, name: str, arguments: dict[str, Any]) -> Any:
        """Run the query *name* and return its ``data`` (``None`` when not found)."""
        operation = f"POST /queries/{name}"
        t0 = time.perf_counter()
        try:
            response = self._client.post(f"/queries/{name}", json=arguments)
        except httpx.HTTPError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_call("clinic-api", operation, elapsed, error_type=type(exc).__name__)
            raise ClinicAPIError(f"Clinic query {name} failed: {type(exc).__name__}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        if response.status_code == 404:
            metrics.record_call("clinic-api", operation, elapsed)
            return None
        if response.status_code >= 400:
            metrics.record_call("clinic-api", operation, elapsed, error_type=f"{response.status_code // 100}xx")
            raise ClinicAPIError(
                f"Clinic query {name} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        metrics.record_call("clinic-api", operation, elapsed)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ClinicAPIError(f"Clinic query {name} returned invalid JSON") from exc
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    def close(self) -> None:
        self._client.close()


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: ClinicQueryClient | None = None
_client_lock = threading.Lock()


def get_clinic_client() -> ClinicQueryClient:
    """Return a module-level ClinicQueryClient singleton.

    Uses double-checked locking so that the lock is only acquired during
    the first initialisation, not on every subsequent call.
    """
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = ClinicQueryClient()
    return _client
