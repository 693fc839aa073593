"""CloudWatch custom metrics with background batching.

Two families of data points are recorded:

* ``Upstream/*`` — one per call to an external service (the inference
  service as ``anthropic``, the clinic backend as ``clinic-api``) with
  latency and, on failure, the exception type.
* ``Tools/Dispatch`` — one per tool request, dimensioned by tool name and
  outcome (``allowed``, ``denied``, ``invalid``, ``unknown``).

Points are buffered in memory behind a lock.  When ``METRICS_ENABLED`` is
``true`` a daemon thread pushes the buffer to CloudWatch every
``FLUSH_INTERVAL_SECONDS``; otherwise points are only logged at DEBUG and
discarded on flush.
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "ClinicAssistant"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # PutMetricData limit per call


def _dims(**values: str) -> list[dict[str, str]]:
    return [{"Name": name, "Value": value} for name, value in values.items()]


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Recording ─────────────────────────────────────────────────────

    def record_call(
        self,
        service: str,
        operation: str,
        latency_ms: float,
        error_type: str | None = None,
    ) -> None:
        """Record one call to an external service; pass *error_type* on failure."""
        now = datetime.now(UTC)
        status = "failure" if error_type else "success"
        self._append("Upstream/RequestCount", _dims(Service=service, Status=status), 1, "Count", now)
        self._append(
            "Upstream/Latency", _dims(Service=service, Operation=operation),
            latency_ms, "Milliseconds", now,
        )
        if error_type:
            self._append("Upstream/ErrorCount", _dims(Service=service, ErrorType=error_type), 1, "Count", now)
        logger.debug(
            "Metric: %s %s %s latency=%.1fms%s",
            service, operation, status, latency_ms,
            f" error={error_type}" if error_type else "",
        )

    def record_tool_dispatch(self, tool_name: str, outcome: str) -> None:
        self._append(
            "Tools/Dispatch", _dims(Tool=tool_name, Outcome=outcome), 1, "Count", datetime.now(UTC),
        )
        logger.debug("Metric: tool %s %s", tool_name, outcome)

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(
        self,
        name: str,
        dimensions: list[dict[str, str]],
        value: float,
        unit: str,
        timestamp: datetime,
    ) -> None:
        point = {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }
        with self._lock:
            self._buffer.append(point)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
