"""Counters and timings for agent calls, batch writes and storage requests."""

from __future__ import annotations

import logging
import re
import secrets
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from statsd import StatsClient

from app.config import settings

logger = logging.getLogger("app.metrics")

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]+")


class MetricsReporter:
    """Emits to the debug log always and to StatsD when that backend is selected.

    StatsD has no native tags, so tags are folded into the metric name as
    sorted ``key_value`` segments (``pipeline.agent.calls.operation_discovery``).
    """

    def __init__(
        self,
        *,
        backend: str | None = None,
        namespace: str | None = None,
        sample_rate: float | None = None,
        disabled: bool | None = None,
        statsd_client: Any | None = None,
    ) -> None:
        self._disabled = settings.metrics_disable if disabled is None else disabled
        self._namespace = namespace or settings.metrics_namespace or "pipeline"
        self._backend = (backend or settings.metrics_backend or "stdout").lower()
        rate = settings.metrics_sample_rate if sample_rate is None else sample_rate
        self._sample_rate = max(0.0, min(rate, 1.0))
        self._default_tags = {"env": settings.environment}
        self._statsd = statsd_client
        if self._statsd is None and self._backend == "statsd" and not self._disabled:
            try:
                self._statsd = StatsClient(
                    host=settings.metrics_statsd_host,
                    port=settings.metrics_statsd_port,
                    prefix="",
                )
            except OSError as exc:
                self._log_backend_error("statsd.init", exc)

    def timing(self, metric: str, value_ms: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("timing", metric, value_ms, tags=tags)

    def gauge(self, metric: str, value: float, *, tags: dict[str, Any] | None = None) -> None:
        self._emit("gauge", metric, value, tags=tags)

    def increment(
        self, metric: str, value: float = 1.0, *, tags: dict[str, Any] | None = None
    ) -> None:
        self._emit("counter", metric, value, tags=tags)

    @contextmanager
    def timer(self, metric: str, *, tags: dict[str, Any] | None = None) -> Iterator[None]:
        """Time the block in milliseconds; the timing is emitted even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(metric, (time.perf_counter() - start) * 1000, tags=tags)

    def record_batch(
        self,
        metric: str,
        *,
        succeeded: int,
        failed: int,
        tags: dict[str, Any] | None = None,
    ) -> None:
        """Per-record batch outcome as ``<metric>.succeeded`` / ``<metric>.failed``."""
        self.increment(f"{metric}.succeeded", succeeded, tags=tags)
        if failed:
            self.increment(f"{metric}.failed", failed, tags=tags)

    def _emit(
        self, metric_type: str, metric: str, value: float, *, tags: dict[str, Any] | None
    ) -> None:
        if self._disabled or value is None:
            return
        sampled = metric_type != "gauge" and self._sample_rate < 1.0
        sample_rate = self._sample_rate if sampled else 1.0
        if sampled and secrets.randbelow(1_000_000) / 1_000_000 > sample_rate:
            return
        name = self._normalize_metric(metric)
        merged_tags = {**self._default_tags, **(tags or {})}
        payload = {
            "metric": name,
            "value": round(float(value), 4),
            "type": metric_type,
            "tags": merged_tags,
        }
        if sampled:
            payload["sample_rate"] = round(sample_rate, 4)
        logger.debug("pipeline.metric", extra={"metrics": payload})
        if self._statsd is None:
            return
        statsd_name = self._statsd_name(name, tags or {})
        try:
            if metric_type == "timing":
                self._statsd.timing(statsd_name, value, rate=sample_rate)
            elif metric_type == "gauge":
                self._statsd.gauge(statsd_name, value)
            else:
                self._statsd.incr(statsd_name, value, rate=sample_rate)
        except OSError as exc:
            self._log_backend_error(statsd_name, exc)

    def _normalize_metric(self, metric: str) -> str:
        trimmed = (metric or "").strip()
        if trimmed.startswith(f"{self._namespace}."):
            return trimmed
        return f"{self._namespace}.{trimmed}" if trimmed else self._namespace

    @staticmethod
    def _statsd_name(name: str, tags: dict[str, Any]) -> str:
        segments = [
            _UNSAFE_SEGMENT.sub("_", f"{key}_{value}") for key, value in sorted(tags.items())
        ]
        return ".".join([name, *segments])

    def _log_backend_error(self, metric: str, exc: Exception) -> None:
        logger.warning(
            "metrics.backend_error",
            extra={"metric": metric, "backend": self._backend, "error": type(exc).__name__},
        )


metrics = MetricsReporter()
