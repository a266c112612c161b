"""MFA metrics helpers for Prometheus integration.

Metrics are created lazily on first use. When ``prometheus_client`` is not
installed every call is a no-op.

Usage:
    ```python
    from cqrs_ddd_mfa.observability import MfaMetrics

    MfaMetrics.record("submit_verification", "invalid_code", 0.042)
    ```
"""

from __future__ import annotations

import logging
from typing import Any

_logger = logging.getLogger(__name__)


class _MfaMetricsRegistry:
    """Registry for MFA Prometheus metrics."""

    def __init__(self) -> None:
        self._histogram: Any = None
        self._counter: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        try:
            from prometheus_client import Counter, Histogram

            self._histogram = Histogram(
                "mfa_operation_duration_seconds",
                "MFA operation duration",
                ["operation"],
            )
            self._counter = Counter(
                "mfa_operations_total",
                "MFA operation count",
                ["operation", "outcome"],
            )
        except ImportError:
            _logger.debug("prometheus_client not available, metrics disabled")

        self._initialized = True

    @property
    def histogram(self) -> Any:
        self._ensure_initialized()
        return self._histogram

    @property
    def counter(self) -> Any:
        self._ensure_initialized()
        return self._counter


_registry = _MfaMetricsRegistry()


class MfaMetrics:
    """Records MFA operation counts and durations."""

    @staticmethod
    def record(operation: str, outcome: str, duration_seconds: float) -> None:
        """Record one finished operation.

        Args:
            operation: Operation name (e.g. "request_enrollment").
            outcome: Result kind or error code.
            duration_seconds: Wall-clock duration.
        """
        try:
            if _registry.histogram is not None:
                _registry.histogram.labels(operation=operation).observe(
                    duration_seconds
                )
            if _registry.counter is not None:
                _registry.counter.labels(operation=operation, outcome=outcome).inc()
        except Exception:  # noqa: BLE001
            _logger.debug("Failed to record MFA metric", exc_info=True)


__all__: list[str] = ["MfaMetrics"]
