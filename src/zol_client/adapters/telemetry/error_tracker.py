"""
error_tracker.py - Observability sink that aggregates failure patterns.

Tracks:
1. Error counts by type and error rate over a sliding window
2. Transaction attempts and failures by reason
3. Per-endpoint RPC health (requests, failures, average latency)

Usage:
    tracker = ErrorTracker()
    ctx = ZolContext.create(config, signer, sink=FanoutSink([LoguruSink(), tracker]))

    ...
    for health in tracker.endpoint_health():
        print(health.endpoint, health.is_healthy)
"""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from ...domain.events import (
    BackgroundTaskFailed,
    Event,
    RpcRequestCompleted,
    TransactionStatusChanged,
)
from ...domain.models.transaction import TransactionStatus
from ...ports.telemetry import ObservabilitySink


@dataclass
class ErrorRecord:
    timestamp: float
    type: str
    message: str


@dataclass
class EndpointHealth:
    endpoint: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_time: Optional[float] = None

    @property
    def average_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests

    @property
    def is_healthy(self) -> bool:
        """Healthy while fewer than half of at least 5 requests failed."""
        if self.total_requests < 5:
            return True
        return self.failed_requests / self.total_requests < 0.5


@dataclass
class ErrorStats:
    total_errors: int
    errors_by_type: Dict[str, int]
    error_rate_per_minute: float
    recent_errors: List[ErrorRecord] = field(default_factory=list)


@dataclass
class TransactionFailureStats:
    total_attempts: int
    total_failures: int
    failures_by_reason: Dict[str, int]

    @property
    def failure_rate_pct(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return 100.0 * self.total_failures / self.total_attempts


class ErrorTracker(ObservabilitySink):
    MAX_ERROR_HISTORY = 500
    ERROR_RATE_WINDOW_SECONDS = 60.0

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._errors: Deque[ErrorRecord] = deque(maxlen=self.MAX_ERROR_HISTORY)
        self._transaction_attempts = 0
        self._transaction_failures: Counter = Counter()
        self._endpoints: Dict[str, EndpointHealth] = {}

    def emit(self, event: Event) -> None:
        if isinstance(event, TransactionStatusChanged):
            self._on_transaction(event)
        elif isinstance(event, RpcRequestCompleted):
            self._on_rpc(event)
        elif isinstance(event, BackgroundTaskFailed):
            self.track_error("background_task", f"{event.task_name}: {event.error}")

    def _on_transaction(self, event: TransactionStatusChanged) -> None:
        if event.previous == TransactionStatus.IDLE:
            self._transaction_attempts += 1
        if event.current == TransactionStatus.ERROR:
            reason = event.reason or "unknown"
            self._transaction_failures[reason] += 1
            self.track_error(f"transaction_{reason}", event.error or "transaction failed")

    def _on_rpc(self, event: RpcRequestCompleted) -> None:
        health = self._endpoints.setdefault(event.endpoint, EndpointHealth(endpoint=event.endpoint))
        health.total_requests += 1
        if event.success:
            health.successful_requests += 1
            health.total_latency_ms += event.duration_ms
        else:
            health.failed_requests += 1
            health.last_error = event.error
            health.last_error_time = self._clock()
            self.track_error("rpc_failure", event.error or "rpc call failed")

    def track_error(self, error_type: str, message: str) -> None:
        self._errors.append(ErrorRecord(timestamp=self._clock(), type=error_type, message=message))

    def error_stats(self, recent: int = 10) -> ErrorStats:
        now = self._clock()
        window = [e for e in self._errors if now - e.timestamp <= self.ERROR_RATE_WINDOW_SECONDS]
        by_type = Counter(e.type for e in self._errors)
        return ErrorStats(
            total_errors=len(self._errors),
            errors_by_type=dict(by_type),
            error_rate_per_minute=len(window) * 60.0 / self.ERROR_RATE_WINDOW_SECONDS,
            recent_errors=list(self._errors)[-recent:],
        )

    def transaction_stats(self) -> TransactionFailureStats:
        return TransactionFailureStats(
            total_attempts=self._transaction_attempts,
            total_failures=sum(self._transaction_failures.values()),
            failures_by_reason=dict(self._transaction_failures),
        )

    def endpoint_health(self) -> List[EndpointHealth]:
        return list(self._endpoints.values())

    def unhealthy_endpoints(self) -> List[str]:
        return [h.endpoint for h in self._endpoints.values() if not h.is_healthy]

    def reset(self) -> None:
        self._errors.clear()
        self._transaction_attempts = 0
        self._transaction_failures.clear()
        self._endpoints.clear()
