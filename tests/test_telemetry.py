from fakes import FakeClock
from zol_client.adapters.telemetry.error_tracker import ErrorTracker
from zol_client.adapters.telemetry.loguru_sink import FanoutSink, LoguruSink
from zol_client.domain.events import (
    BackgroundTaskFailed,
    EndpointSwitched,
    RpcRequestCompleted,
    TransactionStatusChanged,
    event_header,
)
from zol_client.domain.models.transaction import TransactionStatus
from zol_client.ports.telemetry import ObservabilitySink, safe_emit


def rpc_event(endpoint, success, duration_ms=10.0):
    return RpcRequestCompleted(
        **event_header("test"),
        endpoint=endpoint,
        success=success,
        duration_ms=duration_ms,
        error=None if success else "ConnectError: refused",
    )


def tx_event(previous, current, reason=None):
    return TransactionStatusChanged(
        **event_header("test"),
        operation="Deposit",
        previous=previous,
        current=current,
        signature=None,
        error="Network Error" if reason else None,
        reason=reason,
    )


class ExplodingSink(ObservabilitySink):
    def emit(self, event):
        raise RuntimeError("sink down")


def test_endpoint_health():
    tracker = ErrorTracker(clock=FakeClock())
    for _ in range(3):
        tracker.emit(rpc_event("https://a.test", success=False))
    for _ in range(2):
        tracker.emit(rpc_event("https://a.test", success=True, duration_ms=20.0))
    tracker.emit(rpc_event("https://b.test", success=True))

    health = {h.endpoint: h for h in tracker.endpoint_health()}
    assert health["https://a.test"].total_requests == 5
    assert health["https://a.test"].average_latency_ms == 20.0
    assert health["https://a.test"].last_error == "ConnectError: refused"
    assert tracker.unhealthy_endpoints() == ["https://a.test"]


def test_transaction_failure_stats():
    tracker = ErrorTracker(clock=FakeClock())
    S = TransactionStatus
    tracker.emit(tx_event(S.IDLE, S.PROCESSING))
    tracker.emit(tx_event(S.PROCESSING, S.ERROR, reason="network"))
    tracker.emit(tx_event(S.IDLE, S.PROCESSING))
    tracker.emit(tx_event(S.PROCESSING, S.CONFIRMED))

    stats = tracker.transaction_stats()
    assert stats.total_attempts == 2
    assert stats.failures_by_reason == {"network": 1}
    assert stats.failure_rate_pct == 50.0


def test_error_rate_window():
    clock = FakeClock()
    tracker = ErrorTracker(clock=clock)
    tracker.emit(BackgroundTaskFailed(**event_header("test"), task_name="revalidate:x", error="boom"))
    clock.advance(120)
    tracker.track_error("rpc_failure", "refused")

    stats = tracker.error_stats()
    assert stats.total_errors == 2
    assert stats.errors_by_type == {"background_task": 1, "rpc_failure": 1}
    assert stats.error_rate_per_minute == 1.0

    tracker.reset()
    assert tracker.error_stats().total_errors == 0


def test_fanout_isolates_failing_sink():
    tracker = ErrorTracker(clock=FakeClock())
    logged = LoguruSink()
    fanout = FanoutSink([ExplodingSink(), logged, tracker])

    fanout.emit(rpc_event("https://a.test", success=False))
    fanout.emit(
        EndpointSwitched(**event_header("test"), from_index=0, to_index=1, endpoint="https://b.test", reason="x")
    )

    assert logged.snapshot() == {"RpcRequestCompleted": 1, "EndpointSwitched": 1}
    assert tracker.endpoint_health()[0].failed_requests == 1


def test_safe_emit_tolerates_missing_and_failing_sinks():
    event = rpc_event("https://a.test", success=True)
    safe_emit(None, event)
    safe_emit(ExplodingSink(), event)
