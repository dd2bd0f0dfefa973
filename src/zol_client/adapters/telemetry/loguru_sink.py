from collections import Counter
from typing import Dict, Iterable, List

from loguru import logger

from ...domain.events import (
    BackgroundTaskFailed,
    EndpointSwitched,
    Event,
    RpcRequestCompleted,
    TransactionStatusChanged,
)
from ...domain.models.transaction import TransactionStatus
from ...ports.telemetry import ObservabilitySink, safe_emit


class LoguruSink(ObservabilitySink):
    """Logs every event and keeps simple per-type counters."""

    def __init__(self):
        self.counters: Counter = Counter()

    def emit(self, event: Event) -> None:
        name = type(event).__name__
        self.counters[name] += 1

        if isinstance(event, TransactionStatusChanged):
            level = "ERROR" if event.current == TransactionStatus.ERROR else "INFO"
            logger.log(
                level,
                f"TX_STATE | {event.operation} | {event.previous.value} -> {event.current.value} | "
                f"sig={event.signature or '-'}" + (f" | error={event.error}" if event.error else ""),
            )
        elif isinstance(event, EndpointSwitched):
            logger.warning(
                f"RPC_FAILOVER | {event.from_index + 1} -> {event.to_index + 1} | "
                f"endpoint={event.endpoint} | reason={event.reason}"
            )
        elif isinstance(event, RpcRequestCompleted):
            if event.success:
                logger.debug(f"RPC_OK | {event.endpoint} | {event.duration_ms:.1f}ms")
            else:
                logger.debug(f"RPC_FAIL | {event.endpoint} | {event.duration_ms:.1f}ms | {event.error}")
        elif isinstance(event, BackgroundTaskFailed):
            logger.warning(f"BACKGROUND_FAILED | {event.task_name} | {event.error}")
        else:
            logger.info(f"[event] {name} | {event}")

    def snapshot(self) -> Dict[str, int]:
        return dict(self.counters)


class FanoutSink(ObservabilitySink):
    """Delivers each event to several sinks, isolating their failures."""

    def __init__(self, sinks: Iterable[ObservabilitySink]):
        self.sinks: List[ObservabilitySink] = list(sinks)

    def emit(self, event: Event) -> None:
        for sink in self.sinks:
            safe_emit(sink, event)
