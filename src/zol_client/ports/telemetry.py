from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from ..domain.events.base import Event


class ObservabilitySink(ABC):
    """Receives one event per lifecycle transition, failover and RPC call."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        ...


class NullSink(ObservabilitySink):
    def emit(self, event: Event) -> None:
        pass


def safe_emit(sink: Optional[ObservabilitySink], event: Event) -> None:
    """Deliver `event`; a missing or failing sink never affects the caller."""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as exc:
        logger.warning(f"SINK_ERROR | {type(event).__name__} | {type(exc).__name__}: {exc}")
