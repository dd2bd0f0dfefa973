from dataclasses import dataclass
from typing import Optional

from .base import Event


@dataclass
class EndpointSwitched(Event):
    from_index: int
    to_index: int
    endpoint: str
    reason: str


@dataclass
class RpcRequestCompleted(Event):
    endpoint: str
    success: bool
    duration_ms: float
    error: Optional[str]


@dataclass
class BackgroundTaskFailed(Event):
    task_name: str
    error: str
