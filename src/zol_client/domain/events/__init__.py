from .base import Event, event_header
from .rpc import BackgroundTaskFailed, EndpointSwitched, RpcRequestCompleted
from .transaction import TransactionStatusChanged

__all__ = [
    "BackgroundTaskFailed",
    "EndpointSwitched",
    "Event",
    "RpcRequestCompleted",
    "TransactionStatusChanged",
    "event_header",
]
