from .error_tracker import EndpointHealth, ErrorStats, ErrorTracker, TransactionFailureStats
from .loguru_sink import FanoutSink, LoguruSink

__all__ = [
    "EndpointHealth",
    "ErrorStats",
    "ErrorTracker",
    "FanoutSink",
    "LoguruSink",
    "TransactionFailureStats",
]
