from .app_config import (
    CacheSettings,
    LoggingSettings,
    OverrideRecord,
    ProgramSettings,
    RpcSettings,
    TransactionSettings,
    ZolConfig,
)

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "OverrideRecord",
    "ProgramSettings",
    "RpcSettings",
    "TransactionSettings",
    "ZolConfig",
]
