from .accounts import TokenAccountResult, UserInventory, UserPosition
from .automation import AutomationRule, AutomationSettings, FallbackAction
from .errors import (
    ClassifiedError,
    ErrorCategory,
    RawError,
    StringError,
    StructuredError,
    UnknownError,
)
from .rpc import ConfirmationResult, FreshnessToken, RpcStats
from .transaction import TransactionCandidate, TransactionState, TransactionStatus

__all__ = [
    "AutomationRule",
    "AutomationSettings",
    "ClassifiedError",
    "ConfirmationResult",
    "ErrorCategory",
    "FallbackAction",
    "FreshnessToken",
    "RawError",
    "RpcStats",
    "StringError",
    "StructuredError",
    "TokenAccountResult",
    "TransactionCandidate",
    "TransactionState",
    "TransactionStatus",
    "UnknownError",
    "UserInventory",
    "UserPosition",
]
