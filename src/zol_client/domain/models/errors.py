"""
Error taxonomy.

Raw failures are normalized once into RawError (StringError |
StructuredError | UnknownError) and then classified into an immutable
ClassifiedError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union


class ErrorCategory(Enum):
    WALLET = "wallet"
    NETWORK = "network"
    PROGRAM = "program"
    ACCOUNT = "account"
    TRANSACTION = "transaction"
    ALREADY_PROCESSING = "already_processing"


@dataclass(frozen=True)
class ClassifiedError:
    category: ErrorCategory
    title: str
    message: str
    retryable: bool
    details: Optional[str] = None
    action_label: Optional[str] = None


@dataclass(frozen=True)
class StringError:
    message: str


@dataclass(frozen=True)
class StructuredError:
    message: str
    code: Optional[Any] = None
    name: Optional[str] = None
    logs: Tuple[str, ...] = field(default_factory=tuple)
    signature: Optional[str] = None


@dataclass(frozen=True)
class UnknownError:
    """Null input: nothing to inspect."""


RawError = Union[StringError, StructuredError, UnknownError]
