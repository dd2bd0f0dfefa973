from dataclasses import dataclass
from typing import Optional

from ..models.transaction import TransactionStatus
from .base import Event


@dataclass
class TransactionStatusChanged(Event):
    operation: str
    previous: TransactionStatus
    current: TransactionStatus
    signature: Optional[str]
    error: Optional[str]  # classified title when current is ERROR
    reason: Optional[str]  # category value when current is ERROR
