from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey

from .rpc import FreshnessToken

if TYPE_CHECKING:
    from .errors import ClassifiedError


class TransactionStatus(Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    ERROR = "error"


@dataclass
class TransactionState:
    """Observable state of the operation a controller is running."""
    status: TransactionStatus = TransactionStatus.IDLE
    operation: Optional[str] = None
    signature: Optional[str] = None
    error: Optional[BaseException] = None
    classified: Optional["ClassifiedError"] = None

    @property
    def is_processing(self) -> bool:
        return self.status == TransactionStatus.PROCESSING


@dataclass
class TransactionCandidate:
    """
    An unsigned operation: program instructions plus, once attached, the
    freshness token and fee payer needed to compile a message.
    """
    operation: str
    instructions: List[Instruction] = field(default_factory=list)
    fee_payer: Optional[Pubkey] = None
    recent_blockhash: Optional[str] = None
    last_valid_block_height: Optional[int] = None

    def add(self, instruction: Instruction) -> "TransactionCandidate":
        self.instructions.append(instruction)
        return self

    def prepend(self, instruction: Instruction) -> "TransactionCandidate":
        self.instructions.insert(0, instruction)
        return self

    def attach(self, token: FreshnessToken, fee_payer: Pubkey) -> None:
        self.recent_blockhash = token.blockhash
        self.last_valid_block_height = token.last_valid_block_height
        self.fee_payer = fee_payer

    def to_message(self) -> Message:
        if self.recent_blockhash is None or self.fee_payer is None:
            raise ValueError(f"{self.operation}: freshness token and fee payer must be attached before compiling")
        return Message.new_with_blockhash(
            self.instructions,
            self.fee_payer,
            Hash.from_string(self.recent_blockhash),
        )
