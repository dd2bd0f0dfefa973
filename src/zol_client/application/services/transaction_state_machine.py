from dataclasses import replace
from typing import Any, Dict, Set

from ...domain.models.transaction import TransactionState, TransactionStatus


class InvalidTransition(Exception):
    """Raised when an invalid transaction state transition is attempted."""


TRANSITIONS: Dict[TransactionStatus, Set[TransactionStatus]] = {
    TransactionStatus.IDLE: {TransactionStatus.PROCESSING, TransactionStatus.ERROR},
    TransactionStatus.PROCESSING: {TransactionStatus.CONFIRMED, TransactionStatus.ERROR},
    TransactionStatus.CONFIRMED: {TransactionStatus.FINALIZED, TransactionStatus.ERROR},
}


class TransactionStateMachine:
    """
    Tracks one operation's lifecycle with explicit transition rules.

    Each transition swaps in a new TransactionState snapshot, so a state
    handed to an observer never changes underneath it.
    """

    def __init__(self):
        self.state = TransactionState()

    @property
    def status(self) -> TransactionStatus:
        return self.state.status

    def can_transition(self, to_state: TransactionStatus) -> bool:
        return to_state in TRANSITIONS.get(self.state.status, set())

    def transition(self, to_state: TransactionStatus, **changes: Any) -> TransactionState:
        """Move to `to_state`, updating any TransactionState fields given as keywords."""
        if not self.can_transition(to_state):
            raise InvalidTransition(f"{self.state.status.value} -> {to_state.value}")
        self.state = replace(self.state, status=to_state, **changes)
        return self.state

    def reset(self) -> TransactionState:
        self.state = TransactionState()
        return self.state

    def update(self, **changes: Any) -> TransactionState:
        """Record details (operation, signature) without changing status."""
        self.state = replace(self.state, **changes)
        return self.state
