from abc import ABC, abstractmethod
from typing import Optional, Protocol

from solders.pubkey import Pubkey

from ..domain.models.transaction import TransactionCandidate


class SignedTransaction(Protocol):
    def __bytes__(self) -> bytes:
        ...


class WalletSigner(ABC):
    """External signing capability. The client never holds key material."""

    @property
    @abstractmethod
    def public_key(self) -> Optional[Pubkey]:
        ...

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @abstractmethod
    async def sign_transaction(self, candidate: TransactionCandidate) -> SignedTransaction:
        ...
