from typing import Optional

from loguru import logger
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from ...domain.models.transaction import TransactionCandidate
from ...ports.signer import WalletSigner


class KeypairSigner(WalletSigner):
    """Signs with a local keypair. Intended for scripts and devnet testing."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair
        logger.info(f"KEYPAIR_SIGNER | init | wallet={str(keypair.pubkey())[:8]}...")

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        return cls(Keypair.from_base58_string(secret.strip()))

    @property
    def public_key(self) -> Optional[Pubkey]:
        return self._keypair.pubkey()

    @property
    def connected(self) -> bool:
        return True

    async def sign_transaction(self, candidate: TransactionCandidate) -> Transaction:
        message = candidate.to_message()
        return Transaction([self._keypair], message, Hash.from_string(candidate.recent_blockhash))
