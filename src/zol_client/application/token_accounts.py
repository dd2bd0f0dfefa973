"""
token_accounts.py - Associated token account lookups for the USDC mint.

Existence checks are cached (stale-while-revalidate, token_account_ttl) and
balances are cached briefly (token_balance_ttl). A token account that does
not exist has a balance of 0.

Usage:
    accounts = TokenAccounts(rpc, cache, usdc_mint)

    result = await accounts.ensure(candidate, payer=wallet, owner=wallet)
    if result.needs_creation:
        ...  # candidate now carries one create instruction
"""

from __future__ import annotations

from typing import Optional

from loguru import logger
from solders.pubkey import Pubkey

from ..cache.store import CacheKeys, CacheOptions, DataCache
from ..chain.instructions import create_associated_token_account_ix
from ..chain.pda import AddressDerivationError, associated_token_address
from ..domain.models.accounts import TokenAccountResult
from ..domain.models.transaction import TransactionCandidate
from ..rpc.manager import RpcManager

_MISSING_ACCOUNT_HINTS = ("could not find account", "invalid param", "accountnotfound")


class TokenAccountError(Exception):
    def __init__(self, message: str, owner: Optional[Pubkey] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.owner = owner
        self.cause = cause


def _is_missing_account(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(hint in text for hint in _MISSING_ACCOUNT_HINTS)


class TokenAccounts:
    def __init__(
        self,
        rpc: RpcManager,
        cache: DataCache,
        mint: Pubkey,
        account_ttl: float = 30.0,
        balance_ttl: float = 5.0,
    ):
        self.rpc = rpc
        self.cache = cache
        self.mint = mint
        self.account_ttl = account_ttl
        self.balance_ttl = balance_ttl

    def address(self, owner: Pubkey, mint: Optional[Pubkey] = None) -> Pubkey:
        mint = mint or self.mint
        try:
            return associated_token_address(owner, mint).address
        except AddressDerivationError as e:
            raise TokenAccountError(
                f"Failed to derive associated token account address for owner {owner}", owner, e
            ) from e

    async def account_exists(self, token_account: Pubkey, owner: Pubkey, mint: Optional[Pubkey] = None) -> bool:
        mint = mint or self.mint

        async def fetch() -> bool:
            return await self.rpc.get_account_info(token_account) is not None

        try:
            result = await self.cache.with_cache(
                CacheKeys.token_account(owner, mint),
                fetch,
                CacheOptions(ttl=self.account_ttl, allow_stale=True),
            )
        except Exception as e:
            raise TokenAccountError(f"Failed to check if token account {token_account} exists", owner, e) from e
        return result.value

    async def get_or_create(self, owner: Pubkey, mint: Optional[Pubkey] = None) -> TokenAccountResult:
        """Report whether the owner's associated token account exists. Creates nothing."""
        mint = mint or self.mint
        token_account = self.address(owner, mint)
        exists = await self.account_exists(token_account, owner, mint)
        return TokenAccountResult(address=token_account, existed=exists, needs_creation=not exists)

    async def ensure(
        self,
        candidate: TransactionCandidate,
        payer: Pubkey,
        owner: Pubkey,
        mint: Optional[Pubkey] = None,
    ) -> TokenAccountResult:
        """Append exactly one create instruction to `candidate` when the account is missing."""
        mint = mint or self.mint
        result = await self.get_or_create(owner, mint)
        if result.needs_creation:
            candidate.add(create_associated_token_account_ix(payer, result.address, owner, mint))
            # The account exists once this lands; do not keep serving "missing"
            self.cache.invalidate(CacheKeys.token_account(owner, mint))
            logger.info(f"TOKEN_ACCOUNT | create queued | owner={str(owner)[:8]}... | ata={result.address}")
        return result

    async def balance(self, token_account: Pubkey, fresh: bool = False) -> int:
        """
        Token balance in base units; 0 when the account does not exist.

        `fresh=True` skips the cached value (validation paths) and stores
        the live one for later reads.
        """
        key = CacheKeys.token_balance(token_account)
        options = CacheOptions(ttl=self.balance_ttl, allow_stale=True)

        async def fetch() -> int:
            try:
                return await self.rpc.get_token_account_balance(token_account)
            except Exception as e:
                if _is_missing_account(e):
                    return 0
                raise

        try:
            if fresh:
                value = await fetch()
                self.cache.set(key, value, options)
                return value
            result = await self.cache.with_cache(key, fetch, options)
        except Exception as e:
            raise TokenAccountError(f"Failed to get token balance for account {token_account}", None, e) from e
        return result.value
