"""
context.py - Explicit owner of the long-lived collaborators.

One ZolContext per application: it builds the cache, background tasks, RPC
manager, token-account helper and builders once, and hands out a fresh
TransactionController per operation.

Usage:
    async with ZolContext.create(ZolConfig.load(), signer=signer) as ctx:
        position = await ctx.get_user_position(signer.public_key)
        signature = await ctx.new_controller().withdraw(1_000_000)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger
from solders.pubkey import Pubkey

from ..cache.store import CacheKeys, CacheOptions, DataCache
from ..chain.accounts import decode_user_position
from ..chain.pda import game_state_address, user_position_address
from ..domain.models.accounts import UserPosition
from ..infrastructure.config.app_config import ZolConfig
from ..ports.signer import WalletSigner
from ..ports.telemetry import ObservabilitySink
from ..rpc.manager import RpcManager
from .background import BackgroundTasks
from .builders import TransactionBuilders
from .services.transaction_controller import TransactionController
from .token_accounts import TokenAccounts

# with_cache treats None as a miss, so an unregistered user is cached as this marker
_NOT_REGISTERED = object()


@dataclass
class ZolContext:
    config: ZolConfig
    cache: DataCache
    tasks: BackgroundTasks
    rpc: RpcManager
    token_accounts: TokenAccounts
    builders: TransactionBuilders
    signer: Optional[WalletSigner] = None
    sink: Optional[ObservabilitySink] = None

    @classmethod
    def create(
        cls,
        config: Optional[ZolConfig] = None,
        signer: Optional[WalletSigner] = None,
        sink: Optional[ObservabilitySink] = None,
        rpc: Optional[RpcManager] = None,
    ) -> "ZolContext":
        config = config or ZolConfig()
        tasks = BackgroundTasks(sink)
        cache = rpc.cache if rpc is not None else DataCache(tasks=tasks)
        if rpc is None:
            rpc = RpcManager.from_settings(config.rpc, cache=cache, sink=sink)
        else:
            cache.tasks = tasks
        program_id = config.program.program_pubkey
        token_accounts = TokenAccounts(
            rpc,
            cache,
            config.program.usdc_mint_pubkey,
            account_ttl=config.cache.token_account_ttl,
            balance_ttl=config.cache.token_balance_ttl,
        )
        builders = TransactionBuilders(rpc, token_accounts, program_id)
        logger.info(f"ZOL_CONTEXT | ready | cluster={config.program.cluster} | signer={'yes' if signer else 'no'}")
        return cls(
            config=config,
            cache=cache,
            tasks=tasks,
            rpc=rpc,
            token_accounts=token_accounts,
            builders=builders,
            signer=signer,
            sink=sink,
        )

    @property
    def program_id(self) -> Pubkey:
        return self.builders.program_id

    def new_controller(self) -> TransactionController:
        return TransactionController(
            rpc=self.rpc,
            signer=self.signer,
            cache=self.cache,
            tasks=self.tasks,
            program_id=self.program_id,
            builders=self.builders,
            settings=self.config.transaction,
            sink=self.sink,
        )

    async def get_user_position(self, owner: Pubkey, priority: int = 0) -> Optional[UserPosition]:
        """Cached read of a user's position; None when the user is not registered."""
        address = user_position_address(owner, self.program_id).address

        async def fetch() -> Any:
            account = await self.rpc.fetch_account(address, priority=priority)
            if account is None:
                return _NOT_REGISTERED
            return decode_user_position(bytes(account.data))

        result = await self.cache.with_cache(
            CacheKeys.user_position(owner),
            fetch,
            CacheOptions(ttl=self.config.cache.user_position_ttl),
        )
        return None if result.value is _NOT_REGISTERED else result.value

    async def get_game_state_account(self) -> Optional[Any]:
        """Raw game state account (layout owned by the program), cached briefly."""
        address = game_state_address(self.program_id).address

        async def fetch() -> Optional[Any]:
            return await self.rpc.fetch_account(address, priority=1)

        result = await self.cache.with_cache(
            CacheKeys.game_state(),
            fetch,
            CacheOptions(ttl=self.config.cache.game_state_ttl),
        )
        return result.value

    def on_wallet_disconnected(self, owner: Pubkey) -> None:
        self.cache.invalidate_user(owner)
        # balances are keyed by token account, not by owner
        self.cache.invalidate(CacheKeys.token_balance(self.token_accounts.address(owner)))

    async def aclose(self, cancel_pending: bool = False) -> None:
        """Wait for (or cancel) background work, then close RPC clients."""
        if cancel_pending:
            await self.tasks.cancel_all()
        else:
            await self.tasks.drain()
        await self.rpc.close()

    async def __aenter__(self) -> "ZolContext":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose(cancel_pending=exc_type is not None)
