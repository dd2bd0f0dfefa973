"""
transaction_controller.py - Build, sign, submit and track one operation.

Lifecycle:
    idle -> processing -> confirmed -> finalized
                 \\-> error

`execute()` resolves with the signature as soon as the transaction is
confirmed. Finalization is polled by a detached background task that only
updates state (or logs) when it completes.

Usage:
    controller = ctx.new_controller()
    try:
        signature = await controller.deposit(5_000_000)
    except Exception:
        print(controller.state.classified.title)
"""

from __future__ import annotations

import inspect
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from loguru import logger
from solders.pubkey import Pubkey

from ...application.background import BackgroundTasks
from ...cache.store import DataCache
from ...domain.events import TransactionStatusChanged, event_header
from ...domain.models.automation import AutomationRule, FallbackAction
from ...domain.models.transaction import TransactionCandidate, TransactionState, TransactionStatus
from ...errors.classifier import report
from ...infrastructure.config.app_config import TransactionSettings
from ...ports.signer import WalletSigner
from ...ports.telemetry import ObservabilitySink, safe_emit
from ...rpc.manager import RpcManager
from .transaction_state_machine import TransactionStateMachine

BuildFn = Callable[[], Union[TransactionCandidate, Awaitable[TransactionCandidate]]]


class NotReadyError(Exception):
    def __init__(self, message: str = "Wallet not connected or program not ready"):
        super().__init__(message)


class AlreadyProcessingError(Exception):
    """A second execute() while the first is still outstanding."""


class TransactionFailedError(Exception):
    def __init__(self, signature: str, err: Any):
        super().__init__(f"Transaction failed: {err}")
        self.signature = signature
        self.err = err


class TransactionController:
    def __init__(
        self,
        rpc: RpcManager,
        signer: Optional[WalletSigner],
        cache: DataCache,
        tasks: BackgroundTasks,
        program_id: Optional[Pubkey],
        builders: Optional[Any] = None,
        settings: Optional[TransactionSettings] = None,
        sink: Optional[ObservabilitySink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rpc = rpc
        self.signer = signer
        self.cache = cache
        self.tasks = tasks
        self.program_id = program_id
        self.builders = builders
        self.settings = settings or TransactionSettings()
        self.sink = sink
        self._clock = clock
        self._machine = TransactionStateMachine()
        self._generation = 0
        self._in_flight = False
        self._started_at: Optional[float] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> TransactionState:
        return self._machine.state

    @property
    def is_processing(self) -> bool:
        return self._machine.state.is_processing

    @property
    def is_ready(self) -> bool:
        signer = self.signer
        return (
            signer is not None
            and signer.connected
            and signer.public_key is not None
            and self.program_id is not None
        )

    @property
    def is_delayed(self) -> bool:
        """Still processing after the configured delay threshold."""
        if not self.is_processing or self._started_at is None:
            return False
        return self._clock() - self._started_at > self.settings.delay_threshold_seconds

    def clear(self) -> None:
        """Reset observable state to idle. Outstanding calls are not cancelled."""
        self._generation += 1
        self._machine.reset()

    def _move(self, generation: int, to_state: TransactionStatus, **changes: Any) -> None:
        if generation != self._generation:
            # Cleared or superseded meanwhile; leave the newer state alone
            logger.debug(f"TX_STATE_SKIPPED | {to_state.value} | stale generation")
            return
        previous = self._machine.status
        state = self._machine.transition(to_state, **changes)
        classified = state.classified if to_state == TransactionStatus.ERROR else None
        safe_emit(
            self.sink,
            TransactionStatusChanged(
                **event_header("transaction_controller"),
                operation=state.operation or "-",
                previous=previous,
                current=to_state,
                signature=state.signature,
                error=classified.title if classified else None,
                reason=classified.category.value if classified else None,
            ),
        )

    def _fail(self, generation: int, exc: BaseException, operation: str) -> None:
        classified = report(exc, operation)
        if generation == self._generation and self._machine.can_transition(TransactionStatus.ERROR):
            self._move(generation, TransactionStatus.ERROR, error=exc, classified=classified)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(self, build_fn: BuildFn, operation_name: str) -> str:
        """
        Run one operation through the full lifecycle and return its signature.

        Raises the raw failure after recording it (classified) on `state`.
        """
        if self._in_flight:
            exc = AlreadyProcessingError(
                f"{operation_name} rejected: {self.state.operation} is already processing"
            )
            report(exc, operation_name)
            raise exc

        self._in_flight = True
        try:
            self._generation += 1
            generation = self._generation
            self._machine.reset()
            self._machine.update(operation=operation_name)

            if not self.is_ready:
                exc = NotReadyError()
                self._fail(generation, exc, operation_name)
                raise exc

            self._started_at = self._clock()
            self._move(generation, TransactionStatus.PROCESSING, operation=operation_name)
            try:
                return await self._run(generation, build_fn, operation_name)
            except Exception as exc:
                self._fail(generation, exc, operation_name)
                raise
        finally:
            self._in_flight = False

    async def _run(self, generation: int, build_fn: BuildFn, operation: str) -> str:
        built = build_fn()
        candidate = await built if inspect.isawaitable(built) else built

        token = await self.rpc.get_freshness_token(self.settings.confirm_commitment)
        candidate.attach(token, self.signer.public_key)

        logger.info(f"TX_SIGN_REQUEST | op={operation} | instructions={len(candidate.instructions)}")
        signed = await self.signer.sign_transaction(candidate)

        signature = await self.rpc.send_raw_transaction(
            bytes(signed),
            skip_preflight=self.settings.skip_preflight,
            preflight_commitment=self.settings.confirm_commitment,
        )
        # A blockhash is never reused across submissions
        self.rpc.invalidate_freshness_token()
        if generation == self._generation:
            self._machine.update(signature=signature)
        logger.info(f"TX_SUBMITTED | op={operation} | sig={signature}")

        confirmation = await self.rpc.confirm_transaction(
            signature,
            self.settings.confirm_commitment,
            token.last_valid_block_height,
        )
        if not confirmation.is_success:
            raise TransactionFailedError(signature, confirmation.err)

        self._move(generation, TransactionStatus.CONFIRMED, signature=signature)
        logger.info(f"TX_CONFIRMED | op={operation} | sig={signature}")
        self.cache.invalidate_after_transaction()

        self.tasks.spawn(
            self._await_finalization(generation, signature, token.last_valid_block_height, operation),
            name=f"finalize:{signature[:8]}",
        )
        return signature

    async def _await_finalization(
        self, generation: int, signature: str, last_valid_block_height: int, operation: str
    ) -> None:
        result = await self.rpc.confirm_transaction(
            signature,
            self.settings.finalize_commitment,
            last_valid_block_height,
        )
        if not result.is_success:
            raise TransactionFailedError(signature, result.err)
        logger.info(f"TX_FINALIZED | op={operation} | sig={signature}")
        if self._machine.status == TransactionStatus.CONFIRMED and self.state.signature == signature:
            self._move(generation, TransactionStatus.FINALIZED)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def _builders(self) -> Any:
        if self.builders is None:
            raise NotReadyError()
        return self.builders

    async def register_user(self, faction_id: int) -> str:
        return await self.execute(
            lambda: self._builders().register_user(self.signer.public_key, faction_id),
            "Register user",
        )

    async def deposit(self, amount: int) -> str:
        return await self.execute(lambda: self._builders().deposit(self.signer.public_key, amount), "Deposit")

    async def withdraw(self, amount: int) -> str:
        return await self.execute(lambda: self._builders().withdraw(self.signer.public_key, amount), "Withdraw")

    async def update_automation(
        self,
        slot_1: Union[AutomationRule, Mapping[str, Any]],
        slot_2: Union[AutomationRule, Mapping[str, Any]],
        fallback: Union[FallbackAction, Mapping[str, Any]],
    ) -> str:
        return await self.execute(
            lambda: self._builders().update_automation(self.signer.public_key, slot_1, slot_2, fallback),
            "Update automation",
        )
