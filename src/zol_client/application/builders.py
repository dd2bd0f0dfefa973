"""
builders.py - Per-operation transaction builders for the ZOL program.

Every builder validates its arguments before touching the network, then
performs the reads it needs, then assembles the candidate. A validation
failure raises BuilderValidationError and no remote call is made.
"""

from __future__ import annotations

import math
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from loguru import logger
from solders.pubkey import Pubkey

from ..chain.accounts import decode_user_position
from ..chain.constants import FACTION_NAMES, ITEM_NAMES, USDC_DECIMALS, is_valid_faction_id
from ..chain.instructions import deposit_ix, register_user_ix, update_automation_ix, withdraw_ix
from ..chain.pda import user_position_address
from ..domain.models.automation import AutomationRule, FallbackAction
from ..domain.models.transaction import TransactionCandidate
from ..rpc.manager import RpcManager
from .token_accounts import TokenAccounts

U64_MAX = 2**64 - 1

RuleLike = Union[AutomationRule, Mapping[str, Any]]


class TransactionBuilderError(Exception):
    def __init__(self, code: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause


class BuilderValidationError(TransactionBuilderError):
    """Arguments rejected before any network call."""


def _usdc(amount: int) -> str:
    return f"{amount / 10**USDC_DECIMALS:.2f}"


def validate_amount(amount: Any, label: str) -> int:
    """Return `amount` as integer base units or raise INVALID_AMOUNT."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise BuilderValidationError("INVALID_AMOUNT", f"Invalid {label} amount: {amount!r}. Must be a number.")
    if isinstance(amount, float):
        if not math.isfinite(amount) or not amount.is_integer():
            raise BuilderValidationError(
                "INVALID_AMOUNT", f"Invalid {label} amount: {amount}. Must be a whole number of base units."
            )
        amount = int(amount)
    if amount <= 0:
        raise BuilderValidationError("INVALID_AMOUNT", f"Invalid {label} amount: {amount}. Must be greater than zero.")
    if amount > U64_MAX:
        raise BuilderValidationError("INVALID_AMOUNT", f"Invalid {label} amount: {amount}. Exceeds u64 range.")
    return amount


def validate_rule(rule: RuleLike, slot_name: str) -> AutomationRule:
    if isinstance(rule, AutomationRule):
        item_id, threshold = rule.item_id, rule.threshold
    elif isinstance(rule, Mapping) and "threshold" in rule:
        item_id = rule.get("item_id", rule.get("itemId"))
        threshold = rule["threshold"]
    else:
        raise BuilderValidationError(
            "INVALID_AUTOMATION_RULE", f"Invalid {slot_name}: must be a rule with item_id and threshold"
        )

    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0 or threshold > U64_MAX:
        raise BuilderValidationError(
            "INVALID_THRESHOLD", f"Invalid {slot_name} threshold: {threshold!r}. Must be zero or greater."
        )
    if threshold == 0:
        # Disabled slot, item is irrelevant
        return AutomationRule(item_id=item_id if item_id in ITEM_NAMES else 0, threshold=0)
    if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id not in ITEM_NAMES:
        raise BuilderValidationError(
            "INVALID_ITEM_ID", f"Invalid {slot_name} item_id: {item_id!r}. Must be between 0 and {max(ITEM_NAMES)}."
        )
    return AutomationRule(item_id=item_id, threshold=threshold)


class TransactionBuilders:
    def __init__(self, rpc: RpcManager, token_accounts: TokenAccounts, program_id: Pubkey):
        self.rpc = rpc
        self.token_accounts = token_accounts
        self.program_id = program_id

    async def _build(self, label: str, build: Callable[[], Awaitable[TransactionCandidate]]) -> TransactionCandidate:
        try:
            return await build()
        except TransactionBuilderError:
            raise
        except Exception as e:
            raise TransactionBuilderError("BUILD_FAILED", f"Failed to build {label} transaction: {e}", e) from e

    async def register_user(self, user: Pubkey, faction_id: int) -> TransactionCandidate:
        if not is_valid_faction_id(faction_id):
            raise BuilderValidationError(
                "INVALID_FACTION_ID",
                f"Invalid faction ID: {faction_id!r}. Must be between 0 and {max(FACTION_NAMES)}.",
            )

        async def build() -> TransactionCandidate:
            return TransactionCandidate("register_user").add(register_user_ix(user, faction_id, self.program_id))

        return await self._build("register user", build)

    async def deposit(self, user: Pubkey, amount: Any) -> TransactionCandidate:
        amount = validate_amount(amount, "deposit")

        async def build() -> TransactionCandidate:
            user_usdc = self.token_accounts.address(user)
            # Always read the live balance, never a cached one
            balance = await self.token_accounts.balance(user_usdc, fresh=True)
            if balance == 0:
                raise BuilderValidationError(
                    "NO_USDC_BALANCE",
                    "No USDC found in your wallet. Please get some USDC from the faucet first.",
                )
            if balance < amount:
                raise BuilderValidationError(
                    "INSUFFICIENT_BALANCE",
                    f"Insufficient USDC balance. Required: {_usdc(amount)} USDC, Available: {_usdc(balance)} USDC",
                )
            return TransactionCandidate("deposit").add(deposit_ix(user, user_usdc, amount, self.program_id))

        return await self._build("deposit", build)

    async def withdraw(self, user: Pubkey, amount: Any) -> TransactionCandidate:
        amount = validate_amount(amount, "withdrawal")

        async def build() -> TransactionCandidate:
            # Always read the live position, never a cached one
            position_address = user_position_address(user, self.program_id).address
            account = await self.rpc.get_account_info(position_address)
            if account is None:
                raise BuilderValidationError("USER_NOT_REGISTERED", "User position not found. Please register first.")
            try:
                position = decode_user_position(bytes(account.data))
            except ValueError as e:
                raise BuilderValidationError(
                    "USER_NOT_REGISTERED", f"User position could not be read: {e}", e
                ) from e

            if amount > position.deposited_amount:
                raise BuilderValidationError(
                    "INSUFFICIENT_DEPOSITED_AMOUNT",
                    "Withdrawal amount exceeds deposited amount. "
                    f"Requested: {amount}, Available: {position.deposited_amount}",
                )

            candidate = TransactionCandidate("withdraw")
            ata = await self.token_accounts.ensure(candidate, payer=user, owner=user)
            return candidate.add(withdraw_ix(user, ata.address, amount, self.program_id))

        return await self._build("withdraw", build)

    async def update_automation(
        self,
        user: Pubkey,
        slot_1: RuleLike,
        slot_2: RuleLike,
        fallback: Union[FallbackAction, Mapping[str, Any]],
    ) -> TransactionCandidate:
        rule_1 = validate_rule(slot_1, "slot_1")
        rule_2 = validate_rule(slot_2, "slot_2")
        try:
            action = FallbackAction.from_tagged(fallback)
        except ValueError as e:
            raise BuilderValidationError(
                "INVALID_FALLBACK_ACTION",
                "Invalid fallback action. Must be {'autoCompound': {}} or {'sendToWallet': {}}",
                e,
            ) from e

        async def build() -> TransactionCandidate:
            logger.debug(f"AUTOMATION | slot_1={rule_1} | slot_2={rule_2} | fallback={action.value}")
            return TransactionCandidate("update_automation").add(
                update_automation_ix(user, rule_1, rule_2, action, self.program_id)
            )

        return await self._build("update automation", build)
