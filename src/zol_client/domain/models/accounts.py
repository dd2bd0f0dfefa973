from __future__ import annotations

from dataclasses import dataclass

from solders.pubkey import Pubkey

from .automation import AutomationSettings


@dataclass(frozen=True)
class UserInventory:
    sword_count: int = 0
    shield_count: int = 0
    spyglass_count: int = 0


@dataclass(frozen=True)
class UserPosition:
    """Decoded on-chain user position account."""
    owner: Pubkey
    faction_id: int
    deposited_amount: int  # USDC base units (6 decimals)
    last_deposit_epoch: int
    automation_settings: AutomationSettings
    inventory: UserInventory


@dataclass(frozen=True)
class TokenAccountResult:
    """Outcome of checking an associated token account."""
    address: Pubkey
    existed: bool
    needs_creation: bool
