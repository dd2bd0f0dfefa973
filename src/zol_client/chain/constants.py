"""
Program and system addresses used by the ZOL client.

Seed literals and the default program id are fixed at start-up; the program
id and USDC mint may be overridden from configuration.
"""

from __future__ import annotations

from typing import Dict, Final

from solders.pubkey import Pubkey

# Core system programs
SYSTEM_PROGRAM: Final[Pubkey] = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM: Final[Pubkey] = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)

# NOTE: devnet deployment; verify before pointing at another cluster.
DEFAULT_PROGRAM_ID: Final[str] = "Hxmj5SzEPU4gJkbQHWaaXHEQN7SK1CKEuUFhvUf8qBAv"
DEFAULT_USDC_MINT: Final[str] = "Ej7gfSCq8F8jZy2ifZJVHXVr7HLeFrtzaBKVWADDYBu9"

USDC_DECIMALS: Final[int] = 6

# PDA seeds
GAME_STATE_SEED: Final[bytes] = b"game_state"
USER_SEED: Final[bytes] = b"user"
VAULT_SEED: Final[bytes] = b"vault"

FACTION_NAMES: Final[Dict[int, str]] = {0: "Vanguard", 1: "Mage", 2: "Assassin"}
ITEM_NAMES: Final[Dict[int, str]] = {0: "None", 1: "Sword", 2: "Shield", 3: "Spyglass"}


def is_valid_faction_id(faction_id: object) -> bool:
    return isinstance(faction_id, int) and not isinstance(faction_id, bool) and faction_id in FACTION_NAMES


def is_valid_item_id(item_id: object) -> bool:
    return isinstance(item_id, int) and not isinstance(item_id, bool) and item_id in ITEM_NAMES


__all__ = [
    "SYSTEM_PROGRAM",
    "TOKEN_PROGRAM",
    "ASSOCIATED_TOKEN_PROGRAM",
    "DEFAULT_PROGRAM_ID",
    "DEFAULT_USDC_MINT",
    "USDC_DECIMALS",
    "GAME_STATE_SEED",
    "USER_SEED",
    "VAULT_SEED",
    "FACTION_NAMES",
    "ITEM_NAMES",
    "is_valid_faction_id",
    "is_valid_item_id",
]
