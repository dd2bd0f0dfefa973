"""
instructions.py - Anchor instruction encoding for the ZOL program.

Each instruction's data is an 8-byte discriminator (sha256 of
"global:<name>") followed by its little-endian arguments.
"""

from __future__ import annotations

import hashlib
import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ..domain.models.automation import AutomationRule, FallbackAction
from .constants import ASSOCIATED_TOKEN_PROGRAM, SYSTEM_PROGRAM, TOKEN_PROGRAM
from .pda import game_state_address, user_position_address, vault_address


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


REGISTER_USER = instruction_discriminator("register_user")
DEPOSIT = instruction_discriminator("deposit")
WITHDRAW = instruction_discriminator("withdraw")
UPDATE_AUTOMATION = instruction_discriminator("update_automation")


def _encode_rule(rule: AutomationRule) -> bytes:
    return struct.pack("<BQ", rule.item_id, rule.threshold)


def register_user_ix(user: Pubkey, faction_id: int, program_id: Pubkey) -> Instruction:
    data = REGISTER_USER + struct.pack("<B", faction_id)
    accounts = [
        AccountMeta(pubkey=user_position_address(user, program_id).address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=game_state_address(program_id).address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=user, is_signer=True, is_writable=True),
        AccountMeta(pubkey=SYSTEM_PROGRAM, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def _transfer_ix(
    discriminator: bytes, user: Pubkey, user_token_account: Pubkey, amount: int, program_id: Pubkey
) -> Instruction:
    data = discriminator + struct.pack("<Q", amount)
    accounts = [
        AccountMeta(pubkey=user_position_address(user, program_id).address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=game_state_address(program_id).address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=vault_address(program_id).address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=user_token_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=user, is_signer=True, is_writable=True),
        AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def deposit_ix(user: Pubkey, user_token_account: Pubkey, amount: int, program_id: Pubkey) -> Instruction:
    """Move `amount` USDC base units from the user's token account into the vault."""
    return _transfer_ix(DEPOSIT, user, user_token_account, amount, program_id)


def withdraw_ix(user: Pubkey, user_token_account: Pubkey, amount: int, program_id: Pubkey) -> Instruction:
    return _transfer_ix(WITHDRAW, user, user_token_account, amount, program_id)


def update_automation_ix(
    user: Pubkey,
    slot_1: AutomationRule,
    slot_2: AutomationRule,
    fallback: FallbackAction,
    program_id: Pubkey,
) -> Instruction:
    data = (
        UPDATE_AUTOMATION
        + _encode_rule(slot_1)
        + _encode_rule(slot_2)
        + struct.pack("<B", fallback.variant_index)
    )
    accounts = [
        AccountMeta(pubkey=user_position_address(user, program_id).address, is_signer=False, is_writable=True),
        AccountMeta(pubkey=user, is_signer=True, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def create_associated_token_account_ix(payer: Pubkey, ata: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYSTEM_PROGRAM, is_signer=False, is_writable=False),
        AccountMeta(pubkey=TOKEN_PROGRAM, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM, b"", accounts)
