from __future__ import annotations

import struct

from solders.pubkey import Pubkey

from ..domain.models.accounts import UserInventory, UserPosition
from ..domain.models.automation import AutomationRule, AutomationSettings, FallbackAction
from .instructions import account_discriminator

USER_POSITION_DISCRIMINATOR = account_discriminator("UserPosition")

# owner, faction, deposited, last epoch, slot1 (item, threshold), slot2, fallback, inventory x3
_USER_POSITION_LAYOUT = struct.Struct("<32sBQQBQBQBQQQ")
USER_POSITION_SIZE = 8 + _USER_POSITION_LAYOUT.size

_FALLBACK_BY_INDEX = {action.variant_index: action for action in FallbackAction}


def decode_user_position(data: bytes) -> UserPosition:
    """Decode raw UserPosition account bytes. Raises ValueError on a foreign or short account."""
    if len(data) < USER_POSITION_SIZE:
        raise ValueError(f"UserPosition account too short: {len(data)} < {USER_POSITION_SIZE} bytes")
    if bytes(data[:8]) != USER_POSITION_DISCRIMINATOR:
        raise ValueError("Account discriminator does not match UserPosition")

    (
        owner,
        faction_id,
        deposited,
        last_epoch,
        item_1,
        threshold_1,
        item_2,
        threshold_2,
        fallback,
        swords,
        shields,
        spyglasses,
    ) = _USER_POSITION_LAYOUT.unpack_from(data, 8)

    if fallback not in _FALLBACK_BY_INDEX:
        raise ValueError(f"Unknown fallback action variant {fallback}")

    return UserPosition(
        owner=Pubkey.from_bytes(owner),
        faction_id=faction_id,
        deposited_amount=deposited,
        last_deposit_epoch=last_epoch,
        automation_settings=AutomationSettings(
            priority_slot_1=AutomationRule(item_id=item_1, threshold=threshold_1),
            priority_slot_2=AutomationRule(item_id=item_2, threshold=threshold_2),
            fallback_action=_FALLBACK_BY_INDEX[fallback],
        ),
        inventory=UserInventory(sword_count=swords, shield_count=shields, spyglass_count=spyglasses),
    )


def encode_user_position(position: UserPosition) -> bytes:
    """Inverse of decode_user_position; used for fixtures and local simulation."""
    settings = position.automation_settings
    return USER_POSITION_DISCRIMINATOR + _USER_POSITION_LAYOUT.pack(
        bytes(position.owner),
        position.faction_id,
        position.deposited_amount,
        position.last_deposit_epoch,
        settings.priority_slot_1.item_id,
        settings.priority_slot_1.threshold,
        settings.priority_slot_2.item_id,
        settings.priority_slot_2.threshold,
        settings.fallback_action.variant_index,
        position.inventory.sword_count,
        position.inventory.shield_count,
        position.inventory.spyglass_count,
    )
