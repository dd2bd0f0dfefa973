from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union


class FallbackAction(Enum):
    """What happens to yield no automation rule claims. Values are the wire tags."""
    AUTO_COMPOUND = "autoCompound"
    SEND_TO_WALLET = "sendToWallet"

    @property
    def variant_index(self) -> int:
        return _FALLBACK_ORDER.index(self)

    @classmethod
    def from_tagged(cls, value: Union["FallbackAction", Mapping[str, Any]]) -> "FallbackAction":
        """
        Accept an enum member or a variant-tagged mapping such as
        {"autoCompound": {}}. The mapping must carry exactly one recognized tag.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise ValueError("fallback action must be a FallbackAction or a tagged mapping")
        tags = [tag for tag in (m.value for m in cls) if tag in value]
        if len(tags) != 1:
            raise ValueError(
                "fallback action must carry exactly one of "
                f"{[m.value for m in cls]}, got keys {sorted(value)}"
            )
        return cls(tags[0])


_FALLBACK_ORDER = [FallbackAction.AUTO_COMPOUND, FallbackAction.SEND_TO_WALLET]


@dataclass(frozen=True)
class AutomationRule:
    """
    Buy `item_id` when yield reaches `threshold` (USDC base units).

    A threshold of 0 disables the slot and the item id is ignored.
    """
    item_id: int = 0
    threshold: int = 0

    @property
    def enabled(self) -> bool:
        return self.threshold > 0


@dataclass(frozen=True)
class AutomationSettings:
    priority_slot_1: AutomationRule
    priority_slot_2: AutomationRule
    fallback_action: FallbackAction
