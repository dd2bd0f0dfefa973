"""Custom error codes returned by the ZOL program (Anchor offsets from 6000)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict


class ProgramErrorCode(IntEnum):
    INVALID_FACTION = 6000
    INSUFFICIENT_FUNDS = 6001
    EPOCH_NOT_ENDED = 6002


@dataclass(frozen=True)
class ProgramErrorInfo:
    name: str
    title: str
    message: str


PROGRAM_ERRORS: Dict[int, ProgramErrorInfo] = {
    ProgramErrorCode.INVALID_FACTION: ProgramErrorInfo(
        name="InvalidFaction",
        title="Invalid Faction",
        message="The selected faction ID is invalid. Please choose a valid faction (Vanguard, Mage, or Assassin).",
    ),
    ProgramErrorCode.INSUFFICIENT_FUNDS: ProgramErrorInfo(
        name="InsufficientFunds",
        title="Insufficient Funds",
        message="You do not have enough funds in your account to complete this withdrawal.",
    ),
    ProgramErrorCode.EPOCH_NOT_ENDED: ProgramErrorInfo(
        name="EpochNotEnded",
        title="Epoch Not Ended",
        message="The current epoch has not ended yet. Please wait until the epoch ends to perform this action.",
    ),
}

# Anchor reserves everything below this for framework errors.
CUSTOM_ERROR_OFFSET = 6000
