"""
pda.py - Program-derived address helpers for the ZOL program.

Addresses are a pure function of (seeds, program id). The off-curve search
itself is delegated to solders; this module only normalizes seeds, wraps
failures in AddressDerivationError, and names the addresses the program uses.

Usage:
    from zol_client.chain.pda import user_position_address

    derived = user_position_address(owner, program_id)
    print(derived.address, derived.nonce)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Union

from solders.pubkey import Pubkey

from .constants import (
    ASSOCIATED_TOKEN_PROGRAM,
    GAME_STATE_SEED,
    TOKEN_PROGRAM,
    USER_SEED,
    VAULT_SEED,
)

MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

Seed = Union[bytes, str, Pubkey]


class AddressDerivationError(Exception):
    """Raised when a program-derived address cannot be computed."""

    def __init__(self, message: str, seed: str, cause: BaseException | None = None):
        super().__init__(message)
        self.seed = seed
        self.cause = cause


@dataclass(frozen=True)
class DerivedAddress:
    address: Pubkey
    nonce: int

    def __iter__(self):
        # Allows `address, nonce = derive(...)`
        yield self.address
        yield self.nonce


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, Pubkey):
        return bytes(seed)
    if isinstance(seed, str):
        return seed.encode("utf-8")
    if isinstance(seed, (bytes, bytearray)):
        return bytes(seed)
    raise TypeError(f"Unsupported seed type: {type(seed).__name__}")


def _seed_label(seeds: Sequence[Seed]) -> str:
    labels = []
    for seed in seeds:
        if isinstance(seed, Pubkey):
            labels.append(str(seed))
        elif isinstance(seed, str):
            labels.append(seed)
        elif isinstance(seed, (bytes, bytearray)):
            try:
                labels.append(bytes(seed).decode("utf-8"))
            except UnicodeDecodeError:
                labels.append(bytes(seed).hex())
        else:
            labels.append(repr(seed))
    return "/".join(labels)


def derive(seeds: Sequence[Seed], program_id: Pubkey) -> DerivedAddress:
    """
    Derive the program address and bump nonce for `seeds` under `program_id`.

    Raises:
        AddressDerivationError: malformed seeds or a failed off-curve search.
    """
    label = _seed_label(seeds)
    if len(seeds) > MAX_SEEDS:
        raise AddressDerivationError(
            f"Too many seeds ({len(seeds)} > {MAX_SEEDS}) for \"{label}\"", label
        )

    raw: List[bytes] = []
    for seed in seeds:
        try:
            data = _seed_bytes(seed)
        except TypeError as e:
            raise AddressDerivationError(f"Invalid seed in \"{label}\": {e}", label, e) from e
        if len(data) > MAX_SEED_LENGTH:
            raise AddressDerivationError(
                f"Seed exceeds {MAX_SEED_LENGTH} bytes in \"{label}\"", label
            )
        raw.append(data)

    try:
        address, nonce = Pubkey.find_program_address(raw, program_id)
    except Exception as e:
        raise AddressDerivationError(
            f"Failed to derive program address with seed \"{label}\"", label, e
        ) from e

    return DerivedAddress(address=address, nonce=nonce)


def validate(address: object, nonce: object) -> bool:
    """
    Check a derived address / nonce pair.

    Returns True when valid, raises ValueError otherwise.
    """
    if not isinstance(address, Pubkey):
        raise ValueError("Invalid derived address: must be a Pubkey instance")
    if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0 or nonce > 255:
        raise ValueError(f"Invalid bump nonce: must be an integer between 0 and 255, got {nonce!r}")
    return True


def game_state_address(program_id: Pubkey) -> DerivedAddress:
    return derive([GAME_STATE_SEED], program_id)


def user_position_address(owner: Pubkey, program_id: Pubkey) -> DerivedAddress:
    return derive([USER_SEED, owner], program_id)


def vault_address(program_id: Pubkey) -> DerivedAddress:
    return derive([VAULT_SEED], program_id)


def associated_token_address(owner: Pubkey, mint: Pubkey) -> DerivedAddress:
    """Associated token account of `owner` for `mint` (SPL token program)."""
    return derive([owner, TOKEN_PROGRAM, mint], ASSOCIATED_TOKEN_PROGRAM)


__all__ = [
    "AddressDerivationError",
    "DerivedAddress",
    "derive",
    "validate",
    "game_state_address",
    "user_position_address",
    "vault_address",
    "associated_token_address",
]
