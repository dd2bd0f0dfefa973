import pytest
from solders.pubkey import Pubkey

from zol_client.chain.constants import ASSOCIATED_TOKEN_PROGRAM, DEFAULT_PROGRAM_ID, TOKEN_PROGRAM
from zol_client.chain.pda import (
    AddressDerivationError,
    associated_token_address,
    derive,
    game_state_address,
    user_position_address,
    validate,
    vault_address,
)

PROGRAM_ID = Pubkey.from_string(DEFAULT_PROGRAM_ID)


def test_derive_is_deterministic():
    first = derive([b"game_state"], PROGRAM_ID)
    second = derive([b"game_state"], PROGRAM_ID)
    assert first == second
    assert 0 <= first.nonce <= 255


def test_str_and_bytes_seeds_are_equivalent():
    assert derive(["user", PROGRAM_ID], PROGRAM_ID) == derive([b"user", bytes(PROGRAM_ID)], PROGRAM_ID)


def test_matches_solders_reference():
    address, nonce = Pubkey.find_program_address([b"vault"], PROGRAM_ID)
    derived = vault_address(PROGRAM_ID)
    assert derived.address == address
    assert derived.nonce == nonce


def test_named_addresses_are_distinct():
    owner_a = Pubkey.new_unique()
    owner_b = Pubkey.new_unique()
    addresses = {
        game_state_address(PROGRAM_ID).address,
        vault_address(PROGRAM_ID).address,
        user_position_address(owner_a, PROGRAM_ID).address,
        user_position_address(owner_b, PROGRAM_ID).address,
    }
    assert len(addresses) == 4


def test_associated_token_address_uses_token_program_seeds():
    owner = Pubkey.new_unique()
    mint = Pubkey.new_unique()
    expected, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM
    )
    assert associated_token_address(owner, mint).address == expected


def test_unpacks_as_tuple():
    address, nonce = game_state_address(PROGRAM_ID)
    assert isinstance(address, Pubkey)
    assert isinstance(nonce, int)


def test_overlong_seed_raises_with_seed_label():
    with pytest.raises(AddressDerivationError) as info:
        derive([b"x" * 33], PROGRAM_ID)
    assert info.value.seed == "x" * 33


def test_too_many_seeds_raises():
    with pytest.raises(AddressDerivationError):
        derive([b"a"] * 17, PROGRAM_ID)


def test_unsupported_seed_type_raises():
    with pytest.raises(AddressDerivationError) as info:
        derive([12345], PROGRAM_ID)
    assert isinstance(info.value.cause, TypeError)


def test_validate_accepts_derived_pair():
    derived = game_state_address(PROGRAM_ID)
    assert validate(derived.address, derived.nonce) is True


@pytest.mark.parametrize("nonce", [-1, 256, 3.0, True, None])
def test_validate_rejects_bad_nonce(nonce):
    with pytest.raises(ValueError):
        validate(PROGRAM_ID, nonce)


def test_validate_rejects_non_address():
    with pytest.raises(ValueError):
        validate(DEFAULT_PROGRAM_ID, 255)
