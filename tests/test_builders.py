import httpx
import pytest
from solana.exceptions import SolanaRpcException
from solders.pubkey import Pubkey
from solders.rpc.requests import GetLatestBlockhash

from fakes import position_account
from zol_client.application.builders import (
    U64_MAX,
    BuilderValidationError,
    TransactionBuilderError,
    validate_amount,
    validate_rule,
)
from zol_client.cache.store import CacheKeys, CacheOptions
from zol_client.chain.constants import ASSOCIATED_TOKEN_PROGRAM
from zol_client.chain.instructions import DEPOSIT, REGISTER_USER, UPDATE_AUTOMATION, WITHDRAW
from zol_client.chain.pda import user_position_address
from zol_client.domain.models.automation import AutomationRule
from zol_client.errors import classify


@pytest.mark.parametrize("amount", [0, -1, 1.5, float("nan"), float("inf"), "100", None, True, U64_MAX + 1])
def test_validate_amount_rejects(amount):
    with pytest.raises(BuilderValidationError) as info:
        validate_amount(amount, "deposit")
    assert info.value.code == "INVALID_AMOUNT"


def test_validate_amount_accepts_whole_floats():
    assert validate_amount(5.0, "deposit") == 5
    assert validate_amount(U64_MAX, "deposit") == U64_MAX


@pytest.mark.parametrize(
    "rule,code",
    [
        ({"item_id": 1}, "INVALID_AUTOMATION_RULE"),
        ("sword", "INVALID_AUTOMATION_RULE"),
        ({"item_id": 1, "threshold": -5}, "INVALID_THRESHOLD"),
        ({"item_id": 1, "threshold": 2.5}, "INVALID_THRESHOLD"),
        ({"item_id": 9, "threshold": 10}, "INVALID_ITEM_ID"),
        (AutomationRule(item_id=4, threshold=1), "INVALID_ITEM_ID"),
    ],
)
def test_validate_rule_rejects(rule, code):
    with pytest.raises(BuilderValidationError) as info:
        validate_rule(rule, "slot_1")
    assert info.value.code == code


def test_disabled_rule_ignores_item():
    assert validate_rule({"itemId": 42, "threshold": 0}, "slot_2") == AutomationRule(item_id=0, threshold=0)


@pytest.mark.anyio
async def test_register_user_rejects_bad_faction(zol):
    ctx, client = zol
    with pytest.raises(BuilderValidationError) as info:
        await ctx.builders.register_user(Pubkey.new_unique(), 3)
    assert info.value.code == "INVALID_FACTION_ID"
    assert client.calls == []


@pytest.mark.anyio
async def test_register_user_instruction(zol):
    ctx, _ = zol
    user = Pubkey.new_unique()

    candidate = await ctx.builders.register_user(user, 2)

    assert candidate.operation == "register_user"
    [ix] = candidate.instructions
    assert bytes(ix.data) == REGISTER_USER + bytes([2])
    assert ix.accounts[2].pubkey == user
    assert ix.accounts[2].is_signer


@pytest.mark.anyio
async def test_deposit_checks_balance(zol):
    ctx, client = zol
    user = Pubkey.new_unique()
    client.balances[ctx.token_accounts.address(user)] = 1_000_000

    with pytest.raises(BuilderValidationError) as info:
        await ctx.builders.deposit(user, 2_000_000)

    assert info.value.code == "INSUFFICIENT_BALANCE"
    assert str(info.value) == "Insufficient USDC balance. Required: 2.00 USDC, Available: 1.00 USDC"


@pytest.mark.anyio
async def test_deposit_ignores_cached_balance(zol):
    ctx, client = zol
    user = Pubkey.new_unique()
    ata = ctx.token_accounts.address(user)
    ctx.cache.set(CacheKeys.token_balance(ata), 10_000_000, CacheOptions(ttl=60))
    client.balances[ata] = 1_000_000

    with pytest.raises(BuilderValidationError) as info:
        await ctx.builders.deposit(user, 5_000_000)

    assert info.value.code == "INSUFFICIENT_BALANCE"
    assert "get_token_account_balance" in client.calls
    assert ctx.cache.get(CacheKeys.token_balance(ata)).value == 1_000_000


@pytest.mark.anyio
async def test_deposit_instruction(zol):
    ctx, client = zol
    user = Pubkey.new_unique()
    ata = ctx.token_accounts.address(user)
    client.balances[ata] = 5_000_000

    candidate = await ctx.builders.deposit(user, 5_000_000)

    [ix] = candidate.instructions
    assert bytes(ix.data) == DEPOSIT + (5_000_000).to_bytes(8, "little")
    assert ix.accounts[3].pubkey == ata


@pytest.mark.anyio
async def test_withdraw_unregistered_user(zol):
    ctx, _ = zol
    with pytest.raises(BuilderValidationError) as info:
        await ctx.builders.withdraw(Pubkey.new_unique(), 1)
    assert info.value.code == "USER_NOT_REGISTERED"
    assert str(info.value) == "User position not found. Please register first."


@pytest.mark.anyio
async def test_withdraw_reads_live_position_and_creates_ata(zol):
    ctx, client = zol
    user = Pubkey.new_unique()
    position = user_position_address(user, ctx.program_id).address
    client.accounts[position] = position_account(user, 3_000_000)

    candidate = await ctx.builders.withdraw(user, 3_000_000)

    create, withdraw = candidate.instructions
    assert create.program_id == ASSOCIATED_TOKEN_PROGRAM
    assert bytes(withdraw.data) == WITHDRAW + (3_000_000).to_bytes(8, "little")
    assert candidate.operation == "withdraw"


@pytest.mark.anyio
async def test_withdraw_with_garbage_position(zol):
    ctx, client = zol
    user = Pubkey.new_unique()
    client.accounts[user_position_address(user, ctx.program_id).address] = type("Acct", (), {"data": b"\x00" * 8})()

    with pytest.raises(BuilderValidationError) as info:
        await ctx.builders.withdraw(user, 1)
    assert info.value.code == "USER_NOT_REGISTERED"


@pytest.mark.anyio
async def test_read_failures_are_wrapped(zol):
    ctx, client = zol
    client.fail_with = RuntimeError("node is behind")

    with pytest.raises(TransactionBuilderError) as info:
        await ctx.builders.withdraw(Pubkey.new_unique(), 1)

    assert info.value.code == "BUILD_FAILED"
    assert str(info.value) == "Failed to build withdraw transaction: node is behind"
    assert isinstance(info.value.cause, RuntimeError)


@pytest.mark.anyio
async def test_wrapped_rpc_timeout_still_classifies_as_timeout(zol):
    ctx, client = zol
    inner = httpx.ReadTimeout("")
    try:
        raise SolanaRpcException(inner, None, None, GetLatestBlockhash()) from inner
    except SolanaRpcException as exc:
        client.fail_with = exc

    with pytest.raises(TransactionBuilderError) as info:
        await ctx.builders.withdraw(Pubkey.new_unique(), 1)

    assert info.value.code == "BUILD_FAILED"
    assert classify(info.value).title == "Network Timeout"


@pytest.mark.anyio
async def test_update_automation_encoding(zol):
    ctx, _ = zol
    user = Pubkey.new_unique()

    candidate = await ctx.builders.update_automation(
        user,
        {"item_id": 1, "threshold": 250_000},
        AutomationRule(),
        {"sendToWallet": {}},
    )

    [ix] = candidate.instructions
    expected = (
        UPDATE_AUTOMATION
        + bytes([1]) + (250_000).to_bytes(8, "little")
        + bytes([0]) + (0).to_bytes(8, "little")
        + bytes([1])
    )
    assert bytes(ix.data) == expected
    assert not ix.accounts[1].is_writable


@pytest.mark.anyio
async def test_update_automation_rejects_bad_fallback(zol):
    ctx, _ = zol
    with pytest.raises(BuilderValidationError) as info:
        await ctx.builders.update_automation(
            Pubkey.new_unique(), AutomationRule(), AutomationRule(), {"autoCompound": {}, "sendToWallet": {}}
        )
    assert info.value.code == "INVALID_FALLBACK_ACTION"
