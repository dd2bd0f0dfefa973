import pytest

from fakes import position_account
from zol_client.cache.store import CacheKeys, CacheOptions
from zol_client.chain.pda import game_state_address, user_position_address


@pytest.mark.anyio
async def test_user_position_is_cached(zol, signer):
    ctx, client = zol
    owner = signer.public_key
    client.accounts[user_position_address(owner, ctx.program_id).address] = position_account(owner, 42)

    first = await ctx.get_user_position(owner)
    second = await ctx.get_user_position(owner)

    assert first.deposited_amount == 42
    assert second == first
    assert client.calls.count("get_account_info") == 1


@pytest.mark.anyio
async def test_unregistered_user_has_no_position(zol, signer):
    ctx, _ = zol
    assert await ctx.get_user_position(signer.public_key) is None


@pytest.mark.anyio
async def test_unregistered_user_is_cached_until_invalidated(zol, signer):
    ctx, client = zol
    owner = signer.public_key

    assert await ctx.get_user_position(owner) is None
    assert await ctx.get_user_position(owner) is None
    assert client.calls.count("get_account_info") == 1

    client.accounts[user_position_address(owner, ctx.program_id).address] = position_account(owner, 7)
    ctx.cache.invalidate_after_transaction()

    position = await ctx.get_user_position(owner)
    assert position.deposited_amount == 7
    assert client.calls.count("get_account_info") == 2


@pytest.mark.anyio
async def test_stale_position_revalidates_in_background(zol, signer, clock):
    ctx, client = zol
    owner = signer.public_key
    address = user_position_address(owner, ctx.program_id).address
    client.accounts[address] = position_account(owner, 1)
    await ctx.get_user_position(owner)

    client.accounts[address] = position_account(owner, 2)
    clock.advance(ctx.config.cache.user_position_ttl + 1)

    stale = await ctx.get_user_position(owner)
    await ctx.tasks.drain()
    fresh = await ctx.get_user_position(owner)

    assert stale.deposited_amount == 1
    assert fresh.deposited_amount == 2


@pytest.mark.anyio
async def test_game_state_account(zol):
    ctx, client = zol
    client.accounts[game_state_address(ctx.program_id).address] = "game-state-bytes"
    assert await ctx.get_game_state_account() == "game-state-bytes"


@pytest.mark.anyio
async def test_wallet_disconnect_drops_user_entries(zol, signer):
    ctx, _ = zol
    owner = signer.public_key
    ctx.cache.set(CacheKeys.user_position(owner), "position", CacheOptions(ttl=60))
    ctx.cache.set(CacheKeys.game_state(), "game", CacheOptions(ttl=60))
    ctx.cache.set(CacheKeys.token_balance(ctx.token_accounts.address(owner)), 5, CacheOptions(ttl=60))

    ctx.on_wallet_disconnected(owner)

    assert ctx.cache.stats()["keys"] == [CacheKeys.game_state()]


@pytest.mark.anyio
async def test_async_context_closes_clients(zol):
    ctx, client = zol
    async with ctx:
        pass
    assert client.closed
