"""Tests for Raydium pool math, key derivation and the simulated pool."""
import struct
from unittest.mock import AsyncMock

import pytest
from solders.pubkey import Pubkey

from jitokit.config import WSOL_TOKEN, NetworkMode, ProgramIds, TokenInfo
from jitokit.core import pool_manager
from jitokit.core.market import derive_vault_signer
from jitokit.core.pool_manager import (
    PoolManager,
    RaydiumLiquidity,
    derive_associated_pool_keys,
    fetch_pool_reserves,
    get_available_pool_keys_and_info,
    pool_keys_for_market,
)
from jitokit.models import MarketState, PoolReserves


@pytest.fixture
def programs():
    return ProgramIds.for_network(NetworkMode.MAIN)


@pytest.fixture
def token():
    return TokenInfo(address=str(Pubkey.new_unique()), decimals=6, symbol="TKN")


def make_market(programs):
    market_id = Pubkey.new_unique()
    _, nonce = derive_vault_signer(market_id, programs.openbook_market)
    state = MarketState(
        own_address=market_id,
        vault_signer_nonce=nonce,
        base_mint=Pubkey.new_unique(),
        quote_mint=Pubkey.new_unique(),
        base_vault=Pubkey.new_unique(),
        quote_vault=Pubkey.new_unique(),
        request_queue=Pubkey.new_unique(),
        event_queue=Pubkey.new_unique(),
        bids=Pubkey.new_unique(),
        asks=Pubkey.new_unique(),
        base_lot_size=1_000,
        quote_lot_size=10,
        fee_rate_bps=0,
    )
    return market_id, state


# ============ Swap math ============


def test_compute_amount_out():
    assert RaydiumLiquidity.compute_amount_out(10_000, 1_000_000, 2_000_000) == (19752, 19556)


def test_compute_amount_in():
    assert RaydiumLiquidity.compute_amount_in(10_000, 1_000_000, 2_000_000) == (5037, 5087)


def test_compute_amount_in_caps_output_below_reserve():
    capped = RaydiumLiquidity.compute_amount_in(600, 100, 500)
    assert capped == RaydiumLiquidity.compute_amount_in(499, 100, 500)
    assert capped[0] == 50025


def test_zero_amounts():
    assert RaydiumLiquidity.compute_amount_out(0, 100, 100) == (0, 0)
    assert RaydiumLiquidity.compute_amount_in(0, 100, 100) == (0, 0)


# ============ Pool keys ============


def test_associated_pool_keys_are_deterministic(programs):
    market_id = Pubkey.new_unique()
    args = dict(
        base_mint=Pubkey.new_unique(),
        quote_mint=WSOL_TOKEN.mint,
        base_decimals=6,
        quote_decimals=9,
        market_id=market_id,
        program_id=programs.amm_v4,
        market_program_id=programs.openbook_market,
    )

    first = derive_associated_pool_keys(**args)
    second = derive_associated_pool_keys(**args)

    assert first == second
    assert first.market_id == market_id
    assert first.version == 4
    assert first.lp_decimals == 6
    assert len({first.id, first.lp_mint, first.base_vault, first.quote_vault, first.open_orders}) == 5
    assert not first.has_market_accounts


def test_pool_keys_for_market_fill_market_accounts(programs, token):
    market_id, market = make_market(programs)

    keys = pool_keys_for_market(token, WSOL_TOKEN, market_id, market, programs)

    assert keys.has_market_accounts
    assert keys.market_bids == market.bids
    assert keys.market_event_queue == market.event_queue
    assert keys.market_authority == derive_vault_signer(market_id, programs.openbook_market)[0]


# ============ Live reserves ============


def make_pool_ledger(keys, base_balance=1_000, quote_balance=5_000):
    pool_data = bytearray(752)
    struct.pack_into("<Q", pool_data, 0, 6)
    struct.pack_into("<Q", pool_data, 192, 100)
    struct.pack_into("<Q", pool_data, 200, 50)
    struct.pack_into("<Q", pool_data, 224, 1_700_000_000)
    lp_mint_data = bytearray(82)
    struct.pack_into("<Q", lp_mint_data, 36, 777)

    accounts = {keys.id: bytes(pool_data), keys.lp_mint: bytes(lp_mint_data)}
    balances = {keys.base_vault: base_balance, keys.quote_vault: quote_balance}
    ledger = AsyncMock()
    ledger.get_account_data.side_effect = lambda address: accounts.get(address)
    ledger.get_token_account_balance.side_effect = lambda address: balances[address]
    return ledger


@pytest.mark.asyncio
async def test_fetch_pool_reserves_subtracts_pending_pnl(programs, token):
    market_id, market = make_market(programs)
    keys = pool_keys_for_market(token, WSOL_TOKEN, market_id, market, programs)

    reserves = await fetch_pool_reserves(make_pool_ledger(keys), keys)

    assert reserves.base_reserve == 900
    assert reserves.quote_reserve == 4_950
    assert reserves.lp_supply == 777
    assert reserves.status == 6
    assert reserves.start_time == 1_700_000_000


@pytest.mark.asyncio
async def test_fetch_pool_reserves_missing_pool(programs, token):
    market_id, market = make_market(programs)
    keys = pool_keys_for_market(token, WSOL_TOKEN, market_id, market, programs)
    ledger = AsyncMock()
    ledger.get_account_data.return_value = None

    with pytest.raises(ValueError):
        await fetch_pool_reserves(ledger, keys)


@pytest.mark.asyncio
async def test_first_market_with_a_pool_wins(monkeypatch, programs, token):
    missing, existing = make_market(programs), make_market(programs)
    reserves = PoolReserves(900, 4_950, 6, 9, 6, 777)

    async def fake_fetch(ledger, keys):
        if keys.market_id == missing[0]:
            raise ValueError("pool not found")
        return reserves

    monkeypatch.setattr(pool_manager, "fetch_pool_reserves", fake_fetch)

    keys, info = await get_available_pool_keys_and_info(
        AsyncMock(), token, WSOL_TOKEN, [missing, existing], programs
    )

    assert keys.market_id == existing[0]
    assert info is reserves


@pytest.mark.asyncio
async def test_no_pool_found(monkeypatch, programs, token):
    async def fake_fetch(ledger, keys):
        raise ValueError("pool not found")

    monkeypatch.setattr(pool_manager, "fetch_pool_reserves", fake_fetch)

    assert await get_available_pool_keys_and_info(
        AsyncMock(), token, WSOL_TOKEN, [make_market(programs)], programs
    ) == (None, None)


# ============ Simulated pool ============


@pytest.fixture
def manager(programs, token):
    return PoolManager(token, WSOL_TOKEN, 1_000_000, 10.0, Pubkey.new_unique(), programs)


def test_initial_reserves(manager):
    assert manager.pool_info.base_reserve == 1_000_000 * 10**6
    assert manager.pool_info.quote_reserve == 10 * 10**9
    assert manager.pool_info.lp_supply == 1_000_000
    assert manager.compute_current_price() == pytest.approx(0.00001)


def test_compute_sol_amount_uses_pool_reserves(manager):
    raw_base = 5_000 * 10**6
    info = manager.pool_info

    buying = manager.compute_sol_amount(5_000, buying=True)
    selling = manager.compute_sol_amount(5_000, buying=False)

    assert buying == RaydiumLiquidity.compute_amount_in(raw_base, info.quote_reserve, info.base_reserve)[1]
    assert selling == RaydiumLiquidity.compute_amount_out(raw_base, info.base_reserve, info.quote_reserve)[1]
    assert buying > selling


def test_buy_moves_reserves_and_raises_price(manager):
    quote_before = manager.pool_info.quote_reserve
    base_before = manager.pool_info.base_reserve
    cost_before = manager.compute_sol_amount(5_000, buying=True)
    sol_input = cost_before

    manager.buy_token(5_000)

    assert manager.pool_info.quote_reserve == quote_before + sol_input
    assert manager.pool_info.base_reserve < base_before
    assert manager.base_amount == 995_000
    assert manager.compute_sol_amount(5_000, buying=True) > cost_before


def test_sell_reinitialises_from_tracked_amounts(manager):
    manager.buy_token(5_000)
    quote_after_buy = manager.quote_amount

    manager.sell_token(5_000)

    assert manager.base_amount == 1_000_000
    assert manager.quote_amount < quote_after_buy
    assert manager.pool_info.base_reserve == 1_000_000 * 10**6
