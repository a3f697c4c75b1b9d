"""
Raydium AMM V4 pool keys and simulated pool math.

Usage:
    from jitokit.core.pool_manager import PoolManager

    manager = PoolManager(token, WSOL_TOKEN, 1_000_000, 10.0, market_id, programs)
    lamports = manager.compute_sol_amount(5_000, buying=True)
    manager.buy_token(5_000)
"""

import dataclasses
import logging
import struct
from typing import List, Optional, Tuple

from solders.pubkey import Pubkey

from ..config import ProgramIds, TokenInfo
from ..execution.ledger import LedgerClient
from ..models import MarketState, PoolKeys, PoolReserves
from .market import derive_vault_signer
from .utility import from_wei_amount, x_wei_amount

logger = logging.getLogger(__name__)

POOL_VERSION = 4
MARKET_VERSION = 3

# Raydium V4 trade fee: 25 / 10000
LIQUIDITY_FEES_NUMERATOR = 25
LIQUIDITY_FEES_DENOMINATOR = 10_000
DEFAULT_SLIPPAGE_PERCENT = 1

AMM_AUTHORITY_SEED = b"amm authority"
AMM_ASSOCIATED_SEED = b"amm_associated_seed"
LP_MINT_ASSOCIATED_SEED = b"lp_mint_associated_seed"
COIN_VAULT_ASSOCIATED_SEED = b"coin_vault_associated_seed"
PC_VAULT_ASSOCIATED_SEED = b"pc_vault_associated_seed"
TARGET_ASSOCIATED_SEED = b"target_associated_seed"
OPEN_ORDER_ASSOCIATED_SEED = b"open_order_associated_seed"

# Raydium V4 pool state (LIQUIDITY_STATE_LAYOUT_V4)
POOL_STATUS_OFFSET = 0
POOL_BASE_NEED_TAKE_PNL_OFFSET = 192
POOL_QUOTE_NEED_TAKE_PNL_OFFSET = 200
POOL_OPEN_TIME_OFFSET = 224
MINT_SUPPLY_OFFSET = 36


# ============================================================
# CONSTANT PRODUCT MATH
# ============================================================

class RaydiumLiquidity:
    """
    Raydium V4 constant-product swap math on raw amounts.

    amount_out = reserve_out * in_after_fee / (reserve_in + in_after_fee)
    """

    @staticmethod
    def compute_amount_out(
        amount_in: int,
        reserve_in: int,
        reserve_out: int,
        slippage_percent: int = DEFAULT_SLIPPAGE_PERCENT,
    ) -> Tuple[int, int]:
        """
        Output for a fixed input.

        Returns:
            (amount_out, min_amount_out)
        """
        amount_out = 0
        if amount_in > 0:
            fee = amount_in * LIQUIDITY_FEES_NUMERATOR // LIQUIDITY_FEES_DENOMINATOR
            in_after_fee = amount_in - fee
            amount_out = reserve_out * in_after_fee // (reserve_in + in_after_fee)

        min_amount_out = amount_out * 100 // (100 + slippage_percent)
        return amount_out, min_amount_out

    @staticmethod
    def compute_amount_in(
        amount_out: int,
        reserve_in: int,
        reserve_out: int,
        slippage_percent: int = DEFAULT_SLIPPAGE_PERCENT,
    ) -> Tuple[int, int]:
        """
        Input needed for a fixed output; output is capped below the reserve.

        Returns:
            (amount_in, max_amount_in)
        """
        amount_in = 0
        if amount_out > 0:
            if amount_out >= reserve_out:
                amount_out = reserve_out - 1
            in_without_fee = reserve_in * amount_out // (reserve_out - amount_out)
            amount_in = (
                in_without_fee * LIQUIDITY_FEES_DENOMINATOR
                // (LIQUIDITY_FEES_DENOMINATOR - LIQUIDITY_FEES_NUMERATOR)
            )

        max_amount_in = amount_in * (100 + slippage_percent) // 100
        return amount_in, max_amount_in


# ============================================================
# POOL KEYS
# ============================================================

def _associated_id(program_id: Pubkey, market_id: Pubkey, seed: bytes) -> Pubkey:
    pda, _ = Pubkey.find_program_address([bytes(program_id), bytes(market_id), seed], program_id)
    return pda


def derive_market_authority(
    market_id: Pubkey,
    market_program_id: Pubkey,
    vault_signer_nonce: Optional[int] = None,
) -> Pubkey:
    if vault_signer_nonce is None:
        authority, _ = derive_vault_signer(market_id, market_program_id)
        return authority
    return Pubkey.create_program_address(
        [bytes(market_id), struct.pack("<Q", vault_signer_nonce)],
        market_program_id,
    )


def derive_associated_pool_keys(
    base_mint: Pubkey,
    quote_mint: Pubkey,
    base_decimals: int,
    quote_decimals: int,
    market_id: Pubkey,
    program_id: Pubkey,
    market_program_id: Pubkey,
    vault_signer_nonce: Optional[int] = None,
) -> PoolKeys:
    """Derive every pool account from the market id (no RPC)."""
    authority, nonce = Pubkey.find_program_address([AMM_AUTHORITY_SEED], program_id)

    return PoolKeys(
        id=_associated_id(program_id, market_id, AMM_ASSOCIATED_SEED),
        base_mint=base_mint,
        quote_mint=quote_mint,
        lp_mint=_associated_id(program_id, market_id, LP_MINT_ASSOCIATED_SEED),
        base_decimals=base_decimals,
        quote_decimals=quote_decimals,
        lp_decimals=base_decimals,
        version=POOL_VERSION,
        program_id=program_id,
        authority=authority,
        nonce=nonce,
        open_orders=_associated_id(program_id, market_id, OPEN_ORDER_ASSOCIATED_SEED),
        target_orders=_associated_id(program_id, market_id, TARGET_ASSOCIATED_SEED),
        base_vault=_associated_id(program_id, market_id, COIN_VAULT_ASSOCIATED_SEED),
        quote_vault=_associated_id(program_id, market_id, PC_VAULT_ASSOCIATED_SEED),
        withdraw_queue=Pubkey.default(),
        lp_vault=Pubkey.default(),
        market_version=MARKET_VERSION,
        market_program_id=market_program_id,
        market_id=market_id,
        market_authority=derive_market_authority(market_id, market_program_id, vault_signer_nonce),
    )


def apply_market_state(keys: PoolKeys, market: MarketState) -> PoolKeys:
    """Copy of `keys` with the market's vaults, bids, asks and event queue filled in."""
    return dataclasses.replace(
        keys,
        market_base_vault=market.base_vault,
        market_quote_vault=market.quote_vault,
        market_bids=market.bids,
        market_asks=market.asks,
        market_event_queue=market.event_queue,
    )


def pool_keys_for_market(
    base: TokenInfo,
    quote: TokenInfo,
    market_id: Pubkey,
    market: MarketState,
    programs: ProgramIds,
) -> PoolKeys:
    keys = derive_associated_pool_keys(
        base_mint=base.mint,
        quote_mint=quote.mint,
        base_decimals=base.decimals,
        quote_decimals=quote.decimals,
        market_id=market_id,
        program_id=programs.amm_v4,
        market_program_id=programs.openbook_market,
        vault_signer_nonce=market.vault_signer_nonce,
    )
    return apply_market_state(keys, market)


async def fetch_pool_reserves(ledger: LedgerClient, keys: PoolKeys) -> PoolReserves:
    """
    Read live reserves for an existing pool.

    Raises:
        ValueError: if the pool or its lp mint does not exist
    """
    pool_data = await ledger.get_account_data(keys.id)
    if pool_data is None:
        raise ValueError(f"Pool {keys.id} not found")

    lp_mint_data = await ledger.get_account_data(keys.lp_mint)
    if lp_mint_data is None:
        raise ValueError(f"LP mint {keys.lp_mint} not found")

    base_balance = await ledger.get_token_account_balance(keys.base_vault)
    quote_balance = await ledger.get_token_account_balance(keys.quote_vault)
    base_pnl = struct.unpack_from("<Q", pool_data, POOL_BASE_NEED_TAKE_PNL_OFFSET)[0]
    quote_pnl = struct.unpack_from("<Q", pool_data, POOL_QUOTE_NEED_TAKE_PNL_OFFSET)[0]

    return PoolReserves(
        base_reserve=base_balance - base_pnl,
        quote_reserve=quote_balance - quote_pnl,
        base_decimals=keys.base_decimals,
        quote_decimals=keys.quote_decimals,
        lp_decimals=keys.lp_decimals,
        lp_supply=struct.unpack_from("<Q", lp_mint_data, MINT_SUPPLY_OFFSET)[0],
        status=struct.unpack_from("<Q", pool_data, POOL_STATUS_OFFSET)[0],
        start_time=struct.unpack_from("<Q", pool_data, POOL_OPEN_TIME_OFFSET)[0],
    )


async def get_available_pool_keys_and_info(
    ledger: LedgerClient,
    base: TokenInfo,
    quote: TokenInfo,
    markets: List[Tuple[Pubkey, MarketState]],
    programs: ProgramIds,
) -> Tuple[Optional[PoolKeys], Optional[PoolReserves]]:
    """First market whose pool exists wins; (None, None) when none does."""
    for market_id, market in markets:
        keys = pool_keys_for_market(base, quote, market_id, market, programs)
        try:
            reserves = await fetch_pool_reserves(ledger, keys)
        except Exception as e:
            logger.warning(f"Failed to get pool info for market {market_id}: {e}")
            continue
        logger.info(f"Found pool {keys.id} on market {market_id}")
        return keys, reserves

    return None, None


# ============================================================
# SIMULATED POOL
# ============================================================

class PoolManager:
    """
    Local constant-product model of a pool that does not exist yet.

    Used to price the buys bundled with pool creation. Amounts passed in
    and tracked here are UI amounts; reserves are raw units.
    """

    def __init__(
        self,
        base_token: TokenInfo,
        quote_token: TokenInfo,
        base_amount: float,
        quote_amount: float,
        market_id: Pubkey,
        programs: ProgramIds,
    ):
        self.base_token = base_token
        self.quote_token = quote_token
        self.base_amount = base_amount
        self.quote_amount = quote_amount
        self.programs = programs
        self.pool_keys: Optional[PoolKeys] = None
        self.pool_info: Optional[PoolReserves] = None
        self.initialize_pool_info(market_id)

    def initialize_pool_info(self, market_id: Pubkey):
        """Re-derive keys for `market_id` and reset reserves from the tracked amounts."""
        self.market_id = market_id
        self.pool_keys = derive_associated_pool_keys(
            base_mint=self.base_token.mint,
            quote_mint=self.quote_token.mint,
            base_decimals=self.base_token.decimals,
            quote_decimals=self.quote_token.decimals,
            market_id=market_id,
            program_id=self.programs.amm_v4,
            market_program_id=self.programs.openbook_market,
        )
        self.pool_info = PoolReserves(
            base_reserve=x_wei_amount(self.base_amount, self.base_token.decimals),
            quote_reserve=x_wei_amount(self.quote_amount, self.quote_token.decimals),
            base_decimals=self.base_token.decimals,
            quote_decimals=self.quote_token.decimals,
            lp_decimals=self.quote_token.decimals,
            lp_supply=int(self.base_amount),
        )
        self._log_reserves()

    def compute_sol_amount(self, base_amount: float, buying: bool) -> int:
        """
        Quote amount (raw) for trading `base_amount` base tokens, 1% slippage.

        Buying returns the maximum quote in; selling the minimum quote out.
        """
        raw_base = x_wei_amount(base_amount, self.base_token.decimals)

        if buying:
            _, max_in = RaydiumLiquidity.compute_amount_in(
                raw_base,
                reserve_in=self.pool_info.quote_reserve,
                reserve_out=self.pool_info.base_reserve,
            )
            return max_in

        _, min_out = RaydiumLiquidity.compute_amount_out(
            raw_base,
            reserve_in=self.pool_info.base_reserve,
            reserve_out=self.pool_info.quote_reserve,
        )
        return min_out

    def compute_current_price(self) -> float:
        return self.quote_amount / self.base_amount

    def buy_token(self, base_amount: float):
        sol_input = self.compute_sol_amount(base_amount, buying=True)
        amount_out, _ = RaydiumLiquidity.compute_amount_out(
            sol_input,
            reserve_in=self.pool_info.quote_reserve,
            reserve_out=self.pool_info.base_reserve,
        )

        self.quote_amount += from_wei_amount(sol_input, self.quote_token.decimals)
        self.base_amount -= base_amount
        self.pool_info = dataclasses.replace(
            self.pool_info,
            base_reserve=self.pool_info.base_reserve - amount_out,
            quote_reserve=self.pool_info.quote_reserve + sol_input,
        )
        self._log_reserves()

    def sell_token(self, base_amount: float):
        sol_output = self.compute_sol_amount(base_amount, buying=False)
        self.quote_amount -= from_wei_amount(sol_output, self.quote_token.decimals)
        self.base_amount += base_amount
        self.initialize_pool_info(self.market_id)

    def _log_reserves(self):
        logger.info(
            f"Simulated pool reserves: base={self.pool_info.base_reserve} "
            f"quote={self.pool_info.quote_reserve}"
        )
