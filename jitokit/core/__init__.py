"""
Core - market decoding, pool keys, simulated pool math and amount helpers.

Usage:
    from jitokit.core import PoolManager, decode_market_state, x_wei_amount
"""
from .market import decode_market_state, derive_vault_signer, find_market_accounts
from .pool_manager import (
    PoolManager,
    RaydiumLiquidity,
    apply_market_state,
    derive_associated_pool_keys,
    get_available_pool_keys_and_info,
    pool_keys_for_market,
)
from .utility import from_wei_amount, get_ata_address, percent_amount, x_wei_amount

__all__ = [
    'decode_market_state',
    'derive_vault_signer',
    'find_market_accounts',
    'PoolManager',
    'RaydiumLiquidity',
    'apply_market_state',
    'derive_associated_pool_keys',
    'get_available_pool_keys_and_info',
    'pool_keys_for_market',
    'from_wei_amount',
    'get_ata_address',
    'percent_amount',
    'x_wei_amount',
]
