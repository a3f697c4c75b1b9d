"""
LAUNCH OPERATIONS
=================

Each operation catches its own errors, logs them and returns an SplError
or a TxResult; none raises.

- create_token: mint + metadata + full supply
- create_open_market: OpenBook market (vaults, queues, orderbook)
- create_pool: Raydium V4 initialize2 transaction
- buy_token / sell_token: Raydium V4 swap transactions
"""

from .create_market import create_open_market
from .create_pool import create_pool
from .create_token import create_token
from .swap import buy_token, sell_token


__all__ = [
    'create_token',
    'create_open_market',
    'create_pool',
    'buy_token',
    'sell_token',
]
