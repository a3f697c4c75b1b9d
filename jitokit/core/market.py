"""
OpenBook (Serum V3) market state.

Layout of the 388-byte market account (little endian):

    offset  size  field
    0       5     padding ("serum")
    5       8     account flags
    13      32    own address
    45      8     vault signer nonce
    53      32    base mint
    85      32    quote mint
    117     32    base vault
    149     8     base deposits total
    157     8     base fees accrued
    165     32    quote vault
    197     8     quote deposits total
    205     8     quote fees accrued
    213     8     quote dust threshold
    221     32    request queue
    253     32    event queue
    285     32    bids
    317     32    asks
    349     8     base lot size
    357     8     quote lot size
    365     8     fee rate bps
    373     8     referrer rebates accrued
    381     7     padding
"""

import logging
import struct
from typing import List, Tuple

from solders.pubkey import Pubkey

from ..execution.ledger import LedgerClient
from ..execution.solana_tx_builder import MARKET_STATE_SIZE
from ..models import MarketState

logger = logging.getLogger(__name__)

OWN_ADDRESS_OFFSET = 13
VAULT_SIGNER_NONCE_OFFSET = 45
BASE_MINT_OFFSET = 53
QUOTE_MINT_OFFSET = 85
BASE_VAULT_OFFSET = 117
QUOTE_VAULT_OFFSET = 165
QUOTE_DUST_OFFSET = 213
REQUEST_QUEUE_OFFSET = 221
EVENT_QUEUE_OFFSET = 253
BIDS_OFFSET = 285
ASKS_OFFSET = 317
BASE_LOT_OFFSET = 349
QUOTE_LOT_OFFSET = 357
FEE_RATE_OFFSET = 365

MAX_VAULT_SIGNER_NONCE = 25555


def _pubkey_at(data: bytes, offset: int) -> Pubkey:
    return Pubkey.from_bytes(data[offset:offset + 32])


def _u64_at(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def decode_market_state(data: bytes) -> MarketState:
    """
    Decode an OpenBook market account.

    Raises:
        ValueError: if `data` is shorter than the market layout
    """
    if len(data) < MARKET_STATE_SIZE:
        raise ValueError(f"Market account too short: {len(data)} < {MARKET_STATE_SIZE} bytes")

    return MarketState(
        own_address=_pubkey_at(data, OWN_ADDRESS_OFFSET),
        vault_signer_nonce=_u64_at(data, VAULT_SIGNER_NONCE_OFFSET),
        base_mint=_pubkey_at(data, BASE_MINT_OFFSET),
        quote_mint=_pubkey_at(data, QUOTE_MINT_OFFSET),
        base_vault=_pubkey_at(data, BASE_VAULT_OFFSET),
        quote_vault=_pubkey_at(data, QUOTE_VAULT_OFFSET),
        request_queue=_pubkey_at(data, REQUEST_QUEUE_OFFSET),
        event_queue=_pubkey_at(data, EVENT_QUEUE_OFFSET),
        bids=_pubkey_at(data, BIDS_OFFSET),
        asks=_pubkey_at(data, ASKS_OFFSET),
        base_lot_size=_u64_at(data, BASE_LOT_OFFSET),
        quote_lot_size=_u64_at(data, QUOTE_LOT_OFFSET),
        fee_rate_bps=_u64_at(data, FEE_RATE_OFFSET),
        quote_dust_threshold=_u64_at(data, QUOTE_DUST_OFFSET),
    )


def derive_vault_signer(market: Pubkey, program_id: Pubkey) -> Tuple[Pubkey, int]:
    """
    Find the market's vault owner: the first nonce whose program address
    is off-curve.

    Returns:
        (vault_signer, nonce)
    """
    for nonce in range(MAX_VAULT_SIGNER_NONCE + 1):
        try:
            signer = Pubkey.create_program_address(
                [bytes(market), struct.pack("<Q", nonce)],
                program_id,
            )
            return signer, nonce
        except ValueError:
            continue
    raise ValueError(f"Could not find vault signer for market {market}")


async def find_market_accounts(
    ledger: LedgerClient,
    base_mint: Pubkey,
    quote_mint: Pubkey,
    program_id: Pubkey,
) -> List[Tuple[Pubkey, MarketState]]:
    """All markets of `program_id` trading base_mint / quote_mint."""
    accounts = await ledger.get_program_accounts(
        program_id,
        MARKET_STATE_SIZE,
        memcmp=[(BASE_MINT_OFFSET, base_mint), (QUOTE_MINT_OFFSET, quote_mint)],
    )
    markets = [(address, decode_market_state(data)) for address, data in accounts]
    logger.debug(f"Found {len(markets)} market(s) for {base_mint}/{quote_mint}")
    return markets
