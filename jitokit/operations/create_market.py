"""
Create an OpenBook market for (mint, quote token).

Two transactions, both paid and signed by the owner:
    1. base/quote vaults (create-with-seed + initialize account)
    2. market, request queue, event queue, bids, asks + InitializeMarket
"""

import logging
from typing import Tuple

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountWithSeedParams, create_account_with_seed
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import InitializeAccountParams, initialize_account

from ..config import ProgramIds, TokenInfo
from ..core.market import derive_vault_signer
from ..execution.ledger import LedgerClient
from ..execution.solana_tx_builder import (
    MARKET_STATE_SIZE,
    TOKEN_ACCOUNT_SIZE,
    OpenBookInstructionBuilder,
    event_queue_space,
    orderbook_space,
    request_queue_space,
)
from ..execution.transaction_helper import send_and_confirm_transactions_with_check
from ..models import SplError

logger = logging.getLogger(__name__)

FEE_RATE_BPS = 0
QUOTE_DUST_THRESHOLD = 100


def seeded_account(base: Pubkey, program_id: Pubkey) -> Tuple[Pubkey, str]:
    """Fresh address derived from `base` with a random 32-char seed."""
    seed = str(Keypair().pubkey())[:32]
    return Pubkey.create_with_seed(base, seed, program_id), seed


def lot_sizes(base_decimals: int, quote_decimals: int, lot_size: float, tick_size: float) -> Tuple[int, int]:
    """
    Raises:
        ValueError: if either lot size rounds to zero
    """
    base_lot = round(10 ** base_decimals * lot_size)
    quote_lot = round(lot_size * 10 ** quote_decimals * tick_size)
    if base_lot == 0:
        raise ValueError("lot size is too small")
    if quote_lot == 0:
        raise ValueError("tick size or lot size is too small")
    return base_lot, quote_lot


def _create_with_seed(owner: Pubkey, address: Pubkey, seed: str, lamports: int, space: int, program_id: Pubkey):
    return create_account_with_seed(CreateAccountWithSeedParams(
        from_pubkey=owner,
        to_pubkey=address,
        base=owner,
        seed=seed,
        lamports=lamports,
        space=space,
        owner=program_id,
    ))


async def build_market_transactions(
    ledger: LedgerClient,
    owner: Pubkey,
    base: TokenInfo,
    quote: TokenInfo,
    dex_program: Pubkey,
    lot_size: float = 1,
    tick_size: float = 0.01,
) -> Tuple[Pubkey, Transaction, Transaction]:
    """
    Build the vault and market transactions.

    Returns:
        (market_id, vault_tx, market_tx)
    """
    market, market_seed = seeded_account(owner, dex_program)
    request_queue, request_seed = seeded_account(owner, dex_program)
    event_queue, event_seed = seeded_account(owner, dex_program)
    bids, bids_seed = seeded_account(owner, dex_program)
    asks, asks_seed = seeded_account(owner, dex_program)
    base_vault, base_vault_seed = seeded_account(owner, TOKEN_PROGRAM_ID)
    quote_vault, quote_vault_seed = seeded_account(owner, TOKEN_PROGRAM_ID)

    vault_owner, vault_signer_nonce = derive_vault_signer(market, dex_program)
    base_lot, quote_lot = lot_sizes(base.decimals, quote.decimals, lot_size, tick_size)

    vault_lamports = await ledger.get_minimum_balance_for_rent_exemption(TOKEN_ACCOUNT_SIZE)
    vault_tx = Transaction.new_with_payer(
        [
            _create_with_seed(owner, base_vault, base_vault_seed, vault_lamports, TOKEN_ACCOUNT_SIZE, TOKEN_PROGRAM_ID),
            _create_with_seed(owner, quote_vault, quote_vault_seed, vault_lamports, TOKEN_ACCOUNT_SIZE, TOKEN_PROGRAM_ID),
            initialize_account(InitializeAccountParams(
                program_id=TOKEN_PROGRAM_ID, account=base_vault, mint=base.mint, owner=vault_owner,
            )),
            initialize_account(InitializeAccountParams(
                program_id=TOKEN_PROGRAM_ID, account=quote_vault, mint=quote.mint, owner=vault_owner,
            )),
        ],
        owner,
    )

    sizes = {
        "market": MARKET_STATE_SIZE,
        "request_queue": request_queue_space(),
        "event_queue": event_queue_space(),
        "orderbook": orderbook_space(),
    }
    rent = {name: await ledger.get_minimum_balance_for_rent_exemption(size) for name, size in sizes.items()}

    market_tx = Transaction.new_with_payer(
        [
            _create_with_seed(owner, market, market_seed, rent["market"], sizes["market"], dex_program),
            _create_with_seed(owner, request_queue, request_seed, rent["request_queue"], sizes["request_queue"], dex_program),
            _create_with_seed(owner, event_queue, event_seed, rent["event_queue"], sizes["event_queue"], dex_program),
            _create_with_seed(owner, bids, bids_seed, rent["orderbook"], sizes["orderbook"], dex_program),
            _create_with_seed(owner, asks, asks_seed, rent["orderbook"], sizes["orderbook"], dex_program),
            OpenBookInstructionBuilder.build_initialize_market_instruction(
                program_id=dex_program,
                market=market,
                request_queue=request_queue,
                event_queue=event_queue,
                bids=bids,
                asks=asks,
                base_vault=base_vault,
                quote_vault=quote_vault,
                base_mint=base.mint,
                quote_mint=quote.mint,
                base_lot_size=base_lot,
                quote_lot_size=quote_lot,
                fee_rate_bps=FEE_RATE_BPS,
                vault_signer_nonce=vault_signer_nonce,
                quote_dust_threshold=QUOTE_DUST_THRESHOLD,
            ),
        ],
        owner,
    )

    return market, vault_tx, market_tx


async def create_open_market(
    ledger: LedgerClient,
    owner: Keypair,
    mint_address: str,
    quote: TokenInfo,
    programs: ProgramIds,
    lot_size: float = 1,
    tick_size: float = 0.01,
) -> SplError:
    """Create and confirm an OpenBook market for `mint_address` / quote."""
    if not mint_address:
        logger.error("Create market: invalid argument")
        return SplError.INVALID_ARGUMENT

    try:
        mint = Pubkey.from_string(mint_address)
        decimals = await ledger.get_mint_decimals(mint)
        base = TokenInfo(address=mint_address, decimals=decimals)

        market, vault_tx, market_tx = await build_market_transactions(
            ledger,
            owner.pubkey(),
            base,
            quote,
            programs.openbook_market,
            lot_size=lot_size,
            tick_size=tick_size,
        )
        logger.info(f"Create market: sending transactions for market {market}")

        result = await send_and_confirm_transactions_with_check(ledger, owner, [vault_tx, market_tx])
        if result != SplError.OK:
            logger.error("Create market: failed to send and confirm transactions")
            return SplError.FAIL
    except Exception as e:
        logger.error(f"Create market: {e}")
        return SplError.FAIL

    logger.info(f"Create market: created market {market}")
    return SplError.OK
