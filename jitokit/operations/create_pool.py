"""
Build the Raydium V4 create-pool (initialize2) transaction against the
first OpenBook market for (mint, quote token).
"""

import logging
import time
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config import WSOL_MINT, ProgramIds, TokenInfo
from ..core.market import find_market_accounts
from ..core.pool_manager import pool_keys_for_market
from ..core.utility import get_ata_address, x_wei_amount
from ..execution.ledger import LedgerClient
from ..execution.solana_tx_builder import (
    RaydiumInstructionBuilder,
    build_unsigned_v0,
    unwrap_sol_instruction,
    wrap_sol_instructions,
)
from ..models import SplError, TxResult

logger = logging.getLogger(__name__)


async def create_pool(
    ledger: LedgerClient,
    owner: Keypair,
    mint_address: str,
    token_amount: float,
    quote_amount: float,
    quote: TokenInfo,
    programs: ProgramIds,
    start_time: Optional[int] = None,
) -> TxResult:
    """
    Returns:
        TxResult whose value is [create_pool_tx] (unsigned, V0)
    """
    if not mint_address:
        logger.error("Create pool: invalid argument")
        return TxResult.fail(SplError.INVALID_ARGUMENT)

    try:
        mint = Pubkey.from_string(mint_address)
        decimals = await ledger.get_mint_decimals(mint)
        base = TokenInfo(address=mint_address, decimals=decimals)

        markets = await find_market_accounts(ledger, mint, quote.mint, programs.openbook_market)
        if not markets:
            raise ValueError("market account not found")
        market_id, market = markets[0]
        logger.info(f"Create pool: market found {market_id}")

        keys = pool_keys_for_market(base, quote, market_id, market, programs)
        base_amount = x_wei_amount(token_amount, base.decimals)
        quote_raw = x_wei_amount(quote_amount, quote.decimals)
        open_time = start_time if start_time is not None else int(time.time())

        owner_pubkey = owner.pubkey()
        wallet_accounts = await ledger.get_token_accounts(owner_pubkey)
        base_accounts = [account for account in wallet_accounts if account.mint == mint]
        if not base_accounts:
            raise ValueError(f"owner holds no token account for {mint}")

        owner_base_account = get_ata_address(owner_pubkey, mint)
        if owner_base_account not in [account.pubkey for account in base_accounts]:
            owner_base_account = base_accounts[0].pubkey
        owner_quote_account = get_ata_address(owner_pubkey, quote.mint)
        owner_lp_account = get_ata_address(owner_pubkey, keys.lp_mint)

        use_sol_balance = quote.address == WSOL_MINT
        instructions = []
        if use_sol_balance:
            instructions.extend(wrap_sol_instructions(owner_pubkey, quote.mint, owner_quote_account, quote_raw))
        instructions.append(RaydiumInstructionBuilder.build_initialize2_instruction(
            keys=keys,
            owner=owner_pubkey,
            owner_base_account=owner_base_account,
            owner_quote_account=owner_quote_account,
            owner_lp_account=owner_lp_account,
            fee_destination=programs.fee_destination,
            open_time=open_time,
            init_quote_amount=quote_raw,
            init_base_amount=base_amount,
        ))
        if use_sol_balance:
            instructions.append(unwrap_sol_instruction(owner_pubkey, owner_quote_account))

        blockhash = await ledger.get_latest_blockhash(ledger.commitment)
        tx = build_unsigned_v0(owner_pubkey, instructions, blockhash)
    except Exception as e:
        logger.error(f"Create pool: {e}")
        return TxResult.fail(SplError.FAIL)

    logger.info(f"Create pool: built transaction for pool {keys.id}")
    return TxResult(result=SplError.OK, value=[tx])
