"""
Raydium V4 swaps against the quote token (WSOL is wrapped and unwrapped
inside the same transaction).
"""

import logging

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..config import WSOL_MINT, TokenInfo
from ..core.utility import get_ata_address, x_wei_amount
from ..execution.ledger import LedgerClient
from ..execution.solana_tx_builder import (
    RaydiumInstructionBuilder,
    build_unsigned_v0,
    create_idempotent_ata_instruction,
    unwrap_sol_instruction,
    wrap_sol_instructions,
)
from ..models import PoolKeys, SplError, TxResult

logger = logging.getLogger(__name__)

BUY_OUTPUT_HAIRCUT = 0.95


async def buy_token(
    ledger: LedgerClient,
    buyer: Keypair,
    mint_address: str,
    base_amount: float,
    quote_amount: float,
    pool_keys: PoolKeys,
    quote: TokenInfo,
) -> TxResult:
    """
    Swap `quote_amount` quote tokens for at least 95% of `base_amount` base tokens.

    Returns:
        TxResult whose value is [swap_tx] (unsigned, V0)
    """
    if not mint_address or base_amount <= 0:
        logger.error("Buy token: invalid argument")
        return TxResult.fail(SplError.INVALID_ARGUMENT)

    try:
        mint = Pubkey.from_string(mint_address)
        decimals = await ledger.get_mint_decimals(mint)
        amount_in = x_wei_amount(quote_amount, quote.decimals)
        min_amount_out = x_wei_amount(base_amount * BUY_OUTPUT_HAIRCUT, decimals)

        owner = buyer.pubkey()
        base_account = get_ata_address(owner, mint)
        quote_account = get_ata_address(owner, quote.mint)
        use_sol_balance = quote.address == WSOL_MINT

        instructions = [create_idempotent_ata_instruction(owner, owner, mint, base_account)]
        if use_sol_balance:
            instructions.extend(wrap_sol_instructions(owner, quote.mint, quote_account, amount_in))
        instructions.append(RaydiumInstructionBuilder.build_swap_base_in_instruction(
            keys=pool_keys,
            owner=owner,
            source=quote_account,
            destination=base_account,
            amount_in=amount_in,
            min_amount_out=min_amount_out,
        ))
        if use_sol_balance:
            instructions.append(unwrap_sol_instruction(owner, quote_account))

        blockhash = await ledger.get_latest_blockhash(ledger.commitment)
        tx = build_unsigned_v0(owner, instructions, blockhash)
    except Exception as e:
        logger.error(f"Buy token: {e}")
        return TxResult.fail(SplError.FAIL)

    return TxResult(result=SplError.OK, value=[tx])


async def sell_token(
    ledger: LedgerClient,
    seller: Keypair,
    mint_address: str,
    base_amount: float,
    min_quote_amount: float,
    pool_keys: PoolKeys,
    quote: TokenInfo,
) -> TxResult:
    """
    Swap `base_amount` base tokens for at least `min_quote_amount` quote tokens.

    Returns:
        TxResult whose value is [swap_tx] (unsigned, V0)
    """
    if not mint_address or base_amount <= 0:
        logger.error("Sell token: invalid argument")
        return TxResult.fail(SplError.INVALID_ARGUMENT)

    try:
        mint = Pubkey.from_string(mint_address)
        decimals = await ledger.get_mint_decimals(mint)
        amount_in = x_wei_amount(base_amount, decimals)
        min_amount_out = x_wei_amount(min_quote_amount, quote.decimals)

        owner = seller.pubkey()
        base_account = get_ata_address(owner, mint)
        quote_account = get_ata_address(owner, quote.mint)
        use_sol_balance = quote.address == WSOL_MINT

        instructions = [create_idempotent_ata_instruction(owner, owner, quote.mint, quote_account)]
        instructions.append(RaydiumInstructionBuilder.build_swap_base_in_instruction(
            keys=pool_keys,
            owner=owner,
            source=base_account,
            destination=quote_account,
            amount_in=amount_in,
            min_amount_out=min_amount_out,
        ))
        if use_sol_balance:
            instructions.append(unwrap_sol_instruction(owner, quote_account))

        blockhash = await ledger.get_latest_blockhash(ledger.commitment)
        tx = build_unsigned_v0(owner, instructions, blockhash)
    except Exception as e:
        logger.error(f"Sell token: {e}")
        return TxResult.fail(SplError.FAIL)

    return TxResult(result=SplError.OK, value=[tx])
