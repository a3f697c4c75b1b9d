"""
Create an SPL token: mint account, Metaplex metadata, full supply minted
to the owner's associated token account.
"""

import logging

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import InitializeMintParams, MintToParams, initialize_mint, mint_to

from ..core.utility import get_ata_address, x_wei_amount
from ..execution.ledger import LedgerClient
from ..execution.solana_tx_builder import (
    MINT_ACCOUNT_SIZE,
    MetadataInstructionBuilder,
    create_idempotent_ata_instruction,
)
from ..execution.transaction_helper import send_and_confirm_transaction_with_check
from ..models import SplError, TxResult

logger = logging.getLogger(__name__)


async def _create_mint(ledger: LedgerClient, owner: Keypair, decimals: int) -> Pubkey:
    mint = Keypair()
    lamports = await ledger.get_minimum_balance_for_rent_exemption(MINT_ACCOUNT_SIZE)

    tx = Transaction.new_with_payer(
        [
            create_account(CreateAccountParams(
                from_pubkey=owner.pubkey(),
                to_pubkey=mint.pubkey(),
                lamports=lamports,
                space=MINT_ACCOUNT_SIZE,
                owner=TOKEN_PROGRAM_ID,
            )),
            initialize_mint(InitializeMintParams(
                decimals=decimals,
                program_id=TOKEN_PROGRAM_ID,
                mint=mint.pubkey(),
                mint_authority=owner.pubkey(),
                freeze_authority=owner.pubkey(),
            )),
        ],
        owner.pubkey(),
    )

    result = await send_and_confirm_transaction_with_check(ledger, owner, tx, extra_signers=[mint])
    if result != SplError.OK:
        raise RuntimeError(f"create mint transaction failed ({result.name})")
    return mint.pubkey()


async def create_token_metadata(
    ledger: LedgerClient,
    owner: Keypair,
    mint: Pubkey,
    name: str,
    symbol: str,
    metadata_uri: str,
) -> SplError:
    try:
        ix = MetadataInstructionBuilder.build_create_metadata_instruction(
            mint=mint,
            authority=owner.pubkey(),
            name=name,
            symbol=symbol,
            uri=metadata_uri,
        )
        tx = Transaction.new_with_payer([ix], owner.pubkey())
        if await send_and_confirm_transaction_with_check(ledger, owner, tx) != SplError.OK:
            return SplError.FAIL
    except Exception as e:
        logger.error(f"Create token metadata failed: {e}")
        return SplError.FAIL

    return SplError.OK


async def total_supply_mint(
    ledger: LedgerClient,
    owner: Keypair,
    mint: Pubkey,
    decimals: int,
    total_supply: float,
) -> SplError:
    try:
        owner_account = get_ata_address(owner.pubkey(), mint)
        amount = x_wei_amount(total_supply, decimals)

        tx = Transaction.new_with_payer(
            [
                create_idempotent_ata_instruction(owner.pubkey(), owner.pubkey(), mint, owner_account),
                mint_to(MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    dest=owner_account,
                    mint_authority=owner.pubkey(),
                    amount=amount,
                )),
            ],
            owner.pubkey(),
        )
        if await send_and_confirm_transaction_with_check(ledger, owner, tx) != SplError.OK:
            logger.error("Total supply mint failed to mint to owner wallet")
            return SplError.TOTAL_MINT_FAIL
    except Exception as e:
        logger.error(f"Total supply mint failed: {e}")
        return SplError.TOTAL_MINT_FAIL

    return SplError.OK


async def create_token(
    ledger: LedgerClient,
    owner: Keypair,
    name: str,
    symbol: str,
    decimals: int,
    total_supply: float,
    metadata_uri: str,
    description: str = "",
) -> TxResult:
    """
    Create a token and mint its whole supply to the owner.

    Returns:
        TxResult whose value is the mint address on success
    """
    if not name or not symbol or not metadata_uri or decimals <= 0 or total_supply <= 0:
        logger.error("Create token: invalid argument")
        return TxResult.fail(SplError.INVALID_ARGUMENT)

    logger.info(
        f"Create token: name={name} symbol={symbol} decimals={decimals} "
        f"supply={total_supply} uri={metadata_uri} description={description!r}"
    )

    try:
        mint = await _create_mint(ledger, owner, decimals)
    except Exception as e:
        logger.error(f"Create token: failed to create mint: {e}")
        return TxResult.fail(SplError.FAIL)

    if await create_token_metadata(ledger, owner, mint, name, symbol, metadata_uri) != SplError.OK:
        logger.error("Create token: failed to create metadata")
        return TxResult.fail(SplError.CREATE_META_FAILED)

    if await total_supply_mint(ledger, owner, mint, decimals, total_supply) != SplError.OK:
        logger.error("Create token: failed to mint total supply")
        return TxResult.fail(SplError.TOTAL_MINT_FAIL)

    logger.info(f"Create token: mint address {mint}")
    return TxResult(result=SplError.OK, value=str(mint))
