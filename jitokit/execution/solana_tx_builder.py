"""
Solana Instruction Builders
===========================

Hand-built instructions for the launch flow:
- Raydium AMM V4: initialize2 (create pool), swapBaseIn
- OpenBook (Serum V3): InitializeMarket
- Metaplex Token Metadata: CreateMetadataAccountV3
- Associated Token Account: create idempotent

Requirements:
    pip install solana solders
"""

import struct
from typing import List, Sequence

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID, TransferParams, transfer
from solders.sysvar import RENT
from solders.transaction import VersionedTransaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import CloseAccountParams, SyncNativeParams, close_account, sync_native

from ..models import PoolKeys


# Metaplex Token Metadata program
METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")

# Raydium AMM V4 instruction tags
RAYDIUM_INITIALIZE2 = 1
RAYDIUM_SWAP_BASE_IN = 9
AMM_CONFIG_SEED = b"amm_config_account_seed"

# Metaplex instruction tags
CREATE_METADATA_ACCOUNT_V3 = 33

# ATA program: CreateIdempotent
ATA_CREATE_IDEMPOTENT = 1

# OpenBook account sizes
MARKET_STATE_SIZE = 388
TOKEN_ACCOUNT_SIZE = 165
MINT_ACCOUNT_SIZE = 82
EVENT_QUEUE_ITEMS = 128
REQUEST_QUEUE_ITEMS = 63
ORDERBOOK_ITEMS = 201
QUEUE_HEADER_SIZE = 44 + 48


def event_queue_space(items: int = EVENT_QUEUE_ITEMS) -> int:
    return items * 88 + QUEUE_HEADER_SIZE


def request_queue_space(items: int = REQUEST_QUEUE_ITEMS) -> int:
    return items * 80 + QUEUE_HEADER_SIZE


def orderbook_space(items: int = ORDERBOOK_ITEMS) -> int:
    return items * 80 + QUEUE_HEADER_SIZE


def derive_metadata_pda(mint: Pubkey) -> Pubkey:
    """Metaplex metadata account for a mint."""
    pda, _ = Pubkey.find_program_address(
        [b"metadata", bytes(METADATA_PROGRAM_ID), bytes(mint)],
        METADATA_PROGRAM_ID,
    )
    return pda


def derive_amm_config(program_id: Pubkey) -> Pubkey:
    pda, _ = Pubkey.find_program_address([AMM_CONFIG_SEED], program_id)
    return pda


def _borsh_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


def build_unsigned_v0(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    recent_blockhash: Hash,
) -> VersionedTransaction:
    """
    Compile a V0 transaction with empty signature slots.

    The bundle coordinator restamps the blockhash and signs it later.
    """
    message = MessageV0.try_compile(payer, list(instructions), [], recent_blockhash)
    placeholders = [Signature.default()] * message.header.num_required_signatures
    return VersionedTransaction.populate(message, placeholders)


def create_idempotent_ata_instruction(payer: Pubkey, owner: Pubkey, mint: Pubkey, ata: Pubkey) -> Instruction:
    """
    Create an associated token account, no-op if it already exists.

    Account layout (6 accounts):
        0: payer (signer, write)
        1: associated account (write)
        2: owner (read)
        3: mint (read)
        4: systemProgram (read)
        5: tokenProgram (read)
    """
    accounts = [
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(ata, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=False, is_writable=False),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, bytes([ATA_CREATE_IDEMPOTENT]), accounts)


def wrap_sol_instructions(owner: Pubkey, wsol_mint: Pubkey, wsol_account: Pubkey, lamports: int) -> List[Instruction]:
    """Create the owner's WSOL account if needed and fund it with `lamports`."""
    instructions = [create_idempotent_ata_instruction(owner, owner, wsol_mint, wsol_account)]
    if lamports > 0:
        instructions.append(transfer(TransferParams(
            from_pubkey=owner,
            to_pubkey=wsol_account,
            lamports=lamports,
        )))
        instructions.append(sync_native(SyncNativeParams(
            program_id=TOKEN_PROGRAM_ID,
            account=wsol_account,
        )))
    return instructions


def unwrap_sol_instruction(owner: Pubkey, wsol_account: Pubkey) -> Instruction:
    """Close the WSOL account, returning its lamports to the owner."""
    return close_account(CloseAccountParams(
        program_id=TOKEN_PROGRAM_ID,
        account=wsol_account,
        dest=owner,
        owner=owner,
    ))


class RaydiumInstructionBuilder:
    """
    Build Raydium AMM V4 instructions.

    Account layout for INITIALIZE2 (21 accounts):
        0: tokenProgram            11: poolPcVault (write)
        1: associatedTokenProgram  12: targetOrders (write)
        2: systemProgram           13: ammConfig
        3: rent                    14: feeDestination (write)
        4: amm (write)             15: marketProgram
        5: ammAuthority            16: market
        6: openOrders (write)      17: userWallet (signer, write)
        7: lpMint (write)          18: userCoinToken (write)
        8: coinMint                19: userPcToken (write)
        9: pcMint                  20: userLpToken (write)
        10: poolCoinVault (write)

    Account layout for SWAP_BASE_IN (18 accounts):
        0: tokenProgram            9: marketBids (write)
        1: amm (write)             10: marketAsks (write)
        2: ammAuthority            11: marketEventQueue (write)
        3: openOrders (write)      12: marketBaseVault (write)
        4: targetOrders (write)    13: marketQuoteVault (write)
        5: poolCoinVault (write)   14: marketAuthority
        6: poolPcVault (write)     15: userSource (write)
        7: marketProgram           16: userDestination (write)
        8: market (write)          17: userOwner (signer)
    """

    @staticmethod
    def build_initialize2_instruction(
        keys: PoolKeys,
        owner: Pubkey,
        owner_base_account: Pubkey,
        owner_quote_account: Pubkey,
        owner_lp_account: Pubkey,
        fee_destination: Pubkey,
        open_time: int,
        init_quote_amount: int,
        init_base_amount: int,
    ) -> Instruction:
        # Instruction data: tag (u8) + nonce (u8) + openTime (u64) + initPc (u64) + initCoin (u64)
        data = struct.pack(
            "<BBQQQ",
            RAYDIUM_INITIALIZE2,
            keys.nonce,
            open_time,
            init_quote_amount,
            init_base_amount,
        )

        accounts = [
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
            AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, False, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
            AccountMeta(RENT, False, False),
            AccountMeta(keys.id, False, True),
            AccountMeta(keys.authority, False, False),
            AccountMeta(keys.open_orders, False, True),
            AccountMeta(keys.lp_mint, False, True),
            AccountMeta(keys.base_mint, False, False),
            AccountMeta(keys.quote_mint, False, False),
            AccountMeta(keys.base_vault, False, True),
            AccountMeta(keys.quote_vault, False, True),
            AccountMeta(keys.target_orders, False, True),
            AccountMeta(derive_amm_config(keys.program_id), False, False),
            AccountMeta(fee_destination, False, True),
            AccountMeta(keys.market_program_id, False, False),
            AccountMeta(keys.market_id, False, False),
            AccountMeta(owner, True, True),
            AccountMeta(owner_base_account, False, True),
            AccountMeta(owner_quote_account, False, True),
            AccountMeta(owner_lp_account, False, True),
        ]

        return Instruction(keys.program_id, data, accounts)

    @staticmethod
    def build_swap_base_in_instruction(
        keys: PoolKeys,
        owner: Pubkey,
        source: Pubkey,
        destination: Pubkey,
        amount_in: int,
        min_amount_out: int,
    ) -> Instruction:
        if not keys.has_market_accounts:
            raise ValueError(f"Pool keys for {keys.id} are missing market accounts")

        # Instruction data: tag (u8) + amountIn (u64) + minAmountOut (u64)
        data = struct.pack("<BQQ", RAYDIUM_SWAP_BASE_IN, amount_in, min_amount_out)

        accounts = [
            AccountMeta(TOKEN_PROGRAM_ID, False, False),
            AccountMeta(keys.id, False, True),
            AccountMeta(keys.authority, False, False),
            AccountMeta(keys.open_orders, False, True),
            AccountMeta(keys.target_orders, False, True),
            AccountMeta(keys.base_vault, False, True),
            AccountMeta(keys.quote_vault, False, True),
            AccountMeta(keys.market_program_id, False, False),
            AccountMeta(keys.market_id, False, True),
            AccountMeta(keys.market_bids, False, True),
            AccountMeta(keys.market_asks, False, True),
            AccountMeta(keys.market_event_queue, False, True),
            AccountMeta(keys.market_base_vault, False, True),
            AccountMeta(keys.market_quote_vault, False, True),
            AccountMeta(keys.market_authority, False, False),
            AccountMeta(source, False, True),
            AccountMeta(destination, False, True),
            AccountMeta(owner, True, False),
        ]

        return Instruction(keys.program_id, data, accounts)


class OpenBookInstructionBuilder:
    """
    Build the OpenBook InitializeMarket instruction.

    Account layout (10 accounts):
        0: market (write)        5: baseVault (write)
        1: requestQueue (write)  6: quoteVault (write)
        2: eventQueue (write)    7: baseMint
        3: bids (write)          8: quoteMint
        4: asks (write)          9: rent
    """

    @staticmethod
    def build_initialize_market_instruction(
        program_id: Pubkey,
        market: Pubkey,
        request_queue: Pubkey,
        event_queue: Pubkey,
        bids: Pubkey,
        asks: Pubkey,
        base_vault: Pubkey,
        quote_vault: Pubkey,
        base_mint: Pubkey,
        quote_mint: Pubkey,
        base_lot_size: int,
        quote_lot_size: int,
        fee_rate_bps: int,
        vault_signer_nonce: int,
        quote_dust_threshold: int,
    ) -> Instruction:
        # version (u8) + instruction (u32) + lots (u64, u64) + fee (u16) + nonce (u64) + dust (u64)
        data = struct.pack(
            "<BIQQHQQ",
            0,
            0,
            base_lot_size,
            quote_lot_size,
            fee_rate_bps,
            vault_signer_nonce,
            quote_dust_threshold,
        )

        accounts = [
            AccountMeta(market, False, True),
            AccountMeta(request_queue, False, True),
            AccountMeta(event_queue, False, True),
            AccountMeta(bids, False, True),
            AccountMeta(asks, False, True),
            AccountMeta(base_vault, False, True),
            AccountMeta(quote_vault, False, True),
            AccountMeta(base_mint, False, False),
            AccountMeta(quote_mint, False, False),
            AccountMeta(RENT, False, False),
        ]

        return Instruction(program_id, data, accounts)


class MetadataInstructionBuilder:
    """
    Build Metaplex CreateMetadataAccountV3.

    Account layout (7 accounts):
        0: metadata (write)
        1: mint
        2: mintAuthority (signer)
        3: payer (signer, write)
        4: updateAuthority
        5: systemProgram
        6: rent
    """

    @staticmethod
    def build_create_metadata_instruction(
        mint: Pubkey,
        authority: Pubkey,
        name: str,
        symbol: str,
        uri: str,
        seller_fee_basis_points: int = 0,
        is_mutable: bool = True,
    ) -> Instruction:
        # DataV2 with no creators, collection or uses; no collection details
        data = bytes([CREATE_METADATA_ACCOUNT_V3])
        data += _borsh_string(name)
        data += _borsh_string(symbol)
        data += _borsh_string(uri)
        data += struct.pack("<H", seller_fee_basis_points)
        data += bytes([0, 0, 0])
        data += struct.pack("<?", is_mutable)
        data += bytes([0])

        accounts = [
            AccountMeta(derive_metadata_pda(mint), False, True),
            AccountMeta(mint, False, False),
            AccountMeta(authority, True, False),
            AccountMeta(authority, True, True),
            AccountMeta(authority, False, False),
            AccountMeta(SYSTEM_PROGRAM_ID, False, False),
            AccountMeta(RENT, False, False),
        ]

        return Instruction(METADATA_PROGRAM_ID, data, accounts)


def decode_raydium_instruction(data: bytes) -> dict:
    """
    Decode Raydium AMM V4 instruction data built by this module.

    Returns:
        Decoded instruction details
    """
    if not data:
        return {"type": "unknown", "error": "empty data"}

    tag = data[0]

    if tag == RAYDIUM_INITIALIZE2 and len(data) >= 26:
        _, nonce, open_time, init_pc, init_coin = struct.unpack_from("<BBQQQ", data)
        return {
            "type": "initialize2",
            "nonce": nonce,
            "open_time": open_time,
            "init_pc_amount": init_pc,
            "init_coin_amount": init_coin,
        }

    if tag == RAYDIUM_SWAP_BASE_IN and len(data) >= 17:
        _, amount_in, min_out = struct.unpack_from("<BQQ", data)
        return {
            "type": "swap_base_in",
            "amount_in": amount_in,
            "min_amount_out": min_out,
        }

    return {"type": "unknown", "tag": tag}
