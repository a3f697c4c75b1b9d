"""
Transaction helpers: signer check, blockhash stamping, signing and
send-and-confirm with SplError codes.
"""

import asyncio
import logging
from typing import Iterable, List, Sequence

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction

from ..models import AnyTransaction, SplError
from .ledger import CONFIRM_TIMEOUT, LedgerClient

logger = logging.getLogger(__name__)


def check_transaction(signer: Keypair) -> bool:
    """Signer sanity check: non-empty public key and secret key."""
    if signer is None:
        return False
    return len(bytes(signer.pubkey())) > 0 and len(signer.secret()) > 0


def stamp_blockhash(tx: VersionedTransaction, recent_blockhash: Hash) -> VersionedTransaction:
    """Unsigned copy of `tx` whose message carries `recent_blockhash`."""
    msg = tx.message
    if isinstance(msg, MessageV0):
        stamped = MessageV0(
            msg.header,
            msg.account_keys,
            recent_blockhash,
            msg.instructions,
            msg.address_table_lookups,
        )
    else:
        stamped = Message.new_with_compiled_instructions(
            msg.header.num_required_signatures,
            msg.header.num_readonly_signed_accounts,
            msg.header.num_readonly_unsigned_accounts,
            msg.account_keys,
            recent_blockhash,
            msg.instructions,
        )
    placeholders = [Signature.default()] * msg.header.num_required_signatures
    return VersionedTransaction.populate(stamped, placeholders)


def sign_transaction(
    signer: Keypair,
    tx: VersionedTransaction,
    extra_signers: Sequence[Keypair] = (),
) -> VersionedTransaction:
    """Signed copy of `tx`; logged and returned unchanged when the signer check fails."""
    if not check_transaction(signer):
        logger.warning("Signer check failed, transaction left unsigned")
        return tx
    return VersionedTransaction(tx.message, [signer, *extra_signers])


def sign_transactions(signer: Keypair, txs: Iterable[AnyTransaction]) -> List[AnyTransaction]:
    """Sign every versioned transaction; legacy ones pass through untouched."""
    return [
        sign_transaction(signer, tx) if isinstance(tx, VersionedTransaction) else tx
        for tx in txs
    ]


async def send_and_confirm_transaction_with_check(
    ledger: LedgerClient,
    signer: Keypair,
    tx: AnyTransaction,
    extra_signers: Sequence[Keypair] = (),
    timeout: float = CONFIRM_TIMEOUT,
) -> SplError:
    """
    Sign, send and confirm one transaction.

    Legacy transactions are restamped with a fresh blockhash first.

    Returns:
        SplError.OK, CHECK_FAIL, SEND_TX_FAIL, CONFIRM_TX_FAIL or FAIL
    """
    try:
        if not check_transaction(signer):
            return SplError.CHECK_FAIL

        if isinstance(tx, Transaction):
            blockhash = await ledger.get_latest_blockhash(ledger.commitment)
            tx.sign([signer, *extra_signers], blockhash)
        else:
            tx = sign_transaction(signer, tx, extra_signers)

        signature = await ledger.send_transaction(tx)
        if signature is None:
            logger.error("Send transaction failed: no signature returned")
            return SplError.SEND_TX_FAIL

        confirmed, error = await ledger.confirm_transaction(signature, timeout=timeout)
        if not confirmed:
            logger.error(f"Confirm transaction failed: {error}")
            return SplError.CONFIRM_TX_FAIL

    except asyncio.TimeoutError:
        logger.error(f"Confirm transaction timed out after {timeout}s")
        return SplError.FAIL
    except Exception as e:
        logger.error(f"Confirm transaction failed: {e}")
        return SplError.FAIL

    return SplError.OK


async def send_and_confirm_transactions_with_check(
    ledger: LedgerClient,
    signer: Keypair,
    txs: Iterable[AnyTransaction],
) -> SplError:
    """Send transactions one by one; FAIL on the first one that does not confirm."""
    for tx in txs:
        result = await send_and_confirm_transaction_with_check(ledger, signer, tx)
        if result != SplError.OK:
            return SplError.FAIL
    return SplError.OK
