"""
Bundle Coordinator
==================

Stamps, signs and submits an ordered set of transactions as one atomic
Jito bundle (plus a tip transaction), then races four confirmation
sources into a single future:

    relay push     rejection classified by message
    relay error    transport failure -> unconfirmed
    ledger poll    tip transaction status every 2 s
    deadline       20 s -> unconfirmed

The first source to settle decides the outcome; later ones are dropped.

Usage:
    coordinator = BundleCoordinator(ledger, relay)
    ok = await coordinator.submit_bundle(entries, tip_lamports=10_000, fee_payer=owner)
"""

import asyncio
import logging
from typing import Callable, Optional, Sequence

from solana.rpc.commitment import Finalized
from solders.keypair import Keypair
from solders.signature import Signature

from ..models import BundleEntry, BundleOutcome, BundleVerdict
from .jito_client import MAX_BUNDLE_TRANSACTIONS, Bundle, JitoRelayClient
from .ledger import LedgerClient
from .transaction_helper import sign_transaction, stamp_blockhash

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0       # seconds
CONFIRM_TIMEOUT = 20.0    # seconds
FAILURE_BACKOFF = 10.0    # seconds

TERMINAL_MARKERS = ("custom program error", "Error processing Instruction")
RECOVERABLE_MARKERS = ("already been processed", "Bundle partially processed")


def classify_verdict(verdict: BundleVerdict) -> Optional[BundleOutcome]:
    """
    Map a relay verdict to an outcome, or None to keep waiting.

    Accepted verdicts are left to the ledger poll.
    """
    if verdict.rejected is None:
        return None

    messages = verdict.rejected.messages
    if any(marker in message for message in messages for marker in TERMINAL_MARKERS):
        return BundleOutcome.REJECTED_TERMINAL
    if any(marker in message for message in messages for marker in RECOVERABLE_MARKERS):
        return BundleOutcome.REJECTED_RECOVERABLE
    return None


class BundleCoordinator:
    """
    Submit bundles and wait for a confirmation verdict.

    False from submit_bundle means "unconfirmed", not "did not land".
    """

    def __init__(
        self,
        ledger: LedgerClient,
        relay: JitoRelayClient,
        bundle_limit: int = MAX_BUNDLE_TRANSACTIONS,
        poll_interval: float = POLL_INTERVAL,
        timeout: float = CONFIRM_TIMEOUT,
        failure_backoff: float = FAILURE_BACKOFF,
    ):
        self.ledger = ledger
        self.relay = relay
        self.bundle_limit = bundle_limit
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.failure_backoff = failure_backoff

    async def submit_bundle(
        self,
        entries: Sequence[BundleEntry],
        tip_lamports: int,
        fee_payer: Keypair,
    ) -> bool:
        outcome = await self.submit(entries, tip_lamports, fee_payer)
        return outcome.succeeded

    async def submit(
        self,
        entries: Sequence[BundleEntry],
        tip_lamports: int,
        fee_payer: Keypair,
    ) -> BundleOutcome:
        """
        Stamp, sign and send `entries` plus a tip transaction.

        Each entry's transaction is replaced by its signed copy.

        Returns:
            The first settled BundleOutcome.
        """
        loop = asyncio.get_running_loop()
        result: asyncio.Future = loop.create_future()

        def settle(outcome: BundleOutcome):
            if not result.done():
                result.set_result(outcome)

        def on_verdict(verdict: BundleVerdict):
            logger.debug(f"Bundle verdict: {verdict.to_dict()}")
            outcome = classify_verdict(verdict)
            if outcome is not None:
                settle(outcome)

        def on_error(error: Exception):
            logger.error(f"Bundle error: {error}")
            settle(BundleOutcome.FAILED)

        unsubscribe: Optional[Callable[[], None]] = None
        try:
            tip_accounts = await self.relay.get_tip_accounts()
            tip_account = tip_accounts[0]
            blockhash = await self.ledger.get_latest_blockhash(Finalized)

            bundle = Bundle(max_transactions=self.bundle_limit)
            for entry in entries:
                entry.transaction = sign_transaction(
                    entry.signer,
                    stamp_blockhash(entry.transaction, blockhash),
                )
                bundle.add_transactions(entry.transaction)
            bundle.add_tip_tx(fee_payer, tip_lamports, tip_account, blockhash)

            unsubscribe = self.relay.on_bundle_result(bundle.bundle_id, on_verdict, on_error)
            await self.relay.send_bundle(bundle)
        except Exception as e:
            logger.error(f"Creating and sending bundle failed: {e}")
            if unsubscribe is not None:
                unsubscribe()
            await asyncio.sleep(self.failure_backoff)
            return BundleOutcome.FAILED

        tip_signature = bundle.transactions[-1].signatures[0]
        poll_task = asyncio.create_task(self._poll_status(tip_signature, settle))
        deadline = loop.call_later(self.timeout, settle, BundleOutcome.TIMED_OUT)

        try:
            outcome = await result
        finally:
            deadline.cancel()
            poll_task.cancel()
            unsubscribe()

        logger.info(f"Bundle outcome: {outcome.value}")
        return outcome

    async def _poll_status(self, signature: Signature, settle: Callable[[BundleOutcome], None]):
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                status = await self.ledger.get_signature_status(signature, search_history=True)
            except Exception as e:
                logger.error(f"Signature status check failed: {e}")
                settle(BundleOutcome.FAILED)
                return

            if status is not None and status.confirmation_status is not None:
                settle(BundleOutcome.CONFIRMED)
                return
