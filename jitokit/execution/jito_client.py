"""
Jito Relay Client
=================

Block-engine JSON-RPC client: tip accounts, bundle submission and bundle
result notifications.

The block engine's HTTP API has no push stream, so every sent bundle gets
a watcher task that polls getInflightBundleStatuses and publishes
BundleVerdict objects to the handlers registered for that bundle:

    Landed                 -> accepted verdict
    Failed / Invalid       -> rejected verdict (dropped)
    sendBundle RPC error   -> rejected verdict (simulation failure message)
    status RPC error       -> logged, watching stops
    transport error        -> error handler

Handlers are keyed by Bundle.bundle_id, the SHA-256 of the first
signature of every transaction, so they can be registered before the
bundle is sent.

Requirements:
    pip install aiohttp solders
"""

import asyncio
import base64
import hashlib
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import aiohttp
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from ..models import BundleRejection, BundleVerdict

logger = logging.getLogger(__name__)

BUNDLES_PATH = "/api/v1/bundles"
MAX_BUNDLE_TRANSACTIONS = 5

STATUS_INTERVAL = 1.0   # seconds between in-flight status polls
WATCH_TIMEOUT = 30.0    # stop watching a bundle after this long

PushHandler = Callable[[BundleVerdict], None]
ErrorHandler = Callable[[Exception], None]


class JitoRpcError(Exception):
    """JSON-RPC level error returned by the block engine."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class BundleSizeError(ValueError):
    """Raised when a bundle would exceed the relay's transaction limit."""


class Bundle:
    """
    Ordered transactions submitted atomically, tip transaction last.

    Example:
        bundle = Bundle(max_transactions=5)
        bundle.add_transactions(tx1, tx2)
        bundle.add_tip_tx(payer, 10_000, tip_account, blockhash)
    """

    def __init__(self, max_transactions: int = MAX_BUNDLE_TRANSACTIONS):
        self.max_transactions = max_transactions
        self.transactions: List[VersionedTransaction] = []

    def __len__(self) -> int:
        return len(self.transactions)

    def add_transactions(self, *transactions: VersionedTransaction) -> 'Bundle':
        if len(self.transactions) + len(transactions) > self.max_transactions:
            raise BundleSizeError(
                f"Bundle limit is {self.max_transactions} transactions, "
                f"got {len(self.transactions) + len(transactions)}"
            )
        self.transactions.extend(transactions)
        return self

    def add_tip_tx(
        self,
        payer: Keypair,
        lamports: int,
        tip_account: Pubkey,
        recent_blockhash: Hash,
    ) -> 'Bundle':
        """Append a SOL transfer to the tip account, signed by the payer."""
        ix = transfer(TransferParams(
            from_pubkey=payer.pubkey(),
            to_pubkey=tip_account,
            lamports=lamports,
        ))
        message = MessageV0.try_compile(payer.pubkey(), [ix], [], recent_blockhash)
        return self.add_transactions(VersionedTransaction(message, [payer]))

    @property
    def bundle_id(self) -> str:
        signatures = ",".join(str(tx.signatures[0]) for tx in self.transactions)
        return hashlib.sha256(signatures.encode()).hexdigest()

    def serialize(self) -> List[str]:
        return [base64.b64encode(bytes(tx)).decode() for tx in self.transactions]


class JitoRelayClient:
    """
    Low-level client for the Jito block engine.

    One session per process run; authenticated with the x-jito-auth UUID
    when one is configured.
    """

    def __init__(
        self,
        block_engine_url: str,
        auth_uuid: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        status_interval: float = STATUS_INTERVAL,
        watch_timeout: float = WATCH_TIMEOUT,
    ):
        self.endpoint = block_engine_url.rstrip("/")
        self.auth_uuid = auth_uuid
        self.status_interval = status_interval
        self.watch_timeout = watch_timeout
        self._session = session
        self._handlers: Dict[str, List[Tuple[PushHandler, ErrorHandler]]] = {}
        self._watchers: Set[asyncio.Task] = set()
        self._request_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.auth_uuid:
                headers["x-jito-auth"] = self.auth_uuid
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=10),
            )
        return self._session

    async def close(self):
        for task in list(self._watchers):
            task.cancel()
        if self._watchers:
            await asyncio.gather(*self._watchers, return_exceptions=True)
        if self._session and not self._session.closed:
            await self._session.close()

    async def _rpc(self, method: str, params: list) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        session = await self._get_session()
        async with session.post(f"{self.endpoint}{BUNDLES_PATH}", json=payload) as resp:
            data = await resp.json(content_type=None)

        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                raise JitoRpcError(error.get("message", str(error)), error.get("code"))
            raise JitoRpcError(str(error))
        return data.get("result")

    # ------------------------------------------------------------------
    # Relay API
    # ------------------------------------------------------------------

    async def get_tip_accounts(self) -> List[Pubkey]:
        result = await self._rpc("getTipAccounts", [])
        return [Pubkey.from_string(address) for address in result or []]

    async def get_inflight_bundle_statuses(self, bundle_ids: List[str]) -> List[Dict[str, Any]]:
        result = await self._rpc("getInflightBundleStatuses", [bundle_ids])
        if not result:
            return []
        return [status for status in result.get("value", []) if status]

    def on_bundle_result(
        self,
        bundle_id: str,
        push_handler: PushHandler,
        error_handler: ErrorHandler,
    ) -> Callable[[], None]:
        """
        Register handlers for one bundle's verdicts and transport errors.

        Args:
            bundle_id: Bundle.bundle_id of the bundle to follow

        Returns:
            Callable that unregisters both handlers.
        """
        pair = (push_handler, error_handler)
        self._handlers.setdefault(bundle_id, []).append(pair)

        def unsubscribe():
            pairs = self._handlers.get(bundle_id, [])
            if pair in pairs:
                pairs.remove(pair)
            if not pairs:
                self._handlers.pop(bundle_id, None)

        return unsubscribe

    async def send_bundle(self, bundle: Bundle) -> Optional[str]:
        """
        Submit a bundle and start watching it.

        Rejections and transport errors are delivered to the handlers
        registered for bundle.bundle_id, not raised.

        Returns:
            Relay bundle id, or None if the relay did not accept the submission.
        """
        key = bundle.bundle_id
        try:
            relay_id = await self._rpc("sendBundle", [bundle.serialize(), {"encoding": "base64"}])
        except JitoRpcError as e:
            logger.warning(f"Bundle rejected by relay: {e}")
            self._publish(key, BundleVerdict(
                bundle_id=key,
                rejected=BundleRejection(simulation_failure=str(e)),
            ))
            return None
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Relay transport error: {e}")
            self._publish_error(key, e)
            return None

        logger.info(f"Bundle sent: {relay_id}")
        task = asyncio.create_task(self._watch(key, relay_id))
        self._watchers.add(task)
        task.add_done_callback(self._watchers.discard)
        return relay_id

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _publish(self, bundle_id: str, verdict: BundleVerdict):
        for push_handler, _ in list(self._handlers.get(bundle_id, [])):
            push_handler(verdict)

    def _publish_error(self, bundle_id: str, error: Exception):
        for _, error_handler in list(self._handlers.get(bundle_id, [])):
            error_handler(error)

    async def _watch(self, key: str, relay_id: str):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.watch_timeout

        while loop.time() < deadline:
            await asyncio.sleep(self.status_interval)
            try:
                statuses = await self.get_inflight_bundle_statuses([relay_id])
            except JitoRpcError as e:
                logger.warning(f"Status query for bundle {relay_id} failed: {e}")
                return
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self._publish_error(key, e)
                return

            for status in statuses:
                state = status.get("status")
                if state == "Landed":
                    self._publish(key, BundleVerdict(
                        bundle_id=relay_id,
                        accepted=True,
                        slot=status.get("landed_slot"),
                    ))
                    return
                if state in ("Failed", "Invalid"):
                    self._publish(key, BundleVerdict(
                        bundle_id=relay_id,
                        rejected=BundleRejection(dropped=f"Bundle {state.lower()}"),
                    ))
                    return

        logger.debug(f"Stopped watching bundle {relay_id}")
