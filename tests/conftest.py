"""Shared fakes and fixtures for the launch toolkit tests."""
from types import SimpleNamespace

import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from jitokit.execution.solana_tx_builder import build_unsigned_v0


def make_unsigned_tx(payer: Keypair, lamports: int = 1_000, blockhash: Hash = None):
    """Unsigned V0 transfer from `payer`; lamports make each message distinct."""
    ix = transfer(TransferParams(
        from_pubkey=payer.pubkey(),
        to_pubkey=Pubkey.new_unique(),
        lamports=lamports,
    ))
    return build_unsigned_v0(payer.pubkey(), [ix], blockhash or Hash.default())


def secret_of(keypair: Keypair) -> str:
    return base58.b58encode(bytes(keypair)).decode()


class FakeRelay:
    """In-memory relay: records bundles, lets tests publish verdicts and errors per bundle."""

    def __init__(self, tip_accounts=None, on_send=None):
        self.tip_accounts = tip_accounts or [Pubkey.new_unique(), Pubkey.new_unique()]
        self.on_send = on_send
        self.handlers = {}
        self.sent = []
        self.closed = False

    async def get_tip_accounts(self):
        return self.tip_accounts

    def on_bundle_result(self, bundle_id, push_handler, error_handler):
        pair = (push_handler, error_handler)
        self.handlers.setdefault(bundle_id, []).append(pair)

        def unsubscribe():
            pairs = self.handlers.get(bundle_id, [])
            if pair in pairs:
                pairs.remove(pair)
            if not pairs:
                self.handlers.pop(bundle_id, None)

        return unsubscribe

    async def send_bundle(self, bundle):
        self.sent.append(bundle)
        if self.on_send:
            self.on_send(self)
        return "bundle-1"

    def _handlers_for(self, bundle_id):
        if bundle_id is None:
            bundle_id = self.sent[-1].bundle_id
        return list(self.handlers.get(bundle_id, []))

    def push(self, verdict, bundle_id=None):
        """Publish to `bundle_id`, or to the last sent bundle."""
        for push_handler, _ in self._handlers_for(bundle_id):
            push_handler(verdict)

    def fail(self, error, bundle_id=None):
        for _, error_handler in self._handlers_for(bundle_id):
            error_handler(error)

    async def close(self):
        self.closed = True


class FakeLedger:
    """In-memory ledger for the bundle confirmation race."""

    commitment = "confirmed"

    def __init__(self, status=None, status_error=None):
        self.blockhash = Hash.new_unique()
        self.blockhash_calls = 0
        self.status = status
        self.status_error = status_error
        self.status_calls = []

    async def get_latest_blockhash(self, commitment=None):
        self.blockhash_calls += 1
        return self.blockhash

    async def get_signature_status(self, signature, search_history=True):
        self.status_calls.append((signature, search_history))
        if self.status_error is not None:
            raise self.status_error
        return self.status


def confirmed_status():
    return SimpleNamespace(confirmation_status="confirmed", err=None)


@pytest.fixture
def owner():
    return Keypair()


@pytest.fixture
def buyer():
    return Keypair()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def ledger():
    return FakeLedger()
