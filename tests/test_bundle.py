"""Tests for the bundle coordinator and its confirmation race."""
import asyncio
import time

import pytest
from solders.keypair import Keypair
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import VersionedTransaction

from jitokit.execution.bundle import (
    CONFIRM_TIMEOUT,
    FAILURE_BACKOFF,
    POLL_INTERVAL,
    BundleCoordinator,
    classify_verdict,
)
from jitokit.execution.jito_client import MAX_BUNDLE_TRANSACTIONS
from jitokit.models import BundleEntry, BundleOutcome, BundleRejection, BundleVerdict

from conftest import FakeLedger, FakeRelay, confirmed_status, make_unsigned_tx


def make_coordinator(ledger, relay, **overrides):
    params = dict(poll_interval=0.02, timeout=0.3, failure_backoff=0.01)
    params.update(overrides)
    return BundleCoordinator(ledger, relay, **params)


def make_entries(count=2):
    entries = []
    for i in range(count):
        signer = Keypair()
        entries.append(BundleEntry(transaction=make_unsigned_tx(signer, lamports=1_000 + i), signer=signer))
    return entries


def rejection(simulation_failure=None, dropped=None):
    return BundleVerdict(
        bundle_id="bundle-1",
        rejected=BundleRejection(simulation_failure=simulation_failure, dropped=dropped),
    )


# ============ Verdict classification ============


def test_classify_terminal_rejections():
    assert classify_verdict(rejection("Transaction simulation failed: custom program error: 0x1")) \
        == BundleOutcome.REJECTED_TERMINAL
    assert classify_verdict(rejection("Error processing Instruction 2: invalid account data")) \
        == BundleOutcome.REJECTED_TERMINAL


def test_classify_recoverable_rejections():
    assert classify_verdict(rejection("This transaction has already been processed")) \
        == BundleOutcome.REJECTED_RECOVERABLE
    assert classify_verdict(rejection(dropped="Bundle partially processed")) \
        == BundleOutcome.REJECTED_RECOVERABLE


def test_classify_ignores_unknown_and_accepted():
    assert classify_verdict(rejection("bundle auction lost")) is None
    assert classify_verdict(rejection()) is None
    assert classify_verdict(BundleVerdict(bundle_id="bundle-1", accepted=True, slot=42)) is None


# ============ Bundle construction ============


@pytest.mark.asyncio
async def test_bundle_has_entries_plus_tip_last(owner):
    ledger = FakeLedger(status=confirmed_status())
    relay = FakeRelay()
    entries = make_entries(3)

    ok = await make_coordinator(ledger, relay).submit_bundle(entries, 10_000, owner)

    assert ok is True
    bundle = relay.sent[0]
    assert len(bundle.transactions) == len(entries) + 1
    assert bundle.transactions[:3] == [entry.transaction for entry in entries]

    tip_tx = bundle.transactions[-1]
    keys = tip_tx.message.account_keys
    assert keys[0] == owner.pubkey()
    assert relay.tip_accounts[0] in keys
    assert SYSTEM_PROGRAM_ID in keys


@pytest.mark.asyncio
async def test_single_blockhash_applied_to_every_transaction(owner):
    ledger = FakeLedger(status=confirmed_status())
    relay = FakeRelay()

    await make_coordinator(ledger, relay).submit_bundle(make_entries(2), 5_000, owner)

    assert ledger.blockhash_calls == 1
    for tx in relay.sent[0].transactions:
        assert tx.message.recent_blockhash == ledger.blockhash


@pytest.mark.asyncio
async def test_entries_are_replaced_by_signed_transactions(owner):
    ledger = FakeLedger(status=confirmed_status())
    entries = make_entries(2)

    await make_coordinator(ledger, FakeRelay()).submit_bundle(entries, 5_000, owner)

    for entry in entries:
        expected = VersionedTransaction(entry.transaction.message, [entry.signer])
        assert entry.transaction.signatures[0] == expected.signatures[0]
        assert entry.transaction.message.recent_blockhash == ledger.blockhash


@pytest.mark.asyncio
async def test_too_many_entries_fails_without_sending(owner):
    ledger = FakeLedger(status=confirmed_status())
    relay = FakeRelay()

    outcome = await make_coordinator(ledger, relay).submit(make_entries(5), 5_000, owner)

    assert outcome == BundleOutcome.FAILED
    assert relay.sent == []
    assert relay.handlers == {}


@pytest.mark.asyncio
async def test_empty_entries_send_tip_only_bundle(owner):
    ledger = FakeLedger(status=confirmed_status())
    relay = FakeRelay()

    outcome = await make_coordinator(ledger, relay, timeout=5).submit([], 5_000, owner)

    assert outcome == BundleOutcome.CONFIRMED
    [tip_tx] = relay.sent[0].transactions
    assert tip_tx.message.account_keys[0] == owner.pubkey()
    assert ledger.status_calls[0][0] == tip_tx.signatures[0]


def test_default_timings_and_limit():
    assert POLL_INTERVAL == 2.0
    assert CONFIRM_TIMEOUT == 20.0
    assert FAILURE_BACKOFF == 10.0
    assert MAX_BUNDLE_TRANSACTIONS == 5

    coordinator = BundleCoordinator(FakeLedger(), FakeRelay())

    assert coordinator.poll_interval == POLL_INTERVAL
    assert coordinator.timeout == CONFIRM_TIMEOUT
    assert coordinator.failure_backoff == FAILURE_BACKOFF
    assert coordinator.bundle_limit == MAX_BUNDLE_TRANSACTIONS


@pytest.mark.asyncio
async def test_tip_account_failure_backs_off_and_fails(owner):
    ledger = FakeLedger()
    relay = FakeRelay()

    async def broken():
        raise ConnectionError("block engine unreachable")

    relay.get_tip_accounts = broken
    start = time.monotonic()
    ok = await make_coordinator(ledger, relay, failure_backoff=0.05).submit_bundle(make_entries(1), 5_000, owner)

    assert ok is False
    assert time.monotonic() - start >= 0.04
    assert relay.sent == []


# ============ Confirmation race ============


@pytest.mark.asyncio
async def test_times_out_without_any_signal(owner):
    ledger = FakeLedger(status=None)
    start = time.monotonic()

    outcome = await make_coordinator(ledger, FakeRelay(), timeout=0.2).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.TIMED_OUT
    assert outcome.succeeded is False
    assert time.monotonic() - start >= 0.15


@pytest.mark.asyncio
async def test_terminal_rejection_resolves_false_immediately(owner):
    relay = FakeRelay(on_send=lambda r: r.push(rejection("Program failed: custom program error: 0x26")))
    start = time.monotonic()

    ok = await make_coordinator(FakeLedger(), relay, timeout=5).submit_bundle(make_entries(1), 5_000, owner)

    assert ok is False
    assert time.monotonic() - start < 1


@pytest.mark.asyncio
async def test_recoverable_rejection_resolves_true(owner):
    relay = FakeRelay(on_send=lambda r: r.push(rejection("This transaction has already been processed")))

    ok = await make_coordinator(FakeLedger(), relay, timeout=5).submit_bundle(make_entries(1), 5_000, owner)

    assert ok is True


@pytest.mark.asyncio
async def test_partially_processed_drop_resolves_true(owner):
    relay = FakeRelay(on_send=lambda r: r.push(rejection(dropped="Bundle partially processed")))

    outcome = await make_coordinator(FakeLedger(), relay, timeout=5).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.REJECTED_RECOVERABLE


@pytest.mark.asyncio
async def test_unclassified_rejection_keeps_waiting(owner):
    relay = FakeRelay(on_send=lambda r: r.push(rejection("state auction bid rejected")))

    outcome = await make_coordinator(FakeLedger(), relay, timeout=0.2).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.TIMED_OUT


@pytest.mark.asyncio
async def test_accepted_verdict_is_left_to_the_poll(owner):
    relay = FakeRelay(on_send=lambda r: r.push(BundleVerdict(bundle_id="bundle-1", accepted=True, slot=7)))

    outcome = await make_coordinator(FakeLedger(), relay, timeout=0.2).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.TIMED_OUT


@pytest.mark.asyncio
async def test_relay_error_resolves_false(owner):
    relay = FakeRelay(on_send=lambda r: r.fail(ConnectionResetError("stream closed")))

    outcome = await make_coordinator(FakeLedger(), relay, timeout=5).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.FAILED


@pytest.mark.asyncio
async def test_poll_confirms_tip_signature(owner):
    ledger = FakeLedger(status=confirmed_status())
    relay = FakeRelay()

    outcome = await make_coordinator(ledger, relay, timeout=5).submit(make_entries(2), 5_000, owner)

    assert outcome == BundleOutcome.CONFIRMED
    tip_signature = relay.sent[0].transactions[-1].signatures[0]
    assert ledger.status_calls[0] == (tip_signature, True)


@pytest.mark.asyncio
async def test_status_without_confirmation_level_keeps_polling(owner):
    from types import SimpleNamespace

    ledger = FakeLedger(status=SimpleNamespace(confirmation_status=None, err=None))

    outcome = await make_coordinator(ledger, FakeRelay(), timeout=0.2).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.TIMED_OUT
    assert len(ledger.status_calls) > 1


@pytest.mark.asyncio
async def test_poll_exception_fails_without_retry(owner):
    ledger = FakeLedger(status_error=RuntimeError("rpc down"))

    outcome = await make_coordinator(ledger, FakeRelay(), timeout=5).submit(make_entries(1), 5_000, owner)

    assert outcome == BundleOutcome.FAILED
    assert len(ledger.status_calls) == 1


@pytest.mark.asyncio
async def test_first_settled_signal_wins(owner):
    def push_twice(r):
        r.push(rejection("This transaction has already been processed"))
        r.push(rejection("custom program error: 0x1"))

    relay = FakeRelay(on_send=push_twice)

    ok = await make_coordinator(FakeLedger(), relay, timeout=5).submit_bundle(make_entries(1), 5_000, owner)

    assert ok is True


@pytest.mark.asyncio
async def test_handlers_unregistered_and_poll_stopped(owner):
    ledger = FakeLedger(status=None)
    relay = FakeRelay(on_send=lambda r: r.push(rejection("custom program error")))

    await make_coordinator(ledger, relay, timeout=5).submit(make_entries(1), 5_000, owner)
    calls = len(ledger.status_calls)
    await asyncio.sleep(0.1)

    assert relay.handlers == {}
    assert len(ledger.status_calls) == calls


@pytest.mark.asyncio
async def test_verdict_for_earlier_bundle_does_not_settle_later_one(owner):
    def late_verdict_for_first_bundle(r):
        if len(r.sent) == 2:
            r.push(rejection("Error processing Instruction 0"), bundle_id=r.sent[0].bundle_id)
            r.fail(ConnectionResetError("stream closed"), bundle_id=r.sent[0].bundle_id)

    ledger = FakeLedger(status=confirmed_status())
    relay = FakeRelay(on_send=late_verdict_for_first_bundle)
    coordinator = make_coordinator(ledger, relay, timeout=5)

    first = await coordinator.submit(make_entries(1), 5_000, owner)
    second = await coordinator.submit(make_entries(1), 5_000, owner)

    assert first == BundleOutcome.CONFIRMED
    assert second == BundleOutcome.CONFIRMED
    assert relay.sent[0].bundle_id != relay.sent[1].bundle_id


@pytest.mark.asyncio
async def test_handlers_registered_under_bundle_id(owner):
    seen = []
    relay = FakeRelay(on_send=lambda r: seen.append(list(r.handlers)))

    await make_coordinator(FakeLedger(status=confirmed_status()), relay, timeout=5).submit(
        make_entries(1), 5_000, owner
    )

    assert seen == [[relay.sent[0].bundle_id]]
