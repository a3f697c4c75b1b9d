"""Tests for the ledger wrapper around the Solana RPC client."""
import asyncio
import struct
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from solana.rpc.types import MemcmpOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from jitokit.execution.ledger import LedgerClient


def value(v):
    return SimpleNamespace(value=v)


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def ledger(client):
    return LedgerClient("https://rpc.example", client=client)


@pytest.mark.asyncio
async def test_latest_blockhash(ledger, client):
    blockhash = Hash.new_unique()
    client.get_latest_blockhash.return_value = value(SimpleNamespace(blockhash=blockhash))

    assert await ledger.get_latest_blockhash() == blockhash


@pytest.mark.asyncio
async def test_signature_status_searches_history(ledger, client):
    signature = Signature.new_unique()
    status = SimpleNamespace(confirmation_status="confirmed", err=None)
    client.get_signature_statuses.return_value = value([status])

    assert await ledger.get_signature_status(signature) is status
    client.get_signature_statuses.assert_awaited_once_with([signature], search_transaction_history=True)


@pytest.mark.asyncio
async def test_send_transaction_returns_signature(ledger, client):
    signature = Signature.new_unique()
    client.send_raw_transaction.return_value = value(signature)
    tx = b"\x01\x02"

    assert await ledger.send_transaction(tx) == signature
    assert client.send_raw_transaction.await_args.args[0] == tx


@pytest.mark.asyncio
async def test_confirm_transaction(ledger, client):
    client.confirm_transaction.return_value = value([SimpleNamespace(err=None)])
    assert await ledger.confirm_transaction(Signature.new_unique()) == (True, None)

    client.confirm_transaction.return_value = value([SimpleNamespace(err="InstructionError")])
    assert await ledger.confirm_transaction(Signature.new_unique()) == (False, "InstructionError")

    client.confirm_transaction.return_value = value([None])
    assert (await ledger.confirm_transaction(Signature.new_unique()))[0] is False


@pytest.mark.asyncio
async def test_confirm_transaction_timeout(ledger, client):
    async def never_confirms(*args):
        await asyncio.sleep(1)

    client.confirm_transaction.side_effect = never_confirms

    with pytest.raises(asyncio.TimeoutError):
        await ledger.confirm_transaction(Signature.new_unique(), timeout=0.01)


@pytest.mark.asyncio
async def test_mint_decimals(ledger, client):
    data = bytearray(82)
    data[44] = 9
    client.get_account_info.return_value = value(SimpleNamespace(data=bytes(data)))

    assert await ledger.get_mint_decimals(Pubkey.new_unique()) == 9

    client.get_account_info.return_value = value(None)
    with pytest.raises(ValueError):
        await ledger.get_mint_decimals(Pubkey.new_unique())


@pytest.mark.asyncio
async def test_token_accounts_are_decoded(ledger, client):
    mint = Pubkey.new_unique()
    account = Pubkey.new_unique()
    data = bytearray(165)
    data[0:32] = bytes(mint)
    struct.pack_into("<Q", data, 64, 123_456)
    keyed = SimpleNamespace(pubkey=account, account=SimpleNamespace(data=bytes(data), owner=Pubkey.new_unique()))
    client.get_token_accounts_by_owner.return_value = value([keyed])

    [parsed] = await ledger.get_token_accounts(Pubkey.new_unique())

    assert parsed.pubkey == account
    assert parsed.mint == mint
    assert parsed.amount == 123_456


@pytest.mark.asyncio
async def test_program_accounts_filters(ledger, client):
    program = Pubkey.new_unique()
    base = Pubkey.new_unique()
    address = Pubkey.new_unique()
    client.get_program_accounts.return_value = value([
        SimpleNamespace(pubkey=address, account=SimpleNamespace(data=b"\x00" * 388)),
    ])

    accounts = await ledger.get_program_accounts(program, 388, memcmp=[(53, base)])

    assert accounts == [(address, b"\x00" * 388)]
    filters = client.get_program_accounts.await_args.kwargs["filters"]
    assert filters == [388, MemcmpOpts(offset=53, bytes=str(base))]


@pytest.mark.asyncio
async def test_close(ledger, client):
    await ledger.close()
    client.close.assert_awaited_once()
