"""
Ledger Client
=============

Thin capability wrapper over solana-py's AsyncClient: exactly the RPC
calls the launch flow makes, returning solders types.

Requirements:
    pip install solana solders
"""

import asyncio
import logging
import struct
from typing import List, Optional, Sequence, Tuple, Union

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized
from solana.rpc.types import MemcmpOpts, TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction, VersionedTransaction
from solders.transaction_status import TransactionStatus
from spl.token.constants import TOKEN_PROGRAM_ID

from ..models import WalletTokenAccount

logger = logging.getLogger(__name__)

CONFIRM_TIMEOUT = 90.0  # seconds

# SPL layouts
MINT_DECIMALS_OFFSET = 44
TOKEN_ACCOUNT_MINT_OFFSET = 0
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64


class LedgerClient:
    """
    Solana RPC capability used by the bundle coordinator and the operations.

    One instance (one HTTP connection pool) per process run.

    Example:
        ledger = LedgerClient("https://api.mainnet-beta.solana.com")
        blockhash = await ledger.get_latest_blockhash(Finalized)
        await ledger.close()
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: Commitment = Confirmed,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self._client = client or AsyncClient(rpc_url, commitment=commitment)

    @property
    def client(self) -> AsyncClient:
        return self._client

    async def close(self):
        await self._client.close()

    # ------------------------------------------------------------------
    # Recency and status
    # ------------------------------------------------------------------

    async def get_latest_blockhash(self, commitment: Commitment = Finalized) -> Hash:
        resp = await self._client.get_latest_blockhash(commitment)
        return resp.value.blockhash

    async def get_signature_status(
        self,
        signature: Signature,
        search_history: bool = True,
    ) -> Optional[TransactionStatus]:
        resp = await self._client.get_signature_statuses(
            [signature], search_transaction_history=search_history
        )
        if not resp.value:
            return None
        return resp.value[0]

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_transaction(
        self,
        tx: Union[VersionedTransaction, Transaction],
        skip_preflight: bool = False,
    ) -> Optional[Signature]:
        """Send an already-signed transaction, return its signature (None if the node returned none)."""
        resp = await self._client.send_raw_transaction(
            bytes(tx),
            opts=TxOpts(skip_preflight=skip_preflight, preflight_commitment=self.commitment),
        )
        return resp.value

    async def confirm_transaction(
        self,
        signature: Signature,
        timeout: float = CONFIRM_TIMEOUT,
    ) -> Tuple[bool, Optional[str]]:
        """
        Wait for confirmation.

        Returns:
            (confirmed_without_error, error_description)

        Raises:
            asyncio.TimeoutError: if not confirmed within `timeout`
        """
        resp = await asyncio.wait_for(
            self._client.confirm_transaction(signature, self.commitment),
            timeout=timeout,
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return False, "no status"
        if status.err is not None:
            return False, str(status.err)
        return True, None

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        resp = await self._client.get_account_info(address)
        if resp.value is None:
            return None
        return bytes(resp.value.data)

    async def get_mint_decimals(self, mint: Pubkey) -> int:
        data = await self.get_account_data(mint)
        if data is None or len(data) <= MINT_DECIMALS_OFFSET:
            raise ValueError(f"Mint account {mint} not found")
        return data[MINT_DECIMALS_OFFSET]

    async def get_token_accounts(self, owner: Pubkey) -> List[WalletTokenAccount]:
        """All SPL token accounts owned by `owner`."""
        resp = await self._client.get_token_accounts_by_owner(
            owner, TokenAccountOpts(program_id=TOKEN_PROGRAM_ID)
        )
        accounts = []
        for keyed in resp.value:
            data = bytes(keyed.account.data)
            mint = Pubkey.from_bytes(data[TOKEN_ACCOUNT_MINT_OFFSET:TOKEN_ACCOUNT_MINT_OFFSET + 32])
            amount = struct.unpack_from("<Q", data, TOKEN_ACCOUNT_AMOUNT_OFFSET)[0]
            accounts.append(WalletTokenAccount(
                pubkey=keyed.pubkey,
                mint=mint,
                amount=amount,
                program_id=keyed.account.owner,
            ))
        return accounts

    async def get_token_account_balance(self, token_account: Pubkey) -> int:
        resp = await self._client.get_token_account_balance(token_account)
        return int(resp.value.amount)

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        resp = await self._client.get_minimum_balance_for_rent_exemption(size)
        return resp.value

    async def get_program_accounts(
        self,
        program_id: Pubkey,
        data_size: int,
        memcmp: Sequence[Tuple[int, Pubkey]] = (),
    ) -> List[Tuple[Pubkey, bytes]]:
        """Program accounts of one size whose bytes match every (offset, pubkey) filter."""
        filters: list = [data_size]
        filters.extend(MemcmpOpts(offset=offset, bytes=str(key)) for offset, key in memcmp)
        resp = await self._client.get_program_accounts(
            program_id, encoding="base64", filters=filters
        )
        return [(keyed.pubkey, bytes(keyed.account.data)) for keyed in resp.value]
