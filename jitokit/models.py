"""
Launch Models - Shared Data Structures
======================================

Error kinds, per-call results, bundle entries/verdicts and the structured
pool records used across the launch flow.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction


AnyTransaction = Union[VersionedTransaction, Transaction]


class SplError(Enum):
    """Error kinds returned by every SDK-call wrapper."""
    INVALID_ARGUMENT = -1
    OK = 0
    FAIL = 1
    CHECK_FAIL = 2
    SEND_TX_FAIL = 3
    CONFIRM_TX_FAIL = 4
    CREATE_META_FAILED = 5
    TOTAL_MINT_FAIL = 6


@dataclass
class TxResult:
    """Result of an operation: error kind plus mint address or built transactions."""
    result: SplError
    value: Union[str, List[AnyTransaction], None] = None

    @property
    def ok(self) -> bool:
        return self.result == SplError.OK

    @property
    def transactions(self) -> List[AnyTransaction]:
        if isinstance(self.value, list):
            return self.value
        return []

    @classmethod
    def fail(cls, kind: SplError = SplError.FAIL) -> 'TxResult':
        return cls(result=kind, value=None)


# ============================================================
# BUNDLES
# ============================================================

@dataclass
class BundleEntry:
    """
    One unsigned transaction plus the signer allowed to finalize it.

    The coordinator replaces `transaction` with the stamped and signed copy,
    so callers holding the entry see the submitted transaction.
    """
    transaction: VersionedTransaction
    signer: Keypair = field(repr=False)


class BundleOutcome(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED_TERMINAL = "rejected_terminal"
    REJECTED_RECOVERABLE = "rejected_recoverable"
    TIMED_OUT = "timed_out"
    FAILED = "failed"               # submission, relay transport or status poll error

    @property
    def succeeded(self) -> bool:
        return self in (BundleOutcome.CONFIRMED, BundleOutcome.REJECTED_RECOVERABLE)


@dataclass
class BundleRejection:
    """Why the relay rejected a bundle (either message may be missing)."""
    simulation_failure: Optional[str] = None
    dropped: Optional[str] = None
    state_auction_bid_rejected: Optional[str] = None

    @property
    def messages(self) -> List[str]:
        return [m for m in (self.simulation_failure, self.dropped, self.state_auction_bid_rejected) if m]


@dataclass
class BundleVerdict:
    """Push notification from the relay about one submitted bundle."""
    bundle_id: str
    accepted: bool = False
    rejected: Optional[BundleRejection] = None
    slot: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'bundle_id': self.bundle_id,
            'accepted': self.accepted,
            'rejected': self.rejected.messages if self.rejected else None,
            'slot': self.slot,
        }


# ============================================================
# MARKETS AND POOLS
# ============================================================

@dataclass(frozen=True)
class MarketState:
    """Decoded OpenBook (Serum V3) market account."""
    own_address: Pubkey
    vault_signer_nonce: int
    base_mint: Pubkey
    quote_mint: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    request_queue: Pubkey
    event_queue: Pubkey
    bids: Pubkey
    asks: Pubkey
    base_lot_size: int
    quote_lot_size: int
    fee_rate_bps: int
    quote_dust_threshold: int = 0


@dataclass
class PoolKeys:
    """Every account a Raydium V4 pool instruction touches."""
    id: Pubkey
    base_mint: Pubkey
    quote_mint: Pubkey
    lp_mint: Pubkey
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    version: int
    program_id: Pubkey
    authority: Pubkey
    nonce: int
    open_orders: Pubkey
    target_orders: Pubkey
    base_vault: Pubkey
    quote_vault: Pubkey
    withdraw_queue: Pubkey
    lp_vault: Pubkey
    market_version: int
    market_program_id: Pubkey
    market_id: Pubkey
    market_authority: Pubkey
    market_base_vault: Optional[Pubkey] = None
    market_quote_vault: Optional[Pubkey] = None
    market_bids: Optional[Pubkey] = None
    market_asks: Optional[Pubkey] = None
    market_event_queue: Optional[Pubkey] = None

    @property
    def has_market_accounts(self) -> bool:
        return None not in (
            self.market_base_vault, self.market_quote_vault,
            self.market_bids, self.market_asks, self.market_event_queue,
        )


@dataclass
class PoolReserves:
    """Pool state used for swap-amount simulation (raw units)."""
    base_reserve: int
    quote_reserve: int
    base_decimals: int
    quote_decimals: int
    lp_decimals: int
    lp_supply: int
    status: int = 0
    start_time: int = 0

    def to_dict(self) -> dict:
        return {
            'base_reserve': self.base_reserve,
            'quote_reserve': self.quote_reserve,
            'base_decimals': self.base_decimals,
            'quote_decimals': self.quote_decimals,
            'lp_supply': self.lp_supply,
        }


@dataclass
class WalletTokenAccount:
    """Token account owned by a wallet (pubkey + mint + raw amount)."""
    pubkey: Pubkey
    mint: Pubkey
    amount: int
    program_id: Any = None
