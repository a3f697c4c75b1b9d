"""
EXECUTION MODULE
================

Ledger and relay clients, transaction building and atomic bundle
submission.

Components:
- LedgerClient: Solana RPC capability (solana-py AsyncClient)
- JitoRelayClient: Jito block engine JSON-RPC (tip accounts, bundles)
- BundleCoordinator: stamp, sign, tip, submit and confirm a bundle
- RaydiumInstructionBuilder / OpenBookInstructionBuilder: program instructions

Usage:
    from jitokit.execution import BundleCoordinator, JitoRelayClient, LedgerClient

    coordinator = BundleCoordinator(LedgerClient(rpc_url), JitoRelayClient(block_engine_url))
    ok = await coordinator.submit_bundle(entries, tip_lamports, fee_payer)
"""

from .ledger import LedgerClient

from .jito_client import (
    Bundle,
    BundleSizeError,
    JitoRelayClient,
    JitoRpcError,
    MAX_BUNDLE_TRANSACTIONS,
)

from .bundle import BundleCoordinator, classify_verdict

from .transaction_helper import (
    check_transaction,
    send_and_confirm_transaction_with_check,
    send_and_confirm_transactions_with_check,
    sign_transaction,
    sign_transactions,
    stamp_blockhash,
)

from .solana_tx_builder import (
    MetadataInstructionBuilder,
    OpenBookInstructionBuilder,
    RaydiumInstructionBuilder,
    build_unsigned_v0,
    decode_raydium_instruction,
)


__all__ = [
    # Clients
    'LedgerClient',
    'JitoRelayClient',
    'JitoRpcError',

    # Bundles
    'Bundle',
    'BundleSizeError',
    'BundleCoordinator',
    'classify_verdict',
    'MAX_BUNDLE_TRANSACTIONS',

    # Transaction helpers
    'check_transaction',
    'send_and_confirm_transaction_with_check',
    'send_and_confirm_transactions_with_check',
    'sign_transaction',
    'sign_transactions',
    'stamp_blockhash',

    # Instruction building
    'MetadataInstructionBuilder',
    'OpenBookInstructionBuilder',
    'RaydiumInstructionBuilder',
    'build_unsigned_v0',
    'decode_raydium_instruction',
]
