"""
jitokit - Solana Token Launch Toolkit
=====================================

Token creation, OpenBook market creation, Raydium V4 pool creation with
bundled buys, and atomic Jito bundle submission.

Usage:
    from jitokit import BundleCoordinator, BundleEntry, load_config

    config = load_config(os.environ)
    coordinator = BundleCoordinator(ledger, relay)
    ok = await coordinator.submit_bundle([BundleEntry(tx, signer)], 10_000, payer)
"""

# Configuration
from .config import (
    ConfigError,
    EnvironmentConfig,
    NetworkMode,
    ProgramIds,
    RunOptions,
    TokenInfo,
    WSOL_TOKEN,
    load_config,
    load_keypair,
    load_run_options,
)

# Data models
from .models import (
    BundleEntry,
    BundleOutcome,
    BundleRejection,
    BundleVerdict,
    MarketState,
    PoolKeys,
    PoolReserves,
    SplError,
    TxResult,
)

# Execution
from .execution import BundleCoordinator, JitoRelayClient, LedgerClient

# Pipeline
from .run import Pipeline, PipelineError


__all__ = [
    # Configuration
    'ConfigError',
    'EnvironmentConfig',
    'NetworkMode',
    'ProgramIds',
    'RunOptions',
    'TokenInfo',
    'WSOL_TOKEN',
    'load_config',
    'load_keypair',
    'load_run_options',

    # Models
    'BundleEntry',
    'BundleOutcome',
    'BundleRejection',
    'BundleVerdict',
    'MarketState',
    'PoolKeys',
    'PoolReserves',
    'SplError',
    'TxResult',

    # Execution
    'BundleCoordinator',
    'JitoRelayClient',
    'LedgerClient',

    # Pipeline
    'Pipeline',
    'PipelineError',
]
