"""
Launch Pipeline
===============

Runs the enabled steps in order, each one toggled from the environment:

    CREATE_TOKEN             -> do_create_token
    CREATE_OPEN_BOOK_MARKET  -> do_create_market
    CREATE_POOL              -> do_create_pool (create pool + buy, one bundle)
    SET_SELL_TIME            -> do_sell after the pool bundle confirms

A failing step raises PipelineError; run() catches it once and returns
a process exit code.

Usage:
    exit_code = await run(os.environ)
"""

import asyncio
import logging
from typing import Mapping, Optional

from solders.pubkey import Pubkey

from .config import ConfigError, EnvironmentConfig, RunOptions, TokenInfo, load_config, load_keypair, load_run_options
from .core.market import find_market_accounts
from .core.pool_manager import PoolManager, pool_keys_for_market
from .core.utility import from_wei_amount, get_ata_address, percent_amount
from .execution.bundle import BundleCoordinator
from .execution.jito_client import JitoRelayClient
from .execution.ledger import LedgerClient
from .models import BundleEntry, PoolKeys, SplError
from .operations import buy_token, create_open_market, create_pool, create_token, sell_token

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """A pipeline step failed; the run stops here."""


class Pipeline:
    """
    One launch run: owns the ledger and relay clients for its lifetime.

    Example:
        pipeline = Pipeline(config, options)
        try:
            exit_code = await pipeline.run()
        finally:
            await pipeline.close()
    """

    def __init__(
        self,
        config: EnvironmentConfig,
        options: RunOptions,
        ledger: Optional[LedgerClient] = None,
        relay: Optional[JitoRelayClient] = None,
        coordinator: Optional[BundleCoordinator] = None,
    ):
        self.config = config
        self.options = options
        self.ledger = ledger or LedgerClient(config.rpc_url, commitment=config.commitment)
        self.relay = relay or JitoRelayClient(config.block_engine_url, config.jito_auth_uuid)
        self.coordinator = coordinator or BundleCoordinator(self.ledger, self.relay)

        self.mint_address = options.mint_address
        self.mint_decimals = options.mint_decimals

    async def close(self):
        await self.relay.close()
        await self.ledger.close()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def do_create_token(self) -> str:
        options = self.options
        owner = load_keypair(options.owner_secret)

        result = await create_token(
            self.ledger,
            owner,
            options.token_name,
            options.token_symbol,
            options.token_decimals,
            options.token_total_supply,
            options.token_metadata_uri,
            options.token_description,
        )
        if not result.ok:
            raise PipelineError(f"create token failed ({result.result.name})")

        if not self.mint_address:
            self.mint_address = result.value
            self.mint_decimals = options.token_decimals
        return result.value

    async def do_create_market(self):
        owner = load_keypair(self.options.owner_secret)

        result = await create_open_market(
            self.ledger,
            owner,
            self.mint_address,
            self.config.quote_token,
            self.config.programs,
        )
        if result != SplError.OK:
            raise PipelineError(f"create open book market failed ({result.name})")

    async def do_create_pool(self, sell: bool):
        options = self.options
        quote = self.config.quote_token
        programs = self.config.programs
        owner = load_keypair(options.owner_secret)

        result = await create_pool(
            self.ledger,
            owner,
            self.mint_address,
            options.lp_token_amount,
            options.lp_sol_amount,
            quote,
            programs,
        )
        if not result.ok:
            raise PipelineError("making create pool transaction failed")
        entries = [BundleEntry(transaction=result.transactions[0], signer=owner)]

        markets = await find_market_accounts(
            self.ledger,
            Pubkey.from_string(self.mint_address),
            quote.mint,
            programs.openbook_market,
        )
        if not markets:
            raise PipelineError("can not find the market")
        market_id, market = markets[0]

        base = TokenInfo(address=self.mint_address, decimals=self.mint_decimals)
        pool_keys = pool_keys_for_market(base, quote, market_id, market, programs)
        manager = PoolManager(base, quote, options.lp_token_amount, options.lp_sol_amount, market_id, programs)

        if options.buyer_secret and options.buy_amount > 0:
            buyer = load_keypair(options.buyer_secret)
            lamports = manager.compute_sol_amount(options.buy_amount, buying=True)
            sol_amount = from_wei_amount(lamports, quote.decimals)
            logger.info(
                f"Simulated price: {manager.compute_current_price():.10f} "
                f"simulated sol amount: {sol_amount}"
            )

            buy = await buy_token(
                self.ledger,
                buyer,
                self.mint_address,
                options.buy_amount,
                sol_amount,
                pool_keys,
                quote,
            )
            if not buy.ok:
                raise PipelineError("failed to create buy token transaction")
            entries.append(BundleEntry(transaction=buy.transactions[0], signer=buyer))
            manager.buy_token(options.buy_amount)

        logger.info(f"Creating bundle with {len(entries)} transaction(s)")
        if not await self.coordinator.submit_bundle(entries, self.config.bundle_tip_lamports, owner):
            raise PipelineError("create pool bundle was not confirmed")

        if sell:
            await self.do_sell(pool_keys)

    async def do_sell(self, pool_keys: PoolKeys):
        options = self.options
        if not options.seller_secret:
            raise PipelineError("seller wallet (fee payer) is not configured")
        seller = load_keypair(options.seller_secret)

        if options.sell_delay_ms:
            logger.info(f"Waiting {options.sell_delay_ms}ms before selling")
            await asyncio.sleep(options.sell_delay_ms / 1000)

        entries = []
        if options.sell_fraction > 0:
            mint = Pubkey.from_string(self.mint_address)
            balance = await self.ledger.get_token_account_balance(get_ata_address(seller.pubkey(), mint))
            amount = from_wei_amount(percent_amount(balance, options.sell_fraction), self.mint_decimals)
            logger.info(f"Sell amount: {amount}")

            sell = await sell_token(
                self.ledger,
                seller,
                self.mint_address,
                amount,
                0,
                pool_keys,
                self.config.quote_token,
            )
            if not sell.ok:
                raise PipelineError("sell token transaction make failed")
            entries.append(BundleEntry(transaction=sell.transactions[0], signer=seller))

        if not entries:
            logger.warning("No sell parameters configured, skipping sell")
            return

        if not await self.coordinator.submit_bundle(entries, self.config.bundle_tip_lamports, seller):
            raise PipelineError("sell bundle was not confirmed")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> int:
        options = self.options
        logger.info(
            f"Execution condition: create_token={options.create_token} "
            f"create_market={options.create_market} create_pool={options.create_pool} "
            f"sell={options.sell_after_create}"
        )

        try:
            if options.create_token:
                await self.do_create_token()
            if options.create_market:
                await self.do_create_market()
            if options.create_pool:
                await self.do_create_pool(options.sell_after_create)
        except (PipelineError, ConfigError) as e:
            logger.error(f"Pipeline failed: {e}")
            return 1

        logger.info("Finished")
        return 0


async def run(env: Mapping[str, str]) -> int:
    """Load configuration from `env` and run the pipeline once."""
    try:
        config = load_config(env)
        options = load_run_options(env)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Config: {config.to_dict()}")
    pipeline = Pipeline(config, options)
    try:
        return await pipeline.run()
    finally:
        await pipeline.close()
