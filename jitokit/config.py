"""
Launch Configuration
====================

One immutable configuration value, built once at startup from the
environment and passed to every component that needs it.

Usage:
    from jitokit.config import load_config, load_run_options

    config = load_config(os.environ)
    options = load_run_options(os.environ)
    print(config.rpc_url, config.programs.amm_v4)
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey


# ============================================================
# CONSTANTS
# ============================================================

WSOL_MINT = "So11111111111111111111111111111111111111112"

DEFAULT_DEVNET_URL = "https://api.devnet.solana.com"
DEFAULT_BLOCK_ENGINE_URL = "https://ny.mainnet.block-engine.jito.wtf"

# Raydium AMM V4 / OpenBook program ids
MAINNET_AMM_V4 = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
MAINNET_OPENBOOK_MARKET = "srmqPvymJeFKQ4zGQed1GFppgkRHL9kaELCbyksJtPX"
MAINNET_FEE_DESTINATION = "7YttLkHDoNj9wyDur5pM1ejNaAvT9X4eqaYcHQqtj2G5"

DEVNET_AMM_V4 = "HWy1jotHpo6UqeQxx49dpYYdQB8wj9Qk9MdxwjLvDHB8"
DEVNET_OPENBOOK_MARKET = "EoTcMgcDRTJVZDMZWBoU6rhYHZfkNTVEAfz3uUJRcYGj"
DEVNET_FEE_DESTINATION = "3XMrhbv989VxAMi3DErLV9eJht1pHppW5LbKxe9fkEFR"


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable run."""


class NetworkMode(Enum):
    MAIN = "main"
    DEV = "dev"


@dataclass(frozen=True)
class TokenInfo:
    """Mint descriptor (quote token or launched token)"""
    address: str
    decimals: int
    symbol: str = ""
    name: str = ""

    @property
    def mint(self) -> Pubkey:
        return Pubkey.from_string(self.address)


WSOL_TOKEN = TokenInfo(address=WSOL_MINT, decimals=9, symbol="WSOL", name="WSOL")


@dataclass(frozen=True)
class ProgramIds:
    """On-chain programs used by the launch flow, per network."""
    amm_v4: Pubkey
    openbook_market: Pubkey
    fee_destination: Pubkey

    @classmethod
    def for_network(cls, network: NetworkMode) -> 'ProgramIds':
        if network == NetworkMode.MAIN:
            return cls(
                amm_v4=Pubkey.from_string(MAINNET_AMM_V4),
                openbook_market=Pubkey.from_string(MAINNET_OPENBOOK_MARKET),
                fee_destination=Pubkey.from_string(MAINNET_FEE_DESTINATION),
            )
        return cls(
            amm_v4=Pubkey.from_string(DEVNET_AMM_V4),
            openbook_market=Pubkey.from_string(DEVNET_OPENBOOK_MARKET),
            fee_destination=Pubkey.from_string(DEVNET_FEE_DESTINATION),
        )


@dataclass(frozen=True)
class EnvironmentConfig:
    """
    Process-wide settings.

    Frozen: build it once with load_config() and pass it by reference.
    """
    network: NetworkMode = NetworkMode.MAIN
    mainnet_url: str = ""
    devnet_url: str = DEFAULT_DEVNET_URL
    block_engine_url: str = DEFAULT_BLOCK_ENGINE_URL
    jito_auth_uuid: Optional[str] = None
    bundle_tip_lamports: int = 0
    quote_token: TokenInfo = WSOL_TOKEN
    commitment: str = "confirmed"

    @property
    def rpc_url(self) -> str:
        if self.network == NetworkMode.MAIN:
            return self.mainnet_url
        return self.devnet_url

    @property
    def programs(self) -> ProgramIds:
        return ProgramIds.for_network(self.network)

    def to_dict(self) -> dict:
        return {
            'network': self.network.value,
            'rpc_url': self.rpc_url,
            'block_engine_url': self.block_engine_url,
            'jito_auth': bool(self.jito_auth_uuid),
            'bundle_tip_lamports': self.bundle_tip_lamports,
            'quote_token': self.quote_token.symbol,
        }


@dataclass(frozen=True)
class RunOptions:
    """Per-run toggles and parameters for the launch pipeline."""

    # === Toggles ===
    create_token: bool = False
    create_market: bool = False
    create_pool: bool = False
    sell_after_create: bool = False

    # === Token ===
    token_name: str = ""
    token_symbol: str = ""
    token_decimals: int = 0
    token_total_supply: float = 0.0
    token_description: str = ""
    token_metadata_uri: str = ""

    # === Pool ===
    mint_address: str = ""
    mint_decimals: int = 0
    lp_token_amount: float = 0.0
    lp_sol_amount: float = 0.0

    # === Wallets (base58 or JSON byte-array secrets) ===
    owner_secret: str = field(default="", repr=False)
    buyer_secret: str = field(default="", repr=False)
    seller_secret: str = field(default="", repr=False)

    # === Trading ===
    buy_amount: float = 0.0
    sell_fraction: float = 0.0         # 0.5 sells half the balance
    sell_delay_ms: int = 0


# ============================================================
# LOADERS
# ============================================================

def _flag(env: Mapping[str, str], key: str) -> bool:
    return env.get(key, "").strip().lower() == "true"


def _number(env: Mapping[str, str], key: str, cast=float, default=0):
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")


def load_keypair(secret: str) -> Keypair:
    """
    Parse a keypair from a base58 secret key or a JSON byte array.

    Raises:
        ConfigError: if the secret is empty or malformed
    """
    secret = secret.strip()
    if not secret:
        raise ConfigError("Missing keypair secret")

    try:
        if secret.startswith("["):
            return Keypair.from_bytes(bytes(json.loads(secret)))
        return Keypair.from_bytes(base58.b58decode(secret))
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Invalid keypair secret: {e}")


def load_config(env: Mapping[str, str]) -> EnvironmentConfig:
    """Build the EnvironmentConfig from environment variables."""
    network = NetworkMode.DEV if _flag(env, "DEVNET") else NetworkMode.MAIN

    config = EnvironmentConfig(
        network=network,
        mainnet_url=env.get("MAIN_NET_URL", "").strip(),
        devnet_url=env.get("DEV_NET_URL", "").strip() or DEFAULT_DEVNET_URL,
        block_engine_url=env.get("JITO_BLOCK_ENGINE_URL", "").strip() or DEFAULT_BLOCK_ENGINE_URL,
        jito_auth_uuid=env.get("JITO_AUTH_UUID", "").strip() or None,
        bundle_tip_lamports=_number(env, "JITO_BUNDLE_TIP", int, 0),
    )

    if not config.rpc_url:
        raise ConfigError(f"No RPC url configured for {network.value} network (set MAIN_NET_URL)")
    if config.bundle_tip_lamports < 0:
        raise ConfigError("JITO_BUNDLE_TIP must be non-negative")

    return config


def load_run_options(env: Mapping[str, str]) -> RunOptions:
    """Build RunOptions from environment variables."""
    return RunOptions(
        create_token=_flag(env, "CREATE_TOKEN"),
        create_market=_flag(env, "CREATE_OPEN_BOOK_MARKET"),
        create_pool=_flag(env, "CREATE_POOL"),
        sell_after_create=_flag(env, "SET_SELL_TIME"),
        token_name=env.get("TOKEN_NAME", ""),
        token_symbol=env.get("TOKEN_SYMBOL", ""),
        token_decimals=_number(env, "TOKEN_DECIMAL", int, 0),
        token_total_supply=_number(env, "TOKEN_TOTAL_MINT", float, 0.0),
        token_description=env.get("TOKEN_DESCRIPTION", ""),
        token_metadata_uri=env.get("TOKEN_METADATA_URI", ""),
        mint_address=env.get("MINT_ADDRESS", "").strip(),
        mint_decimals=_number(env, "MINT_DECIMAL", int, 0),
        lp_token_amount=_number(env, "LP_TOKEN_AMOUNT", float, 0.0),
        lp_sol_amount=_number(env, "LP_SOL_AMOUNT", float, 0.0),
        owner_secret=env.get("OWNER_PRIVATE", ""),
        buyer_secret=env.get("BUYORSELLER1", ""),
        seller_secret=env.get("SELLER_WALLET1", ""),
        buy_amount=_number(env, "BUYAMOUNT1", float, 0.0),
        sell_fraction=_number(env, "SELL_AMOUNT1", float, 0.0),
        sell_delay_ms=_number(env, "SELL_TIME", int, 0),
    )
