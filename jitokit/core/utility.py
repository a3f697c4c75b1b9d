"""
Amount and address helpers shared by the operations.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID


def x_wei_amount(amount: float, decimals: int) -> int:
    """Scale a UI amount to raw units (1.5 with 9 decimals -> 1_500_000_000)."""
    scaled = Decimal(str(amount)).scaleb(decimals)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_wei_amount(raw: int, decimals: int) -> float:
    """Inverse of x_wei_amount, truncated to the mint's precision."""
    value = Decimal(raw).scaleb(-decimals)
    return float(value.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN))


def percent_amount(amount: int, fraction: float) -> int:
    """
    Take a fraction of a raw token amount, rounded down.

    The fraction is resolved to whole percent first: 0.555 -> 55%.
    """
    percent = int(Decimal(str(fraction)) * 100)
    return amount * percent // 100


def get_ata_address(owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_PROGRAM_ID) -> Pubkey:
    """Derive the associated token account for (owner, mint)."""
    ata, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return ata
