"""RisqLab – Constituent types and static exclusion lists.

Market snapshots arrive from ingestion with loosely typed numeric
fields; here they become explicit records with :class:`~decimal.Decimal`
price and supply so that market caps, the divisor and weights are
computed without floating-point drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


# Fallback exclusion lists, used only when an asset has no metadata row.
STABLECOINS: tuple[str, ...] = (
    "USDT",
    "USDC",
    "DAI",
    "BUSD",
    "TUSD",
    "USDP",
    "USDD",
    "GUSD",
    "PYUSD",
    "FDUSD",
    "USDE",
    "FRAX",
    "LUSD",
    "SUSD",
    "CUSD",
    "USDJ",
    "RSR",
    "USDN",
    "FEI",
    "TRIBE",
)

WRAPPER_TOKENS: tuple[str, ...] = (
    "WBTC",
    "STETH",
    "WETH",
    "WBNB",
    "RETH",
    "CBETH",
    "WSTETH",
    "BETH",
    "SFRXETH",
    "FRXETH",
    "RENBTC",
    "HBTC",
    "TBTC",
    "WMATIC",
    "WAVAX",
    "WSOL",
    "WFTM",
    "WETH2",
    "ANKRETH",
    "SWETH",
)

EXCLUDED_SYMBOLS: frozenset[str] = frozenset(STABLECOINS + WRAPPER_TOKENS)


@dataclass(frozen=True)
class MarketSnapshot:
    """Price and supply of one asset at one snapshot timestamp.

    Attributes:
        asset_id: Identifier of the asset in ``assets``.
        symbol: Ticker symbol, used for the static exclusion fallback.
        timestamp: Snapshot timestamp shared by all assets of a batch.
        price: Price in USD.
        circulating_supply: Circulating supply in units of the asset.
        is_stablecoin: Metadata flag, ``None`` when metadata is missing.
        is_wrapped: Metadata flag, ``None`` when metadata is missing.
        is_liquid_staking: Metadata flag, ``None`` when metadata is missing.
        market_data_id: Optional id of the source ``market_data`` row.
    """

    asset_id: int
    symbol: str
    timestamp: datetime
    price: Decimal
    circulating_supply: Decimal
    is_stablecoin: Optional[bool] = None
    is_wrapped: Optional[bool] = None
    is_liquid_staking: Optional[bool] = None
    market_data_id: Optional[int] = None

    @property
    def market_cap(self) -> Decimal:
        return self.price * self.circulating_supply

    @property
    def has_metadata(self) -> bool:
        """True when at least one exclusion flag is known."""

        return (
            self.is_stablecoin is not None
            or self.is_wrapped is not None
            or self.is_liquid_staking is not None
        )
