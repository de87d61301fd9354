"""
Domain models and value objects.

Contains the pool-facing records: LiquidityPosition, Deposit, PriceReport,
AssetDepegState, snapshots and unit conversions.
"""

from src.core.domain.deposit import Deposit
from src.core.domain.depeg_state import AssetDepegState, DepegStatus, PriceReport
from src.core.domain.pool_state import ConsolidationStats, PoolSnapshot, SwapQuote
from src.core.domain.position import LiquidityPosition
from src.core.domain.units import (
    AMPLIFICATION_PRECISION,
    BPS_DENOMINATOR,
    DEFAULT_DEPEG_PRICE,
    bps_to_fraction,
    deviation_bps,
    fraction_to_bps,
    normalized_plane,
    plane_constant,
    position_radius,
    position_reach,
    radius_multiplier,
)

__all__ = [
    # Units module
    "AMPLIFICATION_PRECISION",
    "BPS_DENOMINATOR",
    "DEFAULT_DEPEG_PRICE",
    "bps_to_fraction",
    "fraction_to_bps",
    "deviation_bps",
    "radius_multiplier",
    "position_radius",
    "position_reach",
    "plane_constant",
    "normalized_plane",
    # Position model
    "LiquidityPosition",
    # Deposit record
    "Deposit",
    # Depeg models
    "DepegStatus",
    "PriceReport",
    "AssetDepegState",
    # Snapshots
    "PoolSnapshot",
    "ConsolidationStats",
    "SwapQuote",
]
