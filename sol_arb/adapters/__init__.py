"""
Venue adapters: PumpSwap (constant product) and Meteora DLMM (bins).
"""

from .dlmm import DlmmAdapter, DlmmQuoter, bin_direction_for, bin_price, fee_rate
from .pumpswap import (
    PumpSwapAdapter,
    PumpSwapQuoter,
    amm_direction_for,
    validate_pool_config,
)

__all__ = [
    "DlmmAdapter",
    "DlmmQuoter",
    "PumpSwapAdapter",
    "PumpSwapQuoter",
    "amm_direction_for",
    "bin_direction_for",
    "bin_price",
    "fee_rate",
    "validate_pool_config",
]
