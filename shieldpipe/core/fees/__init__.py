"""
Fee computation: protocol/relayer/gas-reclamation fees and gas price floors.
"""

from .fee_model import (
    BPS_DENOMINATOR,
    PRICE_SCALE,
    FeeModel,
    ceil_div,
    to_scaled_price,
)
from .gas_guard import GasPriceGuard

__all__ = [
    "BPS_DENOMINATOR",
    "PRICE_SCALE",
    "FeeModel",
    "GasPriceGuard",
    "ceil_div",
    "to_scaled_price",
]
