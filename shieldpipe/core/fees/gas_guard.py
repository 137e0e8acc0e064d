"""
Gas price clamping.

Node-reported prices on quiet chains can sit below what validators will
actually include; every price handed to the SDK passes through here first.
"""

import logging
from typing import Optional

from .. import chains
from ..models import FeeData, GasDetails, GasType


logger = logging.getLogger(__name__)


class GasPriceGuard:
    """Clamps gas prices to per-chain floors."""

    def apply_gas_price_guard(
        self,
        chain_id: int,
        raw_gas_price: int,
        fee_data: Optional[FeeData] = None,
    ) -> int:
        """
        Clamp a legacy gas price to the chain floor.

        On chains with a minimum priority fee, a price whose tip component
        (per ``fee_data``) is under the minimum is raised by exactly the
        shortfall, so the base-fee component stays as reported.
        """
        price = raw_gas_price
        min_tip = chains.min_priority_fee(chain_id)
        if min_tip is not None and fee_data and fee_data.max_priority_fee_per_gas is not None:
            shortfall = min_tip - fee_data.max_priority_fee_per_gas
            if shortfall > 0:
                price += shortfall

        floor = chains.gas_price_floor(chain_id)
        if price < floor:
            logger.info("Raising gas price %s to chain %s floor %s", price, chain_id, floor)
            price = floor
        return price

    def guard_fee_data(self, chain_id: int, fee_data: FeeData) -> FeeData:
        """Apply floors to every populated component of ``fee_data``."""
        gas_price = fee_data.gas_price
        if gas_price is not None:
            gas_price = self.apply_gas_price_guard(chain_id, gas_price, fee_data)

        max_fee = fee_data.max_fee_per_gas
        priority = fee_data.max_priority_fee_per_gas
        min_tip = chains.min_priority_fee(chain_id)
        if max_fee is not None and priority is not None and min_tip is not None and priority < min_tip:
            # base fee = max_fee - priority is preserved
            max_fee += min_tip - priority
            priority = min_tip
        if max_fee is not None:
            max_fee = max(max_fee, chains.gas_price_floor(chain_id))

        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority,
        )

    def build_gas_details(
        self,
        chain_id: int,
        fee_data: FeeData,
        gas_type: GasType,
        gas_estimate: int = 0,
    ) -> GasDetails:
        """Guarded GasDetails of the requested type, filling gaps from chain fallbacks."""
        fallback = chains.fallback_fee_data(chain_id)
        guarded = self.guard_fee_data(
            chain_id,
            FeeData(
                gas_price=fee_data.gas_price if fee_data.gas_price is not None else fallback.gas_price,
                max_fee_per_gas=(
                    fee_data.max_fee_per_gas if fee_data.max_fee_per_gas is not None else fallback.max_fee_per_gas
                ),
                max_priority_fee_per_gas=(
                    fee_data.max_priority_fee_per_gas
                    if fee_data.max_priority_fee_per_gas is not None
                    else fallback.max_priority_fee_per_gas
                ),
            ),
        )
        if gas_type is GasType.EIP1559:
            return GasDetails(
                gas_type=gas_type,
                gas_estimate=gas_estimate,
                max_fee_per_gas=guarded.max_fee_per_gas,
                max_priority_fee_per_gas=guarded.max_priority_fee_per_gas,
            )
        return GasDetails(gas_type=gas_type, gas_estimate=gas_estimate, gas_price=guarded.gas_price)
