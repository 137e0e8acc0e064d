"""
Fee and gas value types shared across the pipeline.

All amounts are integers in base units (wei for gas, token base units for fees).
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional


Amount = int


class GasType(str, Enum):
    """How a transaction is priced."""
    LEGACY = "legacy"
    EIP1559 = "eip1559"

    @property
    def tx_type(self) -> int:
        return 2 if self is GasType.EIP1559 else 0


@dataclass(frozen=True)
class FeeData:
    """Raw network gas pricing, as reported by an RPC node."""
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None


@dataclass(frozen=True)
class GasDetails:
    """Gas pricing handed to the SDK; frozen before proof generation."""
    gas_type: GasType
    gas_estimate: Amount
    gas_price: Optional[int] = None                 # Legacy
    max_fee_per_gas: Optional[int] = None           # EIP-1559
    max_priority_fee_per_gas: Optional[int] = None  # EIP-1559

    def __post_init__(self):
        if self.gas_estimate < 0:
            raise ValueError("gas_estimate must be non-negative")
        if self.gas_type is GasType.LEGACY:
            if self.gas_price is None:
                raise ValueError("legacy gas details require gas_price")
        elif self.max_fee_per_gas is None or self.max_priority_fee_per_gas is None:
            raise ValueError("EIP-1559 gas details require max_fee_per_gas and max_priority_fee_per_gas")

    @property
    def effective_gas_price(self) -> int:
        """Worst-case price per unit gas."""
        if self.gas_type is GasType.EIP1559:
            return self.max_fee_per_gas  # type: ignore[return-value]
        return self.gas_price  # type: ignore[return-value]

    def with_estimate(self, gas_estimate: Amount) -> "GasDetails":
        return replace(self, gas_estimate=gas_estimate)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "gasType": self.gas_type.value,
            "gasEstimate": str(self.gas_estimate),
        }
        if self.gas_type is GasType.EIP1559:
            data["maxFeePerGas"] = str(self.max_fee_per_gas)
            data["maxPriorityFeePerGas"] = str(self.max_priority_fee_per_gas)
        else:
            data["gasPrice"] = str(self.gas_price)
        return data


@dataclass(frozen=True)
class FeeQuote:
    """Fees for one transfer attempt, in fee-token base units."""
    relayer_fee_amount: Amount
    gas_reclamation_amount: Amount
    protocol_fee_amount: Amount

    @property
    def broadcaster_fee_amount(self) -> Amount:
        """What the relayer is paid inside the pool (service fee + gas)."""
        return self.relayer_fee_amount + self.gas_reclamation_amount

    @property
    def total_fee_amount(self) -> Amount:
        return self.broadcaster_fee_amount + self.protocol_fee_amount

    def to_dict(self) -> Dict[str, str]:
        return {
            "relayerFee": str(self.relayer_fee_amount),
            "gasReclamationFee": str(self.gas_reclamation_amount),
            "protocolFee": str(self.protocol_fee_amount),
            "totalFee": str(self.total_fee_amount),
        }


@dataclass(frozen=True)
class RelayerInfo:
    """Relayer identity and pricing for one attempt; never cached across chains or tokens."""
    shielded_address: str
    fee_token_address: str
    fee_per_unit_gas: Amount
