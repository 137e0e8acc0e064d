"""
Boundary to the shielded-pool SDK and the user's signer.

The pipeline only ever talks to these interfaces; proof construction,
balance scanning and key handling live behind them.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..models import GasDetails
from .models import BroadcasterFee, PopulatedTransaction, TransferBundle


# Called with a proof progress percentage in [0, 100]
ProofProgressCallback = Callable[[float], None]


class ShieldedPoolSDK(ABC):
    """Shielded-pool operations consumed by the transfer pipeline."""

    @abstractmethod
    async def refresh_balances(self, chain_id: int, wallet_ids: List[str]) -> None:
        """Rescan balances/merkle tree; returns once the rescan completed."""

    @abstractmethod
    async def estimate_unproven_gas(self, bundle: TransferBundle, gas_details: GasDetails) -> int:
        """Gas estimate for the bundle before any proof exists."""

    @abstractmethod
    async def generate_proof(
        self,
        bundle: TransferBundle,
        broadcaster_fee: Optional[BroadcasterFee],
        send_with_public_wallet: bool,
        progress_callback: Optional[ProofProgressCallback] = None,
    ) -> Any:
        """Generate the zero-knowledge proof for the bundle. Not cancellable."""

    @abstractmethod
    async def populate_transaction(
        self,
        bundle: TransferBundle,
        broadcaster_fee: Optional[BroadcasterFee],
        send_with_public_wallet: bool,
        gas_details: GasDetails,
    ) -> PopulatedTransaction:
        """Build the unsigned transaction for a previously proved bundle."""

    @abstractmethod
    def relay_adapt_address(self, chain_id: int) -> str:
        """Forwarding contract that receives relayed unshields."""


class TransactionSigner(ABC):
    """Wallet-controlled signer used for self-signed broadcasts."""

    @abstractmethod
    async def send_transaction(self, transaction: Dict[str, Any]) -> str:
        """Sign and broadcast ``transaction``; returns the transaction hash."""
