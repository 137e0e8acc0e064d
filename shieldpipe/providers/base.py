from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Iterable

from ..core.models import FeeData


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class PriceProvider(Provider):
    """Provider for USD token prices"""

    @abstractmethod
    async def get_usd_prices(self, symbols: Iterable[str]) -> Dict[str, Decimal]:
        """Map upper-cased symbol -> USD price; unknown symbols are omitted"""
        pass


class GasOracle(Provider):
    """Provider for network gas pricing"""

    @abstractmethod
    async def get_fee_data(self, chain_id: int) -> FeeData:
        """Current gas price / EIP-1559 fee data for a chain"""
        pass
