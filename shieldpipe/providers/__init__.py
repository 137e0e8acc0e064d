from .base import GasOracle, PriceProvider, Provider
from .coingecko import CoingeckoPriceProvider
from .relayer import RelayerGateway
from .rpc import JsonRpcGasOracle

__all__ = [
    "CoingeckoPriceProvider",
    "GasOracle",
    "JsonRpcGasOracle",
    "PriceProvider",
    "Provider",
    "RelayerGateway",
]
