"""Per-chain constants used by fee math, gas pricing and bundle shaping.

Gas floors and caps are tuned per deployment; adding a chain means adding
an entry here and revisiting its floor.
"""

from typing import Any, Dict, Optional

from .models import FeeData, GasType


GWEI = 10**9

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_GAS_PRICE_FLOOR = 1 * GWEI

# Cheap-gas fallback shared by the L2-style chains
L2_FALLBACK_FEE_DATA = FeeData(
    gas_price=GWEI // 10,
    max_fee_per_gas=1 * GWEI,
    max_priority_fee_per_gas=GWEI // 100,
)

CHAIN_METADATA: Dict[int, Dict[str, Any]] = {
    1: {
        "name": "Ethereum",
        "native_symbol": "ETH",
        "native_decimals": 18,
        "wrapped_base_token": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
        "supports_eip1559": True,
        "gas_price_floor": 1 * GWEI,
        "min_priority_fee": None,
        "fallback_fee_data": FeeData(
            gas_price=3 * GWEI,
            max_fee_per_gas=4 * GWEI,
            max_priority_fee_per_gas=3 * GWEI,
        ),
        # Provider values above these are discarded in favour of the fallback
        "reasonable_caps": {"gas_price": 100 * GWEI, "max_fee_per_gas": 200 * GWEI},
    },
    56: {
        "name": "BNB Chain",
        "native_symbol": "BNB",
        "native_decimals": 18,
        "wrapped_base_token": "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c",
        "supports_eip1559": False,
        "gas_price_floor": GWEI // 10,
        "min_priority_fee": None,
        "fallback_fee_data": L2_FALLBACK_FEE_DATA,
        "reasonable_caps": {"gas_price": 5 * GWEI, "max_fee_per_gas": 10 * GWEI},
    },
    137: {
        "name": "Polygon",
        "native_symbol": "MATIC",
        "native_decimals": 18,
        "wrapped_base_token": "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270",
        "supports_eip1559": True,
        "gas_price_floor": 30 * GWEI,
        # Polygon validators drop transactions tipping under 30 gwei
        "min_priority_fee": 30 * GWEI,
        "fallback_fee_data": FeeData(
            gas_price=30 * GWEI,
            max_fee_per_gas=60 * GWEI,
            max_priority_fee_per_gas=30 * GWEI,
        ),
        "reasonable_caps": {"gas_price": 1_000 * GWEI, "max_fee_per_gas": 2_000 * GWEI},
    },
    42161: {
        "name": "Arbitrum",
        "native_symbol": "ETH",
        "native_decimals": 18,
        "wrapped_base_token": "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
        "supports_eip1559": True,
        "gas_price_floor": GWEI // 100,
        "min_priority_fee": None,
        "fallback_fee_data": L2_FALLBACK_FEE_DATA,
        "reasonable_caps": {"gas_price": GWEI // 2, "max_fee_per_gas": 1 * GWEI},
    },
}

# Tokens the CLI knows by symbol, per chain
KNOWN_TOKENS: Dict[int, Dict[str, Dict[str, Any]]] = {
    1: {
        "WETH": {"address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "decimals": 18},
        "USDC": {"address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "decimals": 6},
        "USDT": {"address": "0xdAC17F958D2ee523a2206206994597C13D831ec7", "decimals": 6},
        "DAI": {"address": "0x6B175474E89094C44Da98b954EedeAC495271d0F", "decimals": 18},
    },
    56: {
        "WBNB": {"address": "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c", "decimals": 18},
        "USDT": {"address": "0x55d398326f99059fF775485246999027B3197955", "decimals": 18},
    },
    137: {
        "WMATIC": {"address": "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270", "decimals": 18},
        "USDC": {"address": "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359", "decimals": 6},
    },
    42161: {
        "WETH": {"address": "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1", "decimals": 18},
        "USDC": {"address": "0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8", "decimals": 6},
        "USDT": {"address": "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", "decimals": 6},
    },
}


def get_chain(chain_id: int) -> Dict[str, Any]:
    try:
        return CHAIN_METADATA[chain_id]
    except KeyError:
        raise ValueError(f"Unsupported chain: {chain_id}") from None


def is_supported_chain(chain_id: int) -> bool:
    return chain_id in CHAIN_METADATA


def gas_price_floor(chain_id: int) -> int:
    meta = CHAIN_METADATA.get(chain_id)
    return meta["gas_price_floor"] if meta else DEFAULT_GAS_PRICE_FLOOR


def min_priority_fee(chain_id: int) -> Optional[int]:
    meta = CHAIN_METADATA.get(chain_id)
    return meta["min_priority_fee"] if meta else None


def native_symbol(chain_id: int) -> str:
    return get_chain(chain_id)["native_symbol"]


def native_decimals(chain_id: int) -> int:
    return get_chain(chain_id)["native_decimals"]


def supports_eip1559(chain_id: int) -> bool:
    return bool(get_chain(chain_id)["supports_eip1559"])


def fallback_fee_data(chain_id: int) -> FeeData:
    return get_chain(chain_id)["fallback_fee_data"]


def reasonable_caps(chain_id: int) -> Dict[str, int]:
    return get_chain(chain_id)["reasonable_caps"]


def is_base_token(chain_id: int, token_address: str) -> bool:
    """True for the zero address or the chain's wrapped base token."""
    token = token_address.lower()
    if token == ZERO_ADDRESS:
        return True
    return token == get_chain(chain_id)["wrapped_base_token"].lower()


def lookup_token(chain_id: int, symbol: str) -> Optional[Dict[str, Any]]:
    """Resolve a known token symbol to ``{"address", "decimals", "symbol"}``."""
    entry = KNOWN_TOKENS.get(chain_id, {}).get(symbol.upper())
    if entry is None:
        return None
    return {**entry, "symbol": symbol.upper()}


def gas_type_for_transaction(chain_id: int, send_with_public_wallet: bool) -> GasType:
    """EIP-1559 only when the user's own wallet broadcasts on a 1559 chain.

    Relayed transactions are priced as legacy so the relayer can bump them.
    """
    if send_with_public_wallet and supports_eip1559(chain_id):
        return GasType.EIP1559
    return GasType.LEGACY
