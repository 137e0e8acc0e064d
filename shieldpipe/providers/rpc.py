"""JSON-RPC gas oracle with per-chain fallbacks."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core import chains
from ..core.models import FeeData
from .base import GasOracle


logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    """JSON-RPC node returned an error object."""


class JsonRpcGasOracle(GasOracle):
    """
    Reads gas pricing from a chain's JSON-RPC node.

    Never raises for network trouble: unreachable nodes, error replies and
    implausible values all degrade to the chain's fallback fee data.
    """

    name = "json_rpc"

    def __init__(self, rpc_urls: Optional[Dict[int, str]] = None, timeout_s: Optional[float] = None):
        self._rpc_urls = dict(rpc_urls or {})
        self.timeout_s = timeout_s if timeout_s is not None else settings.rpc_timeout_seconds

    def _rpc_url(self, chain_id: int) -> str:
        return self._rpc_urls.get(chain_id) or settings.rpc_url_for(chain_id)

    async def _rpc_call(self, chain_id: int, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the chain."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1,
        }

        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            response = await client.post(self._rpc_url(chain_id), json=payload)
            response.raise_for_status()
            result = response.json()

        if "error" in result:
            raise RpcError(f"RPC error: {result['error']}")

        return result.get("result")

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        try:
            block = await self._rpc_call(1, "eth_blockNumber", [])
            return {"status": "healthy", "block": int(block, 16)}
        except (httpx.HTTPError, RpcError, ValueError, TypeError) as exc:
            return {"status": "error", "reason": str(exc)}

    async def get_fee_data(self, chain_id: int) -> FeeData:
        fallback = chains.fallback_fee_data(chain_id)
        try:
            gas_price = int(await self._rpc_call(chain_id, "eth_gasPrice", []), 16)

            max_fee: Optional[int] = None
            priority: Optional[int] = None
            if chains.supports_eip1559(chain_id):
                fee_history = await self._rpc_call(chain_id, "eth_feeHistory", [1, "latest", [50]])
                base_fee = int(fee_history["baseFeePerGas"][-1], 16)
                reward = fee_history.get("reward")
                priority = int(reward[0][0], 16) if reward else fallback.max_priority_fee_per_gas
                max_fee = base_fee * 2 + priority
        except (httpx.HTTPError, RpcError, ValueError, TypeError, KeyError, IndexError) as exc:
            logger.warning("Gas price fetch failed on chain %s, using fallback: %s", chain_id, exc)
            return fallback

        return self._sanitize(chain_id, FeeData(gas_price, max_fee, priority))

    @staticmethod
    def _sanitize(chain_id: int, fee_data: FeeData) -> FeeData:
        """Replace implausible values with fallbacks and keep priority <= max fee."""
        fallback = chains.fallback_fee_data(chain_id)
        caps = chains.reasonable_caps(chain_id)

        gas_price = fee_data.gas_price
        if gas_price is None or gas_price <= 0 or gas_price > caps["gas_price"]:
            logger.warning("Discarding gas price %s on chain %s", gas_price, chain_id)
            gas_price = fallback.gas_price

        max_fee = fee_data.max_fee_per_gas
        priority = fee_data.max_priority_fee_per_gas
        if max_fee is not None and (max_fee <= 0 or max_fee > caps["max_fee_per_gas"]):
            logger.warning("Discarding max fee %s on chain %s", max_fee, chain_id)
            max_fee = fallback.max_fee_per_gas
            priority = fallback.max_priority_fee_per_gas
        if max_fee is not None and priority is not None and priority > max_fee:
            priority = max_fee // 2

        return FeeData(gas_price=gas_price, max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority)
