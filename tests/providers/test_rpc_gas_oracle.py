"""
Tests for the JSON-RPC gas oracle.
"""

from typing import Any, Dict

import httpx
import pytest

from shieldpipe.core import chains
from shieldpipe.core.models import FeeData
from shieldpipe.providers import rpc as rpc_module
from shieldpipe.providers.rpc import JsonRpcGasOracle

GWEI = 10**9


class _DummyClient:
    def __init__(self, replies: Dict[str, Any], calls: list, **kwargs):
        self._replies = replies
        self._calls = calls

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def post(self, url, json=None):
        self._calls.append((url, json["method"], json["params"]))
        reply = self._replies[json["method"]]
        if isinstance(reply, Exception):
            raise reply
        return httpx.Response(200, json=reply, request=httpx.Request("POST", url))


@pytest.fixture
def rpc_replies(monkeypatch):
    calls = []

    def install(replies):
        monkeypatch.setattr(
            rpc_module.httpx,
            "AsyncClient",
            lambda **kwargs: _DummyClient(replies, calls, **kwargs),
        )
        return calls

    return install


@pytest.fixture
def oracle() -> JsonRpcGasOracle:
    return JsonRpcGasOracle(
        rpc_urls={1: "https://eth.test", 56: "https://bnb.test", 42161: "https://arb.test"},
        timeout_s=2,
    )


def _result(value):
    return {"jsonrpc": "2.0", "id": 1, "result": value}


class TestFeeData:
    @pytest.mark.asyncio
    async def test_eip1559_chain(self, oracle, rpc_replies):
        calls = rpc_replies(
            {
                "eth_gasPrice": _result(hex(GWEI // 10)),
                "eth_feeHistory": _result(
                    {"baseFeePerGas": [hex(GWEI // 20), hex(GWEI // 20)], "reward": [[hex(GWEI // 100)]]}
                ),
            }
        )

        fee_data = await oracle.get_fee_data(42161)

        assert fee_data == FeeData(
            gas_price=GWEI // 10,
            max_fee_per_gas=2 * (GWEI // 20) + GWEI // 100,
            max_priority_fee_per_gas=GWEI // 100,
        )
        assert [method for _, method, _ in calls] == ["eth_gasPrice", "eth_feeHistory"]
        assert calls[0][0] == "https://arb.test"

    @pytest.mark.asyncio
    async def test_legacy_chain_skips_fee_history(self, oracle, rpc_replies):
        calls = rpc_replies({"eth_gasPrice": _result(hex(3 * GWEI))})

        fee_data = await oracle.get_fee_data(56)

        assert fee_data.gas_price == 3 * GWEI
        assert fee_data.max_fee_per_gas is None
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_missing_reward_uses_fallback_priority(self, oracle, rpc_replies):
        rpc_replies(
            {
                "eth_gasPrice": _result(hex(20 * GWEI)),
                "eth_feeHistory": _result({"baseFeePerGas": [hex(10 * GWEI)]}),
            }
        )

        fee_data = await oracle.get_fee_data(1)

        assert fee_data.max_priority_fee_per_gas == 3 * GWEI
        assert fee_data.max_fee_per_gas == 23 * GWEI

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}},
            httpx.ConnectError("refused"),
            _result("not-hex"),
        ],
    )
    async def test_failures_degrade_to_fallback(self, oracle, rpc_replies, reply):
        rpc_replies({"eth_gasPrice": reply})

        assert await oracle.get_fee_data(1) == chains.fallback_fee_data(1)


class TestSanitize:
    def test_implausible_gas_price_replaced(self):
        fee_data = JsonRpcGasOracle._sanitize(56, FeeData(gas_price=500 * GWEI))
        assert fee_data.gas_price == chains.fallback_fee_data(56).gas_price

    def test_implausible_max_fee_replaced_with_fallback_pair(self):
        fallback = chains.fallback_fee_data(1)
        fee_data = JsonRpcGasOracle._sanitize(
            1, FeeData(gas_price=20 * GWEI, max_fee_per_gas=10_000 * GWEI, max_priority_fee_per_gas=GWEI)
        )
        assert fee_data.max_fee_per_gas == fallback.max_fee_per_gas
        assert fee_data.max_priority_fee_per_gas == fallback.max_priority_fee_per_gas

    def test_priority_never_exceeds_max_fee(self):
        fee_data = JsonRpcGasOracle._sanitize(
            1, FeeData(gas_price=20 * GWEI, max_fee_per_gas=10 * GWEI, max_priority_fee_per_gas=15 * GWEI)
        )
        assert fee_data.max_priority_fee_per_gas == 5 * GWEI

    def test_polygon_prices_survive_caps(self):
        raw = FeeData(gas_price=120 * GWEI, max_fee_per_gas=200 * GWEI, max_priority_fee_per_gas=35 * GWEI)
        assert JsonRpcGasOracle._sanitize(137, raw) == raw
