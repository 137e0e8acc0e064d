"""
Tests for CoingeckoPriceProvider with httpx.AsyncClient patched out.
"""

import json
from decimal import Decimal

import httpx
import pytest

from shieldpipe.providers import coingecko as coingecko_module
from shieldpipe.providers.coingecko import CoingeckoPriceProvider


class _DummyResponse:
    def __init__(self, text: str, status_code: int = 200):
        self._text = text
        self.status_code = status_code

    def json(self, **kwargs):
        return json.loads(self._text, **kwargs)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError(
                "error",
                request=httpx.Request("GET", "https://cg.test"),
                response=httpx.Response(self.status_code),
            )


class _DummyClient:
    def __init__(self, response: _DummyResponse, calls: list):
        self._response = response
        self._calls = calls

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def get(self, url, headers=None, params=None, timeout=None):
        self._calls.append({"url": url, "headers": headers, "params": params})
        return self._response


@pytest.fixture
def patch_client(monkeypatch):
    calls = []

    def install(text: str, status_code: int = 200):
        response = _DummyResponse(text, status_code)
        monkeypatch.setattr(coingecko_module.httpx, "AsyncClient", lambda *a, **kw: _DummyClient(response, calls))
        return calls

    return install


@pytest.mark.asyncio
async def test_prices_are_exact_decimals(patch_client):
    calls = patch_client('{"ethereum": {"usd": 3123.456789012345}, "usd-coin": {"usd": 0.99985}}')
    provider = CoingeckoPriceProvider(base_url="https://cg.test/api/v3/", api_key="demo-key")

    prices = await provider.get_usd_prices(["ETH", "usdc"])

    assert prices == {"ETH": Decimal("3123.456789012345"), "USDC": Decimal("0.99985")}
    assert calls[0]["url"] == "https://cg.test/api/v3/simple/price"
    assert calls[0]["params"] == {"ids": "ethereum,usd-coin", "vs_currencies": "usd"}
    assert calls[0]["headers"] == {"X-CG-Demo-API-Key": "demo-key"}


@pytest.mark.asyncio
async def test_missing_and_unknown_symbols_are_omitted(patch_client):
    patch_client('{"ethereum": {"usd": 3000}}')
    provider = CoingeckoPriceProvider(base_url="https://cg.test", api_key="")

    prices = await provider.get_usd_prices(["ETH", "USDC", "NOTATOKEN"])

    assert prices == {"ETH": Decimal("3000")}


@pytest.mark.asyncio
async def test_only_unknown_symbols_skip_the_request(patch_client):
    calls = patch_client("{}")
    provider = CoingeckoPriceProvider(base_url="https://cg.test")

    assert await provider.get_usd_prices(["NOTATOKEN"]) == {}
    assert calls == []


@pytest.mark.asyncio
async def test_http_errors_propagate(patch_client):
    patch_client('{"status": {"error_code": 429}}', status_code=429)
    provider = CoingeckoPriceProvider(base_url="https://cg.test")

    with pytest.raises(httpx.HTTPStatusError):
        await provider.get_usd_prices(["ETH"])


@pytest.mark.asyncio
async def test_health_check_reports_errors(patch_client):
    patch_client("{}", status_code=500)
    provider = CoingeckoPriceProvider(base_url="https://cg.test")

    result = await provider.health_check()

    assert result["status"] == "error"
