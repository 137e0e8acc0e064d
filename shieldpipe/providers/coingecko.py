import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable

import httpx

from ..config import settings
from .base import PriceProvider


logger = logging.getLogger(__name__)

SYMBOL_TO_COINGECKO_ID: Dict[str, str] = {
    "ETH": "ethereum",
    "WETH": "weth",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "WBTC": "wrapped-bitcoin",
    "MATIC": "matic-network",
    "WMATIC": "wmatic",
    "POL": "polygon-ecosystem-token",
    "ARB": "arbitrum",
    "OP": "optimism",
    "BNB": "binancecoin",
    "WBNB": "wbnb",
}


class CoingeckoPriceProvider(PriceProvider):
    """Coingecko API provider for USD prices used in gas reclamation"""

    name = "coingecko"
    timeout_s = 15

    def __init__(self, base_url: str = "", api_key: str = ""):
        self.api_key = api_key or settings.coingecko_api_key
        self.base_url = (base_url or settings.coingecko_base_url).rstrip("/")

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["X-CG-Demo-API-Key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return True  # API key is optional for basic tier

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{self.base_url}/ping",
                    headers=self._build_headers(),
                    timeout=self.timeout_s,
                )
                response.raise_for_status()
                return {"status": "healthy"}
        except httpx.HTTPError as e:
            return {"status": "error", "reason": str(e)}

    async def get_usd_prices(self, symbols: Iterable[str]) -> Dict[str, Decimal]:
        """Fetch USD prices by symbol.

        Prices come back as ``Decimal`` parsed from the JSON text so no
        float rounding leaks into fee math. Symbols without a known id, or
        missing from the response, are omitted.
        """
        wanted = {s.upper(): SYMBOL_TO_COINGECKO_ID.get(s.upper()) for s in symbols}
        unknown = [s for s, coin_id in wanted.items() if coin_id is None]
        if unknown:
            logger.warning("No Coingecko id for symbols %s", unknown)
        ids = sorted({coin_id for coin_id in wanted.values() if coin_id})
        if not ids:
            return {}

        params = {
            "ids": ",".join(ids),
            "vs_currencies": "usd",
        }

        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{self.base_url}/simple/price",
                headers=self._build_headers(),
                params=params,
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            data = response.json(parse_float=Decimal)

        prices: Dict[str, Decimal] = {}
        for symbol, coin_id in wanted.items():
            if not coin_id:
                continue
            raw = (data.get(coin_id) or {}).get("usd")
            if raw is None:
                continue
            try:
                prices[symbol] = Decimal(str(raw))
            except InvalidOperation:
                logger.warning("Unparsable Coingecko price for %s: %r", symbol, raw)
        return prices
