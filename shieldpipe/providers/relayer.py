"""Async client for the transaction relay service."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
import time
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..core.errors import (
    RelayerError,
    RelayerRejectedError,
    RelayerTimeoutError,
    RelayerUnavailableError,
)
from ..core.execution.models import is_shielded_address
from ..core.models import Amount, FeeQuote, RelayerInfo
from .base import Provider


logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
TX_HASH_KEYS = ("transactionHash", "txHash", "hash")

HEALTH_PATH = "/health"
ESTIMATE_FEE_PATH = "/api/relay/estimate-fee"
SUBMIT_PATH = "/api/relay/submit"
RELAYER_ADDRESS_PATH = "/api/relayer/address"


def find_transaction_hash(payload: Any) -> Optional[str]:
    """Depth-first search for a well-formed transaction hash in a response body."""
    if isinstance(payload, dict):
        for key in TX_HASH_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and TX_HASH_PATTERN.match(value):
                return value
        for value in payload.values():
            found = find_transaction_hash(value)
            if found:
                return found
    elif isinstance(payload, list):
        for item in payload:
            found = find_transaction_hash(item)
            if found:
                return found
    return None


def sign_request(secret: str, method: str, path: str, timestamp: str, body: str) -> str:
    """HMAC-SHA256 over ``METHOD:path:timestamp:body``, as sent in X-Relayer-Signature."""
    message = f"{method.upper()}:{path}:{timestamp}:{body}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class RelayerGateway(Provider):
    """
    Health, fee quote and submission calls against the relay service.

    Every transport failure is mapped onto the recoverable RelayerError
    family so the submitter can fall back to self-signing.
    """

    name = "relayer"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        hmac_secret: Optional[str] = None,
        health_timeout_s: Optional[float] = None,
        quote_timeout_s: Optional[float] = None,
        submit_timeout_s: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.relayer_base_url).rstrip("/")
        self.hmac_secret = settings.relayer_hmac_secret if hmac_secret is None else hmac_secret
        self.health_timeout_s = health_timeout_s or settings.relayer_health_timeout_seconds
        self.quote_timeout_s = quote_timeout_s or settings.relayer_quote_timeout_seconds
        self.submit_timeout_s = submit_timeout_s or settings.relayer_submit_timeout_seconds
        self.timeout_s = self.health_timeout_s

    def _headers(self, method: str, path: str, body: str) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": "shieldpipe/0.1",
        }
        if self.hmac_secret:
            timestamp = str(int(time.time() * 1000))
            headers["X-Relayer-Timestamp"] = timestamp
            headers["X-Relayer-Signature"] = sign_request(self.hmac_secret, method, path, timestamp, body)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[Dict[str, Any]] = None,
        timeout: float,
        chain_id: Optional[int] = None,
    ) -> httpx.Response:
        # The signed body must be byte-identical to what goes on the wire
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""
        headers = self._headers(method, path, body)

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=timeout) as client:
                return await client.request(method, path, content=body or None, headers=headers)
        except httpx.TimeoutException as exc:
            raise RelayerTimeoutError(
                f"Relayer {method} {path} timed out after {timeout}s",
                chain_id=chain_id,
            ) from exc
        except httpx.RequestError as exc:
            raise RelayerUnavailableError(
                f"Relayer {method} {path} unreachable: {exc}",
                chain_id=chain_id,
            ) from exc

    async def ready(self) -> bool:
        return settings.relayer_enabled

    async def health_check(self) -> Dict[str, Any]:
        healthy = await self.check_health()
        return {"status": "healthy" if healthy else "unavailable", "base_url": self.base_url}

    async def check_health(self) -> bool:
        """True only for a 200 with ``{"status": "healthy"}``; never raises."""
        try:
            response = await self._request("GET", HEALTH_PATH, timeout=self.health_timeout_s)
        except RelayerError as exc:
            logger.warning("Relayer health check failed: %s", exc)
            return False

        if response.status_code != 200:
            logger.warning("Relayer health check returned HTTP %s", response.status_code)
            return False
        data = _safe_json(response)
        return isinstance(data, dict) and data.get("status") == "healthy"

    def should_use_relayer(self, chain_id: int, amount: Amount) -> bool:
        if not settings.relayer_enabled:
            return False
        if amount < settings.relayer_min_amount:
            logger.info("Amount %s below relayer minimum on chain %s", amount, chain_id)
            return False
        return True

    async def get_relayer_info(self, chain_id: int, token_address: str) -> RelayerInfo:
        """Relayer's shielded fee address for this attempt; fee token is the transferred token."""
        response = await self._request(
            "GET", RELAYER_ADDRESS_PATH, timeout=self.quote_timeout_s, chain_id=chain_id
        )
        data = _safe_json(response)
        address = data.get("railgunAddress") if isinstance(data, dict) else None
        if response.status_code != 200 or not isinstance(address, str) or not is_shielded_address(address):
            raise RelayerUnavailableError(
                "Relayer did not provide a valid shielded fee address",
                chain_id=chain_id,
                details={"status_code": response.status_code},
            )
        advertised = data.get("feePerUnitGas")
        try:
            fee_per_unit_gas = int(advertised) if advertised is not None else settings.relayer_fee_per_unit_gas
        except (TypeError, ValueError):
            raise RelayerUnavailableError(
                f"Relayer advertised an unusable fee per unit gas: {advertised!r}",
                chain_id=chain_id,
            ) from None
        return RelayerInfo(
            shielded_address=address,
            fee_token_address=token_address,
            fee_per_unit_gas=fee_per_unit_gas,
        )

    async def quote_fee(
        self,
        chain_id: int,
        token_address: str,
        amount: Amount,
        gas_estimate: Amount,
    ) -> Optional[FeeQuote]:
        """Relayer-side fee estimate for display only; None when unavailable."""
        payload = {
            "chainId": str(chain_id),
            "tokenAddress": token_address,
            "amount": str(amount),
            "gasEstimate": str(gas_estimate),
        }
        try:
            response = await self._request(
                "POST", ESTIMATE_FEE_PATH, payload=payload, timeout=self.quote_timeout_s, chain_id=chain_id
            )
            response.raise_for_status()
            estimate = (response.json() or {}).get("feeEstimate") or {}
            return FeeQuote(
                relayer_fee_amount=int(estimate.get("relayerFee", 0)),
                gas_reclamation_amount=int(estimate.get("gasFee", 0)),
                protocol_fee_amount=int(estimate.get("protocolFee", 0)),
            )
        except (RelayerError, httpx.HTTPStatusError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Relayer fee quote unavailable on chain %s: %s", chain_id, exc)
            return None

    async def submit(
        self,
        chain_id: int,
        serialized_transaction: str,
        token_address: str,
        amount: Amount,
        fee_details: Dict[str, str],
    ) -> str:
        """
        Hand the populated transaction to the relayer for broadcast.

        A transaction hash anywhere in the reply, error envelopes included,
        means the transaction was broadcast and is returned as success.

        Raises:
            RelayerTimeoutError: no reply within the submit timeout
            RelayerUnavailableError: connection failure or 5xx without a hash
            RelayerRejectedError: any other reply without a hash
        """
        payload = {
            "chainId": str(chain_id),
            "serializedTransaction": serialized_transaction,
            "tokenAddress": token_address,
            "amount": str(amount),
            "feeDetails": fee_details,
        }
        response = await self._request(
            "POST", SUBMIT_PATH, payload=payload, timeout=self.submit_timeout_s, chain_id=chain_id
        )
        data = _safe_json(response)
        tx_hash = find_transaction_hash(data)

        if tx_hash:
            if not response.is_success:
                logger.warning(
                    "Relayer returned HTTP %s but reported broadcast %s; treating as success",
                    response.status_code,
                    tx_hash,
                )
            else:
                logger.info(
                    "Relayer broadcast %s (gas used %s)",
                    tx_hash,
                    data.get("gasUsed") if isinstance(data, dict) else None,
                )
            return tx_hash

        error_text = ""
        if isinstance(data, dict):
            error_text = str(data.get("error") or data.get("message") or "")
        details = {"status_code": response.status_code, "error": error_text}

        if response.status_code >= 500:
            raise RelayerUnavailableError(
                f"Relayer failed with HTTP {response.status_code}: {error_text}",
                chain_id=chain_id,
                details=details,
            )
        if response.is_success:
            raise RelayerRejectedError(
                "Relayer accepted the request but returned no transaction hash",
                status_code=response.status_code,
                chain_id=chain_id,
                details=details,
            )
        raise RelayerRejectedError(
            f"Relayer rejected the transaction: {error_text or response.status_code}",
            status_code=response.status_code,
            chain_id=chain_id,
            details=details,
        )
