"""
Final dispatch of a populated transaction.

The relayer gets one chance; any relayer failure is answered with exactly
one self-signed broadcast of the same populated transaction.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from ..errors import (
    PipelineError,
    RelayerError,
    RelayerUnavailableError,
    SubmissionFailedError,
)
from ..models import Amount
from .models import PopulatedTransaction, PrivacyLevel
from .sdk import TransactionSigner
from .tx_builder import format_for_signer, serialize_for_relayer

if TYPE_CHECKING:
    from ...providers.relayer import RelayerGateway


logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    transaction_hash: str
    used_relayer: bool
    privacy_level: PrivacyLevel
    relayer_error: Optional[RelayerError] = None


class Submitter:
    """Relayer-first submission with a single self-signed fallback."""

    def __init__(self, gateway: Optional["RelayerGateway"] = None):
        self.gateway = gateway

    async def submit(
        self,
        populated: PopulatedTransaction,
        *,
        chain_id: int,
        use_relayer: bool,
        token_address: str,
        amount: Amount,
        fee_details: Dict[str, str],
        signer: Optional[TransactionSigner],
    ) -> SubmissionOutcome:
        relayer_error: Optional[RelayerError] = None

        if use_relayer and self.gateway is not None:
            try:
                tx_hash = await self._submit_via_relayer(populated, chain_id, token_address, amount, fee_details)
                return SubmissionOutcome(
                    transaction_hash=tx_hash,
                    used_relayer=True,
                    privacy_level=PrivacyLevel.RELAYED,
                )
            except RelayerError as exc:
                relayer_error = exc
                logger.warning("Relayer submission failed, falling back to self-signing: %s", exc)

        tx_hash = await self.self_sign(populated, signer, chain_id=chain_id, relayer_error=relayer_error)
        return SubmissionOutcome(
            transaction_hash=tx_hash,
            used_relayer=False,
            privacy_level=PrivacyLevel.SELF_SIGNED,
            relayer_error=relayer_error,
        )

    async def _submit_via_relayer(
        self,
        populated: PopulatedTransaction,
        chain_id: int,
        token_address: str,
        amount: Amount,
        fee_details: Dict[str, str],
    ) -> str:
        if not await self.gateway.check_health():
            raise RelayerUnavailableError("Relayer unhealthy at submission time", chain_id=chain_id)

        serialized = serialize_for_relayer(populated)
        return await self.gateway.submit(chain_id, serialized, token_address, amount, fee_details)

    async def self_sign(
        self,
        populated: PopulatedTransaction,
        signer: Optional[TransactionSigner],
        *,
        chain_id: int,
        relayer_error: Optional[RelayerError] = None,
    ) -> str:
        """
        Sign and broadcast with the user's own wallet.

        Raises:
            MalformedTransactionError: populated tx lacks to/data/gasLimit
            SubmissionFailedError: no signer, or the signer failed
        """
        tx = format_for_signer(populated)

        details = {}
        if relayer_error is not None:
            details["relayer_error"] = relayer_error.message

        if signer is None:
            raise SubmissionFailedError(
                "No signer available for self-signed submission",
                chain_id=chain_id,
                details=details,
            )

        try:
            tx_hash = await signer.send_transaction(tx)
        except PipelineError:
            raise
        except Exception as exc:
            details["signer_error"] = str(exc)
            raise SubmissionFailedError(
                f"Self-signed broadcast failed: {exc}",
                chain_id=chain_id,
                details=details,
            ) from exc

        logger.info("Self-signed broadcast %s on chain %s", tx_hash, chain_id)
        return tx_hash
