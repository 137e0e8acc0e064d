"""
Value-conservation and anti-self-targeting checks.

Every check here is a hard abort: a failure means either an accounting bug
or tampering, and proof generation must not start (or, for parity, the
proved transaction must not be populated).
"""

import logging
from typing import Any, Optional

from ..errors import ConservationViolationError, ParityMismatchError, SelfTargetingError
from ..models import Amount


logger = logging.getLogger(__name__)


def _same_address(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


class InvariantValidator:
    """Preflight and parity guards run around proof generation."""

    @staticmethod
    def assert_not_self_targeting(
        sender_address: str,
        recipient_address: str,
        relayer_address: Optional[str] = None,
    ) -> None:
        """
        Fail if the recipient is the sender, or the relayer is the sender.

        Addresses compare case-insensitively; a missing relayer (self-signed
        flow) is not checked.
        """
        if _same_address(sender_address, recipient_address):
            raise SelfTargetingError(
                "Recipient cannot be the sending wallet",
                details={"recipient": recipient_address},
            )
        if _same_address(sender_address, relayer_address):
            raise SelfTargetingError(
                "Relayer cannot be the sending wallet",
                details={"relayer": relayer_address},
            )

    @staticmethod
    def assert_conservation(
        gross_amount: Amount,
        recipient_amount: Amount,
        relayer_fee: Amount,
        protocol_fee: Amount,
        gas_reclamation_fee: Amount = 0,
    ) -> None:
        parts = {
            "recipient_amount": recipient_amount,
            "relayer_fee": relayer_fee,
            "gas_reclamation_fee": gas_reclamation_fee,
            "protocol_fee": protocol_fee,
        }
        details = {key: str(value) for key, value in parts.items()}
        details["gross_amount"] = str(gross_amount)

        negative = [key for key, value in parts.items() if value < 0]
        if negative:
            raise ConservationViolationError(
                f"Negative split component(s): {', '.join(negative)}",
                details=details,
            )
        if recipient_amount == 0:
            raise ConservationViolationError("Recipient would receive nothing", details=details)

        total = sum(parts.values())
        if total != gross_amount:
            logger.error("Conservation violated: outputs=%s gross=%s", total, gross_amount)
            details["outputs_total"] = str(total)
            raise ConservationViolationError("Outputs do not sum to the gross amount", details=details)

    @staticmethod
    def assert_parity(fingerprint_at_proof_time: Any, fingerprint_at_populate_time: Any) -> None:
        if fingerprint_at_proof_time == fingerprint_at_populate_time:
            return

        differing = []
        diff = getattr(fingerprint_at_proof_time, "diff", None)
        if callable(diff):
            differing = diff(fingerprint_at_populate_time)
        raise ParityMismatchError(
            "Populate-time public inputs differ from the proved inputs",
            details={"fields": differing},
        )
