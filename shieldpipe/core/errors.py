"""
Error Classification

Typed failures surfaced by the transfer pipeline.
Errors are classified as recoverable (the submitter falls back to self-signing)
or fatal (the attempt aborts and the caller sees the error).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for reporting and fallback decisions."""

    PRICE = "price"                   # Token/gas price inputs missing
    FEE = "fee"                       # Fees would consume the transfer
    VALIDATION = "validation"         # Address/self-targeting checks
    ACCOUNTING = "accounting"         # Conservation broken
    PARITY = "parity"                 # Proof/populate parameter drift
    MALFORMED_TX = "malformed_tx"     # Populated tx missing fields
    RELAYER = "relayer"               # Relay service failures
    TIMEOUT = "timeout"               # Relay service timed out
    SUBMISSION = "submission"         # Self-signed broadcast failed
    CONCURRENCY = "concurrency"       # Overlapping attempts for a wallet
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False
    chain_id: Optional[int] = None
    stage: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class PipelineError(Exception):
    """Base class for every failure the pipeline surfaces."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        *,
        chain_id: Optional[int] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = ErrorContext(
            category=self.category,
            recoverable=self.recoverable,
            chain_id=chain_id,
            stage=stage,
            details=dict(details or {}),
        )

    def with_stage(self, stage: str, chain_id: Optional[int] = None) -> "PipelineError":
        """Stamp the pipeline stage (and chain) without overwriting earlier values."""
        if self.context.stage is None:
            self.context.stage = stage
        if self.context.chain_id is None and chain_id is not None:
            self.context.chain_id = chain_id
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "category": self.context.category.value,
            "recoverable": self.context.recoverable,
            "chain_id": self.context.chain_id,
            "stage": self.context.stage,
            "details": self.context.details,
        }


# Fatal errors
class PriceUnavailableError(PipelineError):
    """A token or native price needed for fee conversion is missing or zero."""

    category = ErrorCategory.PRICE


class FeeExceedsAmountError(PipelineError):
    """Combined fees would leave the recipient with nothing."""

    category = ErrorCategory.FEE


class SelfTargetingError(PipelineError):
    """Sender, recipient and relayer addresses collide."""

    category = ErrorCategory.VALIDATION


class ConservationViolationError(PipelineError):
    """Recipient amount plus fees does not equal the gross amount."""

    category = ErrorCategory.ACCOUNTING


class ParityMismatchError(PipelineError):
    """Populate-time public inputs differ from the proved ones."""

    category = ErrorCategory.PARITY


class MalformedTransactionError(PipelineError):
    """Populated transaction lacks a field required for signing."""

    category = ErrorCategory.MALFORMED_TX


class SubmissionFailedError(PipelineError):
    """Self-signed broadcast failed (after any relayer attempt)."""

    category = ErrorCategory.SUBMISSION


class AttemptInProgressError(PipelineError):
    """Another attempt for the same wallet is already in flight."""

    category = ErrorCategory.CONCURRENCY


class InvalidTransferError(PipelineError):
    """Recipient, token or amount of a transfer request is not usable."""

    category = ErrorCategory.VALIDATION


class InvalidTransitionError(PipelineError):
    """Pipeline attempted a state change outside its transition map."""

    def __init__(self, from_state: str, to_state: str):
        super().__init__(
            f"Invalid transition from {from_state} to {to_state}",
            details={"from_state": from_state, "to_state": to_state},
        )


# Recoverable errors
class RelayerError(PipelineError):
    """
    Base class for relay service failures.

    These never reach the caller on their own: the submitter answers
    them with a single self-signed attempt.
    """

    category = ErrorCategory.RELAYER
    recoverable = True


class RelayerUnavailableError(RelayerError):
    """Relay service unreachable, unhealthy or returned a server error."""


class RelayerTimeoutError(RelayerUnavailableError):
    """Relay service did not answer within the configured timeout."""

    category = ErrorCategory.TIMEOUT


class RelayerRejectedError(RelayerError):
    """Relay service refused the transaction."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        if status_code is not None:
            self.context.details.setdefault("status_code", status_code)
