"""
Transfer execution models and types.
"""

import json
import secrets
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ..models import Amount, FeeQuote, GasDetails, RelayerInfo

if TYPE_CHECKING:
    from .sdk import TransactionSigner


SHIELDED_ADDRESS_PREFIX = "0zk"


def is_shielded_address(address: str) -> bool:
    return address.startswith(SHIELDED_ADDRESS_PREFIX)


class SubmissionMode(str, Enum):
    """Who broadcasts the transaction."""
    RELAYER_ASSISTED = "relayer_assisted"
    SELF_SIGNED = "self_signed"


class AssetKind(str, Enum):
    """What leaves the pool."""
    BASE_TOKEN = "base_token"   # Wrapped native token, unwrapped on exit
    ERC20 = "erc20"


class PrivacyLevel(str, Enum):
    """Whether the user's public wallet appears on-chain as the sender."""
    RELAYED = "relayed"
    SELF_SIGNED = "self_signed"


class PipelineState(str, Enum):
    """Transfer attempt lifecycle."""
    IDLE = "idle"
    BALANCE_REFRESHED = "balance_refreshed"
    FEES_COMPUTED = "fees_computed"
    GAS_ESTIMATED = "gas_estimated"
    PROVED = "proved"
    POPULATED = "populated"
    SUBMITTED = "submitted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED)


@dataclass(frozen=True)
class BundleShape:
    """Tagged variant selecting one of the transfer flows."""
    mode: SubmissionMode
    asset: AssetKind
    private_transfer: bool = False

    @property
    def relayer_assisted(self) -> bool:
        return self.mode is SubmissionMode.RELAYER_ASSISTED

    @property
    def send_with_public_wallet(self) -> bool:
        return self.mode is SubmissionMode.SELF_SIGNED

    def __str__(self) -> str:
        kind = "private" if self.private_transfer else self.asset.value
        return f"{self.mode.value}/{kind}"


@dataclass(frozen=True)
class TokenInfo:
    address: str
    symbol: str
    decimals: int


@dataclass(frozen=True)
class Recipient:
    """One SDK recipient entry (unshield target or shielded transfer target)."""
    token_address: str
    amount: Amount
    recipient_address: str


@dataclass(frozen=True)
class BroadcasterFee:
    """Relayer's cut, paid to its shielded address inside the pool."""
    recipient_address: str
    token_address: str
    amount: Amount


@dataclass(frozen=True)
class ContractCall:
    """Call executed by the forwarding contract after the unshield."""
    to: str
    data: str
    value: Amount = 0


@dataclass(frozen=True)
class TransferBundle:
    """Everything the SDK proves and populates for one attempt.

    ``recipient_address``/``recipient_amount`` describe the end recipient;
    ``recipients`` are the entries the SDK actually sees, which for relayed
    unshields point at the forwarding contract.
    """
    sender_wallet_id: str
    chain_id: int
    token_address: str
    recipient_address: str
    recipient_amount: Amount
    recipients: Tuple[Recipient, ...]
    shape: BundleShape
    broadcaster_fee: Optional[BroadcasterFee] = None
    cross_contract_calls: Tuple[ContractCall, ...] = ()
    send_with_public_wallet: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["shape"] = str(self.shape)
        return data


@dataclass(frozen=True)
class PublicInputFingerprint:
    """Canonical view of the proof's public parameters, compared for equality only."""
    token_address: str
    recipients: Tuple[Tuple[str, str, str], ...]
    send_with_public_wallet: bool
    has_broadcaster_fee: bool
    broadcaster_fee_recipient: Optional[str]
    broadcaster_fee_amount: Optional[str]
    cross_contract_calls: Tuple[Tuple[str, str, str], ...]

    @classmethod
    def from_parameters(
        cls,
        token_address: str,
        recipients: Tuple[Recipient, ...],
        broadcaster_fee: Optional[BroadcasterFee],
        send_with_public_wallet: bool,
        cross_contract_calls: Tuple[ContractCall, ...] = (),
    ) -> "PublicInputFingerprint":
        return cls(
            token_address=token_address.lower(),
            recipients=tuple(
                (r.token_address.lower(), str(r.amount), r.recipient_address.lower())
                for r in recipients
            ),
            send_with_public_wallet=bool(send_with_public_wallet),
            has_broadcaster_fee=broadcaster_fee is not None,
            broadcaster_fee_recipient=broadcaster_fee.recipient_address.lower() if broadcaster_fee else None,
            broadcaster_fee_amount=str(broadcaster_fee.amount) if broadcaster_fee else None,
            cross_contract_calls=tuple(
                (c.to.lower(), c.data.lower(), str(c.value)) for c in cross_contract_calls
            ),
        )

    @classmethod
    def from_bundle(cls, bundle: TransferBundle) -> "PublicInputFingerprint":
        return cls.from_parameters(
            bundle.token_address,
            bundle.recipients,
            bundle.broadcaster_fee,
            bundle.send_with_public_wallet,
            bundle.cross_contract_calls,
        )

    def canonical(self) -> str:
        return json.dumps(asdict(self), sort_keys=True, separators=(",", ":"))

    def diff(self, other: "PublicInputFingerprint") -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) != getattr(other, f.name)]


@dataclass
class PopulatedTransaction:
    """Unsigned transaction returned by the SDK populate step."""
    to: Optional[str]
    data: Optional[str]
    value: int = 0
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    tx_type: Optional[int] = None
    chain_id: Optional[int] = None


@dataclass
class TransferContext:
    """Per-attempt caller context: who sends, on which chain, signing with what."""
    sender_wallet_id: str
    chain_id: int
    shielded_address: str
    signer: Optional["TransactionSigner"] = None


@dataclass
class ProgressEvent:
    state: PipelineState
    percent: float
    message: str = ""


@dataclass
class StateTransition:
    from_state: PipelineState
    to_state: PipelineState
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TransferAttempt:
    """Mutable state of one submit_transfer call; never shared between calls."""
    context: TransferContext
    token: TokenInfo
    recipient: str
    gross_amount: Amount
    attempt_id: str = field(default_factory=lambda: f"xfer_{secrets.token_hex(8)}")
    state: PipelineState = PipelineState.IDLE
    state_history: List[StateTransition] = field(default_factory=list)
    shape: Optional[BundleShape] = None
    relayer_address: Optional[str] = None
    relayer_info: Optional[RelayerInfo] = None
    fee_quote: Optional[FeeQuote] = None
    relayer_quote: Optional[FeeQuote] = None
    bundle: Optional[TransferBundle] = None
    gas_details: Optional[GasDetails] = None
    proof: Any = None
    proof_fingerprint: Optional[PublicInputFingerprint] = None
    populate_fingerprint: Optional[PublicInputFingerprint] = None
    populated: Optional[PopulatedTransaction] = None


@dataclass
class TransferResult:
    transaction_hash: str
    used_relayer: bool
    privacy_level: PrivacyLevel
    fee_quote: FeeQuote
    shape: BundleShape
    attempt_id: str
    relayer_quote: Optional[FeeQuote] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionHash": self.transaction_hash,
            "usedRelayer": self.used_relayer,
            "privacyLevel": self.privacy_level.value,
            "fees": self.fee_quote.to_dict(),
            "shape": str(self.shape),
            "attemptId": self.attempt_id,
            "relayerQuote": self.relayer_quote.to_dict() if self.relayer_quote else None,
        }
