"""
Transfer Execution Layer

Provides the pipeline that turns a transfer request into a broadcast transaction:
- TransactionPipeline: balance refresh, fees, gas estimate, proof, populate, submit
- Submitter: relayer-first dispatch with a single self-signed fallback
- BundleBuilder: TransferBundle for each BundleShape
- ShieldedPoolSDK / TransactionSigner: boundaries implemented by the host wallet

Usage:
    from shieldpipe.core.execution import (
        TransactionPipeline,
        TransferContext,
        TokenInfo,
    )

    pipeline = TransactionPipeline(sdk, gas_oracle, price_provider, gateway)
    result = await pipeline.submit_transfer(
        TransferContext(sender_wallet_id="w1", chain_id=42161, shielded_address="0zk...", signer=signer),
        recipient="0x...",
        token=TokenInfo(address="0x...", symbol="USDC", decimals=6),
        amount=1_000_000,
    )
"""

from .models import (
    AssetKind,
    BroadcasterFee,
    BundleShape,
    ContractCall,
    PipelineState,
    PopulatedTransaction,
    PrivacyLevel,
    ProgressEvent,
    PublicInputFingerprint,
    Recipient,
    SubmissionMode,
    TokenInfo,
    TransferAttempt,
    TransferBundle,
    TransferContext,
    TransferResult,
    is_shielded_address,
)

from .sdk import (
    ShieldedPoolSDK,
    TransactionSigner,
)

from .tx_builder import (
    BundleBuilder,
    encode_erc20_transfer,
    format_for_signer,
    serialize_for_relayer,
)

from .progress import ProgressStream

from .submitter import (
    Submitter,
    SubmissionOutcome,
)

from .pipeline import TransactionPipeline

__all__ = [
    # Models
    "AssetKind",
    "BroadcasterFee",
    "BundleShape",
    "ContractCall",
    "PipelineState",
    "PopulatedTransaction",
    "PrivacyLevel",
    "ProgressEvent",
    "PublicInputFingerprint",
    "Recipient",
    "SubmissionMode",
    "TokenInfo",
    "TransferAttempt",
    "TransferBundle",
    "TransferContext",
    "TransferResult",
    "is_shielded_address",
    # SDK boundary
    "ShieldedPoolSDK",
    "TransactionSigner",
    # Builders
    "BundleBuilder",
    "encode_erc20_transfer",
    "format_for_signer",
    "serialize_for_relayer",
    # Progress
    "ProgressStream",
    # Submission
    "Submitter",
    "SubmissionOutcome",
    # Pipeline
    "TransactionPipeline",
]
