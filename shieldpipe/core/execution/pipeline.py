"""
Transfer Pipeline

Drives one shielded transfer from balance refresh to broadcast:

    IDLE -> BALANCE_REFRESHED -> FEES_COMPUTED -> GAS_ESTIMATED
         -> PROVED -> POPULATED -> SUBMITTED -> SUCCEEDED

Any state may drop to FAILED. Fees and the bundle are fixed before the
proof is generated; the populate call must see exactly the proved public
inputs, and nothing is submitted otherwise.
"""

import logging
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Set

import structlog
from eth_utils import is_address

from ...config import settings
from .. import chains
from ..errors import (
    AttemptInProgressError,
    InvalidTransferError,
    InvalidTransitionError,
    PipelineError,
    PriceUnavailableError,
    RelayerError,
)
from ..fees import FeeModel, GasPriceGuard, to_scaled_price
from ..models import Amount, FeeQuote, GasDetails
from ..validation import InvariantValidator
from .models import (
    AssetKind,
    BundleShape,
    PipelineState,
    PublicInputFingerprint,
    SubmissionMode,
    TokenInfo,
    TransferAttempt,
    TransferBundle,
    TransferContext,
    TransferResult,
    StateTransition,
    is_shielded_address,
)
from .progress import ProgressStream
from .sdk import ShieldedPoolSDK
from .submitter import Submitter
from .tx_builder import BundleBuilder

if TYPE_CHECKING:
    from ...providers.base import GasOracle, PriceProvider
    from ...providers.relayer import RelayerGateway


logger = logging.getLogger(__name__)


class TransactionPipeline:
    """
    Fee-adjusted transfer pipeline with relayer and self-signed shapes.

    A pipeline instance may be shared, but it serves one attempt per wallet
    at a time: the SDK cannot prove concurrently for the same spending keys.
    All per-attempt data lives on a fresh TransferAttempt.
    """

    TRANSITIONS: Dict[PipelineState, Set[PipelineState]] = {
        PipelineState.IDLE: {
            PipelineState.BALANCE_REFRESHED,
            PipelineState.FAILED,
        },
        PipelineState.BALANCE_REFRESHED: {
            PipelineState.FEES_COMPUTED,
            PipelineState.FAILED,
        },
        PipelineState.FEES_COMPUTED: {
            PipelineState.GAS_ESTIMATED,
            PipelineState.FAILED,
        },
        PipelineState.GAS_ESTIMATED: {
            PipelineState.PROVED,
            PipelineState.FAILED,
        },
        PipelineState.PROVED: {
            PipelineState.POPULATED,
            PipelineState.FAILED,  # Parity mismatch discards the proof
        },
        PipelineState.POPULATED: {
            PipelineState.SUBMITTED,
            PipelineState.FAILED,
        },
        PipelineState.SUBMITTED: {
            PipelineState.SUCCEEDED,
            PipelineState.FAILED,
        },
        PipelineState.SUCCEEDED: set(),
        PipelineState.FAILED: set(),
    }

    # Stage being worked on while sitting in a given state
    NEXT_STATE: Dict[PipelineState, PipelineState] = {
        PipelineState.IDLE: PipelineState.BALANCE_REFRESHED,
        PipelineState.BALANCE_REFRESHED: PipelineState.FEES_COMPUTED,
        PipelineState.FEES_COMPUTED: PipelineState.GAS_ESTIMATED,
        PipelineState.GAS_ESTIMATED: PipelineState.PROVED,
        PipelineState.PROVED: PipelineState.POPULATED,
        PipelineState.POPULATED: PipelineState.SUBMITTED,
        PipelineState.SUBMITTED: PipelineState.SUCCEEDED,
    }

    def __init__(
        self,
        sdk: ShieldedPoolSDK,
        gas_oracle: "GasOracle",
        price_provider: "PriceProvider",
        gateway: Optional["RelayerGateway"] = None,
        *,
        submitter: Optional[Submitter] = None,
        fee_model: Optional[FeeModel] = None,
        gas_guard: Optional[GasPriceGuard] = None,
        validator: Optional[InvariantValidator] = None,
        gas_padding_percent: Optional[int] = None,
        min_gas_limit: Optional[int] = None,
        reclamation_gas_limit: Optional[int] = None,
        base_token_reclamation_gas_limit: Optional[int] = None,
    ):
        self.sdk = sdk
        self.gas_oracle = gas_oracle
        self.price_provider = price_provider
        self.gateway = gateway
        self.submitter = submitter or Submitter(gateway)
        self.gas_guard = gas_guard or GasPriceGuard()
        self.fee_model = fee_model or FeeModel(gas_guard=self.gas_guard)
        self.validator = validator or InvariantValidator()

        self.gas_padding_percent = (
            settings.gas_padding_percent if gas_padding_percent is None else gas_padding_percent
        )
        self.min_gas_limit = settings.min_gas_limit if min_gas_limit is None else min_gas_limit
        self.reclamation_gas_limit = (
            settings.reclamation_gas_limit if reclamation_gas_limit is None else reclamation_gas_limit
        )
        self.base_token_reclamation_gas_limit = (
            settings.base_token_reclamation_gas_limit
            if base_token_reclamation_gas_limit is None
            else base_token_reclamation_gas_limit
        )

        self._in_flight: Set[str] = set()

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def submit_transfer(
        self,
        context: TransferContext,
        recipient: str,
        token: TokenInfo,
        amount: Amount,
        *,
        progress: Optional[ProgressStream] = None,
    ) -> TransferResult:
        """
        Move ``amount`` of ``token`` from the shielded wallet to ``recipient``.

        ``recipient`` is a public ``0x`` address (unshield) or a shielded
        ``0zk`` address (private transfer).

        Raises:
            PipelineError: a typed failure with ``context.stage`` set; relayer
                failures only surface when the self-signed fallback also failed
        """
        self._validate_request(context, recipient, token, amount)

        wallet_id = context.sender_wallet_id
        if wallet_id in self._in_flight:
            raise AttemptInProgressError(
                "A transfer for this wallet is already in progress",
                chain_id=context.chain_id,
                details={"wallet_id": wallet_id},
            )
        self._in_flight.add(wallet_id)

        attempt = TransferAttempt(context=context, token=token, recipient=recipient, gross_amount=amount)
        structlog.contextvars.bind_contextvars(
            attempt_id=attempt.attempt_id,
            chain_id=context.chain_id,
            wallet_id=wallet_id,
        )
        try:
            return await self._run(attempt, progress)
        except PipelineError as exc:
            exc.with_stage(self._stage_of(attempt).value, context.chain_id)
            logger.error("Transfer attempt failed at %s: %s", exc.context.stage, exc.message)
            self._fail(attempt, exc.message, progress)
            raise
        except Exception as exc:
            logger.exception("Transfer attempt failed at %s", self._stage_of(attempt).value)
            self._fail(attempt, str(exc), progress)
            raise
        finally:
            self._in_flight.discard(wallet_id)
            structlog.contextvars.unbind_contextvars("attempt_id", "chain_id", "wallet_id")
            if progress is not None:
                progress.close()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, attempt: TransferAttempt, progress: Optional[ProgressStream]) -> TransferResult:
        context = attempt.context
        chain_id = context.chain_id

        await self._refresh_balances(attempt)
        self._transition(attempt, PipelineState.BALANCE_REFRESHED, progress, "Balances refreshed")

        # Fees and bundle
        shape = await self._select_shape(attempt)
        attempt.shape = shape
        self.validator.assert_not_self_targeting(
            context.shielded_address,
            attempt.recipient,
            attempt.relayer_address,
        )

        fee_data = await self.gas_oracle.get_fee_data(chain_id)
        gas_type = chains.gas_type_for_transaction(chain_id, shape.send_with_public_wallet)
        gas_details = self.gas_guard.build_gas_details(chain_id, fee_data, gas_type)

        attempt.fee_quote = await self._compute_fees(attempt, shape, gas_details)
        attempt.bundle = self._build_bundle(attempt)
        self.validator.assert_conservation(
            attempt.gross_amount,
            attempt.bundle.recipient_amount,
            attempt.fee_quote.relayer_fee_amount,
            attempt.fee_quote.protocol_fee_amount,
            attempt.fee_quote.gas_reclamation_amount,
        )
        self._transition(attempt, PipelineState.FEES_COMPUTED, progress, f"Fees computed ({shape})")

        if shape.relayer_assisted and self.gateway is not None:
            attempt.relayer_quote = await self.gateway.quote_fee(
                chain_id,
                attempt.token.address,
                attempt.gross_amount,
                self._reclamation_gas_limit(shape),
            )

        # Gas estimate, frozen before the proof
        raw_estimate = await self.sdk.estimate_unproven_gas(attempt.bundle, gas_details)
        attempt.gas_details = gas_details.with_estimate(self._pad_gas_estimate(raw_estimate))
        self._transition(attempt, PipelineState.GAS_ESTIMATED, progress, "Gas estimated")

        bundle = attempt.bundle
        attempt.proof_fingerprint = PublicInputFingerprint.from_bundle(bundle)
        attempt.proof = await self.sdk.generate_proof(
            bundle,
            bundle.broadcaster_fee,
            bundle.send_with_public_wallet,
            progress.proof_progress if progress is not None else None,
        )
        self._transition(attempt, PipelineState.PROVED, progress, "Proof generated")

        populate_bundle = self._bundle_for_populate(attempt)
        attempt.populate_fingerprint = PublicInputFingerprint.from_bundle(populate_bundle)
        self.validator.assert_parity(attempt.proof_fingerprint, attempt.populate_fingerprint)
        attempt.populated = await self.sdk.populate_transaction(
            populate_bundle,
            populate_bundle.broadcaster_fee,
            populate_bundle.send_with_public_wallet,
            attempt.gas_details,
        )
        self._transition(attempt, PipelineState.POPULATED, progress, "Transaction populated")

        outcome = await self.submitter.submit(
            attempt.populated,
            chain_id=chain_id,
            use_relayer=shape.relayer_assisted,
            token_address=attempt.token.address,
            amount=attempt.gross_amount,
            fee_details=attempt.fee_quote.to_dict(),
            signer=context.signer,
        )
        self._transition(attempt, PipelineState.SUBMITTED, progress, f"Submitted {outcome.transaction_hash}")
        self._transition(attempt, PipelineState.SUCCEEDED, progress, "Transfer complete")

        logger.info(
            "Transfer %s broadcast %s via %s",
            attempt.attempt_id,
            outcome.transaction_hash,
            "relayer" if outcome.used_relayer else "own wallet",
        )
        return TransferResult(
            transaction_hash=outcome.transaction_hash,
            used_relayer=outcome.used_relayer,
            privacy_level=outcome.privacy_level,
            fee_quote=attempt.fee_quote,
            shape=shape,
            attempt_id=attempt.attempt_id,
            relayer_quote=attempt.relayer_quote,
        )

    async def _refresh_balances(self, attempt: TransferAttempt) -> None:
        context = attempt.context
        try:
            await self.sdk.refresh_balances(context.chain_id, [context.sender_wallet_id])
        except Exception as exc:
            # Stale balances surface later as an SDK proof failure
            logger.warning("Balance refresh failed, continuing with cached balances: %s", exc)

    async def _select_shape(self, attempt: TransferAttempt) -> BundleShape:
        """Pick the bundle shape; the relayer is only baked in when it is reachable now."""
        chain_id = attempt.context.chain_id
        asset = AssetKind.BASE_TOKEN if chains.is_base_token(chain_id, attempt.token.address) else AssetKind.ERC20
        private = is_shielded_address(attempt.recipient)
        self_signed = BundleShape(SubmissionMode.SELF_SIGNED, asset, private)

        if self.gateway is None or not self.gateway.should_use_relayer(chain_id, attempt.gross_amount):
            return self_signed

        if not await self.gateway.check_health():
            logger.warning("Relayer unhealthy, building self-signed transfer")
            return self_signed

        try:
            info = await self.gateway.get_relayer_info(chain_id, attempt.token.address)
        except RelayerError as exc:
            logger.warning("Relayer info unavailable, building self-signed transfer: %s", exc)
            return self_signed

        attempt.relayer_info = info
        attempt.relayer_address = info.shielded_address
        return BundleShape(SubmissionMode.RELAYER_ASSISTED, asset, private)

    async def _compute_fees(
        self,
        attempt: TransferAttempt,
        shape: BundleShape,
        gas_details: GasDetails,
    ) -> FeeQuote:
        if not shape.relayer_assisted:
            return self.fee_model.compute_fee_quote(
                attempt.gross_amount,
                relayer_assisted=False,
                private_transfer=shape.private_transfer,
            )

        chain_id = attempt.context.chain_id
        # The relayer does not broadcast below its advertised per-gas price
        gas_price = gas_details.effective_gas_price
        if attempt.relayer_info is not None:
            gas_price = max(gas_price, attempt.relayer_info.fee_per_unit_gas)
        gas_cost = self._reclamation_gas_limit(shape) * gas_price

        if shape.asset is AssetKind.BASE_TOKEN:
            return self.fee_model.compute_fee_quote(
                attempt.gross_amount,
                relayer_assisted=True,
                private_transfer=shape.private_transfer,
                gas_cost_native=gas_cost,
                fee_token_is_base_token=True,
            )

        native = chains.native_symbol(chain_id)
        fee_symbol = attempt.token.symbol.upper()
        prices = await self._fetch_scaled_prices(chain_id, (native, fee_symbol))
        return self.fee_model.compute_fee_quote(
            attempt.gross_amount,
            relayer_assisted=True,
            private_transfer=shape.private_transfer,
            gas_cost_native=gas_cost,
            prices=prices,
            native_symbol=native,
            fee_token_symbol=fee_symbol,
            fee_token_decimals=attempt.token.decimals,
            native_token_decimals=chains.native_decimals(chain_id),
        )

    async def _fetch_scaled_prices(self, chain_id: int, symbols: Iterable[str]) -> Dict[str, Optional[int]]:
        """One price snapshot per attempt, converted to fixed point."""
        symbols = list(symbols)
        try:
            usd_prices = await self.price_provider.get_usd_prices(symbols)
        except PipelineError:
            raise
        except Exception as exc:
            raise PriceUnavailableError(
                f"Price lookup failed: {exc}",
                chain_id=chain_id,
                details={"symbols": symbols},
            ) from exc
        return {symbol: to_scaled_price(usd_prices.get(symbol)) for symbol in symbols}

    def _reclamation_gas_limit(self, shape: BundleShape) -> int:
        if shape.asset is AssetKind.BASE_TOKEN:
            return self.base_token_reclamation_gas_limit
        return self.reclamation_gas_limit

    def _pad_gas_estimate(self, raw_estimate: int) -> int:
        padded = raw_estimate * (100 + self.gas_padding_percent) // 100
        return max(padded, self.min_gas_limit)

    def _build_bundle(self, attempt: TransferAttempt) -> TransferBundle:
        shape = attempt.shape
        chain_id = attempt.context.chain_id
        needs_forwarder = shape.relayer_assisted and not shape.private_transfer and shape.asset is AssetKind.ERC20
        return BundleBuilder.build(
            shape,
            sender_wallet_id=attempt.context.sender_wallet_id,
            chain_id=chain_id,
            token_address=attempt.token.address,
            recipient_address=attempt.recipient,
            gross_amount=attempt.gross_amount,
            fee_quote=attempt.fee_quote,
            relayer_address=attempt.relayer_address,
            relay_adapt_address=self.sdk.relay_adapt_address(chain_id) if needs_forwarder else None,
        )

    def _bundle_for_populate(self, attempt: TransferAttempt) -> TransferBundle:
        """Rebuild the bundle from the recorded shape, quote and addresses for the populate step.

        It must fingerprint identically to the proved bundle.
        """
        return self._build_bundle(attempt)

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def _validate_request(self, context: TransferContext, recipient: str, token: TokenInfo, amount: Amount) -> None:
        details = {"recipient": recipient, "token": token.address, "amount": str(amount)}
        if not chains.is_supported_chain(context.chain_id):
            raise InvalidTransferError(f"Unsupported chain {context.chain_id}", chain_id=context.chain_id)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidTransferError("Amount must be a positive integer", chain_id=context.chain_id, details=details)
        if not is_address(token.address):
            raise InvalidTransferError("Invalid token address", chain_id=context.chain_id, details=details)
        if not (is_shielded_address(recipient) or is_address(recipient)):
            raise InvalidTransferError("Invalid recipient address", chain_id=context.chain_id, details=details)

    def _stage_of(self, attempt: TransferAttempt) -> PipelineState:
        return self.NEXT_STATE.get(attempt.state, attempt.state)

    def _transition(
        self,
        attempt: TransferAttempt,
        to_state: PipelineState,
        progress: Optional[ProgressStream],
        reason: Optional[str] = None,
    ) -> None:
        from_state = attempt.state
        if to_state not in self.TRANSITIONS.get(from_state, set()):
            raise InvalidTransitionError(from_state.value, to_state.value)

        attempt.state_history.append(StateTransition(from_state=from_state, to_state=to_state, reason=reason))
        attempt.state = to_state
        logger.info("Transfer %s: %s -> %s", attempt.attempt_id, from_state.value, to_state.value)
        if progress is not None:
            progress.emit(to_state, reason or "")

    def _fail(self, attempt: TransferAttempt, reason: str, progress: Optional[ProgressStream]) -> None:
        if attempt.state.is_terminal:
            return
        self._transition(attempt, PipelineState.FAILED, progress, reason)
