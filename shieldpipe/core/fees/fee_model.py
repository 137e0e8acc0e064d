"""
Fee arithmetic for shielded transfers.

Everything here works on integer base units. USD prices enter as
``Decimal`` and are converted once into ``PRICE_SCALE`` fixed point;
from then on no float or Decimal takes part in fee math.

Rounding policy:
- percentage fees (relayer, protocol) floor
- gas reclamation ceils, so the relayer is never under-compensated
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Mapping, Optional, Union

from ...config import settings
from ..errors import FeeExceedsAmountError, PriceUnavailableError
from ..models import Amount, FeeData, FeeQuote
from .gas_guard import GasPriceGuard


logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000

# USD prices are carried as integers scaled by 1e8
PRICE_SCALE = 10**8

PriceInput = Union[Decimal, int, str, None]


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer ceiling division for non-negative numerators."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return -(-numerator // denominator)


def to_scaled_price(price: PriceInput) -> Optional[int]:
    """Convert a USD price into ``PRICE_SCALE`` fixed point (half-up).

    Returns None for missing or unparsable prices. Floats are rejected;
    callers should pass ``Decimal`` (or a decimal string) straight from
    the price provider.
    """
    if price is None:
        return None
    if isinstance(price, float):
        raise TypeError("prices must be Decimal or str, not float")
    try:
        scaled = (Decimal(str(price)) * PRICE_SCALE).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None
    return int(scaled)


class FeeModel:
    """Computes the protocol, relayer and gas-reclamation fees of a transfer."""

    def __init__(
        self,
        relayer_fee_bps: Optional[int] = None,
        protocol_fee_bps: Optional[int] = None,
        gas_guard: Optional[GasPriceGuard] = None,
    ):
        self.relayer_fee_bps = settings.relayer_fee_bps if relayer_fee_bps is None else relayer_fee_bps
        self.protocol_fee_bps = settings.protocol_fee_bps if protocol_fee_bps is None else protocol_fee_bps
        self.gas_guard = gas_guard or GasPriceGuard()

    def compute_protocol_fee(self, gross_amount: Amount, *, private_transfer: bool = False) -> Amount:
        """Unshield fee kept by the pool contract.

        Never transferred explicitly; the SDK absorbs it. Private transfers
        stay inside the pool and pay none.
        """
        _check_amount(gross_amount)
        if private_transfer:
            return 0
        return gross_amount * self.protocol_fee_bps // BPS_DENOMINATOR

    def compute_relayer_fee(self, gross_amount: Amount) -> Amount:
        _check_amount(gross_amount)
        return gross_amount * self.relayer_fee_bps // BPS_DENOMINATOR

    def compute_gas_reclamation_fee(
        self,
        gas_cost_native: Amount,
        native_token_price: Optional[int],
        fee_token_price: Optional[int],
        fee_token_decimals: int,
        native_token_decimals: int = 18,
    ) -> Amount:
        """
        Convert a native gas cost into fee-token base units.

        Prices are ``PRICE_SCALE`` integers (see ``to_scaled_price``). The
        conversion is a single ceiling division over the full product so
        no intermediate step truncates.

        Raises:
            PriceUnavailableError: if either price is missing or not positive
        """
        if not native_token_price or native_token_price <= 0:
            raise PriceUnavailableError(
                "Native token price unavailable for gas reclamation",
                details={"native_token_price": native_token_price},
            )
        if not fee_token_price or fee_token_price <= 0:
            raise PriceUnavailableError(
                "Fee token price unavailable for gas reclamation",
                details={"fee_token_price": fee_token_price},
            )
        if gas_cost_native < 0:
            raise ValueError("gas_cost_native must be non-negative")

        numerator = gas_cost_native * native_token_price * 10**fee_token_decimals
        denominator = 10**native_token_decimals * fee_token_price
        return ceil_div(numerator, denominator)

    def apply_gas_price_guard(
        self,
        chain_id: int,
        raw_gas_price: int,
        fee_data: Optional[FeeData] = None,
    ) -> Amount:
        return self.gas_guard.apply_gas_price_guard(chain_id, raw_gas_price, fee_data)

    def validate_combined_fee(self, combined_fee: Amount, gross_amount: Amount) -> None:
        """Reject fee totals that would leave the recipient with nothing."""
        if combined_fee >= gross_amount:
            raise FeeExceedsAmountError(
                "Combined fees exceed the transfer amount",
                details={"combined_fee": str(combined_fee), "gross_amount": str(gross_amount)},
            )

    def compute_fee_quote(
        self,
        gross_amount: Amount,
        *,
        relayer_assisted: bool,
        private_transfer: bool = False,
        gas_cost_native: Amount = 0,
        fee_token_is_base_token: bool = False,
        prices: Optional[Mapping[str, Optional[int]]] = None,
        native_symbol: str = "",
        fee_token_symbol: str = "",
        fee_token_decimals: int = 18,
        native_token_decimals: int = 18,
    ) -> FeeQuote:
        """
        Build the FeeQuote for one attempt and run the combined-fee preflight.

        Self-signed transfers only pay the protocol fee. For relayer-assisted
        transfers the gas reclamation is the native cost itself when the fee
        token is the (wrapped) base token, otherwise it is converted through
        ``prices`` (symbol -> scaled USD price).
        """
        protocol_fee = self.compute_protocol_fee(gross_amount, private_transfer=private_transfer)

        relayer_fee = 0
        gas_fee = 0
        if relayer_assisted:
            relayer_fee = self.compute_relayer_fee(gross_amount)
            if fee_token_is_base_token:
                gas_fee = gas_cost_native
            else:
                prices = prices or {}
                gas_fee = self.compute_gas_reclamation_fee(
                    gas_cost_native,
                    prices.get(native_symbol),
                    prices.get(fee_token_symbol),
                    fee_token_decimals,
                    native_token_decimals,
                )

        quote = FeeQuote(
            relayer_fee_amount=relayer_fee,
            gas_reclamation_amount=gas_fee,
            protocol_fee_amount=protocol_fee,
        )
        self.validate_combined_fee(quote.total_fee_amount, gross_amount)

        logger.debug(
            "Computed fee quote gross=%s relayer=%s gas=%s protocol=%s",
            gross_amount,
            relayer_fee,
            gas_fee,
            protocol_fee,
        )
        return quote

    @staticmethod
    def recipient_amount(gross_amount: Amount, quote: FeeQuote) -> Amount:
        return gross_amount - quote.total_fee_amount


def _check_amount(amount: Amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError("amounts must be integers in base units")
    if amount < 0:
        raise ValueError("amounts must be non-negative")
