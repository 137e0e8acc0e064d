"""
Tests for bundle construction, calldata encoding and transaction formatting.
"""

import json

import pytest

from shieldpipe.core.errors import MalformedTransactionError
from shieldpipe.core.execution import (
    AssetKind,
    BundleBuilder,
    BundleShape,
    PopulatedTransaction,
    PublicInputFingerprint,
    Recipient,
    SubmissionMode,
    encode_erc20_transfer,
    format_for_signer,
    serialize_for_relayer,
)
from shieldpipe.core.models import FeeQuote

USDC = "0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8"
WETH = "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"
RECIPIENT = "0x1111111111111111111111111111111111111111"
RELAY_ADAPT = "0x5aD95C537b002770a39dea342c4bb2b68B1497aA"
RELAYER_0ZK = "0zk1qyrelayer"
PRIVATE_RECIPIENT = "0zk1qyfriend"

RELAYED_QUOTE = FeeQuote(relayer_fee_amount=5000, gas_reclamation_amount=1000, protocol_fee_amount=2500)
SELF_SIGNED_QUOTE = FeeQuote(relayer_fee_amount=0, gas_reclamation_amount=0, protocol_fee_amount=2500)


def _build(shape, quote, recipient=RECIPIENT, token=USDC):
    return BundleBuilder.build(
        shape,
        sender_wallet_id="wallet-1",
        chain_id=42161,
        token_address=token,
        recipient_address=recipient,
        gross_amount=1_000_000,
        fee_quote=quote,
        relayer_address=RELAYER_0ZK,
        relay_adapt_address=RELAY_ADAPT,
    )


# =============================================================================
# Calldata
# =============================================================================

def test_erc20_transfer_calldata():
    data = encode_erc20_transfer(RECIPIENT, 992_500)
    assert data.startswith("0xa9059cbb")
    assert data[10:74] == "0" * 24 + "1" * 40
    assert int(data[74:], 16) == 992_500
    assert len(data) == 2 + 8 + 64 + 64


# =============================================================================
# Bundle shapes
# =============================================================================

class TestBundleShapes:
    def test_relayer_erc20_unshield(self):
        bundle = _build(BundleShape(SubmissionMode.RELAYER_ASSISTED, AssetKind.ERC20), RELAYED_QUOTE)

        assert bundle.send_with_public_wallet is False
        assert bundle.broadcaster_fee.recipient_address == RELAYER_0ZK
        assert bundle.broadcaster_fee.amount == 6000
        # everything but the broadcaster fee goes to the forwarding contract
        assert bundle.recipients[0].recipient_address == RELAY_ADAPT
        assert bundle.recipients[0].amount == 994_000
        assert bundle.recipient_amount == 991_500
        assert len(bundle.cross_contract_calls) == 1
        call = bundle.cross_contract_calls[0]
        assert call.to.lower() == USDC.lower()
        assert call.data == encode_erc20_transfer(RECIPIENT, 991_500)
        assert call.value == 0

    def test_relayer_base_token_unwraps_to_recipient(self):
        bundle = _build(BundleShape(SubmissionMode.RELAYER_ASSISTED, AssetKind.BASE_TOKEN), RELAYED_QUOTE, token=WETH)

        # no forwarding contract: the SDK unwraps straight to the recipient
        assert bundle.cross_contract_calls == ()
        assert bundle.recipients == (Recipient(WETH, 991_500, RECIPIENT),)
        assert bundle.broadcaster_fee.amount == 6000
        assert bundle.send_with_public_wallet is False

    def test_relayer_base_token_needs_no_forwarding_contract(self):
        bundle = BundleBuilder.build(
            BundleShape(SubmissionMode.RELAYER_ASSISTED, AssetKind.BASE_TOKEN),
            sender_wallet_id="wallet-1",
            chain_id=42161,
            token_address=WETH,
            recipient_address=RECIPIENT,
            gross_amount=1_000_000,
            fee_quote=RELAYED_QUOTE,
            relayer_address=RELAYER_0ZK,
        )

        assert bundle.recipient_amount == 991_500
        assert bundle.recipients[0].recipient_address == RECIPIENT

    def test_relayer_private_transfer_stays_in_pool(self):
        quote = FeeQuote(relayer_fee_amount=5000, gas_reclamation_amount=1000, protocol_fee_amount=0)
        bundle = _build(
            BundleShape(SubmissionMode.RELAYER_ASSISTED, AssetKind.ERC20, private_transfer=True),
            quote,
            recipient=PRIVATE_RECIPIENT,
        )

        assert bundle.cross_contract_calls == ()
        assert bundle.recipients[0].recipient_address == PRIVATE_RECIPIENT
        assert bundle.recipients[0].amount == 994_000
        assert bundle.broadcaster_fee.amount == 6000

    def test_self_signed_single_recipient(self):
        bundle = _build(BundleShape(SubmissionMode.SELF_SIGNED, AssetKind.ERC20), SELF_SIGNED_QUOTE)

        assert bundle.send_with_public_wallet is True
        assert bundle.broadcaster_fee is None
        assert bundle.cross_contract_calls == ()
        assert len(bundle.recipients) == 1
        assert bundle.recipients[0].recipient_address == RECIPIENT
        assert bundle.recipients[0].amount == 1_000_000 - 2500

    def test_relayer_shape_requires_relayer_address(self):
        with pytest.raises(ValueError):
            BundleBuilder.build(
                BundleShape(SubmissionMode.RELAYER_ASSISTED, AssetKind.ERC20),
                sender_wallet_id="wallet-1",
                chain_id=42161,
                token_address=USDC,
                recipient_address=RECIPIENT,
                gross_amount=1_000_000,
                fee_quote=RELAYED_QUOTE,
                relay_adapt_address=RELAY_ADAPT,
            )


class TestFingerprint:
    def test_fingerprint_is_case_insensitive(self):
        shape = BundleShape(SubmissionMode.SELF_SIGNED, AssetKind.ERC20)
        lower = _build(shape, SELF_SIGNED_QUOTE, recipient="0xabcdef0123456789abcdef0123456789abcdef01")
        mixed = _build(shape, SELF_SIGNED_QUOTE, recipient="0xABCDEF0123456789ABCDEF0123456789ABCDEF01")
        assert PublicInputFingerprint.from_bundle(lower) == PublicInputFingerprint.from_bundle(mixed)

    def test_canonical_form_is_stable_json(self):
        bundle = _build(BundleShape(SubmissionMode.SELF_SIGNED, AssetKind.ERC20), SELF_SIGNED_QUOTE)
        canonical = PublicInputFingerprint.from_bundle(bundle).canonical()
        decoded = json.loads(canonical)
        assert decoded["send_with_public_wallet"] is True
        assert decoded["has_broadcaster_fee"] is False
        assert canonical == PublicInputFingerprint.from_bundle(bundle).canonical()

    def test_recipient_amount_drift_is_detected(self):
        shape = BundleShape(SubmissionMode.RELAYER_ASSISTED, AssetKind.ERC20)
        proved = _build(shape, RELAYED_QUOTE)
        drifted = _build(shape, FeeQuote(5001, 1000, 2500))
        diff = PublicInputFingerprint.from_bundle(proved).diff(PublicInputFingerprint.from_bundle(drifted))
        assert "recipients" in diff
        assert "broadcaster_fee_amount" in diff
        assert "cross_contract_calls" in diff


# =============================================================================
# Signer / relayer formatting
# =============================================================================

class TestFormatting:
    def test_legacy_tx_hex_fields(self):
        tx = format_for_signer(
            PopulatedTransaction(to=RELAY_ADAPT, data="0xabc", gas_limit=1_600_000, gas_price=10**7, tx_type=0, chain_id=42161)
        )
        assert tx == {
            "to": RELAY_ADAPT,
            "data": "0xabc",
            "value": "0x0",
            "gasLimit": hex(1_600_000),
            "gasPrice": hex(10**7),
            "type": 0,
            "chainId": 42161,
        }

    def test_legacy_gas_price_borrows_max_fee(self):
        tx = format_for_signer(
            PopulatedTransaction(to=RELAY_ADAPT, data="0xabc", gas_limit=21000, max_fee_per_gas=5, tx_type=0)
        )
        assert tx["gasPrice"] == "0x5"

    def test_eip1559_tx_has_no_gas_price(self):
        tx = format_for_signer(
            PopulatedTransaction(
                to=RELAY_ADAPT,
                data="0xabc",
                gas_limit=21000,
                max_fee_per_gas=40,
                max_priority_fee_per_gas=30,
                tx_type=2,
            )
        )
        assert "gasPrice" not in tx
        assert tx["maxFeePerGas"] == "0x28"
        assert tx["maxPriorityFeePerGas"] == "0x1e"

    @pytest.mark.parametrize("missing", ["to", "data", "gas_limit"])
    def test_missing_required_field(self, missing):
        fields = {"to": RELAY_ADAPT, "data": "0xabc", "gas_limit": 21000, "gas_price": 1}
        fields[missing] = None
        with pytest.raises(MalformedTransactionError):
            format_for_signer(PopulatedTransaction(**fields))

    def test_relayer_serialization_round_trips_to_json(self):
        serialized = serialize_for_relayer(
            PopulatedTransaction(to=RELAY_ADAPT, data="0xabc", gas_limit=1_600_000, gas_price=10**7, tx_type=0)
        )
        assert serialized.startswith("0x")
        payload = json.loads(bytes.fromhex(serialized[2:]).decode("utf-8"))
        assert payload == {
            "to": RELAY_ADAPT,
            "data": "0xabc",
            "value": "0",
            "gasLimit": "1600000",
            "gasPrice": "10000000",
            "type": 0,
        }

    def test_relayer_serialization_rejects_incomplete_tx(self):
        with pytest.raises(MalformedTransactionError):
            serialize_for_relayer(PopulatedTransaction(to=None, data="0xabc", gas_limit=1))
