"""
Bundle and transaction builders for the transfer flows.
"""

import json
from typing import Any, Dict, Optional

from eth_utils import to_checksum_address

from ..errors import MalformedTransactionError
from ..models import Amount, FeeQuote, GasType
from .models import (
    AssetKind,
    BroadcasterFee,
    BundleShape,
    ContractCall,
    PopulatedTransaction,
    Recipient,
    TransferBundle,
)


ERC20_TRANSFER_SELECTOR = "0xa9059cbb"  # transfer(address,uint256)

REQUIRED_SIGNING_FIELDS = ("to", "data", "gasLimit")


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def encode_erc20_transfer(to_address: str, amount: Amount) -> str:
    return ERC20_TRANSFER_SELECTOR + _encode_address(to_address) + _encode_uint256(amount)


class BundleBuilder:
    """
    Builds the TransferBundle for each BundleShape.

    Relayer-assisted ERC-20 unshields send everything except the broadcaster
    fee to the forwarding contract, which then pays the end recipient their
    net amount with a single ``transfer`` call. Relayed base-token unshields
    and private transfers carry one end-recipient entry for the net amount.
    Self-signed transfers have a single recipient entry and no broadcaster fee.
    """

    @staticmethod
    def build(
        shape: BundleShape,
        *,
        sender_wallet_id: str,
        chain_id: int,
        token_address: str,
        recipient_address: str,
        gross_amount: Amount,
        fee_quote: FeeQuote,
        relayer_address: Optional[str] = None,
        relay_adapt_address: Optional[str] = None,
    ) -> TransferBundle:
        recipient_amount = gross_amount - fee_quote.total_fee_amount
        if shape.relayer_assisted:
            return BundleBuilder.build_relayer_assisted(
                shape,
                sender_wallet_id=sender_wallet_id,
                chain_id=chain_id,
                token_address=token_address,
                recipient_address=recipient_address,
                gross_amount=gross_amount,
                recipient_amount=recipient_amount,
                broadcaster_fee_amount=fee_quote.broadcaster_fee_amount,
                relayer_address=relayer_address,
                relay_adapt_address=relay_adapt_address,
            )
        return BundleBuilder.build_self_signed(
            shape,
            sender_wallet_id=sender_wallet_id,
            chain_id=chain_id,
            token_address=token_address,
            recipient_address=recipient_address,
            recipient_amount=recipient_amount,
        )

    @staticmethod
    def build_relayer_assisted(
        shape: BundleShape,
        *,
        sender_wallet_id: str,
        chain_id: int,
        token_address: str,
        recipient_address: str,
        gross_amount: Amount,
        recipient_amount: Amount,
        broadcaster_fee_amount: Amount,
        relayer_address: Optional[str],
        relay_adapt_address: Optional[str],
    ) -> TransferBundle:
        if not relayer_address:
            raise ValueError("relayer-assisted bundles need the relayer's shielded address")

        broadcaster_fee = BroadcasterFee(
            recipient_address=relayer_address,
            token_address=token_address,
            amount=broadcaster_fee_amount,
        )

        if shape.private_transfer or shape.asset is AssetKind.BASE_TOKEN:
            # Private transfers stay inside the pool; base-token unshields are
            # unwrapped by the SDK straight to the recipient. Neither needs
            # the forwarding contract.
            return TransferBundle(
                sender_wallet_id=sender_wallet_id,
                chain_id=chain_id,
                token_address=token_address,
                recipient_address=recipient_address,
                recipient_amount=recipient_amount,
                recipients=(Recipient(token_address, recipient_amount, recipient_address),),
                shape=shape,
                broadcaster_fee=broadcaster_fee,
                send_with_public_wallet=False,
            )

        if not relay_adapt_address:
            raise ValueError("relayer-assisted unshields need the forwarding contract address")

        call = ContractCall(
            to=to_checksum_address(token_address),
            data=encode_erc20_transfer(recipient_address, recipient_amount),
        )

        return TransferBundle(
            sender_wallet_id=sender_wallet_id,
            chain_id=chain_id,
            token_address=token_address,
            recipient_address=recipient_address,
            recipient_amount=recipient_amount,
            recipients=(
                Recipient(token_address, gross_amount - broadcaster_fee_amount, relay_adapt_address),
            ),
            shape=shape,
            broadcaster_fee=broadcaster_fee,
            cross_contract_calls=(call,),
            send_with_public_wallet=False,
        )

    @staticmethod
    def build_self_signed(
        shape: BundleShape,
        *,
        sender_wallet_id: str,
        chain_id: int,
        token_address: str,
        recipient_address: str,
        recipient_amount: Amount,
    ) -> TransferBundle:
        return TransferBundle(
            sender_wallet_id=sender_wallet_id,
            chain_id=chain_id,
            token_address=token_address,
            recipient_address=recipient_address,
            recipient_amount=recipient_amount,
            recipients=(Recipient(token_address, recipient_amount, recipient_address),),
            shape=shape,
            send_with_public_wallet=True,
        )


def _missing_fields(tx: Dict[str, Any]) -> list:
    return [name for name in REQUIRED_SIGNING_FIELDS if not tx.get(name)]


def format_for_signer(populated: PopulatedTransaction) -> Dict[str, Any]:
    """
    Convert a populated transaction into the hex-encoded dict a signer expects.

    Legacy transactions without a gas price borrow ``max_fee_per_gas``.
    Unset fields are dropped.

    Raises:
        MalformedTransactionError: if ``to``, ``data`` or the gas limit is missing
    """
    gas_price = populated.gas_price
    if gas_price is None and populated.tx_type != GasType.EIP1559.tx_type:
        gas_price = populated.max_fee_per_gas

    tx: Dict[str, Any] = {
        "to": populated.to,
        "data": populated.data,
        "value": hex(populated.value or 0),
        "gasLimit": hex(populated.gas_limit) if populated.gas_limit is not None else None,
        "gasPrice": hex(gas_price) if gas_price is not None else None,
        "maxFeePerGas": hex(populated.max_fee_per_gas) if populated.max_fee_per_gas is not None else None,
        "maxPriorityFeePerGas": (
            hex(populated.max_priority_fee_per_gas) if populated.max_priority_fee_per_gas is not None else None
        ),
        "type": populated.tx_type,
        "chainId": populated.chain_id,
    }
    if populated.tx_type == GasType.EIP1559.tx_type:
        tx["gasPrice"] = None
    tx = {key: value for key, value in tx.items() if value is not None}

    missing = _missing_fields(tx)
    if missing:
        raise MalformedTransactionError(
            f"Populated transaction is missing {', '.join(missing)}",
            chain_id=populated.chain_id,
            details={"missing": missing},
        )
    return tx


def serialize_for_relayer(populated: PopulatedTransaction) -> str:
    """
    Serialize for the relay service: ``0x`` + hex of compact JSON.

    Integers travel as decimal strings.
    """
    payload: Dict[str, Any] = {
        "to": populated.to,
        "data": populated.data,
        "value": str(populated.value or 0),
        "gasLimit": str(populated.gas_limit) if populated.gas_limit is not None else None,
        "type": populated.tx_type,
    }
    if populated.tx_type == GasType.EIP1559.tx_type:
        payload["maxFeePerGas"] = str(populated.max_fee_per_gas) if populated.max_fee_per_gas is not None else None
        payload["maxPriorityFeePerGas"] = (
            str(populated.max_priority_fee_per_gas) if populated.max_priority_fee_per_gas is not None else None
        )
    else:
        payload["gasPrice"] = str(populated.gas_price) if populated.gas_price is not None else None
    payload = {key: value for key, value in payload.items() if value is not None}

    missing = _missing_fields(payload)
    if missing:
        raise MalformedTransactionError(
            f"Populated transaction is missing {', '.join(missing)}",
            chain_id=populated.chain_id,
            details={"missing": missing},
        )
    encoded = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    return "0x" + encoded.encode("utf-8").hex()
