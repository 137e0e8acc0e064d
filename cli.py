#!/usr/bin/env python3
"""Operator CLI for inspecting fees, gas pricing and relayer health"""

import argparse
import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional

from shieldpipe.config import settings
from shieldpipe.core import chains
from shieldpipe.core.errors import PipelineError
from shieldpipe.core.execution.models import AssetKind, BundleShape, SubmissionMode
from shieldpipe.core.fees import FeeModel, GasPriceGuard, to_scaled_price
from shieldpipe.core.models import FeeData
from shieldpipe.logging_config import setup_logging
from shieldpipe.providers import CoingeckoPriceProvider, JsonRpcGasOracle, RelayerGateway


def resolve_token(chain_id: int, token: str) -> Dict[str, Any]:
    """Accept a known symbol, or ``address:symbol:decimals``."""
    known = chains.lookup_token(chain_id, token)
    if known:
        return known
    parts = token.split(":")
    if len(parts) != 3:
        raise ValueError(f"Unknown token {token!r}; use a known symbol or address:symbol:decimals")
    address, symbol, decimals = parts
    return {"address": address, "symbol": symbol.upper(), "decimals": int(decimals)}


def compute_fee_breakdown(
    amount: int,
    chain_id: int,
    token: Dict[str, Any],
    *,
    fee_data: FeeData,
    prices: Dict[str, Decimal],
    relayer: bool = True,
    private: bool = False,
) -> Dict[str, Any]:
    """Fee split for a hypothetical transfer, without touching the SDK."""
    guard = GasPriceGuard()
    model = FeeModel(gas_guard=guard)
    asset = AssetKind.BASE_TOKEN if chains.is_base_token(chain_id, token["address"]) else AssetKind.ERC20
    mode = SubmissionMode.RELAYER_ASSISTED if relayer else SubmissionMode.SELF_SIGNED
    shape = BundleShape(mode, asset, private)

    gas_type = chains.gas_type_for_transaction(chain_id, shape.send_with_public_wallet)
    gas_details = guard.build_gas_details(chain_id, fee_data, gas_type)
    gas_limit = (
        settings.base_token_reclamation_gas_limit if asset is AssetKind.BASE_TOKEN else settings.reclamation_gas_limit
    )
    gas_cost = gas_limit * gas_details.effective_gas_price

    native = chains.native_symbol(chain_id)
    quote = model.compute_fee_quote(
        amount,
        relayer_assisted=relayer,
        private_transfer=private,
        gas_cost_native=gas_cost,
        fee_token_is_base_token=asset is AssetKind.BASE_TOKEN,
        prices={symbol: to_scaled_price(price) for symbol, price in prices.items()},
        native_symbol=native,
        fee_token_symbol=token["symbol"],
        fee_token_decimals=token["decimals"],
        native_token_decimals=chains.native_decimals(chain_id),
    )
    return {
        "shape": str(shape),
        "gas": gas_details.to_dict(),
        "gasCostNative": str(gas_cost),
        "fees": quote.to_dict(),
        "recipientAmount": str(FeeModel.recipient_amount(amount, quote)),
    }


def print_breakdown(amount: int, token: Dict[str, Any], breakdown: Dict[str, Any]) -> None:
    decimals = token["decimals"]

    def fmt(value: str) -> str:
        return f"{Decimal(value) / (Decimal(10) ** decimals):f} {token['symbol']}"

    fees = breakdown["fees"]
    print(f"\n💸 Fee breakdown ({breakdown['shape']})")
    print("=" * 50)
    print(f"Gross amount:      {fmt(str(amount))}")
    print(f"Relayer fee:       {fmt(fees['relayerFee'])}")
    print(f"Gas reclamation:   {fmt(fees['gasReclamationFee'])}")
    print(f"Protocol fee:      {fmt(fees['protocolFee'])}")
    print("-" * 50)
    print(f"Recipient gets:    {fmt(breakdown['recipientAmount'])}")
    print(f"\nGas: {breakdown['gas']}")


async def cli_fees(args: argparse.Namespace) -> int:
    """CLI command to preview the fee split of a transfer"""
    if not chains.is_supported_chain(args.chain):
        print(f"❌ Unsupported chain: {args.chain}")
        return 1

    try:
        token = resolve_token(args.chain, args.token)
    except ValueError as e:
        print(f"❌ {e}")
        return 1

    if args.gas_price_gwei is not None:
        gwei = int(Decimal(args.gas_price_gwei) * 10**9)
        fee_data = FeeData(gas_price=gwei, max_fee_per_gas=gwei, max_priority_fee_per_gas=min(gwei, 10**9))
    else:
        fee_data = await JsonRpcGasOracle().get_fee_data(args.chain)

    native = chains.native_symbol(args.chain)
    prices: Dict[str, Decimal] = {}
    if args.native_price is not None:
        prices[native] = Decimal(args.native_price)
    if args.token_price is not None:
        prices[token["symbol"]] = Decimal(args.token_price)
    if not args.self_signed and len(prices) < 2:
        fetched = await CoingeckoPriceProvider().get_usd_prices([native, token["symbol"]])
        prices = {**fetched, **prices}

    try:
        breakdown = compute_fee_breakdown(
            args.amount,
            args.chain,
            token,
            fee_data=fee_data,
            prices=prices,
            relayer=not args.self_signed,
            private=args.private,
        )
    except PipelineError as e:
        print(f"❌ {type(e).__name__}: {e.message}")
        return 1

    print_breakdown(args.amount, token, breakdown)
    return 0


async def cli_relayer_health() -> int:
    """CLI command to check the relayer"""
    gateway = RelayerGateway()
    print(f"🔍 Checking relayer at {gateway.base_url}...")
    healthy = await gateway.check_health()
    print("✅ Relayer healthy" if healthy else "❌ Relayer unavailable")
    return 0 if healthy else 1


async def cli_gas(chain_id: int) -> int:
    """CLI command to show raw and guarded gas pricing"""
    if not chains.is_supported_chain(chain_id):
        print(f"❌ Unsupported chain: {chain_id}")
        return 1

    raw = await JsonRpcGasOracle().get_fee_data(chain_id)
    guarded = GasPriceGuard().guard_fee_data(chain_id, raw)
    print(f"\n⛽ Gas on {chains.get_chain(chain_id)['name']}")
    print("=" * 50)
    for label, data in (("Reported", raw), ("Guarded", guarded)):
        print(
            f"{label:<9} gasPrice={data.gas_price} maxFee={data.max_fee_per_gas} "
            f"priority={data.max_priority_fee_per_gas}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="shieldpipe operator CLI")
    parser.add_argument("--log-level", default=None, help="Override log level")
    subparsers = parser.add_subparsers(dest="command")

    fees_parser = subparsers.add_parser("fees", help="Preview the fee split of a transfer")
    fees_parser.add_argument("amount", type=int, help="Gross amount in token base units")
    fees_parser.add_argument("--chain", type=int, default=42161, help="Chain id (default: 42161)")
    fees_parser.add_argument("--token", default="USDC", help="Known symbol or address:symbol:decimals")
    fees_parser.add_argument("--gas-price-gwei", help="Use this gas price instead of querying the chain")
    fees_parser.add_argument("--native-price", help="Native token USD price")
    fees_parser.add_argument("--token-price", help="Transferred token USD price")
    fees_parser.add_argument("--self-signed", action="store_true", help="Preview the self-signed shape")
    fees_parser.add_argument("--private", action="store_true", help="Private (0zk) transfer: no protocol fee")

    subparsers.add_parser("relayer-health", help="Check the relay service")

    gas_parser = subparsers.add_parser("gas", help="Show reported and guarded gas pricing")
    gas_parser.add_argument("chain", type=int, help="Chain id")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if not args.command:
        parser.print_help()
        return 0

    command = args.command.lower()

    if command == "fees":
        return await cli_fees(args)

    elif command == "relayer-health":
        return await cli_relayer_health()

    elif command == "gas":
        return await cli_gas(args.chain)

    print(f"❌ Unknown command: {command}")
    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
