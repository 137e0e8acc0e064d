import pytest

from shieldpipe.core import chains
from shieldpipe.core.models import GasType


class TestChainMetadata:
    def test_unsupported_chain(self):
        assert chains.is_supported_chain(10) is False
        with pytest.raises(ValueError):
            chains.get_chain(10)

    @pytest.mark.parametrize(
        "chain_id,floor",
        [(1, 10**9), (56, 10**8), (137, 30 * 10**9), (42161, 10**7), (31337, 10**9)],
    )
    def test_gas_price_floors(self, chain_id, floor):
        assert chains.gas_price_floor(chain_id) == floor

    def test_only_polygon_has_priority_minimum(self):
        assert chains.min_priority_fee(137) == 30 * 10**9
        assert chains.min_priority_fee(1) is None
        assert chains.min_priority_fee(31337) is None

    def test_native_symbols(self):
        assert chains.native_symbol(56) == "BNB"
        assert chains.native_symbol(42161) == "ETH"


class TestBaseToken:
    def test_wrapped_base_token_any_case(self):
        assert chains.is_base_token(42161, "0x82af49447d8a07e3bd95bd0d56f35241523fbab1")

    def test_zero_address(self):
        assert chains.is_base_token(1, chains.ZERO_ADDRESS)

    def test_erc20(self):
        assert not chains.is_base_token(42161, "0xFF970A61A04b1cA14834A43f5dE4533eBDDB5CC8")


class TestGasType:
    def test_self_signed_on_1559_chain(self):
        assert chains.gas_type_for_transaction(1, True) is GasType.EIP1559

    def test_relayed_is_legacy(self):
        assert chains.gas_type_for_transaction(1, False) is GasType.LEGACY

    def test_bnb_is_always_legacy(self):
        assert chains.gas_type_for_transaction(56, True) is GasType.LEGACY


def test_lookup_token():
    assert chains.lookup_token(1, "dai")["symbol"] == "DAI"
    assert chains.lookup_token(1, "UNKNOWN") is None
