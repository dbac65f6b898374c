"""Unit tests for unit conversion, chunking and the ABI / address helpers."""

from __future__ import annotations

from decimal import Decimal

import pytest
from eth_account import Account

from volley.pneuma.abi import (
    ERC20_ABI,
    MAX_UINT256,
    ROUTER_ABI,
    decode_call,
    encode_erc20_approve,
    encode_erc20_transfer,
    encode_swap_exact_eth_for_tokens,
    function_selector,
)
from volley.pneuma.tx import same_address, to_checksum_address
from volley.utils import chunked, format_duration, format_ether, format_units, hex_to_int, to_base_units, to_wei


class TestAmounts:
    def test_to_wei(self) -> None:
        assert to_wei("1") == 10**18
        assert to_wei("0.00000001") == 10**10
        assert to_wei(Decimal("0.5")) == 5 * 10**17

    def test_token_decimals(self) -> None:
        assert to_base_units("100", 6) == 100_000_000

    @pytest.mark.parametrize("bad", ["lots", "-1", ""])
    def test_invalid(self, bad: str) -> None:
        with pytest.raises(ValueError):
            to_wei(bad)

    def test_format(self) -> None:
        assert format_ether(10**18) == "1"
        assert format_ether(1234 * 10**14) == "0.1234"
        assert format_units(2_500_000_000, 9) == "2.5"
        assert format_ether(0) == "0"

    def test_duration(self) -> None:
        assert format_duration(0.25) == "250ms"
        assert format_duration(3.14159) == "3.14s"


class TestHelpers:
    def test_chunked(self) -> None:
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(chunked([], 3)) == []
        with pytest.raises(ValueError):
            list(chunked([1], 0))

    def test_hex_to_int(self) -> None:
        assert hex_to_int("0x1a") == 26
        assert hex_to_int(None) == 0
        assert hex_to_int(7) == 7


class TestAddresses:
    def test_checksum_matches_eth_account(self) -> None:
        address = Account.create().address
        assert to_checksum_address(address.lower()) == address

    def test_known_checksum(self) -> None:
        assert (
            to_checksum_address("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
            == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
        )

    def test_invalid_length(self) -> None:
        with pytest.raises(ValueError):
            to_checksum_address("0x1234")

    def test_same_address(self) -> None:
        assert same_address("0xABCD", "0xabcd")
        assert not same_address(None, "0xabcd")
        assert not same_address("0x01", "0x02")


class TestAbi:
    def test_erc20_selectors(self) -> None:
        assert function_selector(ERC20_ABI, "transfer").hex() == "a9059cbb"
        assert function_selector(ERC20_ABI, "approve").hex() == "095ea7b3"
        assert function_selector(ROUTER_ABI, "swapExactETHForTokens").hex() == "7ff36ab5"

    def test_transfer_decodes(self) -> None:
        recipient = Account.create().address
        data = encode_erc20_transfer(recipient, 42)
        assert data.startswith("0xa9059cbb")
        decoded_to, amount = decode_call(ERC20_ABI, "transfer", data)
        assert same_address(decoded_to, recipient)
        assert amount == 42

    def test_approve_defaults_to_max(self) -> None:
        spender = "0x" + "33" * 20
        _, amount = decode_call(ERC20_ABI, "approve", encode_erc20_approve(spender))
        assert amount == MAX_UINT256

    def test_swap_decodes(self) -> None:
        weth, token, to = "0x" + "22" * 20, "0x" + "11" * 20, "0x" + "44" * 20
        data = encode_swap_exact_eth_for_tokens([weth, token], to, 1_700_003_600)
        amount_out_min, path, recipient, deadline = decode_call(ROUTER_ABI, "swapExactETHForTokens", data)
        assert amount_out_min == 0
        assert [p.lower() for p in path] == [weth, token]
        assert recipient.lower() == to
        assert deadline == 1_700_003_600

    def test_wrong_selector(self) -> None:
        with pytest.raises(ValueError):
            decode_call(ERC20_ABI, "transfer", encode_erc20_approve("0x" + "33" * 20))
