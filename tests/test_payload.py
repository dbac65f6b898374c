"""Payload generation against the fake chain."""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict

import pytest

from fakechain import CHAIN_ID, FakeChain, make_senders
from volley.barrage.errors import PayloadError
from volley.barrage.mix import TxMix
from volley.barrage.models import (
    SWAP_GAS,
    TOKEN_TRANSFER_GAS,
    ContractAddresses,
    SwapIntent,
    TokenTransferIntent,
    TransferIntent,
    TxKind,
)
from volley.barrage.payload import PayloadParams, calculate_funding_needs, generate_payload
from volley.pneuma.tx import FeeParams
from volley.utils import GWEI, to_wei


def _params(tx_count: int = 100, mix: TxMix = TxMix(), multiplier: float = 2.0) -> PayloadParams:
    return PayloadParams(
        tx_count=tx_count,
        mix=mix,
        transfer_value=to_wei("0.00000001"),
        token_amount=100 * 10**18,
        swap_value=to_wei("0.0001"),
        gas_multiplier=multiplier,
    )


def _generate(chain: FakeChain, senders, params, contracts=ContractAddresses()):
    async def go():
        async with chain.client() as client:
            return await generate_payload(client, senders, params, contracts, CHAIN_ID)

    return asyncio.run(go())


class TestNonces:
    def test_gap_free_from_onchain_nonce(self, chain: FakeChain) -> None:
        senders = make_senders(chain, 4)
        # Pretend two senders already sent transactions.
        chain.nonces[senders[0].address.lower()] = 5
        chain.nonces[senders[2].address.lower()] = 17

        payload = _generate(chain, senders, _params(tx_count=37))

        by_sender = defaultdict(list)
        for d in payload.descriptors:
            by_sender[d.sender.address].append(d.nonce)
        starts = {senders[0].address: 5, senders[1].address: 0, senders[2].address: 17, senders[3].address: 0}
        for address, nonces in by_sender.items():
            assert nonces == list(range(starts[address], starts[address] + len(nonces)))

    def test_nonces_read_once_per_sender(self, chain: FakeChain) -> None:
        senders = make_senders(chain, 5)
        _generate(chain, senders, _params(tx_count=200))
        assert chain.calls.count("eth_getTransactionCount") == 5
        assert chain.calls.count("eth_gasPrice") == 1

    def test_failed_lookup_drops_sender(self, chain: FakeChain) -> None:
        senders = make_senders(chain, 4)
        dropped = senders[2].address.lower()
        chain.fault = lambda method, params: (
            "header not found"
            if method == "eth_getTransactionCount" and params[0].lower() == dropped
            else None
        )

        payload = _generate(chain, senders, _params(tx_count=30))

        assert len(payload) == 30
        assert dropped not in {d.sender.address.lower() for d in payload.descriptors}
        assert dropped not in payload.expected.sender_addresses
        per_sender = Counter(d.sender.address for d in payload.descriptors)
        assert set(per_sender.values()) == {10}

    def test_every_lookup_failing(self, chain: FakeChain) -> None:
        chain.fault = lambda method, params: (
            "header not found" if method == "eth_getTransactionCount" else None
        )
        with pytest.raises(PayloadError, match="nonce"):
            _generate(chain, make_senders(chain, 3), _params(tx_count=10))


class TestDistribution:
    def test_mixed_100_over_10_senders(self, chain: FakeChain, contracts: ContractAddresses) -> None:
        senders = make_senders(chain, 10)
        payload = _generate(chain, senders, _params(100, TxMix(70, 20, 10)), contracts)

        assert len(payload) == 100
        kinds = Counter(d.kind for d in payload.descriptors)
        assert kinds == {TxKind.TRANSFER: 70, TxKind.TOKEN_TRANSFER: 20, TxKind.SWAP: 10}
        per_sender = Counter(d.sender.address for d in payload.descriptors)
        assert set(per_sender.values()) == {10}

    def test_types_interleaved(self, chain: FakeChain, contracts: ContractAddresses) -> None:
        senders = make_senders(chain, 3)
        payload = _generate(chain, senders, _params(9, TxMix(34, 33, 33)), contracts)
        assert [d.kind for d in payload.descriptors[:3]] == [
            TxKind.TRANSFER, TxKind.TOKEN_TRANSFER, TxKind.SWAP,
        ]

    def test_indices_and_round_robin(self, chain: FakeChain) -> None:
        senders = make_senders(chain, 3)
        payload = _generate(chain, senders, _params(10))
        assert [d.index for d in payload.descriptors] == list(range(10))
        assert [d.sender for d in payload.descriptors[:4]] == [senders[0], senders[1], senders[2], senders[0]]

    def test_two_kinds_over_even_sender_count(self, chain: FakeChain, contracts: ContractAddresses) -> None:
        senders = make_senders(chain, 6)
        payload = _generate(chain, senders, _params(60, TxMix(50, 50, 0)), contracts)

        per_sender = defaultdict(Counter)
        for d in payload.descriptors:
            per_sender[d.sender.address][d.kind] += 1
        assert len(per_sender) == 6
        for kinds in per_sender.values():
            assert kinds == {TxKind.TRANSFER: 5, TxKind.TOKEN_TRANSFER: 5}

    def test_three_kinds_over_multiple_of_three(self, chain: FakeChain, contracts: ContractAddresses) -> None:
        senders = make_senders(chain, 9)
        payload = _generate(chain, senders, _params(90, TxMix(34, 33, 33)), contracts)

        assert Counter(d.kind for d in payload.descriptors) == {
            TxKind.TRANSFER: 30, TxKind.TOKEN_TRANSFER: 30, TxKind.SWAP: 30,
        }
        per_sender = defaultdict(set)
        for d in payload.descriptors:
            per_sender[d.sender.address].add(d.kind)
        assert all(kinds == set(TxKind) for kinds in per_sender.values())


class TestFees:
    def test_buffer_applied_to_every_descriptor(self, chain: FakeChain) -> None:
        senders = make_senders(chain, 2)
        payload = _generate(chain, senders, _params(10, multiplier=2.5))
        assert payload.fees.max_fee_per_gas == chain.gas_price * 250 // 100
        assert payload.fees.max_priority_fee_per_gas <= payload.fees.max_fee_per_gas
        assert {d.fees for d in payload.descriptors} == {payload.fees}

    def test_missing_priority_fee_method(self, chain: FakeChain) -> None:
        chain.priority_fee_supported = False
        payload = _generate(chain, make_senders(chain, 1), _params(3))
        assert payload.fees.max_priority_fee_per_gas == 0

    def test_failed_fee_read_uses_fallback(self, chain: FakeChain) -> None:
        chain.fault = lambda method, params: "upstream timeout" if method == "eth_gasPrice" else None
        fallback = (FeeParams(7 * GWEI, GWEI), 3 * GWEI)

        async def go():
            async with chain.client() as client:
                return await generate_payload(
                    client, make_senders(chain, 2), _params(4), ContractAddresses(), CHAIN_ID,
                    fallback_fees=fallback,
                )

        payload = asyncio.run(go())
        assert payload.fees == fallback[0]
        assert payload.base_gas_price == 3 * GWEI

    def test_failed_fee_read_without_fallback(self, chain: FakeChain) -> None:
        chain.fault = lambda method, params: "upstream timeout" if method == "eth_gasPrice" else None
        with pytest.raises(PayloadError, match="Fee estimate"):
            _generate(chain, make_senders(chain, 2), _params(4))


class TestIntents:
    def test_intent_shapes(self, chain: FakeChain, contracts: ContractAddresses) -> None:
        senders = make_senders(chain, 3)
        payload = _generate(chain, senders, _params(3, TxMix(34, 33, 33)), contracts)
        transfer, token, swap = (d.intent for d in payload.descriptors)

        assert isinstance(transfer, TransferIntent)
        assert isinstance(token, TokenTransferIntent)
        assert token.token == contracts.token
        assert isinstance(swap, SwapIntent)
        assert swap.path == (contracts.weth, contracts.token)
        assert swap.recipient == senders[2].address

        gas = [d.gas_limit for d in payload.descriptors]
        assert gas == [21_000, TOKEN_TRANSFER_GAS, SWAP_GAS]

    def test_expected_details(self, chain: FakeChain, contracts: ContractAddresses) -> None:
        senders = make_senders(chain, 2)
        payload = _generate(chain, senders, _params(4, TxMix(50, 50, 0)), contracts)
        expected = payload.expected
        assert expected.sender_addresses == {s.address.lower() for s in senders}
        assert expected.destination(TxKind.TOKEN_TRANSFER) == contracts.token.lower()
        transfer = payload.descriptors[0].intent
        assert expected.destination(TxKind.TRANSFER) == transfer.recipient.lower()


class TestContractChecks:
    def test_token_required(self, chain: FakeChain) -> None:
        with pytest.raises(PayloadError, match="Token address"):
            _generate(chain, make_senders(chain, 1), _params(10, TxMix(50, 50, 0)))

    def test_router_required(self, chain: FakeChain) -> None:
        contracts = ContractAddresses(token="0x" + "11" * 20)
        with pytest.raises(PayloadError, match="Router"):
            _generate(chain, make_senders(chain, 1), _params(10, TxMix(50, 0, 50)), contracts)

    def test_no_senders(self, chain: FakeChain) -> None:
        with pytest.raises(PayloadError):
            _generate(chain, [], _params(10))


class TestFundingNeeds:
    def test_transfer_only(self) -> None:
        needs = calculate_funding_needs(_params(100), 10)
        assert needs.transfers_per_sender == 10
        gas = 21_000 * 10 * GWEI * 4
        assert needs.native_per_sender == to_wei("0.00000001") * 10 + gas + to_wei("0.01")
        assert needs.tokens_per_sender == 1000 * 10**18

    def test_mixed(self) -> None:
        needs = calculate_funding_needs(_params(100, TxMix(70, 20, 10)), 10)
        assert (needs.transfers_per_sender, needs.token_transfers_per_sender, needs.swaps_per_sender) == (7, 2, 1)
        assert needs.tokens_per_sender == 100 * 10**18 * 2 + 1000 * 10**18

    def test_rounds_up(self) -> None:
        needs = calculate_funding_needs(_params(101), 10)
        assert needs.transfers_per_sender == 11
