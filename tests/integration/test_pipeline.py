"""
End-to-end runs of the whole pipeline against the in-process chain.

Every phase talks JSON-RPC through the fake endpoint: funding, token
distribution, router approvals, payload broadcast, receipt polling and
block verification.
"""

from __future__ import annotations

import asyncio

import pytest

from fakechain import CHAIN_ID, FakeChain
from volley.barrage.errors import ConnectivityError, NoFundedSendersError
from volley.barrage.mix import TxMix
from volley.barrage.models import ContractAddresses, SenderState
from volley.barrage.runner import RunReport, run_benchmark
from volley.config import RunConfig


def _config(**overrides) -> RunConfig:
    values = dict(
        rpc_url="http://fakechain",
        tx_count=100,
        sender_count=10,
        concurrency=20,
        poll_interval=0.01,
        confirm_timeout=5,
        funding_timeout=5,
    )
    values.update(overrides)
    return RunConfig(**values).validate()


def _run(chain: FakeChain, config: RunConfig) -> RunReport:
    async def go():
        async with chain.client() as client:
            return await run_benchmark(config, client)

    return asyncio.run(go())


class TestTransferRun:
    def test_every_transaction_lands(self, chain: FakeChain, funder) -> None:
        report = _run(chain, _config())

        assert report.chain.chain_id == CHAIN_ID
        assert len(report.funding.funded) == 10
        assert report.funding.shortfall == 0
        assert report.counts == {"transfer": 100, "token_transfer": 0, "swap": 0}
        assert len(report.signing.envelopes) == 100
        assert report.broadcast.success_count == 100
        assert report.broadcast.failure_count == 0
        assert report.confirmation.confirmed == 100
        assert not report.confirmation.timed_out

        analysis = report.analysis
        assert analysis.verified_count == 100
        assert analysis.verified_successful == 100
        assert analysis.sample.passed == analysis.sample.checked == 10
        assert analysis.throughput.confirmed_block_tps > 0
        assert report.funding.tokens is None
        assert report.funding.approvals is None

    def test_report_serializes(self, chain: FakeChain, funder) -> None:
        data = _run(chain, _config(tx_count=20, sender_count=4)).to_dict()
        assert data["broadcast"]["success"] == 20
        assert data["analysis"]["verified_count"] == 20
        assert data["funding"]["funded"] == 4

    def test_verify_all(self, chain: FakeChain, funder) -> None:
        report = _run(chain, _config(tx_count=30, sender_count=3, verify_all=True))
        assert report.analysis.full.checked == 30
        assert report.analysis.full.passed == 30

    def test_more_senders_than_transactions(self, chain: FakeChain, funder) -> None:
        report = _run(chain, _config(tx_count=5, sender_count=8))
        assert report.broadcast.success_count == 5
        assert report.confirmation.confirmed == 5


class TestMixedRun:
    def test_mix_with_contracts(self, chain: FakeChain, funder, contracts: ContractAddresses) -> None:
        config = _config(tx_mix=TxMix(70, 20, 10), contracts=contracts)
        report = _run(chain, config)

        assert report.counts == {"transfer": 70, "token_transfer": 20, "swap": 10}
        assert report.funding.tokens.sent == 10
        assert report.funding.tokens.confirmed == 10
        assert report.funding.approvals.sent == 10
        assert report.broadcast.success_count == 100
        assert report.analysis.verified_successful == 100
        assert report.analysis.inclusion.verified_by_type == {
            "transfer": 70, "token_transfer": 20, "swap": 10,
        }
        assert report.analysis.sample.failures == {}

    def test_reverted_swaps_are_counted(self, chain: FakeChain, funder, contracts: ContractAddresses) -> None:
        chain.reverting.add(contracts.router.lower())
        report = _run(chain, _config(tx_mix=TxMix(50, 0, 50), contracts=contracts))

        assert report.confirmation.confirmed == 100
        assert report.confirmation.reverted == 50
        assert report.analysis.inclusion.included == 100
        assert report.analysis.verified_successful == 50


class TestPartialFailures:
    def test_rejected_broadcasts_do_not_stop_the_run(self, chain: FakeChain, funder) -> None:
        seen = {"n": 0}

        def reject_some(tx):
            # Leave funding (from the funder) alone.
            if tx.value == 10**10:
                seen["n"] += 1
                if seen["n"] % 4 == 0:
                    return "replacement transaction underpriced"
            return None

        chain.reject = reject_some
        # Rejected nonces leave gaps, so part of the payload never confirms.
        report = _run(chain, _config(tx_count=40, sender_count=4, confirm_timeout=1))

        assert report.broadcast.success_count + report.broadcast.failure_count == 40
        assert report.broadcast.error_counts == {"replacement_underpriced": 10}
        assert report.analysis is not None

    def test_exhausted_senders_flagged(self, chain: FakeChain, funder) -> None:
        # Funding too small for even one transfer at the configured fee cap.
        report = _run(chain, _config(tx_count=8, sender_count=2, funding_amount="0.000000000001"))

        assert report.broadcast.success_count == 0
        assert report.broadcast.error_counts == {"insufficient_funds": 8}
        assert report.exhausted_senders == 2
        assert all(s.state is SenderState.EXHAUSTED for s in report.funding.funded)
        assert report.analysis is None

    def test_failed_sender_nonce_lookup_drops_one_sender(self, chain: FakeChain, funder) -> None:
        seen: list[str] = []

        def fail_third_sender(method, params):
            if method != "eth_getTransactionCount" or params[0].lower() == funder.address.lower():
                return None
            seen.append(params[0])
            return "header not found" if len(seen) == 3 else None

        chain.fault = fail_third_sender
        report = _run(chain, _config(tx_count=50, sender_count=5))

        assert len(report.funding.funded) == 5
        assert len({e.sender for e in report.signing.envelopes}) == 4
        assert report.broadcast.success_count == 50
        assert report.confirmation.confirmed == 50
        assert report.analysis.verified_successful == 50


class TestFatalConditions:
    def test_unfunded_funder(self, chain: FakeChain) -> None:
        with pytest.raises(NoFundedSendersError):
            _run(chain, _config())

    def test_unreachable_endpoint(self, chain: FakeChain) -> None:
        chain.down = True
        with pytest.raises(ConnectivityError):
            _run(chain, _config())

    def test_funder_nonce_unreadable(self, chain: FakeChain, funder) -> None:
        chain.fault = lambda method, params: (
            "header not found" if method == "eth_getTransactionCount" else None
        )
        with pytest.raises(NoFundedSendersError):
            _run(chain, _config(tx_count=10, sender_count=2))
