"""Batch pre-signing."""

from __future__ import annotations

import asyncio

from eth_account import Account

from fakechain import CHAIN_ID, decode_raw_transaction
from volley.barrage.models import Sender, SenderState, TransferIntent, TxDescriptor
from volley.barrage.signing import sign_descriptor, sign_descriptors
from volley.pneuma.tx import FeeParams
from volley.sigil.eth import new_account

RECIPIENT = "0x" + "ab" * 20
FEES = FeeParams(2 * 10**9, 10**8)


def _descriptors(count: int, senders: int = 2) -> list[TxDescriptor]:
    pool = [Sender(new_account(), SenderState.FUNDED) for _ in range(senders)]
    return [
        TxDescriptor(
            sender=pool[i % senders],
            intent=TransferIntent(RECIPIENT, 1000),
            nonce=i // senders,
            fees=FEES,
            chain_id=CHAIN_ID,
            index=i,
        )
        for i in range(count)
    ]


def test_sign_descriptor_recovers_sender() -> None:
    descriptor = _descriptors(1)[0]
    envelope = sign_descriptor(descriptor)

    assert Account.recover_transaction(envelope.raw_tx) == descriptor.sender.address
    decoded = decode_raw_transaction(envelope.raw_tx)
    assert decoded.tx_hash == envelope.tx_hash
    assert decoded.nonce == descriptor.nonce
    assert decoded.to == RECIPIENT
    assert decoded.value == 1000
    assert decoded.max_fee == FEES.max_fee_per_gas


def test_all_signed_in_order() -> None:
    descriptors = _descriptors(25)
    progress: list[tuple[int, int]] = []
    result = asyncio.run(
        sign_descriptors(descriptors, batch_size=10, on_progress=lambda d, t: progress.append((d, t)))
    )

    assert [e.index for e in result.envelopes] == list(range(25))
    assert result.dropped == 0
    assert len({e.tx_hash for e in result.envelopes}) == 25
    assert progress == [(10, 25), (20, 25), (25, 25)]


def test_failed_descriptor_is_dropped() -> None:
    descriptors = _descriptors(12)

    def flaky(descriptor: TxDescriptor):
        if descriptor.index in (3, 7):
            raise ValueError("bad key")
        return sign_descriptor(descriptor)

    result = asyncio.run(sign_descriptors(descriptors, batch_size=5, signer=flaky))

    assert result.dropped == 2
    assert len(result.envelopes) == 10
    assert {e.index for e in result.envelopes} == set(range(12)) - {3, 7}


def test_empty() -> None:
    result = asyncio.run(sign_descriptors([]))
    assert result.envelopes == []
    assert result.rate == 0.0
