"""Pre-signing of transaction descriptors in fixed-size batches."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..pneuma.tx import sign_tx
from ..utils import chunked
from .models import SignedEnvelope, TxDescriptor

log = logging.getLogger("volley.signing")

DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class SigningResult:
    envelopes: list[SignedEnvelope]
    duration: float
    dropped: int

    @property
    def rate(self) -> float:
        return len(self.envelopes) / self.duration if self.duration > 0 else 0.0


def sign_descriptor(descriptor: TxDescriptor) -> SignedEnvelope:
    """Sign one descriptor with its owning sender's key."""
    raw_tx, tx_hash = sign_tx(descriptor.sender.account, descriptor.to_tx_dict())
    return SignedEnvelope(
        raw_tx=raw_tx,
        tx_hash=tx_hash,
        sender=descriptor.sender.address,
        index=descriptor.index,
        kind=descriptor.kind,
    )


async def sign_descriptors(
    descriptors: Sequence[TxDescriptor],
    batch_size: int = DEFAULT_BATCH_SIZE,
    signer: Callable[[TxDescriptor], SignedEnvelope] = sign_descriptor,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> SigningResult:
    """
    Sign every descriptor, one batch at a time.

    Within a batch descriptors are signed concurrently on worker threads.
    A descriptor that fails to sign is logged and left out; the caller must
    use ``len(result.envelopes)``, not the number of descriptors.

    Args:
        descriptors: Unsigned descriptors
        batch_size: Descriptors signed concurrently per batch
        signer: Signing function (replaceable in tests)
        on_progress: Called with (processed, total) after each batch

    Returns:
        SigningResult with envelopes in descriptor order
    """
    start = time.monotonic()
    envelopes: list[SignedEnvelope] = []
    dropped = 0
    processed = 0

    for batch in chunked(descriptors, batch_size):
        results = await asyncio.gather(
            *(asyncio.to_thread(signer, d) for d in batch),
            return_exceptions=True,
        )
        for descriptor, result in zip(batch, results):
            if isinstance(result, Exception):
                log.warning("Failed to sign tx %d: %s", descriptor.index, result)
                dropped += 1
                continue
            envelopes.append(result)
        processed += len(batch)
        if on_progress:
            on_progress(processed, len(descriptors))

    duration = time.monotonic() - start
    log.info(
        "Pre-signed %d/%d transactions in %.2fs", len(envelopes), len(descriptors), duration
    )
    return SigningResult(envelopes, duration, dropped)
