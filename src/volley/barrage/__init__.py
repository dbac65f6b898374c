"""
Barrage - The load pipeline.

Modules (in run order):
- funding: create and fund ephemeral senders
- payload: unsigned descriptors with locally allocated nonces
- signing: batched pre-signing
- broadcast: fire-and-forget worker pool with error classification
- confirm: receipt polling
- verify: block inclusion, direct checks and throughput
- runner: drives the phases above
"""
