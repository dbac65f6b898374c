"""
Pneuma - On-chain interaction layer for volley.

Provides the async JSON-RPC client, ABI fragments and transaction helpers
used by the load-generation pipeline.

Uses httpx + eth-account + eth-abi instead of the heavyweight web3.py.
"""
