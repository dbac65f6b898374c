"""
Theurgy - Command implementations for volley.

Each module corresponds to a top-level CLI command:
- run:   Fund senders, fire the payload, confirm and verify it
- probe: Check the endpoint and the funder account before a run
"""
