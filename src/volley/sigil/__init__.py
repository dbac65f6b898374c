"""
Sigil - Key management: funder key loading and ephemeral sender keys.
"""
