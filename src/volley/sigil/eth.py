"""
ECDSA / secp256k1 key management for volley.

Two kinds of keys exist during a run:
- the funder key, loaded from the environment or a ``.env`` file, which
  pays for every sender account;
- ephemeral sender keys, generated fresh for each run and discarded when
  the process exits.

Dependencies: eth-account (no full web3.py needed)
"""

from __future__ import annotations

import os
import secrets
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount

# Pre-funded development account of the Nitro dev node.  Public knowledge;
# never use it against a network holding real value.
DEV_FUNDER_PRIVATE_KEY = "0xb6b15c8cb491557369f3c7d2c287b053eb229daa9c22138887752191c9520659"

DEFAULT_ENV = Path.cwd() / ".env"


def generate_eoa() -> tuple[str, str]:
    """
    Generate a new ECDSA/secp256k1 keypair (EOA).

    Returns:
        Tuple of (private_key_hex, address)
        - private_key_hex: 0x-prefixed hex private key (66 chars)
        - address: 0x-prefixed checksummed Ethereum address (42 chars)
    """
    private_key = "0x" + secrets.token_hex(32)
    account = Account.from_key(private_key)
    return private_key, account.address


def new_account() -> LocalAccount:
    """Create an ephemeral signing account."""
    private_key, _ = generate_eoa()
    return Account.from_key(private_key)


def load_funder_key(env_path: Optional[Path] = None, default: Optional[str] = None) -> str:
    """
    Load the funder private key from .env file or environment.

    Args:
        env_path: Path to .env file (default: ./.env)
        default: Key to fall back to when nothing is configured

    Returns:
        0x-prefixed hex private key

    Raises:
        ValueError: If no key is configured and no default was given
    """
    env_path = env_path or DEFAULT_ENV

    if env_path.exists():
        load_dotenv(env_path, override=False)

    private_key = os.environ.get("FUNDER_PRIVATE_KEY") or default
    if not private_key:
        raise ValueError(
            f"FUNDER_PRIVATE_KEY not found. Set it in the environment or in {env_path}"
        )

    # Ensure 0x prefix
    if not private_key.startswith("0x"):
        private_key = "0x" + private_key

    return private_key


def get_account(private_key: str) -> LocalAccount:
    """Get an eth-account LocalAccount from a 0x-prefixed private key."""
    return Account.from_key(private_key)
