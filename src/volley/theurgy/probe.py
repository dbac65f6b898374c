"""
Probe - Check the endpoint and funder before a run.

Reports chain ID, current block, fee estimate and the funder balance.
Exits non-zero if the endpoint cannot be reached.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

from ..barrage.errors import ConfigError, ConnectivityError, VolleyError
from ..barrage.payload import fetch_fees
from ..barrage.runner import ChainInfo, check_connectivity
from ..config import RunConfig
from ..logging_config import setup_logging
from ..pneuma.rpc import RpcClient, RpcError
from ..sigil.eth import get_account
from ..utils import format_ether, format_units


async def _probe(rpc_url: str, funder_address: str, multiplier: float) -> tuple[ChainInfo, int, int]:
    async with RpcClient(rpc_url, max_connections=4) as client:
        info = await check_connectivity(client, funder_address)
        try:
            fees, gas_price = await fetch_fees(client, multiplier)
        except (RpcError, httpx.HTTPError) as e:
            raise ConnectivityError(f"Fee estimate unavailable: {e}") from e
    return info, gas_price, fees.max_fee_per_gas


@click.command()
@click.option("--rpc-url", default=None, help="RPC endpoint URL [env: RPC_URL]")
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Path to .env file")
@click.option("--log-level", default=None, help="Logging level [env: LOG_LEVEL]")
def probe(rpc_url: Optional[str], env_file: Optional[Path], log_level: Optional[str]) -> None:
    """Check RPC connectivity and funder balance."""
    setup_logging(log_level)
    config = RunConfig.from_env(env_file, rpc_url=rpc_url)

    click.echo("=== Volley Probe ===")
    click.echo("")

    try:
        funder = get_account(config.funder_private_key)
    except ValueError as exc:
        click.secho(f"ERROR: Invalid funder private key: {exc}", fg="red")
        sys.exit(ConfigError.exit_code)

    try:
        info, gas_price, max_fee = asyncio.run(
            _probe(config.rpc_url, funder.address, config.gas_multiplier)
        )
    except VolleyError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)

    click.echo(f"  RPC URL:          {config.rpc_url}")
    click.echo(f"  Chain ID:         {info.chain_id}")
    click.echo(f"  Block:            {info.block_number}")
    click.echo(f"  Gas price:        {format_units(gas_price, 9)} gwei")
    click.echo(f"  Max fee (x{config.gas_multiplier}):  {format_units(max_fee, 9)} gwei")
    click.echo(f"  Funder:           {info.funder}")
    click.echo(f"  Funder balance:   {format_ether(info.funder_balance)} ETH")

    if info.funder_balance == 0:
        click.echo("")
        click.secho("  WARNING: Funder has no balance; senders cannot be funded.", fg="yellow")

    click.echo("")
    click.echo("=== Probe Complete ===")
