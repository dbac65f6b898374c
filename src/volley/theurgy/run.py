"""
Run - Fire a pre-signed transaction barrage at an RPC endpoint.

Flow:
1. Check connectivity and read the funder balance
2. Create and fund ephemeral senders (tokens / router approvals if the
   mix needs them)
3. Generate and pre-sign the payload
4. Broadcast with bounded concurrency
5. Wait for receipts
6. Verify against block data and report throughput
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click

from ..barrage.errors import ConfigError, VolleyError
from ..barrage.mix import TxMix
from ..barrage.runner import run_benchmark
from ..config import RunConfig
from ..logging_config import setup_logging
from ..report import render_json, render_report
from ..utils import to_wei


def _build_config(env_file: Optional[Path], tx_mix: Optional[str], **options) -> RunConfig:
    """Merge CLI options over environment and defaults, then validate.

    Raises:
        ConfigError: If an option is malformed or the result is unusable
    """
    try:
        mix = TxMix.parse(tx_mix) if tx_mix is not None else None
        config = RunConfig.from_env(env_file, tx_mix=mix, **options)
        # Amounts are parsed lazily by the pipeline; fail here instead.
        to_wei(config.tx_value)
        to_wei(config.swap_value)
        to_wei(config.token_tx_value)
        if config.funding_amount is not None:
            to_wei(config.funding_amount)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    return config.validate()


@click.command()
@click.option("--rpc-url", default=None, help="RPC endpoint URL [env: RPC_URL]")
@click.option("-n", "--tx-count", type=int, default=None, help="Total transactions (default 1000)")
@click.option("-s", "--senders", "sender_count", type=int, default=None, help="Sender accounts (default 50)")
@click.option("-c", "--concurrency", type=int, default=None, help="Parallel requests (default 200)")
@click.option("--tx-value", default=None, help="ETH per plain transfer")
@click.option("--funding-amount", default=None, help="ETH per sender (computed if omitted)")
@click.option("--token-tx-value", default=None, help="Tokens per token transfer")
@click.option("--swap-value", default=None, help="ETH per swap")
@click.option("--gas-multiplier", type=float, default=None, help="Fee buffer (> 1.0, default 2)")
@click.option("--gas-limit", type=int, default=None, help="Gas limit for plain transfers")
@click.option("--mix", "tx_mix", default=None, help="transfer:token:swap percentages, e.g. 70:20:10")
@click.option("--token", default=None, help="ERC-20 token address [env: TOKEN_ADDRESS]")
@click.option("--weth", default=None, help="WETH address [env: WETH_ADDRESS]")
@click.option("--router", default=None, help="DEX router address [env: ROUTER_ADDRESS]")
@click.option("--verify-all", is_flag=True, default=False, help="Check every confirmed transaction")
@click.option("--confirm-timeout", type=float, default=None, help="Seconds to wait for receipts")
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Path to .env file")
@click.option("--log-level", default=None, help="Logging level [env: LOG_LEVEL]")
@click.option("--log-file", default=None, help="Also write logs to this file")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the report as JSON")
def run(
    rpc_url: Optional[str],
    tx_count: Optional[int],
    sender_count: Optional[int],
    concurrency: Optional[int],
    tx_value: Optional[str],
    funding_amount: Optional[str],
    token_tx_value: Optional[str],
    swap_value: Optional[str],
    gas_multiplier: Optional[float],
    gas_limit: Optional[int],
    tx_mix: Optional[str],
    token: Optional[str],
    weth: Optional[str],
    router: Optional[str],
    verify_all: bool,
    confirm_timeout: Optional[float],
    env_file: Optional[Path],
    log_level: Optional[str],
    log_file: Optional[str],
    as_json: bool,
) -> None:
    """
    Run a throughput test against an RPC endpoint.

    Creates fresh sender accounts, funds them from the funder key
    (FUNDER_PRIVATE_KEY), broadcasts the payload and reports TPS measured
    from block timestamps and from the broadcast window.
    """
    # Keep stdout clean for the JSON document.
    setup_logging(
        log_level or ("ERROR" if as_json else None),
        log_file,
        stream=sys.stderr if as_json else None,
    )

    try:
        config = _build_config(
            env_file,
            rpc_url=rpc_url,
            tx_count=tx_count,
            sender_count=sender_count,
            concurrency=concurrency,
            tx_value=tx_value,
            funding_amount=funding_amount,
            token_tx_value=token_tx_value,
            swap_value=swap_value,
            gas_multiplier=gas_multiplier,
            gas_limit=gas_limit,
            tx_mix=tx_mix,
            verify_all=verify_all or None,
            confirm_timeout=confirm_timeout,
            token=token,
            weth=weth,
            router=router,
        )
    except ConfigError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)

    if not as_json:
        click.echo("=== Volley Run ===")
        click.echo(f"  RPC:     {config.rpc_url}")
        click.echo(f"  Payload: {config.tx_count} txs from {config.sender_count} senders")
        click.echo(f"  Mix:     {config.tx_mix}")
        click.echo("")

    try:
        report = asyncio.run(run_benchmark(config))
    except VolleyError as exc:
        click.secho(f"ERROR: {exc}", fg="red")
        sys.exit(exc.exit_code)

    if as_json:
        render_json(report)
    else:
        render_report(report)
