"""
Volley CLI

Command-line interface for the volley throughput harness.

Commands:
  run    - Fund senders, broadcast a pre-signed payload, confirm and verify
  probe  - Check RPC connectivity and the funder account
"""

from __future__ import annotations

import sys

import click

from . import __version__


# ============ Constants ============

VERSION = __version__


# ============ Banner ============


def _print_banner() -> None:
    border = click.style("  ◆ ═══════════════════════════════════════ ◆", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()
    click.echo(
        click.style("        V O L L E Y", fg="bright_white", bold=True)
        + click.style(f"        v{VERSION}", dim=True)
    )
    click.secho("        ─── RPC Throughput Harness ───", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name="volley")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Volley: pre-signed transaction load tests for EVM JSON-RPC endpoints."""
    if ctx.invoked_subcommand is None:
        _print_banner()
        click.echo(ctx.get_help())


# ============ Top-level Commands ============

from .theurgy.probe import probe
from .theurgy.run import run

cli.add_command(run)
cli.add_command(probe)


# ============ Entry Points ============


def main() -> None:
    """Volley CLI entry point."""
    # Ensure UTF-8 output on Windows (for Unicode box-drawing / symbols)
    if sys.platform == "win32":
        try:
            sys.stdout.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
            sys.stderr.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
        except (AttributeError, OSError):
            pass  # Fallback: non-tty
    cli()


if __name__ == "__main__":
    main()
