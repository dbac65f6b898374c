"""
Human-readable run report.

Everything here takes the plain values collected by the runner and prints
them with click; nothing is computed that the report dict does not already
carry.
"""

from __future__ import annotations

import json

import click

from .barrage.errors import ERROR_LABELS, ErrorCategory
from .barrage.runner import RunReport
from .utils import format_duration, format_ether, format_units

LABEL_WIDTH = 24


def _row(label: str, value: object, **style) -> None:
    text = str(value)
    click.echo(f"  {label + ':':<{LABEL_WIDTH}}" + (click.style(text, **style) if style else text))


def _section(title: str) -> None:
    click.echo("")
    click.secho(f"  {title}", fg="cyan", bold=True)
    click.echo(f"  {'─' * 40}")


def _pct(part: int, whole: int) -> str:
    if whole <= 0:
        return "0.0%"
    return f"{part / whole * 100:.1f}%"


def render_report(report: RunReport) -> None:
    config = report.config
    funding = report.funding
    sent = report.broadcast
    confirmation = report.confirmation
    analysis = report.analysis

    click.echo("")
    click.echo("=== Volley Report ===")

    _section("Configuration")
    _row("RPC URL", config.rpc_url)
    _row("Chain ID", report.chain.chain_id)
    _row("Transactions", config.tx_count)
    _row("Senders", f"{len(funding.funded)}/{len(funding.senders)} funded")
    _row("Concurrency", config.concurrency)
    _row("Mix", config.tx_mix)
    _row("Gas multiplier", f"{config.gas_multiplier}x")

    _section("Funding")
    _row("Funder", report.chain.funder)
    _row("Funder balance", f"{format_ether(report.chain.funder_balance)} ETH")
    _row("ETH per sender", f"{format_ether(funding.needs.native_per_sender)} ETH")
    if funding.tokens:
        _row("Tokens per sender", format_units(funding.needs.tokens_per_sender))
        _row("Token transfers", f"{funding.tokens.confirmed}/{funding.tokens.sent} confirmed")
    if funding.approvals:
        _row("Router approvals", f"{funding.approvals.confirmed}/{funding.approvals.sent} confirmed")
    if funding.shortfall:
        _row("Unfunded senders", funding.shortfall, fg="yellow")
    _row("Duration", format_duration(funding.duration))

    _section("Payload")
    for kind, count in report.counts.items():
        _row(kind.replace("_", " ").capitalize(), count)
    _row("Signed", f"{len(report.signing.envelopes)} in {format_duration(report.signing.duration)}")
    if report.signing.dropped:
        _row("Dropped (signing)", report.signing.dropped, fg="yellow")

    _section("Broadcast")
    _row("Accepted", f"{sent.success_count} ({_pct(sent.success_count, sent.total)})", fg="green")
    _row("Failed", sent.failure_count, fg="red" if sent.failure_count else None)
    _row("Duration", format_duration(sent.duration))
    _row("Broadcast rate", f"{sent.rate:.1f} tx/s")
    for category, count in sorted(sent.error_counts.items(), key=lambda kv: -kv[1]):
        label = ERROR_LABELS.get(ErrorCategory(category), category)
        _row(f"  {label}", count)
        example = sent.error_examples.get(category)
        if example:
            click.secho(f"      {example[:100]}", dim=True)
    if report.exhausted_senders:
        _row("Exhausted senders", report.exhausted_senders, fg="yellow")

    _section("Confirmation")
    _row("Confirmed", f"{confirmation.confirmed}/{sent.success_count}")
    _row("Successful", confirmation.successful)
    _row("Reverted", confirmation.reverted, fg="red" if confirmation.reverted else None)
    if confirmation.timed_out:
        _row("Still pending", len(confirmation.pending), fg="yellow")
    _row("Duration", format_duration(confirmation.duration))

    if analysis is None:
        click.echo("")
        click.secho("  No receipts to analyze.", fg="yellow")
        click.echo("")
        click.echo("=== Report Complete ===")
        return

    _section("On-chain Verification")
    _row("Blocks", f"{analysis.first_block}-{analysis.last_block} ({analysis.block_count})")
    _row("Avg block time", f"{analysis.avg_block_time:.2f}s")
    _row("Txs in range", analysis.inclusion.total_tx_count)
    _row("Ours in blocks", analysis.inclusion.our_tx_count)
    _row("Verified (included)", analysis.verified_count)
    _row("Verified (successful)", analysis.verified_successful, fg="green")
    for kind, count in sorted(analysis.inclusion.verified_by_type.items()):
        _row(f"  {kind}", count)
    sample = analysis.sample
    ok = sample.passed == sample.checked
    _row("Sample check", f"{sample.passed}/{sample.checked}", fg="green" if ok else "red")
    for reason, count in sorted(sample.failures.items()):
        _row(f"  {reason} mismatch", count, fg="red")
    if analysis.full is not None:
        full = analysis.full
        _row("Full check", f"{full.passed}/{full.checked}")
        for reason, count in sorted(full.failures.items()):
            _row(f"  {reason} mismatch", count, fg="red")

    tp = analysis.throughput
    _section("Throughput")
    _row("Block time span", f"{tp.block_time_span:.0f}s")
    _row("Broadcast time span", f"{tp.broadcast_time_span:.2f}s")
    _row("TPS (block, included)", f"{tp.included_block_tps:.2f}")
    _row("TPS (block, confirmed)", f"{tp.confirmed_block_tps:.2f}", fg="green", bold=True)
    _row("TPS (broadcast, incl.)", f"{tp.included_broadcast_tps:.2f}")
    _row("TPS (broadcast, conf.)", f"{tp.confirmed_broadcast_tps:.2f}")
    if analysis.peak_block:
        peak = analysis.peak_block
        _row("Peak block", f"#{peak.number} ({peak.our_tx_count} txs)")

    _section("Blocks")
    for stat in analysis.inclusion.block_stats:
        click.echo(
            f"  #{stat.number:<10} ts={stat.timestamp:<12} "
            f"ours={stat.our_tx_count:<6} total={stat.total_tx_count:<6} gas={stat.gas_used}"
        )

    click.echo("")
    click.echo(f"  Total run time: {format_duration(report.duration)}")
    click.echo("")
    click.echo("=== Report Complete ===")


def render_json(report: RunReport) -> None:
    click.echo(json.dumps(report.to_dict(), indent=2, default=str))
