"""
Console rendering for the govproxy CLI.

Plans, state and results go to stdout through click; progress and errors
go through the logger (stderr).
"""

from itertools import groupby
from typing import Iterable, List, Optional, Sequence, Tuple

import click

from ..constants import DRY_RUN_CALL_PREVIEW_CHARS
from ..governance.locks import format_blocks, lock_period_length, lock_period_table
from ..governance.scheduler import BatchResult, summarize
from ..governance.tracks import track_label, track_name
from ..governance.types import (
    AccountBalance,
    Batch,
    Conviction,
    Delegating,
    Operation,
    VotingSnapshot,
)
from ..networks import NetworkConfig
from ..units import format_balance

RULE = "═" * 59


def banner(title: str, rows: Sequence[Tuple[str, str]] = ()) -> None:
    click.echo(click.style(RULE, fg="cyan"))
    click.echo(click.style(f"  {title}", fg="cyan", bold=True))
    click.echo(click.style(RULE, fg="cyan"))
    if rows:
        width = max(len(label) for label, _ in rows) + 1
        for label, value in rows:
            click.echo(f"  {label + ':':<{width}} {value}")
        click.echo(click.style(RULE, fg="cyan"))


def _amount(minor: int, network: NetworkConfig) -> str:
    return format_balance(minor, network.decimals, network.symbol)


def _short(address: str) -> str:
    return f"{address[:16]}..."


# ── Account state ───────────────────────────────────────────────────

def show_balance(balance: AccountBalance, network: NetworkConfig) -> None:
    click.echo("Balance:")
    click.echo(f"  Free:     {_amount(balance.free, network)}")
    click.echo(f"  Reserved: {_amount(balance.reserved, network)}")
    click.echo(f"  Frozen:   {_amount(balance.frozen, network)}")
    click.echo("")


def _votes_by_track(snapshot: VotingSnapshot) -> List[Tuple[int, List[int]]]:
    return [
        (track, [ref for _, ref in pairs])
        for track, pairs in groupby(snapshot.votes(), key=lambda pair: pair[0])
    ]


def show_status(snapshot: VotingSnapshot, network: NetworkConfig) -> None:
    """Per-track delegation report with a summary."""
    delegations = snapshot.delegations()
    if delegations:
        click.echo(f"Delegations ({len(delegations)} tracks):\n")
        for track, delegating in delegations:
            click.echo(f"  {track_label(track)}:")
            click.echo(f"    Delegate:   {delegating.target}")
            click.echo(f"    Balance:    {_amount(delegating.balance, network)}")
            click.echo(f"    Conviction: {delegating.conviction}")
            click.echo("")
    else:
        click.echo("No active delegations.\n")

    votes = snapshot.votes()
    if votes:
        click.echo(f"Direct Votes ({len(votes)}):\n")
        for track, refs in _votes_by_track(snapshot):
            click.echo(f"  {track_label(track)}: Refs #{', #'.join(str(r) for r in refs)}")
        click.echo("")
    else:
        click.echo("No direct votes.\n")

    show_locks(snapshot, network)

    banner("Summary", [
        ("Tracks delegated", str(len(delegations))),
        ("Direct votes", str(len(votes))),
        ("Expired locks", str(len(snapshot.expired_locks()))),
        ("Pending locks", str(len(snapshot.pending_locks()))),
    ])
    if delegations:
        # The same balance is normally used on every track
        largest = max(d.balance for _, d in delegations)
        click.echo(f"  Delegation amount: {_amount(largest, network)}")


def show_state(snapshot: VotingSnapshot, network: NetworkConfig) -> None:
    """Current state as shown before a cleanup."""
    banner(f"Current State (block #{snapshot.current_block})")

    delegations = snapshot.delegations()
    if delegations:
        click.echo(f"\n  Active Delegations ({len(delegations)}):")
        for track, delegating in delegations:
            click.echo(
                f"    • {track_label(track)}: {_amount(delegating.balance, network)} "
                f"@ {delegating.conviction}"
            )
            click.echo(f"      → Delegate: {_short(delegating.target)}")
    else:
        click.echo("\n  No active delegations.")

    votes = snapshot.votes()
    if votes:
        click.echo(f"\n  Active Votes ({len(votes)}):")
        for track, refs in _votes_by_track(snapshot):
            click.echo(f"    • {track_label(track)}: Refs #{', #'.join(str(r) for r in refs)}")
    else:
        click.echo("  No active votes.")

    show_locks(snapshot, network, indent="  ")


def show_locks(snapshot: VotingSnapshot, network: NetworkConfig, indent: str = "") -> None:
    expired = snapshot.expired_locks()
    pending = snapshot.pending_locks()

    if expired:
        click.echo(f"\n{indent}Expired Locks (ready to unlock) ({len(expired)}):")
        for lock in expired:
            click.echo(
                f"{indent}  • {track_label(lock.track)}: {_amount(lock.amount, network)} "
                + click.style("✓ READY", fg="green")
            )

    if pending:
        click.echo(f"\n{indent}Pending Locks (still locked) ({len(pending)}):")
        for lock in pending:
            remaining = format_blocks(lock.blocks_remaining, network.block_time_seconds)
            click.echo(f"{indent}  • {track_label(lock.track)}: {_amount(lock.amount, network)}")
            click.echo(f"{indent}    → Unlocks at block #{lock.unlock_block} ({remaining} remaining)")

    if snapshot.class_locks:
        click.echo(f"\n{indent}Class Locks Summary ({len(snapshot.class_locks)} tracks):")
        click.echo(f"{indent}  Tracks: {', '.join(str(l.track) for l in snapshot.class_locks)}")
    click.echo("")


def show_existing_delegations(snapshot: VotingSnapshot, tracks: Iterable[int],
                              network: NetworkConfig) -> None:
    click.echo("Current delegations:")
    found = 0
    for track in tracks:
        state = snapshot.state_for(track)
        if isinstance(state, Delegating):
            found += 1
            click.echo(
                f"  Track {track}: Delegating {_amount(state.balance, network)} "
                f"to {_short(state.target)}"
            )
    if not found:
        click.echo("  (none)")
    click.echo("")


# ── Plans ───────────────────────────────────────────────────────────

def delegate_rows(account: str, target: str, amount: str, minor: int, conviction: Conviction,
                  tracks: Sequence[int], network: NetworkConfig,
                  dry_run: bool) -> List[Tuple[str, str]]:
    lock_days = lock_period_length(conviction, network)
    power = format_balance(minor * conviction.vote_multiplier, network.decimals, network.symbol)
    rows = [
        ("Your account", account),
        ("Delegate to", target),
        ("Balance", f"{amount} {network.symbol} ({minor} planck)"),
        ("Conviction", f"{conviction} ({conviction.vote_multiplier}x power, {lock_days} day lock)"),
        ("Voting power", f"{power} equivalent"),
        ("Tracks", f"{len(tracks)} ({', '.join(str(t) for t in tracks)})"),
    ]
    if dry_run:
        rows.append(("Mode", "DRY RUN"))
    return rows


def show_plan(plan: Sequence[Operation], heading: Optional[str] = None) -> None:
    click.echo(heading or f"Will submit {len(plan)} call(s):")
    for operation in plan:
        click.echo(f"  • {operation.describe()}")
    click.echo("")


def show_dry_run(batches: Sequence[Batch]) -> None:
    click.echo(click.style(f"[DRY RUN] Would submit {len(batches)} batch(es)\n", fg="yellow"))
    for batch in batches:
        click.echo(f"--- {batch.label} ({len(batch)} calls) ---")
        for operation in batch.operations:
            click.echo(f"  • {operation.describe()}")
        data = batch.call_data or ""
        preview = data[:DRY_RUN_CALL_PREVIEW_CHARS]
        suffix = "..." if len(data) > DRY_RUN_CALL_PREVIEW_CHARS else ""
        click.echo(f"  Encoded call (first {DRY_RUN_CALL_PREVIEW_CHARS} chars): {preview}{suffix}\n")
    click.echo("To execute for real, remove --dry-run flag")


def show_results(results: Sequence[BatchResult]) -> None:
    click.echo("")
    for result in results:
        outcome = result.outcome
        if result.succeeded:
            click.echo(click.style(
                f"  ✓ {result.batch.label}: finalized in block {outcome.block_hash}", fg="green",
            ))
            if outcome.detail:
                click.echo(click.style(f"    ! {outcome.detail}, check the block explorer", fg="yellow"))
        else:
            click.echo(click.style(
                f"  ✗ {result.batch.label}: {outcome.status.value}: {outcome.error}", fg="red",
            ))

    summary = summarize(results)
    colour = "green" if summary.all_succeeded else "yellow"
    banner("Complete", [
        ("Batches succeeded", f"{summary.succeeded}/{summary.batches}"),
        ("Calls applied", str(summary.operations_applied)),
        ("Calls failed", str(summary.operations_failed)),
    ])
    if not summary.all_succeeded:
        click.echo(click.style("  Failed batches were not retried. Re-run to retry them.", fg=colour))


def show_verification(snapshot: VotingSnapshot, tracks: Iterable[int], network: NetworkConfig) -> None:
    click.echo("\nNew delegations:")
    for track in tracks:
        state = snapshot.state_for(track)
        if isinstance(state, Delegating):
            click.echo(click.style(
                f"  Track {track}: ✓ Delegating {_amount(state.balance, network)} @ {state.conviction}",
                fg="green",
            ))
        else:
            click.echo(click.style(f"  Track {track}: ✗ Not delegating", fg="red"))


def show_conviction_table(networks: Sequence[NetworkConfig]) -> None:
    header = "".join(f"{n.display_name:>22}" for n in networks)
    click.echo(f"{'Conviction':<12}{'Power':>7}{header}")
    for conviction, days in lock_period_table(networks):
        cells = "".join(f"{f'{d} days':>22}" for d in days)
        click.echo(f"{conviction.value:<12}{str(conviction.vote_multiplier) + 'x':>7}{cells}")


def pending_hint(snapshot: VotingSnapshot) -> None:
    if snapshot.pending_locks():
        click.echo("\n  Some locks are still pending. Run again after they expire.")
        soonest = min(snapshot.pending_locks(), key=lambda l: l.unlock_block)
        click.echo(f"  Next unlock: {track_name(soonest.track)} at block #{soonest.unlock_block}")
