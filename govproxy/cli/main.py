#!/usr/bin/env python3
"""
govproxy CLI

Manage OpenGov delegation on Kusama / Polkadot Asset Hub through a proxy
account.

Usage:
    govproxy status <account>
    govproxy delegate --account A --to B --amount 650 --conviction Locked6x [--track N ...]
    govproxy cleanup --account A [--unlock-only]
    govproxy convictions
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Coroutine, Optional, Sequence

import click

from .. import __version__
from ..chain.adapter import BaseChainAdapter
from ..config import GovProxyConfig, load_config
from ..exceptions import GovProxyError
from ..governance.lifecycle import TransactionMonitor
from ..governance.locks import lock_period_length
from ..governance.planner import build_cleanup_plan, build_delegate_plan
from ..governance.reader import VotingStateReader
from ..governance.scheduler import BatchScheduler
from ..governance.types import Conviction
from ..keys import read_mnemonic
from ..logger import configure_logging, get_logger
from ..networks import NETWORKS, NetworkConfig
from ..units import to_minor_units
from . import display

logger = get_logger(__name__)


@dataclass
class AppContext:
    config: GovProxyConfig
    network: NetworkConfig


def make_adapter(network: NetworkConfig) -> BaseChainAdapter:
    """Adapter used by every command."""
    from ..chain.substrate import SubstrateChainAdapter
    return SubstrateChainAdapter(network)


def run(coro: Coroutine) -> None:
    """Run a command coroutine; fatal errors become a non-zero exit."""
    try:
        asyncio.run(coro)
    except GovProxyError as e:
        logger.debug("Fatal error", exc_info=True)
        raise click.ClickException(str(e))


def _signer(adapter: BaseChainAdapter, mnemonic: Optional[str]):
    if mnemonic is None:
        return None
    signer = adapter.create_signer(mnemonic)
    click.echo(f"Proxy account: {adapter.signer_address(signer)}\n")
    return signer


def _scheduler(app: AppContext, adapter: BaseChainAdapter, signer, account: str) -> BatchScheduler:
    return BatchScheduler(
        adapter,
        signer,
        account,
        monitor=TransactionMonitor(timeout=app.config.submission.tx_timeout),
        inter_batch_delay=app.config.submission.inter_batch_delay,
    )


@click.group()
@click.version_option(version=__version__, prog_name="govproxy")
@click.option(
    "--network", "-n",
    type=click.Choice(list(NETWORKS), case_sensitive=False),
    default=None,
    help="Network (default: kusama, or [network] name in govproxy.toml)",
)
@click.option("--endpoint", "-e", default=None, help="Override the RPC websocket endpoint")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Path to govproxy.toml")
@click.option("--log-level", type=click.Choice(
    ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False), default=None)
@click.pass_context
def cli(ctx, network: Optional[str], endpoint: Optional[str], config_path: Optional[str],
        log_level: Optional[str]):
    """govproxy - OpenGov delegation and cleanup via proxy

    Delegate voting power, remove votes and delegations, and unlock expired
    conviction locks on Kusama and Polkadot Asset Hub.
    """
    try:
        config = load_config(config_path)
    except GovProxyError as e:
        raise click.ClickException(str(e))

    if network:
        config.network.name = network.lower()
    if endpoint:
        config.network.endpoint = endpoint
    if log_level:
        config.logging.level = log_level.upper()

    log_file = Path(config.logging.file) if config.logging.file else None
    configure_logging(
        log_level=config.logging.level,
        log_file=log_file,
        file_output=True if log_file else None,
    )

    try:
        config.validate()
        resolved = config.network.resolve()
    except GovProxyError as e:
        raise click.ClickException(str(e))
    ctx.obj = AppContext(config=config, network=resolved)


# ══════════════════════════════════════════════════════════════════════
#  STATUS
# ══════════════════════════════════════════════════════════════════════

@cli.command("status")
@click.argument("account")
@click.pass_obj
def status_cmd(app: AppContext, account: str):
    """Show delegations, direct votes and locks of ACCOUNT."""
    network = app.network
    display.banner(f"Delegation Status - {network.display_name}", [("Account", account)])
    run(_status(app, account))


async def _status(app: AppContext, account: str) -> None:
    async with make_adapter(app.network) as adapter:
        click.echo(f"Connected to: {await adapter.chain_name()}\n")
        snapshot = await VotingStateReader(adapter).read(account)
        display.show_status(snapshot, app.network)


# ══════════════════════════════════════════════════════════════════════
#  DELEGATE
# ══════════════════════════════════════════════════════════════════════

@cli.command("delegate")
@click.option("--account", "-a", required=True, help="Account whose voting power is delegated")
@click.option("--to", "target", required=True, help="Address to delegate to")
@click.option("--amount", required=True, help="Balance per track in tokens, e.g. 650")
@click.option("--conviction", "-c", required=True,
              help="None, Locked1x, Locked2x, Locked3x, Locked4x, Locked5x or Locked6x")
@click.option("--track", "-t", "tracks", type=int, multiple=True,
              help="Only delegate on this track (repeatable, default: all tracks)")
@click.option("--keyfile", "-k", type=click.Path(dir_okay=False), help="File holding the proxy mnemonic")
@click.option("--mnemonic", "-m", "prompt", is_flag=True, help="Prompt for the proxy mnemonic")
@click.option("--dry-run", is_flag=True, help="Show what would be done without submitting")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delegate_cmd(app: AppContext, account: str, target: str, amount: str, conviction: str,
                 tracks: Sequence[int], keyfile: Optional[str], prompt: bool,
                 dry_run: bool, yes: bool):
    """Delegate voting power on every (or selected) track.

    Examples:

        govproxy delegate -a JKupa... --to HqRcf... --amount 675 -c Locked6x --dry-run

        govproxy -n polkadot delegate -a 1abc... --to 1xyz... --amount 1000 -c Locked5x -k proxy.txt
    """
    network = app.network
    try:
        level = Conviction.parse(conviction)
        minor = to_minor_units(amount, network.decimals)
        plan = build_delegate_plan(list(tracks) or None, target, level, minor)
        mnemonic = None
        if not dry_run or keyfile or prompt:
            mnemonic = read_mnemonic(keyfile, prompt=prompt)
    except GovProxyError as e:
        raise click.ClickException(str(e))

    track_ids = [op.track for op in plan]
    display.banner(
        f"Delegate Voting Power - {network.display_name}",
        display.delegate_rows(account, target, amount, minor, level, track_ids, network, dry_run),
    )
    run(_delegate(app, account, plan, track_ids, mnemonic, level, dry_run, yes))


async def _delegate(app: AppContext, account: str, plan, track_ids, mnemonic: Optional[str],
                    conviction: Conviction, dry_run: bool, yes: bool) -> None:
    network = app.network
    async with make_adapter(network) as adapter:
        click.echo(f"Connected to: {await adapter.chain_name()}\n")
        click.echo("Checking account state...\n")
        display.show_balance(await adapter.query_account_balance(account), network)

        reader = VotingStateReader(adapter)
        snapshot = await reader.read(account)
        display.show_existing_delegations(snapshot, track_ids, network)

        signer = _signer(adapter, mnemonic)
        display.show_plan(plan, f"Will submit {len(plan)} delegate calls:")

        scheduler = _scheduler(app, adapter, signer, account)
        if dry_run:
            batches = await scheduler.submit_plan(plan, network.max_operations_per_batch, dry_run=True)
            display.show_dry_run(batches)
            return

        if app.config.submission.confirm and not yes:
            click.echo(click.style("WARNING: This will delegate your voting power!", fg="yellow"))
            click.echo(f"Lock period: {lock_period_length(conviction, network)} days after undelegating\n")
            answer = click.prompt('Type "yes" to proceed', default="", show_default=False)
            if answer.strip().lower() != "yes":
                click.echo("Aborted.")
                return

        results = await scheduler.submit_plan(plan, network.max_operations_per_batch)
        display.show_results(results)

        click.echo("\nVerifying final state...")
        display.show_verification(await reader.read(account), track_ids, network)
        click.echo("\nDone!")


# ══════════════════════════════════════════════════════════════════════
#  CLEANUP
# ══════════════════════════════════════════════════════════════════════

@cli.command("cleanup")
@click.option("--account", "-a", required=True, help="Account to clean up")
@click.option("--keyfile", "-k", type=click.Path(dir_okay=False), help="File holding the proxy mnemonic")
@click.option("--mnemonic", "-m", "prompt", is_flag=True, help="Prompt for the proxy mnemonic")
@click.option("--dry-run", is_flag=True, help="Show what would be done without submitting")
@click.option("--unlock-only", is_flag=True, help="Only unlock expired locks (skip undelegate/remove_vote)")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def cleanup_cmd(app: AppContext, account: str, keyfile: Optional[str], prompt: bool,
                dry_run: bool, unlock_only: bool, yes: bool):
    """Undelegate, remove votes and unlock expired locks on every track.

    Examples:

        govproxy -n polkadot cleanup -a 1abc... -k ./proxy-mnemonic.txt

        govproxy cleanup -a HqRcf... -m --unlock-only
    """
    network = app.network
    rows = [("Target account", account), ("Endpoint", network.rpc_endpoint)]
    if dry_run:
        rows.append(("Mode", "DRY RUN (no transactions will be submitted)"))
    if unlock_only:
        rows.append(("Mode", "UNLOCK ONLY (skip undelegate/removeVote)"))
    display.banner(f"OpenGov Cleanup - {network.display_name}", rows)

    try:
        mnemonic = None
        if not dry_run or keyfile or prompt:
            mnemonic = read_mnemonic(keyfile, prompt=prompt)
    except GovProxyError as e:
        raise click.ClickException(str(e))

    run(_cleanup(app, account, mnemonic, dry_run, unlock_only, yes))


async def _cleanup(app: AppContext, account: str, mnemonic: Optional[str],
                   dry_run: bool, unlock_only: bool, yes: bool) -> None:
    network = app.network
    async with make_adapter(network) as adapter:
        signer = _signer(adapter, mnemonic)
        click.echo(f"Connected to chain: {await adapter.chain_name()}")

        snapshot = await VotingStateReader(adapter).read(account)
        display.show_state(snapshot, network)

        plan = build_cleanup_plan(snapshot, unlock_only=unlock_only)
        if not plan:
            display.banner("Nothing to do!")
            display.pending_hint(snapshot)
            return

        display.banner(f"Will execute {len(plan)} call(s)")
        display.show_plan(plan)

        scheduler = _scheduler(app, adapter, signer, account)
        if dry_run:
            batches = await scheduler.submit_plan(plan, network.max_operations_per_batch, dry_run=True)
            display.show_dry_run(batches)
            return

        if app.config.submission.confirm and not yes:
            if not click.confirm("Proceed?", default=False):
                click.echo("Aborted.")
                return

        results = await scheduler.submit_plan(plan, network.max_operations_per_batch)
        display.show_results(results)


# ══════════════════════════════════════════════════════════════════════
#  CONVICTIONS
# ══════════════════════════════════════════════════════════════════════

@cli.command("convictions")
def convictions_cmd():
    """Show vote multipliers and lock periods per network."""
    display.show_conviction_table(list(NETWORKS.values()))


def main():
    cli()


if __name__ == "__main__":
    main()
