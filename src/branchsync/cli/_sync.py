"""The plan, sync and rebase commands."""

from __future__ import annotations

import click

from ..exceptions import BranchSyncError
from ..plan import apply_filter, plan_sync
from ..snapshot import read_snapshot
from ..sync import rebase_branch, sync_filtered
from ._helpers import (
    main,
    _build_filter,
    _close_store,
    _dry_run_option,
    _filter_options,
    _message_option,
    _open_store,
    _settings,
    _status,
)

_MARKERS = (("add", "A"), ("update", "M"), ("delete", "D"), ("cleanup", "C"))


def _print_plan(plan) -> None:
    for attr, marker in _MARKERS:
        for op in getattr(plan, attr):
            click.echo(f"{marker}\t{op.path}")


@main.command()
@click.argument("source")
@click.argument("target")
@_filter_options
@click.pass_context
def plan(ctx, source, target, prefixes, json_mode, keep, no_cleanup):
    """Show the changes that would converge TARGET onto SOURCE.

    \b
    Each line is a marker and a path:
      A  added       M  updated
      D  deleted     C  cleaned up (outside the allowed folders)
    """
    sync_filter = _build_filter(prefixes, json_mode, keep, not no_cleanup)
    store = _open_store(ctx)
    try:
        source_snapshot = read_snapshot(store, source)
        target_snapshot = read_snapshot(store, target)
    except BranchSyncError as exc:
        raise click.ClickException(str(exc))
    finally:
        _close_store(store)
    if not apply_filter(source_snapshot, sync_filter):
        click.echo(f"No files in {source} match the filter; sync would do nothing", err=True)
        return
    result = plan_sync(source_snapshot, target_snapshot, sync_filter)
    _print_plan(result)
    if result.in_sync:
        _status(ctx, f"{target} is up to date with {source}")


@main.command()
@click.argument("source")
@click.argument("target")
@_filter_options
@_message_option
@_dry_run_option
@click.pass_context
def sync(ctx, source, target, prefixes, json_mode, keep, no_cleanup, message, dry_run):
    """Converge TARGET onto the allowed files of SOURCE.

    Files are only copied when TARGET does not already hold identical
    content.  If the branch moved or the patch is rejected, SOURCE is
    merged into TARGET instead.
    """
    sync_filter = _build_filter(prefixes, json_mode, keep, not no_cleanup)
    store = _open_store(ctx)
    try:
        outcome = sync_filtered(
            store, source, target, sync_filter,
            scheduler=_settings(ctx).scheduler(),
            message=message,
            dry_run=dry_run,
        )
    except BranchSyncError as exc:
        raise click.ClickException(str(exc))
    finally:
        _close_store(store)

    if outcome.skipped:
        raise click.ClickException(f"Branch {source} or {target} does not exist")
    if dry_run and outcome.plan is not None:
        _print_plan(outcome.plan)
        return
    if outcome.fallback_merge:
        click.echo(f"Merged {source} into {target} (fallback)")
    elif outcome.commit_id:
        click.echo(f"{outcome.commit_id[:7]} {outcome.plan.summary()}")
    else:
        _status(ctx, f"{target} is up to date with {source}")


@main.command()
@click.argument("source")
@click.argument("target")
@_message_option
@click.pass_context
def rebase(ctx, source, target, message):
    """Make TARGET an exact copy of SOURCE (discards TARGET-only commits)."""
    store = _open_store(ctx)
    try:
        outcome = rebase_branch(store, source, target, message=message)
    except BranchSyncError as exc:
        raise click.ClickException(str(exc))
    finally:
        _close_store(store)

    if outcome.skipped:
        raise click.ClickException(f"Branch {source} or {target} does not exist")
    if outcome.rebased:
        click.echo(f"{outcome.commit_id[:7]} rebased {target} onto {source}")
    else:
        _status(ctx, f"{target} already mirrors {source}")
