"""The dispatch command: run the pipelines a webhook event triggers."""

from __future__ import annotations

import json

import click

from ..dispatch import Dispatcher, parse_event
from ..exceptions import BranchSyncError
from ..sync import RebaseOutcome
from ._helpers import main, _close_store, _open_store, _settings, _status


@main.command()
@click.argument("event_name", metavar="EVENT", type=click.Choice(["push", "pull_request"]))
@click.argument("payload", type=click.File("r"))
@click.option("--back-sync/--no-back-sync", default=True, envvar="BRANCHSYNC_BACK_SYNC",
              show_default=True, help="Sync connector updates back into production.")
@click.pass_context
def dispatch(ctx, event_name, payload, back_sync):
    """Run the syncs triggered by a webhook PAYLOAD (JSON file or '-').

    The payload must already be verified; no signature check is done.
    """
    try:
        data = json.load(payload)
    except ValueError as exc:
        raise click.ClickException(f"Invalid JSON payload: {exc}")
    event = parse_event(event_name, data)
    if event is None:
        _status(ctx, "Event does not trigger any sync")
        return

    settings = _settings(ctx)
    store = _open_store(ctx)
    try:
        results = Dispatcher(
            store,
            back_sync=back_sync,
            prefixes=settings.allowed_prefixes,
            scheduler=settings.scheduler(),
        ).handle(event)
    except BranchSyncError as exc:
        raise click.ClickException(str(exc))
    finally:
        _close_store(store)

    for invocation, outcome in results:
        if outcome.skipped:
            state = "skipped"
        elif isinstance(outcome, RebaseOutcome):
            state = "rebased" if outcome.rebased else "up to date"
        elif outcome.fallback_merge:
            state = "merged (fallback)"
        elif outcome.commit_id:
            state = outcome.plan.summary()
        else:
            state = "up to date"
        click.echo(f"{invocation}: {state}")
