"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging
import sys

import click

from ..config import Settings
from ..exceptions import BranchSyncError
from ..github import DEFAULT_API_URL
from ..plan import THEME_FOLDERS, JsonPolicy, SyncFilter
from ..store import ObjectStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("branchsync")
    root.handlers[:] = [handler]
    root.setLevel(level)


def _settings(ctx, **overrides) -> Settings:
    return Settings(**{**ctx.obj["settings"], **overrides})


def _open_store(ctx) -> ObjectStore:
    """Open the store selected by --repo or --github."""
    try:
        return _settings(ctx).open_store()
    except BranchSyncError as exc:
        raise click.ClickException(str(exc))


def _close_store(store: ObjectStore) -> None:
    close = getattr(store, "close", None)
    if close is not None:
        close()


def _build_filter(prefixes, json_mode: str, keep, cleanup: bool) -> SyncFilter:
    if json_mode == "include":
        policy = JsonPolicy.include_all()
    elif json_mode == "only":
        policy = JsonPolicy.only_json(keep)
    else:
        policy = JsonPolicy.exclude_except(keep)
    try:
        return SyncFilter(frozenset(prefixes or THEME_FOLDERS), policy, cleanup)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--prefix")


def _filter_options(f):
    """Shared --prefix/--json/--keep/--no-cleanup options."""
    f = click.option("--no-cleanup", "no_cleanup", is_flag=True, default=False,
                     help="Keep target files outside the allowed prefixes.")(f)
    f = click.option("--keep", multiple=True, metavar="PATH",
                     help="Path exempt from the JSON policy (repeatable).")(f)
    f = click.option("--json", "json_mode", type=click.Choice(["include", "exclude", "only"]),
                     default="include", show_default=True,
                     help="Which .json files take part in the sync.")(f)
    f = click.option("--prefix", "prefixes", multiple=True, metavar="DIR",
                     help="Allowed top-level folder (repeatable; default: theme folders).")(f)
    return f


def _message_option(f):
    return click.option("-m", "--message", default=None,
                        help="Commit message (default: auto-generated).")(f)


def _dry_run_option(f):
    return click.option("--dry-run", "-n", is_flag=True, default=False,
                        help="Show what would change without writing.")(f)


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--repo", "-r", "repo_path", type=click.Path(), envvar="BRANCHSYNC_REPO",
              help="Path to a bare git repository (or set BRANCHSYNC_REPO).")
@click.option("--github", "github", metavar="OWNER/REPO", envvar="BRANCHSYNC_GITHUB",
              help="GitHub repository (or set BRANCHSYNC_GITHUB).")
@click.option("--token", envvar="GITHUB_TOKEN", default=None,
              help="GitHub access token (or set GITHUB_TOKEN).")
@click.option("--api-url", default=DEFAULT_API_URL, envvar="BRANCHSYNC_API_URL", show_default=True,
              help="GitHub REST API base URL.")
@click.option("--max-retries", type=int, default=5, show_default=True,
              help="Retries per remote call on rate limits and transient errors.")
@click.option("--min-interval", type=float, default=0.1, show_default=True,
              help="Minimum seconds between remote calls.")
@click.option("-v", "--verbose", count=True, help="Verbose output on stderr (-vv for debug).")
@click.pass_context
def main(ctx, repo_path, github, token, api_url, max_retries, min_interval, verbose):
    """branchsync: keep repository branches in sync.

    Converges a connector branch onto the allow-listed folders of its
    parent branch with a minimal tree patch, or mirrors one branch onto
    another.

    \b
    Quick start:
      branchsync -r theme.git plan production sgc-production
      branchsync -r theme.git sync production sgc-production --json exclude \\
          --keep config/settings_schema.json
      branchsync --github acme/theme rebase production staging
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["settings"] = {
        "repo_path": repo_path,
        "github": github,
        "token": token,
        "api_url": api_url,
        "max_retries": max_retries,
        "min_interval": min_interval,
    }
    _configure_logging(verbose)
