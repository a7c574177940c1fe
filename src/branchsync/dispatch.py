"""Routing repository events to sync pipelines.

:func:`route` is a pure decision table from an event to the pipelines
that should run.  :class:`Dispatcher` runs them against a store.

Branch topology::

    production  --sync-->  sgc-production  --(back-sync, JSON)-->  production
    production  --rebase-->  staging
    staging     --sync-->  sgc-staging
    production  --sync-->  sgc-production-one-way
    staging     --sync-->  sgc-staging-one-way
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Union

from .batch import BatchScheduler
from .plan import SETTINGS_SCHEMA, THEME_FOLDERS, JsonPolicy, SyncFilter
from .snapshot import branch_exists
from .store import ObjectStore
from .sync import RebaseOutcome, SyncOutcome, rebase_branch, sync_filtered

logger = logging.getLogger(__name__)

PRODUCTION = "production"
STAGING = "staging"
SGC_PRODUCTION = "sgc-production"
SGC_STAGING = "sgc-staging"
SGC_PRODUCTION_ONE_WAY = "sgc-production-one-way"
SGC_STAGING_ONE_WAY = "sgc-staging-one-way"

SHOPIFY_UPDATE_MARKER = "update from shopify"
SGC_SYNC_MARKER = "sync files from sgc-production"
SYNC_SETTINGS_LABEL = "sync-settings"
HORIZON_HEAD_MARKER = "sync/horizon-"


# ---------------------------------------------------------------------------
# Events and invocations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PushEvent:
    branch: str
    message: str = ""
    deleted: bool = False


@dataclass(frozen=True)
class PullRequestEvent:
    action: str
    base_branch: str
    head_branch: str
    merged: bool = False
    labels: frozenset[str] = field(default_factory=frozenset)


Event = Union[PushEvent, PullRequestEvent]


@dataclass(frozen=True)
class SyncInvocation:
    source: str
    target: str
    filter: SyncFilter

    def __str__(self) -> str:
        return f"sync {self.source} -> {self.target} ({self.filter.json_policy})"


@dataclass(frozen=True)
class RebaseInvocation:
    source: str
    target: str

    def __str__(self) -> str:
        return f"rebase {self.target} onto {self.source}"


Invocation = Union[SyncInvocation, RebaseInvocation]


def parse_event(name: str, payload: Mapping) -> Event | None:
    """Build an event from a (verified) webhook payload.

    Returns None for event kinds and refs that never trigger a sync.
    """
    if name == "push":
        ref = payload.get("ref", "")
        if not ref.startswith("refs/heads/"):
            return None
        head = payload.get("head_commit") or {}
        return PushEvent(
            branch=ref[len("refs/heads/"):],
            message=head.get("message") or "",
            deleted=bool(payload.get("deleted")),
        )
    if name == "pull_request":
        pr = payload.get("pull_request") or {}
        labels = frozenset(
            (label.get("name") or "").lower() for label in pr.get("labels") or ()
        )
        return PullRequestEvent(
            action=payload.get("action", ""),
            base_branch=(pr.get("base") or {}).get("ref", ""),
            head_branch=(pr.get("head") or {}).get("ref", ""),
            merged=bool(pr.get("merged")),
            labels=labels,
        )
    return None


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

def _filter(policy: JsonPolicy, prefixes: Iterable[str], *, cleanup: bool = True) -> SyncFilter:
    return SyncFilter(frozenset(prefixes), policy, cleanup)


def _route_push(event: PushEvent, back_sync: bool, prefixes) -> list[Invocation]:
    if event.deleted or not event.message:
        return []
    message = event.message.lower()

    if event.branch == SGC_PRODUCTION:
        if SHOPIFY_UPDATE_MARKER not in message or not back_sync:
            return []
        return [
            SyncInvocation(SGC_PRODUCTION, PRODUCTION, _filter(JsonPolicy.only_json(), prefixes, cleanup=False)),
            RebaseInvocation(PRODUCTION, STAGING),
        ]

    if event.branch == PRODUCTION:
        invocations: list[Invocation] = []
        merged_pr = "merge pull request" in message
        from_horizon = merged_pr and "/sync/horizon" in message
        from_staging = merged_pr and "/staging" in message
        if from_horizon or from_staging or SGC_SYNC_MARKER in message:
            invocations.append(RebaseInvocation(PRODUCTION, STAGING))
        invocations.append(SyncInvocation(PRODUCTION, SGC_PRODUCTION_ONE_WAY, _filter(JsonPolicy.include_all(), prefixes)))
        return invocations

    if event.branch == STAGING:
        return [
            SyncInvocation(STAGING, SGC_STAGING, _filter(JsonPolicy.include_all(), prefixes)),
            SyncInvocation(STAGING, SGC_STAGING_ONE_WAY, _filter(JsonPolicy.include_all(), prefixes)),
        ]

    # sgc-staging never backfills; one-way branches never sync back
    return []


def _route_pull_request(event: PullRequestEvent, prefixes) -> list[Invocation]:
    if event.action != "closed" or not event.merged or event.base_branch != PRODUCTION:
        return []
    include_json = (
        SYNC_SETTINGS_LABEL in event.labels
        or HORIZON_HEAD_MARKER in event.head_branch.lower()
    )
    policy = JsonPolicy.include_all() if include_json else JsonPolicy.exclude_except([SETTINGS_SCHEMA])
    return [SyncInvocation(PRODUCTION, SGC_PRODUCTION, _filter(policy, prefixes))]


def route(event: Event, *, back_sync: bool = True, prefixes: Iterable[str] = THEME_FOLDERS) -> list[Invocation]:
    """Return the pipelines *event* triggers, in the order they must run."""
    prefixes = tuple(prefixes)
    if isinstance(event, PushEvent):
        return _route_push(event, back_sync, prefixes)
    if isinstance(event, PullRequestEvent):
        return _route_pull_request(event, prefixes)
    raise TypeError(f"Unknown event type: {type(event).__name__}")


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class Dispatcher:
    """Runs the pipelines an event routes to.

    Repositories without an ``sgc-production`` branch are not managed and
    are ignored.  Missing optional branches skip their pipeline.
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        back_sync: bool = True,
        prefixes: Iterable[str] = THEME_FOLDERS,
        scheduler: BatchScheduler | None = None,
    ):
        self.store = store
        self.back_sync = back_sync
        self.prefixes = tuple(prefixes)
        self.scheduler = scheduler

    def handle(self, event: Event) -> list[tuple[Invocation, SyncOutcome | RebaseOutcome]]:
        invocations = route(event, back_sync=self.back_sync, prefixes=self.prefixes)
        if not invocations:
            logger.debug("[%s] Nothing to do for %r", self.store.label, event)
            return []
        if not branch_exists(self.store, SGC_PRODUCTION):
            logger.info("[%s] %s branch does not exist, skipping", self.store.label, SGC_PRODUCTION)
            return []
        return [(invocation, self.run(invocation)) for invocation in invocations]

    def run(self, invocation: Invocation) -> SyncOutcome | RebaseOutcome:
        logger.info("[%s] Running %s", self.store.label, invocation)
        if isinstance(invocation, RebaseInvocation):
            return rebase_branch(self.store, invocation.source, invocation.target)
        return sync_filtered(
            self.store, invocation.source, invocation.target, invocation.filter,
            scheduler=self.scheduler,
        )
