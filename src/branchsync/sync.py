"""The two sync pipelines: filtered sync and rebase-by-tree-copy."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .batch import BatchScheduler
from .commit import apply_plan, commit_plan, sync_message
from .exceptions import RefNotFoundError
from .materialize import materialize
from .plan import SyncFilter, SyncPlan, apply_filter, plan_sync
from .rebase import rebase_onto
from .snapshot import read_snapshot
from .store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """What a filtered sync did.

    *skipped* is True when a branch was missing and nothing was attempted.
    *fallback_merge* is True when the patch was rejected and the branches
    were merged instead.
    """
    added: int = 0
    updated: int = 0
    deleted: int = 0
    cleaned_up: int = 0
    commit_id: str | None = None
    fallback_merge: bool = False
    skipped: bool = False
    plan: SyncPlan | None = None

    @property
    def total(self) -> int:
        return self.added + self.updated + self.deleted + self.cleaned_up

    @property
    def changed(self) -> bool:
        return self.commit_id is not None


@dataclass
class RebaseOutcome:
    rebased: bool = False
    commit_id: str | None = None
    skipped: bool = False


def sync_filtered(
    store: ObjectStore,
    source: str,
    target: str,
    sync_filter: SyncFilter,
    *,
    target_store: ObjectStore | None = None,
    scheduler: BatchScheduler | None = None,
    message: str | None = None,
    dry_run: bool = False,
) -> SyncOutcome:
    """Converge branch *target* onto the filtered files of branch *source*.

    Args:
        store: Store holding *source* (and *target*, unless *target_store*).
        source: Source branch name.
        target: Target branch name.
        sync_filter: Allowed prefixes and JSON policy.
        target_store: Store holding *target* when it differs from *store*.
        scheduler: Spaces out blob copies.
        message: Commit message; summarises the counts by default.
        dry_run: Plan only; no objects or refs are written.

    A missing branch skips the sync.  Conflicts fall back to a merge,
    which is only possible when both branches live in the same store.
    """
    target_store = target_store or store
    try:
        source_snapshot = read_snapshot(store, source)
        target_snapshot = read_snapshot(target_store, target)
    except RefNotFoundError as exc:
        logger.info("[%s] %s does not exist, skipping sync", store.label, exc.name)
        return SyncOutcome(skipped=True)

    filtered = apply_filter(source_snapshot, sync_filter)
    logger.info("[%s] Found %d files in %s to sync to %s (%s)",
                store.label, len(filtered), source, target, sync_filter.json_policy)
    if not filtered:
        logger.info("[%s] No files found in %s to sync", store.label, source)
        return SyncOutcome()

    plan = plan_sync(source_snapshot, target_snapshot, sync_filter)
    outcome = SyncOutcome(plan=plan, **plan.counts())
    if plan.in_sync:
        logger.info("[%s] %s is already up to date with %s", store.label, target, source)
        return outcome
    for op in plan.delete:
        logger.info("[%s] Deleted %s (not in %s)", store.label, op.path, source)
    for op in plan.cleanup:
        logger.info("[%s] Cleaned up %s (outside allowed folders)", store.label, op.path)
    if dry_run:
        return outcome

    resolved = materialize(
        plan, store, target_store,
        present=target_snapshot.object_ids(),
        scheduler=scheduler,
    )
    outcome.plan = resolved

    if target_store is store:
        result = apply_plan(store, resolved, target_snapshot,
                            source_branch=source, target_branch=target, message=message)
        outcome.commit_id = result.commit_id
        outcome.fallback_merge = result.fallback_merge
    else:
        outcome.commit_id = commit_plan(target_store, resolved, target_snapshot, target,
                                        message or sync_message(source, resolved))

    if not outcome.fallback_merge:
        logger.info("[%s] Successfully synced %d files from %s to %s (%s)",
                    store.label, outcome.total, source, target, plan.summary())
    return outcome


def rebase_branch(store: ObjectStore, source: str, target: str, *, message: str | None = None) -> RebaseOutcome:
    """Make *target* mirror *source*; a missing branch skips the rebase."""
    try:
        commit_id = rebase_onto(store, source, target, message=message)
    except RefNotFoundError as exc:
        logger.info("[%s] %s does not exist, skipping rebase", store.label, exc.name)
        return RebaseOutcome(skipped=True)
    return RebaseOutcome(rebased=commit_id is not None, commit_id=commit_id)
