"""Committing a resolved plan and moving the target branch."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .exceptions import BranchSyncError, ConflictError, FallbackFailedError
from .plan import SyncPlan
from .store import ObjectStore
from .tree import Snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """Where the target branch ended up.

    *commit_id* is None when the fallback merge found nothing to merge.
    """
    commit_id: str | None
    fallback_merge: bool = False


def sync_message(source: str, plan: SyncPlan) -> str:
    return f"Sync files from {source} ({plan.summary()})"


def commit_plan(
    store: ObjectStore,
    plan: SyncPlan,
    target: Snapshot,
    target_branch: str,
    message: str,
) -> str:
    """Write *plan* on top of *target* and fast-forward *target_branch*.

    The new commit's only parent is ``target.commit_id``; if the branch
    has moved since the snapshot was read the ref update is rejected with
    :class:`ConflictError`.
    """
    if target.commit_id is None:
        raise ValueError("Target snapshot has no commit to build on")
    tree_id = store.create_tree(target.tree_id, plan.ops())
    commit_id = store.create_commit(message, tree_id, [target.commit_id])
    store.update_ref(target_branch, commit_id, force=False)
    return commit_id


def apply_plan(
    store: ObjectStore,
    plan: SyncPlan,
    target: Snapshot,
    *,
    source_branch: str,
    target_branch: str,
    message: str | None = None,
) -> CommitResult:
    """Commit *plan*, falling back to merging the branches on conflict.

    Raises:
        FallbackFailedError: If the commit conflicted and the merge failed.
    """
    message = message or sync_message(source_branch, plan)
    try:
        return CommitResult(commit_plan(store, plan, target, target_branch, message))
    except ConflictError as exc:
        logger.error("[%s] Error syncing files from %s to %s: %s",
                     store.label, source_branch, target_branch, exc)
        original = exc

    merge_message = f"Merge {source_branch} into {target_branch} (fallback from sync)"
    try:
        merge_id = store.create_merge(target_branch, source_branch, merge_message)
    except BranchSyncError as merge_error:
        logger.error("[%s] Fallback merge also failed: %s", store.label, merge_error)
        raise FallbackFailedError(original, merge_error) from merge_error
    logger.info("[%s] Fallback: merged %s into %s", store.label, source_branch, target_branch)
    return CommitResult(merge_id, fallback_merge=True)
