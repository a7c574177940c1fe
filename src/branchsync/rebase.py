"""Rebase-by-tree-copy: make a downstream branch mirror an upstream one."""

from __future__ import annotations

import logging

from .store import ObjectStore

logger = logging.getLogger(__name__)


def rebase_message(source: str, target: str, source_commit: str) -> str:
    return f"Rebase {target} onto {source} ({source_commit[:7]})"


def rebase_onto(store: ObjectStore, source: str, target: str, *, message: str | None = None) -> str | None:
    """Point *target* at a copy of *source*'s tip.

    Creates a commit with *source*'s tree whose only parent is *source*'s
    tip, then force-updates *target* to it; commits only on *target* are
    discarded.  Returns the new commit id, or None when both branches
    already point at the same commit or *target* is already such a copy.

    Raises:
        RefNotFoundError: If either branch does not exist.
    """
    source_id = store.get_ref(source)
    target_id = store.get_ref(target)
    if source_id == target_id:
        logger.info("[%s] %s is already up to date with %s", store.label, target, source)
        return None

    source_commit = store.get_commit(source_id)
    target_commit = store.get_commit(target_id)
    if target_commit.parents == (source_id,) and target_commit.tree_id == source_commit.tree_id:
        logger.info("[%s] %s already mirrors %s", store.label, target, source)
        return None

    commit_id = store.create_commit(
        message or rebase_message(source, target, source_id),
        source_commit.tree_id,
        [source_id],
    )
    store.update_ref(target, commit_id, force=True)
    logger.info("[%s] Rebased %s onto %s (%s)", store.label, target, source, commit_id[:7])
    return commit_id
