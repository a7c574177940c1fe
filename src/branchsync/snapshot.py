"""Reading branch tips into flattened snapshots."""

from __future__ import annotations

import logging
import re

from .exceptions import NotFoundError, RefNotFoundError
from .store import ObjectStore
from .tree import Snapshot

logger = logging.getLogger(__name__)

_COMMIT_ID_RE = re.compile(r"^[0-9a-f]{40}$")


def resolve_commit(store: ObjectStore, ref_or_commit: str) -> str:
    """Return the commit id for a branch name or a full commit id."""
    if _COMMIT_ID_RE.match(ref_or_commit):
        try:
            return store.get_commit(ref_or_commit).id
        except NotFoundError:
            pass
    return store.get_ref(ref_or_commit)


def read_snapshot(store: ObjectStore, ref_or_commit: str) -> Snapshot:
    """Read the files of *ref_or_commit* as a :class:`Snapshot`.

    Sub-trees are flattened away; only blob entries are kept.

    Raises:
        RefNotFoundError: If the branch does not exist.
    """
    commit_id = resolve_commit(store, ref_or_commit)
    commit = store.get_commit(commit_id)
    entries = store.get_tree(commit.tree_id, recursive=True)
    snapshot = Snapshot.from_entries(entries, commit_id=commit.id, tree_id=commit.tree_id)
    logger.debug("[%s] Read %d files from %s (%s)", store.label, len(snapshot), ref_or_commit, commit.id[:7])
    return snapshot


def branch_exists(store: ObjectStore, name: str) -> bool:
    try:
        store.get_ref(name)
    except RefNotFoundError:
        return False
    return True
