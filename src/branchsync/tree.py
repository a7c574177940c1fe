"""Tree entries, snapshots and low-level tree manipulation.

``TreeEntry`` and ``Snapshot`` are the store-neutral view of a branch
tip.  ``rebuild_tree`` and ``iter_tree`` operate directly on a dulwich
object store and back :class:`~branchsync.local.LocalStore`.
"""

from __future__ import annotations

import os
from collections import defaultdict
from collections.abc import Iterator, Mapping
from typing import NamedTuple

from dulwich.objects import Tree


GIT_FILEMODE_TREE = 0o040000
GIT_FILEMODE_BLOB = 0o100644
GIT_FILEMODE_BLOB_EXECUTABLE = 0o100755
GIT_FILEMODE_LINK = 0o120000
GIT_FILEMODE_COMMIT = 0o160000

# Wire representation used by the REST API and by TreeEntry.mode
MODE_FILE = "100644"
MODE_EXECUTABLE = "100755"
MODE_SYMLINK = "120000"
MODE_TREE = "040000"
MODE_SUBMODULE = "160000"

_KIND_BY_MODE = {
    GIT_FILEMODE_TREE: "tree",
    GIT_FILEMODE_COMMIT: "commit",
}


def mode_to_str(mode: int) -> str:
    """Return the six-digit octal string for a git filemode."""
    return format(mode, "06o")


def mode_to_int(mode: str | int) -> int:
    if isinstance(mode, int):
        return mode
    return int(mode, 8)


class TreeEntry(NamedTuple):
    """One entry of a flattened tree listing."""

    path: str
    mode: str
    id: str
    kind: str = "blob"

    @property
    def is_blob(self) -> bool:
        return self.kind == "blob"


class Snapshot(Mapping):
    """Read-only ``path -> TreeEntry`` mapping of the files in one tree.

    *commit_id* and *tree_id* record where the snapshot was read from; they
    are None for snapshots built by hand.
    """

    def __init__(
        self,
        entries: Mapping[str, TreeEntry] | None = None,
        *,
        commit_id: str | None = None,
        tree_id: str | None = None,
    ):
        self._entries = dict(entries or {})
        self.commit_id = commit_id
        self.tree_id = tree_id

    @classmethod
    def from_entries(
        cls,
        entries,
        *,
        commit_id: str | None = None,
        tree_id: str | None = None,
    ) -> Snapshot:
        """Build a snapshot from a tree listing, keeping only blobs."""
        return cls(
            {e.path: e for e in entries if e.is_blob},
            commit_id=commit_id,
            tree_id=tree_id,
        )

    def __getitem__(self, path: str) -> TreeEntry:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        where = self.commit_id[:7] if self.commit_id else "detached"
        return f"Snapshot({where}, files={len(self)})"

    def object_ids(self) -> set[str]:
        """All blob ids referenced by this snapshot."""
        return {e.id for e in self._entries.values()}


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def normalize_path(path: str | os.PathLike[str]) -> str:
    """Normalize a path: strip leading/trailing slashes, reject bad segments."""
    path = os.fspath(path)
    if os.name == "nt":
        path = path.replace("\\", "/")
    path = path.strip("/")
    if not path:
        raise ValueError("Path must not be empty")
    segments = path.split("/")
    for seg in segments:
        if not seg:
            raise ValueError(f"Empty segment in path: {path!r}")
        if seg in (".", ".."):
            raise ValueError(f"Invalid path segment: {seg!r}")
    return "/".join(segments)


# ---------------------------------------------------------------------------
# dulwich tree helpers
# ---------------------------------------------------------------------------

def iter_tree(
    object_store,
    tree_id: bytes,
    *,
    recursive: bool = True,
    prefix: str = "",
) -> Iterator[TreeEntry]:
    """Yield the entries of a tree, depth first.

    Sub-tree entries are yielded before their contents.  Submodule entries
    (gitlinks) are yielded but never descended into.
    """
    tree = object_store[tree_id]
    for item in tree.iteritems():
        name = item.path.decode()
        path = f"{prefix}/{name}" if prefix else name
        kind = _KIND_BY_MODE.get(item.mode, "blob")
        yield TreeEntry(path, mode_to_str(item.mode), item.sha.decode(), kind)
        if recursive and item.mode == GIT_FILEMODE_TREE:
            yield from iter_tree(object_store, item.sha, recursive=True, prefix=path)


def _write_tree(object_store, entries: dict[bytes, tuple[int, bytes]]) -> bytes:
    tree = Tree()
    for name, (mode, sha) in sorted(entries.items()):
        tree.add(name, mode, sha)
    object_store.add_object(tree)
    return tree.id


def rebuild_tree(
    object_store,
    base_tree_id: bytes | None,
    writes: dict[str, tuple[bytes, int]],
    removes: set[str],
) -> bytes:
    """Rebuild a tree with writes and removes applied.

    Only the ancestor chain from changed leaves to root is rebuilt.
    Sibling subtrees are shared by hash reference.  Directories left empty
    by removes are pruned.

    Args:
        object_store: The dulwich object store.
        base_tree_id: Hex id of the existing tree (or None for empty).
        writes: Mapping of normalized path to ``(blob_id, filemode)``.
        removes: Set of normalized paths to remove; missing paths are ignored.

    Returns:
        Hex id of the new root tree.
    """
    sub_writes: dict[str, dict[str, tuple[bytes, int]]] = defaultdict(dict)
    leaf_writes: dict[str, tuple[bytes, int]] = {}
    sub_removes: dict[str, set[str]] = defaultdict(set)
    leaf_removes: set[str] = set()

    for path, value in writes.items():
        parts = path.split("/", 1)
        if len(parts) == 1:
            leaf_writes[parts[0]] = value
        else:
            sub_writes[parts[0]][parts[1]] = value

    for path in removes:
        parts = path.split("/", 1)
        if len(parts) == 1:
            leaf_removes.add(parts[0])
        else:
            sub_removes[parts[0]].add(parts[1])

    entries: dict[bytes, tuple[int, bytes]] = {}
    if base_tree_id is not None:
        for item in object_store[base_tree_id].iteritems():
            entries[item.path] = (item.mode, item.sha)

    for name, (sha, mode) in leaf_writes.items():
        entries[name.encode()] = (mode, sha)

    for name in leaf_removes:
        entries.pop(name.encode(), None)

    for subdir in set(sub_writes) | set(sub_removes):
        key = subdir.encode()
        existing = entries.get(key)
        existing_id = existing[1] if existing and existing[0] == GIT_FILEMODE_TREE else None
        if existing_id is None and subdir not in sub_writes:
            # Removes below a missing (or non-tree) entry are no-ops
            continue
        new_id = rebuild_tree(
            object_store,
            existing_id,
            sub_writes.get(subdir, {}),
            sub_removes.get(subdir, set()),
        )
        if len(object_store[new_id]) == 0:
            entries.pop(key, None)
        else:
            entries[key] = (GIT_FILEMODE_TREE, new_id)

    return _write_tree(object_store, entries)
