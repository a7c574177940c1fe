"""ObjectStore implementation over a bare git repository (dulwich)."""

from __future__ import annotations

import base64
import logging
import os
import time
from collections.abc import Sequence
from pathlib import Path

from dulwich.graph import can_fast_forward, find_merge_base
from dulwich.objects import Blob, Commit
from dulwich.repo import Repo

from .exceptions import ConflictError, NotFoundError, RefNotFoundError
from .plan import Delete, TreeOp
from .store import BlobContent, CommitInfo, ObjectStore
from .tree import MODE_SUBMODULE, TreeEntry, iter_tree, mode_to_int, normalize_path, rebuild_tree

logger = logging.getLogger(__name__)


def _ref_key(name: str) -> bytes:
    if name.startswith("refs/"):
        return name.encode()
    return f"refs/heads/{name}".encode()


class LocalStore(ObjectStore):
    """A bare git repository accessed in-process.

    Ref updates are compare-and-swap, so a branch that moves between
    reading and writing raises :class:`ConflictError` exactly like the
    remote service would.
    """

    def __init__(self, repo: Repo, *, author: str = "branchsync", email: str = "branchsync@localhost"):
        self._repo = repo
        self._identity = f"{author} <{email}>".encode()
        self.label = os.path.basename(os.path.normpath(repo.path)) or "repo"

    def __repr__(self) -> str:
        return f"LocalStore({self._repo.path!r})"

    @classmethod
    def open(cls, path: str | Path, *, create: bool = False, **kwargs) -> LocalStore:
        """Open (or with *create*, initialize) a bare repository at *path*."""
        path = Path(path)
        if path.exists():
            return cls(Repo(str(path)), **kwargs)
        if not create:
            raise FileNotFoundError(f"Repository not found: {path}")
        return cls(Repo.init_bare(str(path), mkdir=True), **kwargs)

    @property
    def repo(self) -> Repo:
        return self._repo

    # -- refs ---------------------------------------------------------------

    def get_ref(self, name: str) -> str:
        try:
            return self._repo.refs[_ref_key(name)].decode()
        except KeyError:
            raise RefNotFoundError(name)

    def create_ref(self, name: str, commit_id: str) -> None:
        """Create branch *name*; raises ConflictError if it already exists."""
        self._require_commit(commit_id)
        if not self._repo.refs.add_if_new(_ref_key(name), commit_id.encode()):
            raise ConflictError(f"Branch already exists: {name}")

    def update_ref(self, name: str, commit_id: str, *, force: bool = False) -> None:
        key = _ref_key(name)
        self._require_commit(commit_id)
        old = self.get_ref(name)
        if not force and not self.is_ancestor(old, commit_id):
            raise ConflictError(f"Update of {name} is not a fast-forward")
        if not self._repo.refs.set_if_equals(key, old.encode(), commit_id.encode()):
            raise ConflictError(f"Branch {name} moved during update")

    # -- reads --------------------------------------------------------------

    def _get(self, object_id: str):
        try:
            return self._repo.object_store[object_id.encode()]
        except KeyError:
            raise NotFoundError(f"Object not found: {object_id}")

    def _require_commit(self, commit_id: str) -> Commit:
        obj = self._get(commit_id)
        if not isinstance(obj, Commit):
            raise NotFoundError(f"Not a commit: {commit_id}")
        return obj

    def get_commit(self, commit_id: str) -> CommitInfo:
        commit = self._require_commit(commit_id)
        return CommitInfo(commit.id.decode(), commit.tree.decode(), tuple(p.decode() for p in commit.parents))

    def get_tree(self, tree_id: str, *, recursive: bool = False) -> list[TreeEntry]:
        self._get(tree_id)
        return list(iter_tree(self._repo.object_store, tree_id.encode(), recursive=recursive))

    def get_blob(self, blob_id: str) -> BlobContent:
        blob = self._get(blob_id)
        if not isinstance(blob, Blob):
            raise NotFoundError(f"Not a blob: {blob_id}")
        return BlobContent(base64.b64encode(blob.data).decode("ascii"), "base64")

    # -- writes -------------------------------------------------------------

    def create_blob(self, content: str, encoding: str) -> str:
        if encoding == "base64":
            data = base64.b64decode(content)
        elif encoding in ("utf-8", "utf8"):
            data = content.encode("utf-8")
        else:
            raise ValueError(f"Unsupported blob encoding: {encoding!r}")
        blob = Blob.from_string(data)
        self._repo.object_store.add_object(blob)
        return blob.id.decode()

    def create_tree(self, base_tree_id: str | None, ops: Sequence[TreeOp]) -> str:
        store = self._repo.object_store
        writes: dict[str, tuple[bytes, int]] = {}
        removes: set[str] = set()
        for op in ops:
            path = normalize_path(op.path)
            if isinstance(op, Delete):
                removes.add(path)
                continue
            # gitlinks name commits of another repository
            if op.mode != MODE_SUBMODULE and op.id.encode() not in store:
                raise ConflictError(f"Object {op.id} for {path} does not exist")
            writes[path] = (op.id.encode(), mode_to_int(op.mode))
        base = base_tree_id.encode() if base_tree_id is not None else None
        return rebuild_tree(store, base, writes, removes).decode()

    def create_commit(self, message: str, tree_id: str, parents: Sequence[str]) -> str:
        self._get(tree_id)
        c = Commit()
        c.tree = tree_id.encode()
        c.parents = [p.encode() for p in parents]
        c.author = c.committer = self._identity
        now = int(time.time())
        c.author_time = c.commit_time = now
        c.author_timezone = c.commit_timezone = 0
        msg = message.encode()
        if not msg.endswith(b"\n"):
            msg += b"\n"
        c.message = msg
        c.encoding = b"UTF-8"
        self._repo.object_store.add_object(c)
        return c.id.decode()

    def create_merge(self, base: str, head: str, message: str) -> str | None:
        """Merge branch *head* into branch *base* with a path-level merge.

        Paths changed on only one side since the merge base take that side;
        paths changed differently on both sides are conflicts.
        """
        base_id = self.get_ref(base)
        head_id = self.get_ref(head)
        if self.is_ancestor(head_id, base_id):
            return None

        ancestor = self.merge_base(base_id, head_id)
        ours = self._files(base_id)
        theirs = self._files(head_id)
        original = self._files(ancestor) if ancestor is not None else {}

        merged: dict[str, tuple[bytes, int]] = {}
        conflicts: list[str] = []
        for path in sorted(set(ours) | set(theirs)):
            o, t, a = ours.get(path), theirs.get(path), original.get(path)
            if o == t or t == a:
                chosen = o
            elif o == a:
                chosen = t
            else:
                conflicts.append(path)
                continue
            if chosen is not None:
                merged[path] = chosen
        if conflicts:
            raise ConflictError(f"Merge conflict in {', '.join(conflicts)}")

        tree_id = rebuild_tree(self._repo.object_store, None, merged, set()).decode()
        commit_id = self.create_commit(message, tree_id, [base_id, head_id])
        if not self._repo.refs.set_if_equals(_ref_key(base), base_id.encode(), commit_id.encode()):
            raise ConflictError(f"Branch {base} moved during merge")
        return commit_id

    # -- history helpers ----------------------------------------------------

    def _files(self, commit_id: str) -> dict[str, tuple[bytes, int]]:
        """Blob and submodule entries of a commit's tree, by path."""
        tree = self._require_commit(commit_id).tree
        return {
            e.path: (e.id.encode(), mode_to_int(e.mode))
            for e in iter_tree(self._repo.object_store, tree)
            if e.kind != "tree"
        }

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return can_fast_forward(self._repo, ancestor.encode(), descendant.encode())

    def merge_base(self, a: str, b: str) -> str | None:
        """Return the lowest common ancestor of *a* and *b*, or None."""
        bases = find_merge_base(self._repo, [a.encode(), b.encode()])
        return bases[0].decode() if bases else None
