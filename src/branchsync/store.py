"""The object-store interface consumed by the sync engine.

An :class:`ObjectStore` is one content-addressed repository plus its ref
service.  :class:`~branchsync.local.LocalStore` implements it over a bare
git repository; :class:`~branchsync.github.GitHubStore` over the GitHub
git-data REST API.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from .plan import TreeOp
    from .tree import TreeEntry


class CommitInfo(NamedTuple):
    id: str
    tree_id: str
    parents: tuple[str, ...]


class BlobContent(NamedTuple):
    """Blob payload in the store's transport encoding ("base64" or "utf-8")."""

    content: str
    encoding: str


class ObjectStore(ABC):
    """Remote operations the sync engine requires."""

    #: Short human-readable name used to prefix log messages.
    label: str = "store"

    @abstractmethod
    def get_ref(self, name: str) -> str:
        """Return the commit id of branch *name*.

        Raises :class:`~branchsync.exceptions.RefNotFoundError` if missing.
        """

    @abstractmethod
    def update_ref(self, name: str, commit_id: str, *, force: bool = False) -> None:
        """Move branch *name* to *commit_id*.

        Without *force* the update must be a fast-forward, otherwise
        :class:`~branchsync.exceptions.ConflictError` is raised.
        """

    @abstractmethod
    def get_commit(self, commit_id: str) -> CommitInfo: ...

    @abstractmethod
    def get_tree(self, tree_id: str, *, recursive: bool = False) -> list[TreeEntry]:
        """List a tree; with *recursive* the listing is flattened."""

    @abstractmethod
    def get_blob(self, blob_id: str) -> BlobContent: ...

    @abstractmethod
    def create_blob(self, content: str, encoding: str) -> str: ...

    @abstractmethod
    def create_tree(self, base_tree_id: str | None, ops: Sequence[TreeOp]) -> str:
        """Create a tree from *base_tree_id* with *ops* applied."""

    @abstractmethod
    def create_commit(self, message: str, tree_id: str, parents: Sequence[str]) -> str: ...

    @abstractmethod
    def create_merge(self, base: str, head: str, message: str) -> str | None:
        """Merge branch *head* into branch *base*.

        Returns the merge commit id, or None when *head* is already merged.
        Raises :class:`~branchsync.exceptions.ConflictError` on conflicts.
        """
