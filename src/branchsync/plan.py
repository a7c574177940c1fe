"""Filtered sync planning.

:func:`plan_sync` compares a source snapshot against a target snapshot
and returns the tree operations that converge the target onto the
filtered view of the source.  It performs no I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Union

from .exceptions import PlanInvariantError
from .tree import Snapshot, TreeEntry

JSON_SUFFIX = ".json"

#: Top-level folders of a Shopify theme.
THEME_FOLDERS = (
    "assets",
    "blocks",
    "config",
    "layout",
    "locales",
    "sections",
    "snippets",
    "templates",
)

SETTINGS_SCHEMA = "config/settings_schema.json"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JsonPolicy:
    """Which ``.json`` files take part in a sync.

    ``mode`` is one of ``"include"`` (all files), ``"exclude"`` (no JSON
    except *exceptions*) or ``"only"`` (only JSON, plus *exceptions*).
    """

    mode: str = "include"
    exceptions: frozenset[str] = frozenset()

    def __post_init__(self):
        if self.mode not in ("include", "exclude", "only"):
            raise ValueError(f"Unknown JSON policy mode: {self.mode!r}")

    @classmethod
    def include_all(cls) -> JsonPolicy:
        return cls("include")

    @classmethod
    def exclude_except(cls, exceptions: Iterable[str] = ()) -> JsonPolicy:
        return cls("exclude", frozenset(exceptions))

    @classmethod
    def only_json(cls, exceptions: Iterable[str] = ()) -> JsonPolicy:
        return cls("only", frozenset(exceptions))

    def admits(self, path: str) -> bool:
        if self.mode == "include" or path in self.exceptions:
            return True
        is_json = path.endswith(JSON_SUFFIX)
        return is_json if self.mode == "only" else not is_json

    def __str__(self) -> str:
        if self.mode == "include":
            return "all files"
        kind = "JSON only" if self.mode == "only" else "no JSON"
        if self.exceptions:
            return f"{kind} (except {', '.join(sorted(self.exceptions))})"
        return kind


@dataclass(frozen=True)
class SyncFilter:
    """Allow-listed top-level prefixes plus a JSON policy.

    With *cleanup* (the default) target files outside the allowed prefixes
    are removed.  Back-syncing into a full source branch turns it off.
    """

    allowed_prefixes: frozenset[str]
    json_policy: JsonPolicy = field(default_factory=JsonPolicy)
    cleanup: bool = True

    def __post_init__(self):
        prefixes = frozenset(p.strip("/") for p in self.allowed_prefixes)
        if not prefixes or "" in prefixes:
            raise ValueError("allowed_prefixes must contain non-empty prefixes")
        object.__setattr__(self, "allowed_prefixes", prefixes)

    @classmethod
    def theme(cls, json_policy: JsonPolicy | None = None, *, cleanup: bool = True) -> SyncFilter:
        """Filter over the standard theme folders."""
        return cls(frozenset(THEME_FOLDERS), json_policy or JsonPolicy(), cleanup)

    def in_scope(self, path: str) -> bool:
        """True if *path* equals or lies below one of the allowed prefixes."""
        return any(path == p or path.startswith(p + "/") for p in self.allowed_prefixes)

    def admits(self, path: str) -> bool:
        return self.in_scope(path) and self.json_policy.admits(path)


def apply_filter(snapshot: Mapping[str, TreeEntry], sync_filter: SyncFilter) -> Snapshot:
    """Return the sub-snapshot of entries admitted by *sync_filter*."""
    kept = {path: entry for path, entry in snapshot.items() if sync_filter.admits(path)}
    return Snapshot(
        kept,
        commit_id=getattr(snapshot, "commit_id", None),
        tree_id=getattr(snapshot, "tree_id", None),
    )


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Put:
    """Write *id* at *path* with *mode*."""
    path: str
    mode: str
    id: str


@dataclass(frozen=True)
class Delete:
    """Remove *path*."""
    path: str


TreeOp = Union[Put, Delete]


@dataclass
class SyncPlan:
    """What a filtered sync would do to the target tree."""
    add: list[Put] = field(default_factory=list)
    update: list[Put] = field(default_factory=list)
    delete: list[Delete] = field(default_factory=list)
    cleanup: list[Delete] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not (self.add or self.update or self.delete or self.cleanup)

    @property
    def total(self) -> int:
        return len(self.add) + len(self.update) + len(self.delete) + len(self.cleanup)

    @property
    def puts(self) -> list[Put]:
        return self.add + self.update

    def ops(self) -> list[TreeOp]:
        """All operations sorted by path."""
        result: list[TreeOp] = [*self.add, *self.update, *self.delete, *self.cleanup]
        result.sort(key=lambda op: op.path)
        return result

    def counts(self) -> dict[str, int]:
        return {
            "added": len(self.add),
            "updated": len(self.update),
            "deleted": len(self.delete),
            "cleaned_up": len(self.cleanup),
        }

    def summary(self) -> str:
        """Human-readable counts, e.g. ``"2 added, 1 deleted"``."""
        labels = (
            ("added", len(self.add)),
            ("updated", len(self.update)),
            ("deleted", len(self.delete)),
            ("cleaned up", len(self.cleanup)),
        )
        return ", ".join(f"{n} {label}" for label, n in labels if n)

    def check(self) -> None:
        """Raise :class:`PlanInvariantError` if a path is scheduled twice."""
        seen: set[str] = set()
        for op in (*self.add, *self.update, *self.delete, *self.cleanup):
            if op.path in seen:
                raise PlanInvariantError(f"Path scheduled more than once: {op.path}")
            seen.add(op.path)


def plan_sync(
    source: Mapping[str, TreeEntry],
    target: Mapping[str, TreeEntry],
    sync_filter: SyncFilter,
) -> SyncPlan:
    """Compute the operations converging *target* onto filtered *source*.

    * admitted source paths missing from the target are added;
    * admitted source paths whose id differs are updated;
    * identical ids are left alone;
    * admitted target paths missing from the filtered source are deleted;
    * target paths outside the allowed prefixes are cleaned up, whatever
      the JSON policy says (unless the filter disables cleanup).

    Target paths rejected only by the JSON policy are never touched.
    """
    filtered = apply_filter(source, sync_filter)
    plan = SyncPlan()

    for path in sorted(filtered):
        entry = filtered[path]
        current = target.get(path)
        if current is None:
            plan.add.append(Put(path, entry.mode, entry.id))
        elif current.id != entry.id:
            plan.update.append(Put(path, entry.mode, entry.id))

    for path in sorted(target):
        if sync_filter.in_scope(path):
            if sync_filter.json_policy.admits(path) and path not in filtered:
                plan.delete.append(Delete(path))
        elif sync_filter.cleanup:
            plan.cleanup.append(Delete(path))

    plan.check()
    return plan
