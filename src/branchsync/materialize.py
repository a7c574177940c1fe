"""Making every object a plan references exist in the target store."""

from __future__ import annotations

import logging
from collections.abc import Set
from dataclasses import dataclass, field, replace

from .batch import BatchScheduler
from .plan import Put, SyncPlan
from .store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class ResolvedPlan(SyncPlan):
    """A :class:`SyncPlan` whose ``Put`` ids all exist in the target store.

    *reused* lists paths whose object was already present; *copied* lists
    paths whose content was copied from the source store, which took
    *blobs_copied* blob copies.
    """
    reused: list[str] = field(default_factory=list)
    copied: list[str] = field(default_factory=list)
    blobs_copied: int = 0


def materialize(
    plan: SyncPlan,
    source_store: ObjectStore,
    target_store: ObjectStore,
    *,
    present: Set[str],
    scheduler: BatchScheduler | None = None,
) -> ResolvedPlan:
    """Resolve *plan* against *target_store*.

    Args:
        plan: The plan to resolve.
        source_store: Store the plan's ids were read from.
        target_store: Store the resulting tree will be written to.
        present: Object ids known to exist in *target_store* (normally
            every id of the target snapshot).  These are referenced as-is.
        scheduler: Spaces out the copy calls; a default one if None.

    Each missing id is copied once, however many paths reference it.
    """
    scheduler = scheduler or BatchScheduler()
    missing: dict[str, list[Put]] = {}
    reused: list[str] = []
    for put in plan.puts:
        if put.id in present:
            reused.append(put.path)
            logger.info("[%s] %s %s (reused existing blob)", target_store.label,
                        "Updated" if put in plan.update else "Added", put.path)
        else:
            missing.setdefault(put.id, []).append(put)

    def copy(object_id: str) -> str:
        blob = source_store.get_blob(object_id)
        return target_store.create_blob(blob.content, blob.encoding)

    new_ids = dict(scheduler.run(sorted(missing), copy, label=f"[{target_store.label}] copy blobs"))

    def resolve(put: Put) -> Put:
        new_id = new_ids.get(put.id)
        if new_id is None or new_id == put.id:
            return put
        return replace(put, id=new_id)

    copied = sorted(p.path for puts in missing.values() for p in puts)
    for path in copied:
        logger.info("[%s] Copied %s", target_store.label, path)

    return ResolvedPlan(
        add=[resolve(p) for p in plan.add],
        update=[resolve(p) for p in plan.update],
        delete=list(plan.delete),
        cleanup=list(plan.cleanup),
        reused=reused,
        copied=copied,
        blobs_copied=len(new_ids),
    )
