"""Tests for blob materialization."""

import base64

import pytest

from branchsync.batch import BatchScheduler
from branchsync.exceptions import NotFoundError
from branchsync.local import LocalStore
from branchsync.materialize import materialize
from branchsync.plan import Delete, Put, SyncPlan


class CountingStore:
    """Wraps a store and counts blob reads and writes."""

    def __init__(self, inner):
        self.inner = inner
        self.label = inner.label
        self.reads = []
        self.writes = 0

    def get_blob(self, blob_id):
        self.reads.append(blob_id)
        return self.inner.get_blob(blob_id)

    def create_blob(self, content, encoding):
        self.writes += 1
        return self.inner.create_blob(content, encoding)


def blob(store, data):
    return store.create_blob(base64.b64encode(data).decode(), "base64")


@pytest.fixture
def scheduler(clock):
    return BatchScheduler(sleep=clock.sleep)


@pytest.fixture
def other_store(tmp_path):
    return LocalStore.open(tmp_path / "mirror.git", create=True)


class TestMaterialize:
    def test_reuse_needs_no_calls(self, store, scheduler):
        existing = blob(store, b"same")
        counting = CountingStore(store)
        plan = SyncPlan(update=[Put("assets/a.css", "100644", existing)])
        resolved = materialize(plan, counting, counting, present={existing}, scheduler=scheduler)
        assert counting.reads == []
        assert counting.writes == 0
        assert resolved.reused == ["assets/a.css"]
        assert resolved.copied == []
        assert resolved.blobs_copied == 0
        assert resolved.update == plan.update

    def test_copy_across_stores(self, store, other_store, scheduler):
        source_id = blob(store, b"\x00\x01binary")
        plan = SyncPlan(add=[Put("assets/logo.png", "100644", source_id)], delete=[Delete("assets/old.png")])
        resolved = materialize(plan, store, other_store, present=set(), scheduler=scheduler)
        assert resolved.copied == ["assets/logo.png"]
        assert resolved.blobs_copied == 1
        new_id = resolved.add[0].id
        assert base64.b64decode(other_store.get_blob(new_id).content) == b"\x00\x01binary"
        assert resolved.delete == [Delete("assets/old.png")]

    def test_same_content_copied_once(self, store, other_store, scheduler):
        shared = blob(store, b"shared")
        source = CountingStore(store)
        plan = SyncPlan(add=[
            Put("assets/a.css", "100644", shared),
            Put("assets/b.css", "100644", shared),
        ])
        resolved = materialize(plan, source, other_store, present=set(), scheduler=scheduler)
        assert source.reads == [shared]
        assert resolved.blobs_copied == 1
        assert resolved.copied == ["assets/a.css", "assets/b.css"]

    def test_mixed(self, store, other_store, scheduler):
        kept = blob(other_store, b"kept")
        blob(store, b"kept")
        fresh = blob(store, b"fresh")
        plan = SyncPlan(
            add=[Put("assets/new.css", "100644", fresh)],
            update=[Put("assets/kept.css", "100644", kept)],
            cleanup=[Delete("README.md")],
        )
        resolved = materialize(plan, store, other_store, present={kept}, scheduler=scheduler)
        assert resolved.reused == ["assets/kept.css"]
        assert resolved.copied == ["assets/new.css"]
        assert resolved.cleanup == [Delete("README.md")]
        assert resolved.total == plan.total

    def test_copy_failure_propagates(self, store, other_store, scheduler):
        plan = SyncPlan(add=[Put("assets/a.css", "100644", "0" * 40)])
        with pytest.raises(NotFoundError):
            materialize(plan, store, other_store, present=set(), scheduler=scheduler)

    def test_batched(self, store, other_store, clock):
        ids = [blob(store, f"file {i}".encode()) for i in range(12)]
        plan = SyncPlan(add=[Put(f"assets/{i}.css", "100644", oid) for i, oid in enumerate(ids)])
        scheduler = BatchScheduler(batch_size=10, sleep=clock.sleep)
        materialize(plan, store, other_store, present=set(), scheduler=scheduler)
        assert clock.sleeps.count(0.5) == 1
