"""Shared fixtures for branchsync tests."""

import base64
import logging

import pytest
from click.testing import CliRunner

from branchsync.exceptions import RefNotFoundError
from branchsync.local import LocalStore
from branchsync.plan import Put
from branchsync.snapshot import read_snapshot


def _write_branch(store, branch, files, message="update"):
    """Commit *files* as the complete tree of *branch* and return the commit id.

    *files* maps paths to bytes, or to ``(bytes, mode)`` tuples.
    """
    ops = []
    for path, data in files.items():
        mode = "100644"
        if isinstance(data, tuple):
            data, mode = data
        blob_id = store.create_blob(base64.b64encode(data).decode(), "base64")
        ops.append(Put(path, mode, blob_id))
    tree_id = store.create_tree(None, ops)
    try:
        parent = store.get_ref(branch)
    except RefNotFoundError:
        parent = None
    commit_id = store.create_commit(message, tree_id, [parent] if parent else [])
    if parent is None:
        store.create_ref(branch, commit_id)
    else:
        store.update_ref(branch, commit_id, force=True)
    return commit_id


def _read_files(store, branch):
    """Return ``{path: bytes}`` for every file on *branch*."""
    snapshot = read_snapshot(store, branch)
    return {
        path: base64.b64decode(store.get_blob(entry.id).content)
        for path, entry in snapshot.items()
    }


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers the CLI attaches to captured streams."""
    yield
    logger = logging.getLogger("branchsync")
    logger.handlers[:] = []
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def store(tmp_path):
    """An empty bare repository."""
    return LocalStore.open(tmp_path / "theme.git", create=True)


@pytest.fixture
def write_branch():
    return _write_branch


@pytest.fixture
def read_files():
    return _read_files


class RecordingStore(LocalStore):
    """LocalStore over the same repository that records every write."""

    def __init__(self, store):
        super().__init__(store.repo)
        self.writes = []

    def create_commit(self, message, tree_id, parents):
        self.writes.append(("create_commit", tree_id))
        return super().create_commit(message, tree_id, parents)

    def update_ref(self, name, commit_id, *, force=False):
        self.writes.append(("update_ref", name))
        return super().update_ref(name, commit_id, force=force)

    def create_ref(self, name, commit_id):
        self.writes.append(("create_ref", name))
        return super().create_ref(name, commit_id)


@pytest.fixture
def recording():
    """Wrap a store so its writes are recorded."""
    return RecordingStore


THEME_FILES = {
    "assets/theme.css": b"body { color: red; }\n",
    "assets/logo.png": b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe",
    "config/settings_schema.json": b'[{"name": "theme_info"}]\n',
    "config/settings_data.json": b'{"current": "Default"}\n',
    "layout/theme.liquid": b"<html>{{ content_for_layout }}</html>\n",
    "templates/index.json": b'{"sections": {}}\n',
    "README.md": b"# Theme\n",
    "package.json": b'{"name": "theme"}\n',
}


@pytest.fixture
def theme_repo(store, write_branch):
    """Repo with a 'production' branch holding a theme plus tooling files,
    and an empty 'sgc-production' branch."""
    write_branch(store, "production", THEME_FILES, "initial theme")
    write_branch(store, "sgc-production", {}, "connector root")
    return store


class FakeClock:
    """Deterministic clock whose sleep advances time."""

    def __init__(self, now=1_700_000_000.0):
        self.now = now
        self.sleeps = []

    def time(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# CLI fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def repo_path(theme_repo, tmp_path):
    """Path of the theme repository, for CLI tests."""
    return str(tmp_path / "theme.git")
