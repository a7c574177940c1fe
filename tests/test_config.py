"""Tests for Settings."""

import pytest

from branchsync.config import Settings
from branchsync.exceptions import FatalConfigurationError
from branchsync.github import GitHubStore
from branchsync.local import LocalStore
from branchsync.ratelimit import RateLimitState


class TestValidate:
    def test_local(self, tmp_path):
        Settings(repo_path=str(tmp_path)).validate()

    def test_github(self):
        Settings(github="acme/theme", token="t").validate()

    @pytest.mark.parametrize("settings,match", [
        (Settings(), "exactly one"),
        (Settings(repo_path="x", github="acme/theme", token="t"), "exactly one"),
        (Settings(github="acme", token="t"), "OWNER/REPO"),
        (Settings(github="acme/theme/extra", token="t"), "OWNER/REPO"),
        (Settings(github="acme/theme"), "token"),
        (Settings(repo_path="x", max_retries=-1), "max_retries"),
        (Settings(repo_path="x", batch_size=0), "batch_size"),
        (Settings(repo_path="x", allowed_prefixes=()), "prefix"),
    ])
    def test_invalid(self, settings, match):
        with pytest.raises(FatalConfigurationError, match=match):
            settings.validate()


class TestFactories:
    def test_defaults(self):
        settings = Settings(repo_path="x")
        executor = settings.executor()
        assert executor.max_retries == 5
        assert executor.min_interval == 0.1
        scheduler = settings.scheduler()
        assert scheduler.batch_size == 10
        assert scheduler.delay_between_items == 0.075
        assert scheduler.delay_between_batches == 0.5

    def test_shared_state(self):
        state = RateLimitState()
        assert Settings(repo_path="x").executor(state).state is state

    def test_open_local(self, theme_repo, tmp_path):
        store = Settings(repo_path=str(tmp_path / "theme.git")).open_store()
        assert isinstance(store, LocalStore)
        assert store.get_ref("production") == theme_repo.get_ref("production")

    def test_open_missing_local(self, tmp_path):
        with pytest.raises(FatalConfigurationError, match="Repository not found"):
            Settings(repo_path=str(tmp_path / "missing.git")).open_store()

    def test_open_non_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(FatalConfigurationError):
            Settings(repo_path=str(plain)).open_store()

    def test_open_github(self):
        state = RateLimitState()
        store = Settings(github="acme/theme", token="t", max_retries=2).open_store(state=state)
        try:
            assert isinstance(store, GitHubStore)
            assert store.label == "acme/theme"
            assert store.executor.max_retries == 2
            assert store.executor.state is state
        finally:
            store.close()
