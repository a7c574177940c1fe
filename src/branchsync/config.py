"""Runtime settings for the sync engine."""

from __future__ import annotations

from dataclasses import dataclass

from dulwich.errors import NotGitRepository

from .batch import BatchScheduler
from .exceptions import FatalConfigurationError
from .github import DEFAULT_API_URL, GitHubStore
from .local import LocalStore
from .plan import THEME_FOLDERS
from .ratelimit import RateLimitedExecutor, RateLimitState
from .store import ObjectStore


@dataclass(frozen=True)
class Settings:
    """Everything needed to open a store and tune remote calls.

    Exactly one of *repo_path* (a local bare repository) or *github*
    (``"owner/repo"``) selects the store.  *back_sync* controls whether
    connector pushes flow back into the production branch.
    """

    repo_path: str | None = None
    github: str | None = None
    token: str | None = None
    api_url: str = DEFAULT_API_URL
    min_interval: float = 0.1
    max_retries: int = 5
    batch_size: int = 10
    delay_between_items: float = 0.075
    delay_between_batches: float = 0.5
    back_sync: bool = True
    allowed_prefixes: tuple[str, ...] = THEME_FOLDERS

    def validate(self) -> None:
        """Raise :class:`FatalConfigurationError` for unusable settings."""
        if bool(self.repo_path) == bool(self.github):
            raise FatalConfigurationError("Specify exactly one of a local repository or a GitHub repository")
        if self.github:
            owner, _, repo = self.github.partition("/")
            if not owner or not repo or "/" in repo:
                raise FatalConfigurationError(f"GitHub repository must be OWNER/REPO, got {self.github!r}")
            if not self.token:
                raise FatalConfigurationError("A GitHub token is required")
        if self.max_retries < 0:
            raise FatalConfigurationError("max_retries must be >= 0")
        if self.batch_size < 1:
            raise FatalConfigurationError("batch_size must be >= 1")
        if not self.allowed_prefixes:
            raise FatalConfigurationError("At least one allowed prefix is required")

    def executor(self, state: RateLimitState | None = None) -> RateLimitedExecutor:
        return RateLimitedExecutor(state, min_interval=self.min_interval, max_retries=self.max_retries)

    def scheduler(self) -> BatchScheduler:
        return BatchScheduler(
            batch_size=self.batch_size,
            delay_between_items=self.delay_between_items,
            delay_between_batches=self.delay_between_batches,
        )

    def open_store(self, *, state: RateLimitState | None = None) -> ObjectStore:
        """Validate the settings and open the selected store."""
        self.validate()
        if self.repo_path:
            try:
                return LocalStore.open(self.repo_path)
            except (FileNotFoundError, NotGitRepository) as exc:
                raise FatalConfigurationError(str(exc)) from exc
        owner, _, repo = self.github.partition("/")
        return GitHubStore(owner, repo, token=self.token, api_url=self.api_url, executor=self.executor(state))
