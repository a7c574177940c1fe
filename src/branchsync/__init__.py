from .batch import BatchScheduler
from .commit import CommitResult, apply_plan
from .config import Settings
from .dispatch import Dispatcher, PullRequestEvent, PushEvent, RebaseInvocation, SyncInvocation, parse_event, route
from .exceptions import (
    BranchSyncError,
    ConflictError,
    FallbackFailedError,
    FatalConfigurationError,
    NotFoundError,
    PlanInvariantError,
    RateLimitExceeded,
    RefNotFoundError,
    RemoteError,
    TransientError,
)
from .github import GitHubStore
from .local import LocalStore
from .materialize import ResolvedPlan, materialize
from .plan import Delete, JsonPolicy, Put, SyncFilter, SyncPlan, apply_filter, plan_sync
from .ratelimit import RateLimitedExecutor, RateLimitInfo, RateLimitState
from .rebase import rebase_onto
from .snapshot import read_snapshot
from .store import BlobContent, CommitInfo, ObjectStore
from .sync import RebaseOutcome, SyncOutcome, rebase_branch, sync_filtered
from .tree import Snapshot, TreeEntry

__all__ = [
    "BatchScheduler", "CommitResult", "apply_plan", "Settings",
    "Dispatcher", "PullRequestEvent", "PushEvent", "RebaseInvocation", "SyncInvocation", "parse_event", "route",
    "BranchSyncError", "ConflictError", "FallbackFailedError", "FatalConfigurationError", "NotFoundError",
    "PlanInvariantError", "RateLimitExceeded", "RefNotFoundError", "RemoteError", "TransientError",
    "GitHubStore", "LocalStore", "ResolvedPlan", "materialize",
    "Delete", "JsonPolicy", "Put", "SyncFilter", "SyncPlan", "apply_filter", "plan_sync",
    "RateLimitedExecutor", "RateLimitInfo", "RateLimitState", "rebase_onto", "read_snapshot",
    "BlobContent", "CommitInfo", "ObjectStore",
    "RebaseOutcome", "SyncOutcome", "rebase_branch", "sync_filtered",
    "Snapshot", "TreeEntry",
]
