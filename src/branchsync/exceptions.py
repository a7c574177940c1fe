"""Exceptions for branchsync."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ratelimit import RateLimitInfo


class BranchSyncError(Exception):
    """Base class for all branchsync errors."""


class NotFoundError(BranchSyncError):
    """An object or ref does not exist in the store."""


class RefNotFoundError(NotFoundError, KeyError):
    """Raised when a branch does not exist.

    Optional branches are expected to be absent, so pipelines treat this as
    a reason to skip rather than fail.
    """

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Branch not found: {self.name}"


class ConflictError(BranchSyncError):
    """The ref moved underneath us or the write was rejected as unprocessable."""


class FallbackFailedError(BranchSyncError):
    """Both the tree patch and the fallback merge failed.

    Attributes:
        original: The :class:`ConflictError` that triggered the fallback.
        merge_error: The error raised by the merge request.
    """

    def __init__(self, original: BaseException, merge_error: BaseException):
        super().__init__(f"{original}; fallback merge failed: {merge_error}")
        self.original = original
        self.merge_error = merge_error


class RemoteError(BranchSyncError):
    """A non-retryable error response from the remote service."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class TransientError(BranchSyncError):
    """A network failure or server error worth retrying."""

    def __init__(self, message: str, status: int | None = None, info: RateLimitInfo | None = None):
        super().__init__(message)
        self.status = status
        self.info = info


class RateLimitExceeded(BranchSyncError):
    """The remote refused the call because a quota is exhausted.

    *secondary* is True for abuse-detection limits, which are lifted after
    ``info.retry_after`` seconds rather than at ``info.reset_at``.
    """

    def __init__(self, message: str, info: RateLimitInfo | None = None, *, secondary: bool = False):
        super().__init__(message)
        self.info = info
        self.secondary = secondary


class FatalConfigurationError(BranchSyncError):
    """Required setup is missing; never retried."""


class PlanInvariantError(AssertionError):
    """A generated plan violates its own invariants (a programming error)."""
