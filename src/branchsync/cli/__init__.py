"""branchsync CLI: plan, sync and rebase branches of a repository."""

from ._helpers import main  # noqa: F401 (entry point)

# Import command modules to register Click commands with the main group.
from . import _sync, _dispatch  # noqa: F401
