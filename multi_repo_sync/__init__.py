"""Multi Repo Sync - replicate files from one repository to many.

This package propagates files changed in a hub repository to the other
repositories of the same owner through branches and pull requests created
with the GitHub API.
"""

from .config import IgnoreCriteria, SyncConfig, build_config, load_config
from .github import GitHubClient
from .sync import MultiRepoSync, RepositoryOutcome, SyncResult

__version__ = "1.0.0"

__all__ = [
    "IgnoreCriteria",
    "SyncConfig",
    "build_config",
    "load_config",
    "GitHubClient",
    "MultiRepoSync",
    "RepositoryOutcome",
    "SyncResult",
]
