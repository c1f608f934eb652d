"""Per-repository comparison of local files against remote contents."""

from __future__ import annotations

import base64
import logging
import posixpath
from pathlib import Path

from .errors import LocalReadError
from .github import GitHubClient
from .models import ChangeSet, FileAddition, FileDeletion, FileSelection, RepositoryDescriptor

logger = logging.getLogger(__name__)


def destination_path(path: str, destination: str = "") -> str:
    """Rewrite a repository-relative path under the destination prefix.

    Example:
        >>> destination_path("ci.yml", ".github/workflows")
        '.github/workflows/ci.yml'
    """
    if not destination:
        return path
    return posixpath.join(destination.strip("/"), path)


class DiffEngine:
    """Builds the ChangeSet needed to bring one repository in line."""

    def __init__(
        self,
        client: GitHubClient,
        owner: str,
        workspace: Path,
        destination: str = "",
    ):
        self.client = client
        self.owner = owner
        self.workspace = workspace
        self.destination = destination

    def read_local(self, path: str) -> bytes:
        """Read a file from the hub checkout.

        Raises:
            LocalReadError: If the file is missing or unreadable
        """
        try:
            return (self.workspace / path).read_bytes()
        except OSError as e:
            raise LocalReadError(path, e) from e

    def diff(self, repo: RepositoryDescriptor, selection: FileSelection) -> ChangeSet:
        """Compare selected files with the repository's default branch.

        Args:
            repo: Target repository
            selection: Files to replicate and remove

        Returns:
            ChangeSet that is empty when nothing differs

        Raises:
            LocalReadError: If a file to replicate cannot be read locally
            GitHubAPIError: If fetching remote content fails
        """
        additions: list[FileAddition] = []
        deletions: list[FileDeletion] = []
        ref = repo.default_branch

        for path in sorted(selection.to_replicate):
            target = destination_path(path, self.destination)
            local = self.read_local(path)
            remote = self.client.get_file_content(self.owner, repo.name, ref, target)
            if remote is not None and remote == local:
                logger.debug(f"{target} is up to date in {repo.name}")
                continue
            logger.debug(f"{target} differs in {repo.name}")
            additions.append(
                FileAddition(
                    path=path,
                    destination_path=target,
                    base64_content=base64.b64encode(local).decode("ascii"),
                )
            )

        for path in sorted(selection.to_remove):
            target = destination_path(path, self.destination)
            if self.client.file_exists(self.owner, repo.name, ref, target):
                logger.debug(f"{target} will be removed from {repo.name}")
                deletions.append(FileDeletion(destination_path=target))
            else:
                logger.debug(f"{target} is already absent from {repo.name}")

        return ChangeSet(additions=tuple(additions), deletions=tuple(deletions))
