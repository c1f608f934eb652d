"""Selection of the spoke repositories a run applies to."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

from .config import IgnoreCriteria
from .github import GitHubClient
from .models import RepositoryDescriptor

logger = logging.getLogger(__name__)


def ignore_reason(
    repo: RepositoryDescriptor, hub_repo: str, criteria: IgnoreCriteria
) -> Optional[str]:
    """Return why a repository is left out, or None if it is kept."""
    if repo.name == hub_repo:
        return "it is the repository that triggered the run"
    if repo.name in criteria["repos_to_ignore"]:
        return "it is on the ignore list"
    topics = criteria["topics_to_include"]
    if topics and not repo.topics.intersection(topics):
        return f"it has none of the topics {', '.join(topics)}"
    if repo.archived:
        return "it is archived"
    if criteria["exclude_private"] and repo.private:
        return "it is private"
    if criteria["exclude_forked"] and repo.fork:
        return "it is a fork"
    return None


def apply_ignore_criteria(
    repositories: Iterable[RepositoryDescriptor],
    hub_repo: str,
    criteria: IgnoreCriteria,
) -> list[RepositoryDescriptor]:
    """Drop repositories that must not receive changes.

    Each repository is judged on its own attributes only, so the result
    does not depend on the input order beyond preserving it.
    """
    selected: list[RepositoryDescriptor] = []
    for repo in repositories:
        reason = ignore_reason(repo, hub_repo, criteria)
        if reason is None:
            selected.append(repo)
        else:
            logger.debug(f"Ignoring {repo.name} because {reason}")
    logger.info(f"{len(selected)} repositories selected for sync")
    return selected


class RepositorySelector:
    """Resolves the candidate repositories for a run."""

    def __init__(self, client: GitHubClient):
        self.client = client

    def candidates(
        self, owner: str, manual_target: Optional[str] = None
    ) -> list[RepositoryDescriptor]:
        """Fetch the named repository, or every repository of the owner.

        Raises:
            RepositoryNotFoundError: If the manual target does not exist
            AccountResolutionError: If the owner cannot be resolved
        """
        if manual_target:
            return [self.client.get_repository(owner, manual_target)]

        logger.info(f"Getting list of all repositories owned by {owner}")
        account_kind = self.client.get_account_kind(owner)
        logger.debug(f"{owner} is a {account_kind} account")
        return self.client.list_repositories(owner, account_kind)

    def select(
        self,
        owner: str,
        hub_repo: str,
        criteria: IgnoreCriteria,
        manual_target: Optional[str] = None,
    ) -> list[RepositoryDescriptor]:
        return apply_ignore_criteria(
            self.candidates(owner, manual_target), hub_repo, criteria
        )
