"""File synchronization logic for multi-repo-sync.

This module drives a run: it selects the files and repositories involved,
then for every repository computes a change-set and pushes it through a
branch, a single commit and a pull request. A failure in one repository is
recorded and never stops the others.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .config import SyncConfig, ignore_criteria
from .diff import DiffEngine
from .errors import (
    ConfigurationError,
    ErrorKind,
    GitHubAPIError,
    GitHubResponseShapeError,
    PrConflictError,
    RemoteMutationError,
    SyncError,
    TransientReason,
    TransientRemoteError,
    classify,
)
from .events import changed_files
from .github import GitHubClient
from .models import BranchState, ChangeSet, FileSelection, RepositoryDescriptor, TriggerEvent
from .patterns import select_files
from .repos import RepositorySelector
from .retry import COMMIT_POLICY, PULL_REQUEST_POLICY, RetryPolicy, execute_with_retry

logger = logging.getLogger(__name__)


def branch_name(prefix: str, trigger_id: str = "") -> str:
    """Name of the sync branch for a run.

    Example:
        >>> branch_name("sync", "123")
        'sync/123'
    """
    prefix = prefix.strip("/")
    return f"{prefix}/{trigger_id}" if trigger_id else prefix


class OutcomeStatus(enum.Enum):
    NO_CHANGES = "no_changes"
    PR_CREATED = "pr_created"
    PUSHED_WITHOUT_PR = "pushed_without_pr"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RepositoryOutcome:
    """What happened to one repository during a run."""

    repository: str
    status: OutcomeStatus
    branch: str = ""
    commit_url: str = ""
    pr_url: str = ""
    branch_existed: bool = False
    error: Optional[BaseException] = None
    error_kind: Optional[ErrorKind] = None
    pr_error: Optional[BaseException] = None

    def summary(self) -> str:
        if self.status is OutcomeStatus.NO_CHANGES:
            return f"No changes in repo {self.repository} detected"
        if self.status is OutcomeStatus.PR_CREATED:
            return f"✓ PR for {self.repository} is created -> {self.pr_url}"
        if self.status is OutcomeStatus.PUSHED_WITHOUT_PR:
            if self.branch_existed:
                return (
                    f"✓ No PR created for {self.repository}. Instead push was "
                    f"performed to existing {self.branch} branch"
                )
            return (
                f"✓ Changes pushed to {self.repository} but the PR could not be "
                f"created. Create PR manually from the branch {self.branch}"
            )
        if self.status is OutcomeStatus.SKIPPED:
            return f"Skipped {self.repository} because the run was cancelled"
        kind = self.error_kind.value if self.error_kind else "unknown"
        return f"✗ Failed replicating files for {self.repository} ({kind}): {self.error}"


class SyncResult:
    """Result of a sync run.

    Contains one outcome per selected repository.
    """

    def __init__(self):
        """Initialize empty sync result."""
        self.outcomes: list[RepositoryOutcome] = []

    def add(self, outcome: RepositoryOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def failed(self) -> list[RepositoryOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    @property
    def failure_count(self) -> int:
        """Number of repositories that failed."""
        return self.count(OutcomeStatus.FAILED)

    @property
    def is_success(self) -> bool:
        """True if no repository failed."""
        return self.failure_count == 0

    def __str__(self) -> str:
        """String representation of sync results."""
        return (
            f"Sync completed: {len(self.outcomes)} repositories, "
            f"{self.count(OutcomeStatus.PR_CREATED)} PRs created, "
            f"{self.count(OutcomeStatus.PUSHED_WITHOUT_PR)} pushed without PR, "
            f"{self.count(OutcomeStatus.NO_CHANGES)} unchanged, "
            f"{self.failure_count} failed, "
            f"{self.count(OutcomeStatus.SKIPPED)} skipped"
        )


class MutationOrchestrator:
    """Pushes a change-set to one repository: branch, commit, pull request.

    Each step reads the remote state it depends on right before acting, so
    rerunning after a partial failure picks up where the remote is.
    """

    def __init__(
        self,
        client: GitHubClient,
        owner: str,
        commit_message: str,
        sleep_fn: Any = None,
        commit_policy: RetryPolicy = COMMIT_POLICY,
        pr_policy: RetryPolicy = PULL_REQUEST_POLICY,
    ):
        self.client = client
        self.owner = owner
        self.commit_message = commit_message
        self.sleep_fn = sleep_fn
        self.commit_policy = commit_policy
        self.pr_policy = pr_policy

    def ensure_branch(self, repo: RepositoryDescriptor, name: str) -> BranchState:
        """Create the sync branch from the default branch head.

        Raises:
            RemoteMutationError: If the branch can neither be created nor found
        """
        try:
            already_existed = self.client.create_branch(
                self.owner, repo.name, name, repo.default_branch
            )
        except (GitHubAPIError, GitHubResponseShapeError) as e:
            raise RemoteMutationError(str(e)) from e

        if already_existed:
            logger.info(f"Branch {name} already exists in the {repo.name} repo")
        else:
            logger.info(f"Branch {name} was created in the {repo.name} repo")
        return BranchState(name=name, already_existed=already_existed)

    def _commit_once(self, repo: RepositoryDescriptor, branch: str, change_set: ChangeSet) -> str:
        try:
            head_oid, _ = self.client.get_branch_head_and_repo_id(self.owner, repo.name, branch)
        except GitHubResponseShapeError as e:
            # A branch created moments ago may not be resolvable yet.
            raise TransientRemoteError(
                f"Head of {branch} in {repo.name} is not visible yet: {e}",
                TransientReason.CONSISTENCY_LAG,
            ) from e
        except GitHubAPIError as e:
            raise RemoteMutationError(
                f"Unable to read the head of {branch} in {repo.name}: {e}"
            ) from e

        try:
            url = self.client.commit_file_changes(
                self.owner,
                repo.name,
                branch,
                change_set,
                self.commit_message,
                expected_head_oid=head_oid,
            )
        except (GitHubAPIError, GitHubResponseShapeError) as e:
            raise RemoteMutationError(
                f"Unable to commit changes to the {repo.name} repository: {e}"
            ) from e
        if not url:
            raise TransientRemoteError.consistency_lag(repo.name)
        return url

    def commit(self, repo: RepositoryDescriptor, branch: str, change_set: ChangeSet) -> str:
        """Apply the change-set as one commit on the branch.

        Returns:
            URL of the created commit
        """
        url = execute_with_retry(
            lambda: self._commit_once(repo, branch, change_set),
            self.commit_policy,
            sleep_fn=self.sleep_fn,
            label=f"Commit to {repo.name}",
        )
        logger.info(f"Commit was created in the {repo.name} repo -> {url}")
        return url

    def open_pull_request(
        self, repo: RepositoryDescriptor, branch: BranchState
    ) -> tuple[Optional[str], Optional[BaseException]]:
        """Try to open a pull request; failures are returned, never raised.

        A failure on a branch left by an earlier run is expected (a PR may
        already be open or was closed on purpose) and only logged as info.
        """
        try:
            url = execute_with_retry(
                lambda: self.client.create_pull_request(
                    branch.name, repo.id, self.commit_message, repo.default_branch
                ),
                self.pr_policy,
                sleep_fn=self.sleep_fn,
                label=f"PR creation for {repo.name}",
            )
            return url, None
        except (SyncError, GitHubAPIError, GitHubResponseShapeError) as e:
            if branch.already_existed:
                conflict = PrConflictError(
                    f"PR creation for {repo.name} failed as the branch was there "
                    f"already: {e}"
                )
                logger.info(str(conflict))
                return None, conflict
            # TODO: classify PR failures by error cause instead of by whether
            # the branch existed before this run.
            logger.warning(f"Unable to create a PR for {repo.name}: {e}")
            return None, e

    def execute(
        self, repo: RepositoryDescriptor, change_set: ChangeSet, name: str
    ) -> RepositoryOutcome:
        if change_set.is_empty:
            return RepositoryOutcome(repo.name, OutcomeStatus.NO_CHANGES)

        branch = self.ensure_branch(repo, name)
        commit_url = self.commit(repo, branch.name, change_set)
        pr_url, pr_error = self.open_pull_request(repo, branch)

        return RepositoryOutcome(
            repository=repo.name,
            status=OutcomeStatus.PR_CREATED if pr_url else OutcomeStatus.PUSHED_WITHOUT_PR,
            branch=branch.name,
            commit_url=commit_url,
            pr_url=pr_url or "",
            branch_existed=branch.already_existed,
            pr_error=pr_error,
        )


class MultiRepoSync:
    """Main synchronization driver.

    Replicates files from the hub checkout to every selected repository of
    the owner, one isolated unit of work per repository.
    """

    def __init__(
        self,
        client: GitHubClient,
        config: SyncConfig,
        workspace: Path,
        sleep_fn: Any = None,
    ):
        """Initialize the synchronizer.

        Args:
            client: GitHub client used for every remote call
            config: Validated run configuration
            workspace: Checkout of the hub repository
            sleep_fn: Replacement for time.sleep in retry loops, used by tests
        """
        self.client = client
        self.config = config
        self.workspace = workspace
        self.sleep_fn = sleep_fn
        self._stop = threading.Event()

    def cancel(self) -> None:
        """Stop starting new repositories; in-flight ones finish."""
        if not self._stop.is_set():
            logger.warning("Cancellation requested, no further repositories will be started")
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def select(self, event: TriggerEvent, owner: str, hub_repo: str) -> FileSelection:
        """Work out which files this run replicates and removes."""
        config = self.config
        if config["patterns_to_include"] and config["patterns_to_remove"]:
            raise ConfigurationError(
                "patterns_to_include and patterns_to_remove are mutually exclusive"
            )
        files = changed_files(self.client, event, owner, hub_repo, self.workspace)
        return select_files(
            [f.path for f in files],
            include_globs=config["patterns_to_include"],
            exclude_globs=config["patterns_to_ignore"],
            remove_globs=config["patterns_to_remove"],
            removed_paths=[f.path for f in files if f.removed],
        )

    def process_repository(
        self,
        repo: RepositoryDescriptor,
        selection: FileSelection,
        name: str,
        owner: str,
    ) -> RepositoryOutcome:
        """Diff and push one repository, containing any failure."""
        if self.cancelled:
            return RepositoryOutcome(repo.name, OutcomeStatus.SKIPPED)

        logger.info(f"Started updating {repo.name} repo")
        try:
            diff_engine = DiffEngine(
                self.client, owner, self.workspace, self.config["destination"]
            )
            change_set = diff_engine.diff(repo, selection)
            orchestrator = MutationOrchestrator(
                self.client, owner, self.config["commit_message"], sleep_fn=self.sleep_fn
            )
            outcome = orchestrator.execute(repo, change_set, name)
        except Exception as e:
            kind = classify(e)
            logger.warning(f"Failed replicating files for {repo.name} repo: {e}")
            logger.debug(f"Failure details for {repo.name}", exc_info=True)
            outcome = RepositoryOutcome(
                repo.name, OutcomeStatus.FAILED, branch=name, error=e, error_kind=kind
            )

        logger.info(outcome.summary())
        return outcome

    def run(self, event: TriggerEvent, owner: str, hub_repo: str) -> SyncResult:
        """Execute a full sync run.

        Args:
            event: Parsed trigger event
            owner: Account owning the hub and spoke repositories
            hub_repo: Name of the repository that triggered the run

        Returns:
            Result with one outcome per selected repository

        Raises:
            ConfigurationError: If the configuration is invalid
            AccountResolutionError: If the owner cannot be resolved
            RepositoryNotFoundError: If a manually named repository is missing
        """
        result = SyncResult()

        selection = self.select(event, owner, hub_repo)
        if selection.is_empty:
            logger.info("No files need replication, nothing to do")
            return result

        selector = RepositorySelector(self.client)
        repositories = selector.select(
            owner,
            hub_repo,
            ignore_criteria(self.config),
            manual_target=event.manual_repo_name or None,
        )
        name = branch_name(self.config["branch_prefix"], event.trigger_id)

        timer: Optional[threading.Timer] = None
        if self.config["deadline"]:
            timer = threading.Timer(self.config["deadline"], self.cancel)
            timer.daemon = True
            timer.start()

        try:
            workers = min(self.config["max_workers"], max(len(repositories), 1))
            if workers == 1:
                for repo in repositories:
                    result.add(self.process_repository(repo, selection, name, owner))
            else:
                with ThreadPoolExecutor(max_workers=workers) as pool:
                    futures = [
                        pool.submit(self.process_repository, repo, selection, name, owner)
                        for repo in repositories
                    ]
                    for future in futures:
                        result.add(future.result())
        finally:
            if timer is not None:
                timer.cancel()

        logger.info(str(result))
        return result

    def test_connectivity(self) -> bool:
        """Test connectivity to GitHub.

        Returns:
            True if GitHub is accessible, False otherwise
        """
        logger.info("Testing GitHub connectivity...")
        is_connected = self.client.test_connection()

        if is_connected:
            logger.info("✓ GitHub connectivity test passed")
        else:
            logger.error("✗ GitHub connectivity test failed")

        return is_connected
