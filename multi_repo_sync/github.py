"""GitHub API client for reading and mutating spoke repositories.

This module wraps the REST and GraphQL endpoints needed to list repositories,
compare file contents and push changes through branches, commits and pull
requests without a local checkout.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional
from urllib.parse import quote

import requests

from .errors import (
    RATE_LIMIT_MESSAGE,
    AccountResolutionError,
    GitHubAPIError,
    GitHubResponseShapeError,
    RepositoryNotFoundError,
    TransientRemoteError,
)
from .models import ChangeSet, RepositoryDescriptor

logger = logging.getLogger(__name__)

ORGANIZATION = "organization"
USER = "user"

_HEAD_OID_QUERY = """
query($owner: String!, $name: String!, $ref: String!) {
  repository(owner: $owner, name: $name) {
    id
    ref(qualifiedName: $ref) {
      target {
        oid
      }
    }
  }
}
"""

_CREATE_COMMIT_MUTATION = """
mutation($input: CreateCommitOnBranchInput!) {
  createCommitOnBranch(input: $input) {
    commit {
      url
    }
  }
}
"""

_CREATE_PR_MUTATION = """
mutation createPr($branchName: String!, $id: ID!, $title: String!, $defaultBranch: String!) {
  createPullRequest(input: {
    baseRefName: $defaultBranch,
    headRefName: $branchName,
    title: $title,
    repositoryId: $id
  }) {
    pullRequest {
      url
    }
  }
}
"""


def _dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, raising a shape error naming the missing field."""
    current = data
    walked: list[str] = []
    for key in path:
        walked.append(key)
        if not isinstance(current, dict) or current.get(key) is None:
            raise GitHubResponseShapeError.missing(".".join(walked))
        current = current[key]
    return current


class GitHubClient:
    """Client for the GitHub REST and GraphQL APIs.

    Every call goes through one requests session so that authentication
    and connection pooling are shared across repositories.
    """

    API_URL = "https://api.github.com"
    PAGE_SIZE = 100

    def __init__(
        self,
        timeout: int = 30,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
    ):
        """Initialize the GitHub client.

        Args:
            timeout: Request timeout in seconds
            token: GitHub token; falls back to the GITHUB_TOKEN variable
            api_url: Alternative API root, e.g. for GitHub Enterprise
        """
        self.timeout = timeout
        self.token = token or os.getenv("GITHUB_TOKEN")
        self.api_url = (api_url or self.API_URL).rstrip("/")
        self.session = requests.Session()

        self.session.headers.update(
            {
                "User-Agent": "actions-multi-repo-sync/1.0.0",
                "Accept": "application/vnd.github+json",
            }
        )

        if self.token:
            self.session.headers.update({"Authorization": f"token {self.token}"})
            logger.debug("GitHub token configured")

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = path if path.startswith("http") else f"{self.api_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise GitHubAPIError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            detail = ""
            try:
                detail = str(response.json().get("message", ""))
            except ValueError:
                detail = response.text[:200]
            raise GitHubAPIError.http_error(response.status_code, detail)
        return response

    def graphql(self, query: str, variables: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Execute a GraphQL document and return its ``data`` member.

        Raises:
            GitHubAPIError: On HTTP failures or a non-empty ``errors`` list
        """
        logger.debug(f"GraphQL variables: {json.dumps(variables, default=str)[:2000]}")
        response = self._request(
            "POST", "/graphql", json={"query": query, "variables": variables}
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise GitHubAPIError(f"GraphQL response is not JSON: {e}") from e

        logger.debug(f"GraphQL response: {json.dumps(payload)[:2000]}")
        if not isinstance(payload, dict):
            return None
        errors = payload.get("errors")
        if errors:
            raise GitHubAPIError.graphql_errors(errors)
        return payload.get("data")

    # ------------------------------------------------------------------
    # Repository discovery
    # ------------------------------------------------------------------

    def get_account_kind(self, owner: str) -> str:
        """Tell whether an owner is an organization or a user.

        The organization endpoint is probed first; only a 404 there falls
        back to the user endpoint.

        Raises:
            AccountResolutionError: If the owner cannot be resolved
        """
        try:
            self._request("GET", f"/orgs/{quote(owner)}")
            return ORGANIZATION
        except GitHubAPIError as e:
            if not e.is_not_found:
                raise AccountResolutionError(
                    f"Failed checking if {owner} is an organization or a user: {e}"
                ) from e

        try:
            self._request("GET", f"/users/{quote(owner)}")
            return USER
        except GitHubAPIError as e:
            raise AccountResolutionError(f"Invalid user/org {owner}: {e}") from e

    def get_repository(self, owner: str, name: str) -> RepositoryDescriptor:
        """Fetch a single repository by name.

        Raises:
            RepositoryNotFoundError: If the repository does not exist
        """
        logger.info(f"Getting details of manually selected {name} repository")
        try:
            response = self._request("GET", f"/repos/{quote(owner)}/{quote(name)}")
        except GitHubAPIError as e:
            if e.is_not_found:
                raise RepositoryNotFoundError(
                    f"Repository {owner}/{name} not found", status_code=404
                ) from e
            raise
        return RepositoryDescriptor.from_api(response.json())

    def list_repositories(self, owner: str, account_kind: str) -> list[RepositoryDescriptor]:
        """List every repository owned by an account, following pagination."""
        if account_kind == ORGANIZATION:
            url = f"/orgs/{quote(owner)}/repos"
        else:
            url = f"/users/{quote(owner)}/repos"

        params: Optional[dict[str, Any]] = {"per_page": self.PAGE_SIZE}
        repositories: list[RepositoryDescriptor] = []
        page = 0

        while url:
            page += 1
            response = self._request("GET", url, params=params)
            data = response.json()
            if not isinstance(data, list):
                raise GitHubResponseShapeError.missing("repositories")
            repositories.extend(RepositoryDescriptor.from_api(item) for item in data)
            logger.debug(f"Fetched page {page} with {len(data)} repositories")

            # The next link already carries the query string.
            url = response.links.get("next", {}).get("url", "")
            params = None

        logger.info(f"Found {len(repositories)} repositories owned by {owner}")
        return repositories

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    def get_file_content(self, owner: str, repo: str, ref: str, path: str) -> Optional[bytes]:
        """Download a file's raw bytes, or None if it does not exist."""
        encoded_path = quote(path, safe="/")
        try:
            response = self._request(
                "GET",
                f"/repos/{quote(owner)}/{quote(repo)}/contents/{encoded_path}",
                params={"ref": ref},
                headers={"Accept": "application/vnd.github.raw"},
            )
        except GitHubAPIError as e:
            if e.is_not_found:
                logger.debug(f"{path} does not exist in {repo}@{ref}")
                return None
            raise GitHubAPIError(
                f"Unable to check if file {path} exists in the {repo} repository: {e}",
                status_code=e.status_code,
            ) from e
        return response.content

    def file_exists(self, owner: str, repo: str, ref: str, path: str) -> bool:
        return self.get_file_content(owner, repo, ref, path) is not None

    def get_commit_files(self, owner: str, repo: str, sha: str) -> list[tuple[str, str]]:
        """Return ``(filename, status)`` for every file touched by a commit.

        Large commits spread their files over several pages. A rename is
        reported as the removal of the old path followed by the new path.
        """
        url = f"/repos/{quote(owner)}/{quote(repo)}/commits/{sha}"
        files: list[tuple[str, str]] = []

        while url:
            response = self._request("GET", url)
            for entry in response.json().get("files") or []:
                status = entry.get("status", "modified")
                if status == "renamed" and entry.get("previous_filename"):
                    files.append((entry["previous_filename"], "removed"))
                files.append((entry["filename"], status))
            url = response.links.get("next", {}).get("url", "")

        logger.debug(f"Commit {sha} touched {len(files)} files")
        return files

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def get_branch_head_and_repo_id(self, owner: str, repo: str, branch: str) -> tuple[str, str]:
        """Return the head commit oid of a branch and the repository node id."""
        data = self.graphql(
            _HEAD_OID_QUERY,
            {"owner": owner, "name": repo, "ref": f"refs/heads/{branch}"},
        )
        head_oid = _dig(data, "repository", "ref", "target", "oid")
        repo_id = _dig(data, "repository", "id")
        return head_oid, repo_id

    def create_branch(self, owner: str, repo: str, name: str, from_ref: str) -> bool:
        """Create a branch pointing at the head of another branch.

        Returns:
            True if the branch already existed, False if it was created
        """
        logger.info(f"Creating branch {name} in the {repo} repository")
        head_oid, _ = self.get_branch_head_and_repo_id(owner, repo, from_ref)

        try:
            self._request(
                "POST",
                f"/repos/{quote(owner)}/{quote(repo)}/git/refs",
                json={"ref": f"refs/heads/{name}", "sha": head_oid},
            )
        except GitHubAPIError as e:
            if e.status_code == 422:
                logger.info(f"Branch {name} already exists in the {repo} repository")
                return True
            raise GitHubAPIError(
                f"Unable to create a branch {name} in the {repo} repository: {e}",
                status_code=e.status_code,
            ) from e
        return False

    def commit_file_changes(
        self,
        owner: str,
        repo: str,
        branch: str,
        change_set: ChangeSet,
        message: str,
        expected_head_oid: str,
    ) -> Optional[str]:
        """Apply a change-set to a branch as a single commit.

        Returns:
            The commit URL, or None when GitHub answered with an empty result
        """
        logger.info(f"Committing changes to the {repo} repository")
        variables = {
            "input": {
                "branch": {
                    "repositoryNameWithOwner": f"{owner}/{repo}",
                    "branchName": branch,
                },
                "fileChanges": change_set.to_file_changes(),
                "message": {"headline": message},
                "expectedHeadOid": expected_head_oid,
            }
        }
        data = self.graphql(_CREATE_COMMIT_MUTATION, variables)
        if not data or not data.get("createCommitOnBranch"):
            return None
        return _dig(data, "createCommitOnBranch", "commit", "url")

    def create_pull_request(
        self, branch: str, repo_id: str, title: str, base_branch: str
    ) -> str:
        """Open a pull request from a branch to the base branch.

        Raises:
            TransientRemoteError: If GitHub asks to slow down
            GitHubAPIError: For every other failure
        """
        variables = {
            "branchName": branch,
            "id": repo_id,
            "title": title,
            "defaultBranch": base_branch,
        }
        try:
            data = self.graphql(_CREATE_PR_MUTATION, variables)
        except GitHubAPIError as e:
            if any(RATE_LIMIT_MESSAGE in message for message in e.messages):
                raise TransientRemoteError.rate_limited(str(e)) from e
            raise
        return _dig(data, "createPullRequest", "pullRequest", "url")

    def test_connection(self) -> bool:
        """Test connection to the GitHub API.

        Returns:
            True if connection is successful, False otherwise
        """
        try:
            response = self.session.get(f"{self.api_url}/rate_limit", timeout=self.timeout)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> GitHubClient:
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
