"""Tests for GitHub client module."""

import json
from unittest.mock import patch

import pytest
import responses

from helpers import repo_payload
from multi_repo_sync.errors import (
    AccountResolutionError,
    GitHubAPIError,
    GitHubResponseShapeError,
    RepositoryNotFoundError,
    TransientReason,
    TransientRemoteError,
)
from multi_repo_sync.github import ORGANIZATION, USER, GitHubClient
from multi_repo_sync.models import ChangeSet, FileAddition, FileDeletion

API = "https://api.github.com"
GRAPHQL = f"{API}/graphql"


def head_response(oid: str = "abc123", repo_id: str = "R_spoke1") -> dict:
    return {"data": {"repository": {"id": repo_id, "ref": {"target": {"oid": oid}}}}}


class TestGitHubClient:
    """Test cases for GitHubClient."""

    @patch.dict("os.environ", {}, clear=True)
    def test_init_without_token(self) -> None:
        """Test GitHubClient initialization without token."""
        client = GitHubClient()
        assert client.token is None
        assert "Authorization" not in client.session.headers

    def test_init_with_token(self) -> None:
        """Test GitHubClient initialization with token."""
        client = GitHubClient(token="ghp_test_token")
        assert client.token == "ghp_test_token"
        assert client.session.headers["Authorization"] == "token ghp_test_token"

    @patch.dict("os.environ", {"GITHUB_TOKEN": "env_token"})
    def test_token_from_environment(self) -> None:
        """Test token loading from environment variable."""
        client = GitHubClient()
        assert client.token == "env_token"

    def test_context_manager(self) -> None:
        """Test GitHubClient as context manager."""
        with GitHubClient(token="t") as client:
            assert client.session is not None

    @responses.activate
    def test_account_kind_organization(self) -> None:
        """Test that an existing organization is detected first."""
        responses.add(responses.GET, f"{API}/orgs/acme", json={"login": "acme"})

        assert GitHubClient(token="t").get_account_kind("acme") == ORGANIZATION
        assert len(responses.calls) == 1

    @responses.activate
    def test_account_kind_user_fallback(self) -> None:
        """Test the user lookup after an organization 404."""
        responses.add(responses.GET, f"{API}/orgs/alice", status=404, json={"message": "Not Found"})
        responses.add(responses.GET, f"{API}/users/alice", json={"login": "alice"})

        assert GitHubClient(token="t").get_account_kind("alice") == USER

    @responses.activate
    def test_account_kind_other_error_is_fatal(self) -> None:
        """Test that a non-404 organization probe error is not retried as a user."""
        responses.add(responses.GET, f"{API}/orgs/acme", status=500)

        with pytest.raises(AccountResolutionError):
            GitHubClient(token="t").get_account_kind("acme")
        assert len(responses.calls) == 1

    @responses.activate
    def test_account_kind_unknown_owner(self) -> None:
        """Test that an owner that is neither org nor user fails."""
        responses.add(responses.GET, f"{API}/orgs/ghost", status=404)
        responses.add(responses.GET, f"{API}/users/ghost", status=404)

        with pytest.raises(AccountResolutionError, match="Invalid user/org"):
            GitHubClient(token="t").get_account_kind("ghost")

    @responses.activate
    def test_list_repositories_paginates(self) -> None:
        """Test that every page is followed through the Link header."""
        page_two = f"{API}/organizations/1/repos?per_page=100&page=2"
        responses.add(
            responses.GET,
            f"{API}/orgs/acme/repos",
            json=[repo_payload("one"), repo_payload("two", topics=["python"])],
            headers={"Link": f'<{page_two}>; rel="next"'},
        )
        responses.add(responses.GET, page_two, json=[repo_payload("three", fork=True)])

        repos = GitHubClient(token="t").list_repositories("acme", ORGANIZATION)

        assert [r.name for r in repos] == ["one", "two", "three"]
        assert repos[1].topics == {"python"}
        assert repos[2].fork is True
        assert "per_page=100" in responses.calls[0].request.url

    @responses.activate
    def test_list_repositories_for_user(self) -> None:
        """Test the user listing endpoint."""
        responses.add(responses.GET, f"{API}/users/alice/repos", json=[repo_payload("dotfiles")])

        repos = GitHubClient(token="t").list_repositories("alice", USER)
        assert [r.name for r in repos] == ["dotfiles"]

    @responses.activate
    def test_get_repository(self) -> None:
        """Test fetching a single repository."""
        responses.add(
            responses.GET,
            f"{API}/repos/acme/spoke1",
            json=repo_payload("spoke1", default_branch="develop", private=True),
        )

        repo = GitHubClient(token="t").get_repository("acme", "spoke1")
        assert repo.id == "R_spoke1"
        assert repo.default_branch == "develop"
        assert repo.private is True

    @responses.activate
    def test_get_repository_not_found(self) -> None:
        """Test that a missing repository raises a dedicated error."""
        responses.add(responses.GET, f"{API}/repos/acme/nope", status=404)

        with pytest.raises(RepositoryNotFoundError):
            GitHubClient(token="t").get_repository("acme", "nope")

    @responses.activate
    def test_get_file_content(self) -> None:
        """Test raw file download."""
        responses.add(
            responses.GET,
            f"{API}/repos/acme/spoke1/contents/docs/read%20me.md",
            body=b"# Content",
        )

        content = GitHubClient(token="t").get_file_content("acme", "spoke1", "main", "docs/read me.md")

        assert content == b"# Content"
        request = responses.calls[0].request
        assert "ref=main" in request.url
        assert request.headers["Accept"] == "application/vnd.github.raw"

    @responses.activate
    def test_get_file_content_missing(self) -> None:
        """Test that a missing file returns None."""
        responses.add(responses.GET, f"{API}/repos/acme/spoke1/contents/README.md", status=404)

        client = GitHubClient(token="t")
        assert client.get_file_content("acme", "spoke1", "main", "README.md") is None
        assert client.file_exists("acme", "spoke1", "main", "README.md") is False

    @responses.activate
    def test_get_file_content_error(self) -> None:
        """Test that other errors propagate."""
        responses.add(responses.GET, f"{API}/repos/acme/spoke1/contents/README.md", status=500)

        with pytest.raises(GitHubAPIError) as exc_info:
            GitHubClient(token="t").get_file_content("acme", "spoke1", "main", "README.md")
        assert exc_info.value.status_code == 500

    @responses.activate
    def test_get_commit_files(self) -> None:
        """Test listing files touched by a commit."""
        responses.add(
            responses.GET,
            f"{API}/repos/acme/hub/commits/abc",
            json={"files": [{"filename": "a.md", "status": "added"}, {"filename": "b.md", "status": "removed"}]},
        )

        files = GitHubClient(token="t").get_commit_files("acme", "hub", "abc")
        assert files == [("a.md", "added"), ("b.md", "removed")]

    @responses.activate
    def test_get_commit_files_paginates(self) -> None:
        """Test that large commits are read across every page."""
        page_two = f"{API}/repositories/7/commits/abc?page=2"
        responses.add(
            responses.GET,
            f"{API}/repos/acme/hub/commits/abc",
            json={"files": [{"filename": "a.md", "status": "modified"}]},
            headers={"Link": f'<{page_two}>; rel="next"'},
        )
        responses.add(
            responses.GET, page_two, json={"files": [{"filename": "z.md", "status": "added"}]}
        )

        files = GitHubClient(token="t").get_commit_files("acme", "hub", "abc")

        assert files == [("a.md", "modified"), ("z.md", "added")]
        assert len(responses.calls) == 2

    @responses.activate
    def test_get_commit_files_rename(self) -> None:
        """Test that a rename reports the old path as removed."""
        responses.add(
            responses.GET,
            f"{API}/repos/acme/hub/commits/abc",
            json={
                "files": [
                    {"filename": "new.yml", "status": "renamed", "previous_filename": "old.yml"}
                ]
            },
        )

        files = GitHubClient(token="t").get_commit_files("acme", "hub", "abc")

        assert files == [("old.yml", "removed"), ("new.yml", "renamed")]

    @responses.activate
    def test_get_branch_head_and_repo_id(self) -> None:
        """Test the head oid query."""
        responses.add(responses.POST, GRAPHQL, json=head_response("deadbeef", "R_x"))

        oid, repo_id = GitHubClient(token="t").get_branch_head_and_repo_id("acme", "x", "main")

        assert (oid, repo_id) == ("deadbeef", "R_x")
        body = json.loads(responses.calls[0].request.body)
        assert body["variables"]["ref"] == "refs/heads/main"

    @responses.activate
    def test_get_branch_head_missing_ref(self) -> None:
        """Test that an unresolvable ref raises a shape error."""
        responses.add(responses.POST, GRAPHQL, json={"data": {"repository": {"id": "R", "ref": None}}})

        with pytest.raises(GitHubResponseShapeError, match="repository.ref"):
            GitHubClient(token="t").get_branch_head_and_repo_id("acme", "x", "sync/1")

    @responses.activate
    def test_create_branch(self) -> None:
        """Test creating a branch from the default branch head."""
        responses.add(responses.POST, GRAPHQL, json=head_response("abc123"))
        responses.add(responses.POST, f"{API}/repos/acme/spoke1/git/refs", status=201, json={})

        existed = GitHubClient(token="t").create_branch("acme", "spoke1", "sync/1", "main")

        assert existed is False
        body = json.loads(responses.calls[1].request.body)
        assert body == {"ref": "refs/heads/sync/1", "sha": "abc123"}

    @responses.activate
    def test_create_branch_already_exists(self) -> None:
        """Test that HTTP 422 means the branch is already there."""
        responses.add(responses.POST, GRAPHQL, json=head_response())
        responses.add(
            responses.POST,
            f"{API}/repos/acme/spoke1/git/refs",
            status=422,
            json={"message": "Reference already exists"},
        )

        assert GitHubClient(token="t").create_branch("acme", "spoke1", "sync/1", "main") is True

    @responses.activate
    def test_create_branch_other_error(self) -> None:
        """Test that other branch errors propagate."""
        responses.add(responses.POST, GRAPHQL, json=head_response())
        responses.add(responses.POST, f"{API}/repos/acme/spoke1/git/refs", status=403)

        with pytest.raises(GitHubAPIError, match="Unable to create a branch"):
            GitHubClient(token="t").create_branch("acme", "spoke1", "sync/1", "main")

    @responses.activate
    def test_commit_file_changes(self) -> None:
        """Test the single-commit mutation payload."""
        responses.add(
            responses.POST,
            GRAPHQL,
            json={"data": {"createCommitOnBranch": {"commit": {"url": "https://github.com/c/1"}}}},
        )
        change_set = ChangeSet(
            additions=(FileAddition("README.md", "README.md", "IyBIdWI="),),
            deletions=(FileDeletion("legacy/old.yml"),),
        )

        url = GitHubClient(token="t").commit_file_changes(
            "acme", "spoke1", "sync/1", change_set, "Sync files", "oid-1"
        )

        assert url == "https://github.com/c/1"
        payload = json.loads(responses.calls[0].request.body)["variables"]["input"]
        assert payload["expectedHeadOid"] == "oid-1"
        assert payload["branch"] == {"repositoryNameWithOwner": "acme/spoke1", "branchName": "sync/1"}
        assert payload["fileChanges"] == {
            "additions": [{"path": "README.md", "contents": "IyBIdWI="}],
            "deletions": [{"path": "legacy/old.yml"}],
        }
        assert payload["message"] == {"headline": "Sync files"}

    @responses.activate
    def test_commit_file_changes_empty_result(self) -> None:
        """Test that an empty mutation result returns None."""
        responses.add(responses.POST, GRAPHQL, json={"data": None})

        url = GitHubClient(token="t").commit_file_changes(
            "acme", "spoke1", "sync/1", ChangeSet(), "msg", "oid"
        )
        assert url is None

    @responses.activate
    def test_commit_file_changes_stale_head(self) -> None:
        """Test that a rejected expected head oid raises."""
        responses.add(
            responses.POST,
            GRAPHQL,
            json={"data": None, "errors": [{"message": "Expected branch to point to \"x\" but it did not"}]},
        )

        with pytest.raises(GitHubAPIError, match="Expected branch"):
            GitHubClient(token="t").commit_file_changes(
                "acme", "spoke1", "sync/1", ChangeSet(), "msg", "stale"
            )

    @responses.activate
    def test_create_pull_request(self) -> None:
        """Test pull request creation uses the repository node id."""
        responses.add(
            responses.POST,
            GRAPHQL,
            json={"data": {"createPullRequest": {"pullRequest": {"url": "https://github.com/acme/spoke1/pull/7"}}}},
        )

        url = GitHubClient(token="t").create_pull_request("sync/1", "R_spoke1", "Sync", "main")

        assert url == "https://github.com/acme/spoke1/pull/7"
        variables = json.loads(responses.calls[0].request.body)["variables"]
        assert variables == {
            "branchName": "sync/1",
            "id": "R_spoke1",
            "title": "Sync",
            "defaultBranch": "main",
        }

    @responses.activate
    def test_create_pull_request_rate_limited(self) -> None:
        """Test that 'submitted too quickly' becomes a transient error."""
        responses.add(
            responses.POST,
            GRAPHQL,
            json={"errors": [{"message": "was submitted too quickly"}]},
        )

        with pytest.raises(TransientRemoteError) as exc_info:
            GitHubClient(token="t").create_pull_request("sync/1", "R", "Sync", "main")
        assert exc_info.value.reason is TransientReason.RATE_LIMITED

    @responses.activate
    def test_create_pull_request_other_error(self) -> None:
        """Test that other PR errors are not transient."""
        responses.add(
            responses.POST,
            GRAPHQL,
            json={"errors": [{"message": "A pull request already exists for acme:sync/1."}]},
        )

        with pytest.raises(GitHubAPIError, match="already exists"):
            GitHubClient(token="t").create_pull_request("sync/1", "R", "Sync", "main")

    @responses.activate
    def test_graphql_http_error(self) -> None:
        """Test that HTTP failures carry the status code."""
        responses.add(responses.POST, GRAPHQL, status=502, body="bad gateway")

        with pytest.raises(GitHubAPIError) as exc_info:
            GitHubClient(token="t").graphql("query { viewer { login } }", {})
        assert exc_info.value.status_code == 502

    @responses.activate
    def test_test_connection_success(self) -> None:
        """Test connectivity test success."""
        responses.add(responses.GET, f"{API}/rate_limit", json={})
        assert GitHubClient(token="t").test_connection() is True

    @responses.activate
    def test_test_connection_failure(self) -> None:
        """Test connectivity test failure."""
        responses.add(responses.GET, f"{API}/rate_limit", status=500)
        assert GitHubClient(token="t").test_connection() is False

    def test_custom_api_url(self) -> None:
        """Test GitHub Enterprise API roots."""
        client = GitHubClient(token="t", api_url="https://ghe.example.com/api/v3/")
        assert client.api_url == "https://ghe.example.com/api/v3"
