"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from multi_repo_sync.config import SyncConfig, build_config
from multi_repo_sync.github import GitHubClient
from helpers import make_repo


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Return a hub checkout with a few files."""
    root = tmp_path / "hub"
    (root / ".github" / "workflows").mkdir(parents=True)
    (root / ".github" / "workflows" / "ci.yml").write_text("name: CI\n", encoding="utf-8")
    (root / "README.md").write_text("# Hub\n", encoding="utf-8")
    (root / "legacy").mkdir()
    (root / "legacy" / "keep.txt").write_text("keep\n", encoding="utf-8")
    return root


@pytest.fixture
def config() -> SyncConfig:
    """Return a default configuration."""
    return build_config(branch_prefix="sync")


@pytest.fixture
def client() -> Mock:
    """Return a GitHub client double with a default happy path."""
    mock = Mock(spec=GitHubClient)
    mock.get_file_content.return_value = None
    mock.file_exists.return_value = False
    mock.create_branch.return_value = False
    mock.get_branch_head_and_repo_id.return_value = ("oid-1", "R_spoke1")
    mock.commit_file_changes.return_value = "https://github.com/acme/spoke1/commit/abc"
    mock.create_pull_request.return_value = "https://github.com/acme/spoke1/pull/1"
    mock.get_account_kind.return_value = "organization"
    mock.list_repositories.return_value = [make_repo("spoke1")]
    mock.get_commit_files.return_value = [("README.md", "modified")]
    return mock


@pytest.fixture
def no_sleep() -> Mock:
    """Return a sleep replacement that records delays."""
    return Mock()
