"""Builders shared by the test modules."""

from multi_repo_sync.models import RepositoryDescriptor


def make_repo(name: str = "spoke1", **overrides) -> RepositoryDescriptor:
    """Build a repository descriptor with sensible defaults."""
    values = {
        "name": name,
        "url": f"https://github.com/acme/{name}",
        "id": f"R_{name}",
        "default_branch": "main",
    }
    values.update(overrides)
    return RepositoryDescriptor(**values)


def repo_payload(name: str, **overrides) -> dict:
    """Return a REST API repository payload."""
    payload = {
        "name": name,
        "html_url": f"https://github.com/acme/{name}",
        "node_id": f"R_{name}",
        "default_branch": "main",
        "private": False,
        "fork": False,
        "archived": False,
        "topics": [],
    }
    payload.update(overrides)
    return payload
