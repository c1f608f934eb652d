"""Value objects shared across the sync engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class FileSelection:
    """Files picked from the triggering change-set."""

    to_replicate: frozenset[str] = frozenset()
    to_remove: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.to_replicate and not self.to_remove


@dataclass(frozen=True)
class RepositoryDescriptor:
    """A repository owned by the account.

    ``id`` is the GraphQL node id and is what every mutation targets;
    ``name`` is only used for logging and lookups.
    """

    name: str
    url: str
    id: str
    default_branch: str
    private: bool = False
    fork: bool = False
    archived: bool = False
    topics: frozenset[str] = frozenset()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RepositoryDescriptor:
        """Build a descriptor from a REST repository payload."""
        return cls(
            name=data["name"],
            url=data.get("html_url", ""),
            id=data["node_id"],
            default_branch=data["default_branch"],
            private=bool(data.get("private", False)),
            fork=bool(data.get("fork", False)),
            archived=bool(data.get("archived", False)),
            topics=frozenset(data.get("topics") or ()),
        )


@dataclass(frozen=True)
class FileAddition:
    path: str
    destination_path: str
    base64_content: str


@dataclass(frozen=True)
class FileDeletion:
    destination_path: str


@dataclass(frozen=True)
class ChangeSet:
    """Additions and deletions to apply to one repository in a single commit."""

    additions: tuple[FileAddition, ...] = ()
    deletions: tuple[FileDeletion, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.deletions

    def to_file_changes(self) -> dict[str, list[dict[str, str]]]:
        """Render as the ``fileChanges`` input of ``createCommitOnBranch``."""
        changes: dict[str, list[dict[str, str]]] = {}
        if self.additions:
            changes["additions"] = [
                {"path": a.destination_path, "contents": a.base64_content}
                for a in self.additions
            ]
        if self.deletions:
            changes["deletions"] = [{"path": d.destination_path} for d in self.deletions]
        return changes


@dataclass(frozen=True)
class BranchState:
    """The sync branch of one repository.

    The head oid is not kept here; it is read right before each mutation
    that needs it.
    """

    name: str
    already_existed: bool = False


@dataclass(frozen=True)
class ChangedFile:
    """A file touched by the triggering event."""

    path: str
    removed: bool = False


@dataclass(frozen=True)
class TriggerEvent:
    kind: str
    trigger_id: str = ""
    commit_ids: tuple[str, ...] = ()
    manual_repo_name: str = ""
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
