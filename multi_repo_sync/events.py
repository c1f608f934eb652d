"""Trigger event parsing and changed-file discovery."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError
from .github import GitHubClient
from .models import ChangedFile, TriggerEvent

logger = logging.getLogger(__name__)

PUSH = "push"
WORKFLOW_DISPATCH = "workflow_dispatch"
SUPPORTED_EVENTS = (PUSH, WORKFLOW_DISPATCH)


def load_event(event_name: Optional[str], event_path: Optional[Path] = None) -> TriggerEvent:
    """Parse the event that triggered the run.

    Args:
        event_name: GITHUB_EVENT_NAME value
        event_path: Path to the JSON webhook payload (GITHUB_EVENT_PATH)

    Raises:
        ConfigurationError: For unsupported events or unreadable payloads
    """
    if event_name not in SUPPORTED_EVENTS:
        raise ConfigurationError(
            'This action works only when triggered by "push" or '
            f'"workflow_dispatch" webhooks, got {event_name!r}'
        )
    logger.info(f"Workflow started on {event_name} event")

    payload: dict = {}
    if event_path:
        try:
            with Path(event_path).open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Unable to read event payload {event_path}: {e}") from e
        logger.debug(f"Event payload: {json.dumps(payload, indent=2)}")

    if event_name == PUSH:
        commit_ids = tuple(
            commit["id"] for commit in payload.get("commits") or [] if commit.get("id")
        )
        return TriggerEvent(
            kind=PUSH,
            trigger_id=commit_ids[0] if commit_ids else "",
            commit_ids=commit_ids,
            payload=payload,
        )

    inputs = payload.get("inputs") or {}
    return TriggerEvent(
        kind=WORKFLOW_DISPATCH,
        trigger_id=os.getenv("GITHUB_RUN_ID", ""),
        manual_repo_name=(inputs.get("repo_name") or "").strip(),
        payload=payload,
    )


def list_workspace_files(workspace: Path) -> list[str]:
    """Return every file under the workspace as a POSIX relative path."""
    paths = []
    for path in workspace.rglob("*"):
        relative = path.relative_to(workspace)
        if relative.parts and relative.parts[0] == ".git":
            continue
        if path.is_file():
            paths.append(relative.as_posix())
    return sorted(paths)


def changed_files(
    client: GitHubClient,
    event: TriggerEvent,
    owner: str,
    repo: str,
    workspace: Path,
) -> list[ChangedFile]:
    """Collect files touched by the trigger.

    A push reports the files of its commits; a manual dispatch considers
    every file present in the workspace.
    """
    if event.kind != PUSH:
        files = [ChangedFile(path) for path in list_workspace_files(workspace)]
    else:
        latest: dict[str, ChangedFile] = {}
        for sha in event.commit_ids:
            for filename, status in client.get_commit_files(owner, repo, sha):
                latest[filename] = ChangedFile(filename, removed=status == "removed")
        files = [latest[path] for path in sorted(latest)]
    logger.info(f"{len(files)} changed files considered for replication")
    return files

