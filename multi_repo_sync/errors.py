"""Error taxonomy for multi-repo-sync.

Every failure raised while syncing maps onto one ErrorKind, so the decision
between retrying, skipping a repository and aborting the run is a lookup
rather than string matching at each call site.
"""

from __future__ import annotations

import enum
from typing import Optional

RATE_LIMIT_MESSAGE = "was submitted too quickly"


class ErrorKind(enum.Enum):
    """Closed set of failure categories."""

    CONFIGURATION = "configuration"
    ACCOUNT_RESOLUTION = "account_resolution"
    LOCAL_READ = "local_read"
    TRANSIENT_REMOTE = "transient_remote"
    REMOTE_MUTATION = "remote_mutation"
    PR_CONFLICT = "pr_conflict"


class TransientReason(enum.Enum):
    """Why a remote call is considered worth retrying."""

    CONSISTENCY_LAG = "consistency_lag"
    RATE_LIMITED = "rate_limited"


class SyncError(RuntimeError):
    """Base class for all errors raised by the sync engine."""

    kind: ErrorKind = ErrorKind.REMOTE_MUTATION


class ConfigurationError(SyncError, ValueError):
    """Raised when inputs are invalid or mutually exclusive."""

    kind = ErrorKind.CONFIGURATION


class AccountResolutionError(SyncError):
    """Raised when the owner is neither a user nor an organization."""

    kind = ErrorKind.ACCOUNT_RESOLUTION


class LocalReadError(SyncError):
    """Raised when a file selected for replication cannot be read locally."""

    kind = ErrorKind.LOCAL_READ

    def __init__(self, path: str, error: OSError) -> None:
        self.path = path
        super().__init__(f"Unable to read local file {path}: {error}")


class TransientRemoteError(SyncError):
    """Raised for remote failures that are expected to clear on retry."""

    kind = ErrorKind.TRANSIENT_REMOTE

    def __init__(self, message: str, reason: TransientReason) -> None:
        self.reason = reason
        super().__init__(message)

    @classmethod
    def consistency_lag(cls, repo: str) -> TransientRemoteError:
        """Return an error for an empty commit response."""
        return cls(
            f"Commit response for {repo} was empty", TransientReason.CONSISTENCY_LAG
        )

    @classmethod
    def rate_limited(cls, message: str) -> TransientRemoteError:
        """Return an error for a pull request submitted too quickly."""
        return cls(message, TransientReason.RATE_LIMITED)


class RemoteMutationError(SyncError):
    """Raised when a branch, commit or pull request mutation fails."""

    kind = ErrorKind.REMOTE_MUTATION


class RetryExhaustedError(RemoteMutationError):
    """Raised when a retry policy runs out of attempts."""

    def __init__(self, label: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"{label} failed after {attempts} attempts")


class PrConflictError(SyncError):
    """Raised when PR creation fails on a branch left by a previous run."""

    kind = ErrorKind.PR_CONFLICT


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        messages: Optional[list[str]] = None,
    ) -> None:
        self.status_code = status_code
        self.messages = messages or []
        super().__init__(message)

    @classmethod
    def http_error(cls, status_code: int, detail: str = "") -> GitHubAPIError:
        """Return an error for non-2xx HTTP responses."""
        suffix = f": {detail}" if detail else ""
        return cls(f"GitHub HTTP {status_code}{suffix}", status_code=status_code)

    @classmethod
    def graphql_errors(cls, errors: list) -> GitHubAPIError:
        """Return an error for GraphQL `errors` payloads."""
        messages = [
            str(error.get("message", error)) if isinstance(error, dict) else str(error)
            for error in errors
        ]
        return cls(f"GitHub GraphQL errors: {'; '.join(messages)}", messages=messages)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class RepositoryNotFoundError(GitHubAPIError):
    """Raised when a named repository does not exist or is not visible."""


class GitHubResponseShapeError(RuntimeError):
    """Raised when GitHub responses are missing expected fields."""

    @classmethod
    def missing(cls, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing response field."""
        return cls(f"GitHub response missing expected field: {field}")


def classify(error: BaseException) -> ErrorKind:
    """Map any exception onto an ErrorKind."""
    if isinstance(error, SyncError):
        return error.kind
    if isinstance(error, GitHubAPIError) and any(
        RATE_LIMIT_MESSAGE in message for message in error.messages
    ):
        return ErrorKind.TRANSIENT_REMOTE
    return ErrorKind.REMOTE_MUTATION

