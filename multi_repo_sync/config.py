"""Configuration parsing and validation for multi-repo-sync.

Inputs arrive as plain strings (GitHub Action inputs, CLI flags or an
optional YAML file). They are parsed once into a SyncConfig and invalid
combinations are rejected before any network call is made.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from typing_extensions import TypedDict

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "Update files from the global repository"
DEFAULT_BRANCH_PREFIX = "bot/update-global-files"

_TRUE_VALUES = {"true", "yes", "1"}
_FALSE_VALUES = {"false", "no", "0", ""}


class IgnoreCriteria(TypedDict):
    """Rules for leaving repositories out of a run."""

    repos_to_ignore: list[str]
    topics_to_include: list[str]
    exclude_private: bool
    exclude_forked: bool


class SyncConfig(TypedDict):
    """Validated configuration for a single sync run."""

    patterns_to_include: list[str]
    patterns_to_ignore: list[str]
    patterns_to_remove: list[str]
    commit_message: str
    branch_prefix: str
    destination: str
    repos_to_ignore: list[str]
    topics_to_include: list[str]
    exclude_private: bool
    exclude_forked: bool
    max_workers: int
    deadline: Optional[float]


CONFIG_KEYS = frozenset(SyncConfig.__annotations__)

ListInput = Union[str, list, None]


def parse_list(value: ListInput) -> list[str]:
    """Split a comma or newline separated input into trimmed items.

    Args:
        value: Raw input; lists are accepted as-is (items are trimmed)

    Returns:
        List of non-empty items in input order

    Example:
        >>> parse_list(".github/workflows/*, LICENSE")
        ['.github/workflows/*', 'LICENSE']
    """
    if value is None:
        return []
    if isinstance(value, list):
        items = [str(item) for item in value]
    else:
        items = str(value).replace("\n", ",").split(",")
    return [item.strip() for item in items if item.strip()]


def parse_bool(value: Union[str, bool, None], field: str = "value") -> bool:
    """Parse a boolean Action input.

    Raises:
        ConfigurationError: If the value is not a recognised boolean
    """
    if isinstance(value, bool):
        return value
    normalized = (value or "").strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"'{field}' must be true or false, got {value!r}")


def build_config(
    patterns_to_include: ListInput = None,
    patterns_to_ignore: ListInput = None,
    patterns_to_remove: ListInput = None,
    commit_message: Optional[str] = None,
    branch_prefix: Optional[str] = None,
    destination: Optional[str] = None,
    repos_to_ignore: ListInput = None,
    topics_to_include: ListInput = None,
    exclude_private: Union[str, bool, None] = False,
    exclude_forked: Union[str, bool, None] = False,
    max_workers: Union[int, str, None] = 1,
    deadline: Union[float, str, None] = None,
) -> SyncConfig:
    """Build and validate a SyncConfig from raw inputs.

    Raises:
        ConfigurationError: If inputs are malformed or mutually exclusive
    """
    include = parse_list(patterns_to_include)
    remove = parse_list(patterns_to_remove)

    if include and remove:
        raise ConfigurationError(
            "Fields patterns_to_include and patterns_to_remove are mutually "
            "exclusive. If you want to remove files from repos then do not use "
            "patterns_to_include."
        )

    destination = (destination or "").strip().strip("/")
    if remove and destination:
        logger.warning(
            "destination is also applied to removed paths; "
            f"files under '{destination}/' will be removed"
        )

    try:
        workers = int(max_workers if max_workers is not None else 1)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"'max_workers' must be an integer: {e}") from e
    if workers < 1:
        raise ConfigurationError("'max_workers' must be at least 1")

    timeout: Optional[float] = None
    if deadline not in (None, ""):
        try:
            timeout = float(deadline)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"'deadline' must be a number: {e}") from e
        if timeout <= 0:
            raise ConfigurationError("'deadline' must be positive")

    config: SyncConfig = {
        "patterns_to_include": include,
        "patterns_to_ignore": parse_list(patterns_to_ignore),
        "patterns_to_remove": remove,
        "commit_message": (commit_message or "").strip() or DEFAULT_COMMIT_MESSAGE,
        "branch_prefix": (branch_prefix or "").strip().strip("/")
        or DEFAULT_BRANCH_PREFIX,
        "destination": destination,
        "repos_to_ignore": parse_list(repos_to_ignore),
        "topics_to_include": parse_list(topics_to_include),
        "exclude_private": parse_bool(exclude_private, "exclude_private"),
        "exclude_forked": parse_bool(exclude_forked, "exclude_forked"),
        "max_workers": workers,
        "deadline": timeout,
    }
    return config


def ignore_criteria(config: SyncConfig) -> IgnoreCriteria:
    """Extract the repository filter rules from a config."""
    return {
        "repos_to_ignore": config["repos_to_ignore"],
        "topics_to_include": config["topics_to_include"],
        "exclude_private": config["exclude_private"],
        "exclude_forked": config["exclude_forked"],
    }


def load_config(config_path: Path) -> dict[str, Any]:
    """Load raw configuration values from a YAML file.

    The file holds the same keys as SyncConfig. Values are returned
    unvalidated so that CLI arguments can be layered on top before
    build_config runs.

    Args:
        config_path: Path to the configuration YAML file

    Returns:
        Mapping of configuration keys to raw values

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If the YAML is malformed
        ConfigurationError: If the structure is invalid

    Example:
        >>> raw = load_config(Path(".github/multi-repo-sync.yaml"))
        >>> config = build_config(**raw)
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML configuration: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a dictionary")

    unknown = sorted(set(data) - CONFIG_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    for key, value in data.items():
        if isinstance(value, list) and not all(isinstance(v, str) for v in value):
            raise ConfigurationError(f"'{key}' must be a list of strings")

    logger.info(f"Loaded {len(data)} configuration values from {config_path}")
    return data
