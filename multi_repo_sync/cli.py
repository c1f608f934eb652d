"""Command-line interface for multi-repo-sync.

This module provides the CLI options for replicating files from the
current (hub) repository to the other repositories of the same owner.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

import yaml

from .config import SyncConfig, build_config, load_config
from .errors import ConfigurationError, GitHubAPIError, SyncError
from .events import WORKFLOW_DISPATCH, load_event
from .github import GitHubClient
from .sync import MultiRepoSync

# argparse destinations that map one-to-one onto SyncConfig keys
_CONFIG_OPTIONS = (
    "patterns_to_include",
    "patterns_to_ignore",
    "patterns_to_remove",
    "commit_message",
    "branch_prefix",
    "destination",
    "repos_to_ignore",
    "topics_to_include",
    "exclude_private",
    "exclude_forked",
    "max_workers",
    "deadline",
)


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration.

    Args:
        verbose: Enable debug logging if True
    """
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level, format=format_str, handlers=[logging.StreamHandler()]
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Replicate files from this repository to other repositories of the same owner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replicate workflow files changed by the current push
  python main.py --patterns-to-include '.github/workflows/*'

  # Replicate into a single repository from a manual dispatch
  python main.py --event-name workflow_dispatch --repo-name my-service

  # Remove legacy files everywhere
  python main.py --patterns-to-remove 'legacy/*.yml'
        """.strip(),
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Optional YAML file with configuration values",
    )
    parser.add_argument(
        "--token",
        default=None,
        help="GitHub token (default: GITHUB_TOKEN environment variable)",
    )
    parser.add_argument(
        "--repository",
        default=os.getenv("GITHUB_REPOSITORY", ""),
        help="Hub repository as owner/name (default: GITHUB_REPOSITORY)",
    )
    parser.add_argument(
        "--event-name",
        default=os.getenv("GITHUB_EVENT_NAME"),
        help="Triggering event: push or workflow_dispatch (default: GITHUB_EVENT_NAME)",
    )
    parser.add_argument(
        "--event-path",
        type=Path,
        default=os.getenv("GITHUB_EVENT_PATH") or None,
        help="Path to the event payload JSON (default: GITHUB_EVENT_PATH)",
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        default=Path(os.getenv("GITHUB_WORKSPACE") or "."),
        help="Checkout of the hub repository (default: GITHUB_WORKSPACE or .)",
    )
    parser.add_argument(
        "--repo-name",
        default=None,
        help="Only sync this repository on workflow_dispatch runs (overrides the payload)",
    )

    parser.add_argument("--patterns-to-include", default=None, help="Comma-separated globs to replicate")
    parser.add_argument("--patterns-to-ignore", default=None, help="Comma-separated globs never replicated")
    parser.add_argument("--patterns-to-remove", default=None, help="Comma-separated globs to remove downstream")
    parser.add_argument("--commit-message", default=None, help="Commit message and PR title")
    parser.add_argument("--branch-prefix", default=None, help="Prefix of the sync branch name")
    parser.add_argument("--destination", default=None, help="Directory prefix for files in target repositories")
    parser.add_argument("--repos-to-ignore", default=None, help="Comma-separated repository names to skip")
    parser.add_argument("--topics-to-include", default=None, help="Only sync repositories with one of these topics")
    parser.add_argument("--exclude-private", default=None, help="Skip private repositories (true/false)")
    parser.add_argument("--exclude-forked", default=None, help="Skip forked repositories (true/false)")
    parser.add_argument("--max-workers", type=int, default=None, help="Repositories processed in parallel (default: 1)")
    parser.add_argument("--deadline", type=float, default=None, help="Seconds after which no new repository is started")

    parser.add_argument(
        "--timeout",
        type=int,
        default=30,
        help="Request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with an error if any repository failed",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test GitHub connectivity and exit",
    )

    return parser


def resolve_config(args: argparse.Namespace) -> SyncConfig:
    """Merge the optional config file with CLI options and validate."""
    raw: dict[str, Any] = {}
    if args.config is not None:
        raw.update(load_config(args.config))
    for option in _CONFIG_OPTIONS:
        value = getattr(args, option)
        if value is not None:
            raw[option] = value
    return build_config(**raw)


def split_repository(repository: str) -> tuple[str, str]:
    owner, _, name = repository.partition("/")
    if not owner or not name:
        raise ConfigurationError(f"Repository must be in format 'owner/repo', got {repository!r}")
    return owner, name


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the CLI application."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        if args.test_connection:
            with GitHubClient(timeout=args.timeout, token=args.token) as client:
                sync = MultiRepoSync(client, build_config(), args.workspace)
                sys.exit(0 if sync.test_connectivity() else 1)

        config = resolve_config(args)
        event = load_event(args.event_name, args.event_path)
        if args.repo_name:
            if event.kind == WORKFLOW_DISPATCH:
                event = dataclasses.replace(event, manual_repo_name=args.repo_name)
            else:
                logger.warning(
                    f"--repo-name is only used for {WORKFLOW_DISPATCH} runs, ignoring it"
                )
        owner, hub_repo = split_repository(args.repository)

        with GitHubClient(timeout=args.timeout, token=args.token) as client:
            if not client.token:
                logger.error("A GitHub token is required (--token or GITHUB_TOKEN)")
                sys.exit(1)
            result = MultiRepoSync(client, config, args.workspace).run(event, owner, hub_repo)

        if result.is_success:
            logger.info(f"✓ {result}")
        else:
            logger.warning(f"✗ {result}")
            for outcome in result.failed:
                logger.warning(f"  {outcome.repository}: {outcome.error}")

        sys.exit(0 if result.is_success or not args.strict else 1)

    except KeyboardInterrupt:
        logger.info("Sync interrupted by user")
        sys.exit(130)
    except (SyncError, GitHubAPIError, FileNotFoundError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Action failed because of: {e}")
        if args.verbose:
            logger.exception("Full traceback:")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.verbose:
            logger.exception("Full traceback:")
        sys.exit(1)


if __name__ == "__main__":
    main()
