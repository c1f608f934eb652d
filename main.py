"""Main entry point for the multi-repo-sync GitHub Action.

This module maps the Action inputs (INPUT_* environment variables) onto
command-line arguments and runs the CLI.
"""

import os
import sys

from multi_repo_sync.cli import main

# Action input name -> CLI option
ACTION_INPUTS = {
    "PATTERNS_TO_INCLUDE": "--patterns-to-include",
    "PATTERNS_TO_IGNORE": "--patterns-to-ignore",
    "PATTERNS_TO_REMOVE": "--patterns-to-remove",
    "COMMIT_MESSAGE": "--commit-message",
    "BOT_BRANCH_NAME": "--branch-prefix",
    "DESTINATION": "--destination",
    "REPOS_TO_IGNORE": "--repos-to-ignore",
    "TOPICS_TO_INCLUDE": "--topics-to-include",
    "EXCLUDE_PRIVATE": "--exclude-private",
    "EXCLUDE_FORKED": "--exclude-forked",
    "MAX_WORKERS": "--max-workers",
    "DEADLINE": "--deadline",
    "CONFIG": "--config",
}


def args_from_env(environ=os.environ) -> list:
    """Build CLI arguments from GitHub Actions input variables."""
    args = []
    for name, option in ACTION_INPUTS.items():
        value = environ.get(f"INPUT_{name}", "")
        if value.strip():
            args.extend([option, value])

    token = environ.get("GITHUB_TOKEN") or environ.get("INPUT_GITHUB_TOKEN", "")
    if token:
        args.extend(["--token", token])

    if environ.get("INPUT_VERBOSE", "false").lower() == "true":
        args.append("--verbose")
    if environ.get("INPUT_STRICT", "false").lower() == "true":
        args.append("--strict")
    return args


def main_with_env_parsing() -> None:
    """Main entry point that handles GitHub Actions environment variables."""
    main(sys.argv[1:] + args_from_env())


if __name__ == "__main__":
    main_with_env_parsing()
