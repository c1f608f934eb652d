"""Glob matching and file selection.

Patterns are shell-style globs evaluated against repository-relative POSIX
paths. ``*``, ``?`` and ``[...]`` match within one path segment, ``**``
matches any number of segments and ``{a,b}`` expands to alternatives.
Matching is case-sensitive and anchored at both ends of the path.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase
from functools import lru_cache

from .errors import ConfigurationError
from .models import FileSelection

logger = logging.getLogger(__name__)

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` groups, innermost first.

    Groups without a comma are literal and do not stop later groups from
    expanding.

    Example:
        >>> expand_braces("docs/{a,b}.md")
        ['docs/a.md', 'docs/b.md']
    """
    match = next(
        (m for m in _BRACE_RE.finditer(pattern) if "," in m.group(1)), None
    )
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def _segment_match(name: str, pattern: str) -> bool:
    # Wildcards do not match a leading dot unless the pattern spells it out.
    if name.startswith(".") and not pattern.startswith("."):
        return pattern == name
    return fnmatchcase(name, pattern)


def _match_segments(parts: Sequence[str], segments: Sequence[str]) -> bool:
    if not segments:
        return not parts
    head = segments[0]
    if head == "**":
        rest = segments[1:]
        return any(_match_segments(parts[i:], rest) for i in range(len(parts) + 1))
    if not parts:
        return False
    return _segment_match(parts[0], head) and _match_segments(parts[1:], segments[1:])


@lru_cache(maxsize=512)
def _compile(pattern: str) -> tuple[tuple[str, ...], ...]:
    return tuple(
        tuple(segment for segment in expanded.strip("/").split("/") if segment)
        for expanded in expand_braces(pattern.strip())
    )


def match_path(path: str, pattern: str) -> bool:
    """Return True if a repository-relative path matches a glob pattern."""
    parts = [part for part in path.strip("/").split("/") if part]
    return any(_match_segments(parts, segments) for segments in _compile(pattern))


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(match_path(path, pattern) for pattern in patterns)


def select_files(
    changed_paths: Iterable[str],
    include_globs: Sequence[str] = (),
    exclude_globs: Sequence[str] = (),
    remove_globs: Sequence[str] = (),
    removed_paths: Iterable[str] = (),
) -> FileSelection:
    """Split changed paths into files to replicate and files to remove.

    Args:
        changed_paths: Paths touched by the triggering event
        include_globs: Only replicate paths matching one of these (all when empty)
        exclude_globs: Never replicate paths matching one of these
        remove_globs: Paths matching one of these are removed downstream
        removed_paths: Paths deleted by the trigger; they are only ever
            removal candidates and never replicated

    Returns:
        FileSelection with both sets populated

    Raises:
        ConfigurationError: If both include_globs and remove_globs are given
    """
    if include_globs and remove_globs:
        raise ConfigurationError(
            "patterns_to_include and patterns_to_remove are mutually exclusive"
        )

    removed = frozenset(removed_paths)
    to_replicate: set[str] = set()
    to_remove: set[str] = set()

    for path in changed_paths:
        if remove_globs and matches_any(path, remove_globs):
            to_remove.add(path)
            continue
        if path in removed:
            logger.debug(f"{path} was deleted and matches no remove pattern")
            continue
        if include_globs and not matches_any(path, include_globs):
            logger.debug(f"{path} does not match any include pattern")
            continue
        if matches_any(path, exclude_globs):
            logger.debug(f"{path} matches an ignore pattern")
            continue
        to_replicate.add(path)

    selection = FileSelection(frozenset(to_replicate), frozenset(to_remove))
    logger.info(
        f"Selected {len(selection.to_replicate)} files to replicate and "
        f"{len(selection.to_remove)} files to remove"
    )
    return selection
