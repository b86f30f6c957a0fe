"""Glob pattern matching for include/exclude filtering of asset paths."""
from __future__ import annotations

from functools import lru_cache
from typing import Iterable
import re

_WILDCARDS = ("*", "?")


def normalize_path(path: str) -> str:
    return str(path).replace("\\", "/")


def _translate(fragment: str) -> str:
    result: list[str] = []
    index = 0
    while index < len(fragment):
        char = fragment[index]
        if fragment.startswith("**", index):
            result.append(".*")
            index += 2
            continue
        if char == "*":
            result.append("[^/]*")
        elif char == "?":
            result.append("[^/]")
        else:
            result.append(re.escape(char))
        index += 1
    return "".join(result)


def glob_to_regex(pattern: str) -> str:
    """Translate a glob pattern into an anchored regular expression.

    ``*`` matches within one path segment, ``**`` crosses segments and a
    leading ``**/`` also matches at the root. A trailing ``/`` selects the
    directory and everything below it. Patterns starting with ``/`` are
    anchored at the root; other wildcard patterns may match at any depth.
    A literal pattern without wildcards matches only that exact path.
    """

    text = normalize_path(pattern).strip()
    if text.startswith("**/"):
        return f"^(.*/)?{_translate(text[3:])}$"

    anchored = text.startswith("/")
    if anchored:
        text = text.lstrip("/")

    directory = text.endswith("/")
    if directory:
        text = text.rstrip("/")

    body = _translate(text)
    if directory:
        body = f"{body}(/.*)?"

    literal = not any(wildcard in text for wildcard in _WILDCARDS)
    if anchored or (literal and not directory):
        return f"^{body}$"
    return f"^(.*/)?{body}$"


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(glob_to_regex(pattern), re.IGNORECASE)


def matches(path: str, pattern: str) -> bool:
    return compile_pattern(pattern).match(normalize_path(path)) is not None


def matches_any(path: str, patterns: Iterable[str] | None) -> bool:
    if not patterns:
        return False
    return any(matches(path, pattern) for pattern in patterns if pattern)


def is_included(path: str, patterns: Iterable[str] | None) -> bool:
    """An empty pattern list includes everything."""

    candidates = [pattern for pattern in patterns or [] if pattern]
    if not candidates:
        return True
    return matches_any(path, candidates)


def is_excluded(path: str, patterns: Iterable[str] | None) -> bool:
    """An empty pattern list excludes nothing."""

    return matches_any(path, patterns)


def filter_paths(
    paths: Iterable[str],
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[str]:
    include_list = list(include or [])
    exclude_list = list(exclude or [])
    return [
        path
        for path in paths
        if is_included(path, include_list) and not is_excluded(path, exclude_list)
    ]
