#!/usr/bin/env python3
"""
Tag matching utilities for container image tags.

Patterns are comma-separated glob lists: ``*`` matches any run of characters
(including none), ``?`` matches exactly one character and every other
character matches itself. A tag matches when any of the patterns match.
"""

import functools
import re
from typing import Iterable, List, Pattern, Tuple


def split_patterns(patterns: str) -> List[str]:
    """Split a comma-separated pattern list, dropping blank entries.

    Args:
        patterns: Pattern list (e.g., "v1.*, latest,dev-??")

    Returns:
        List of stripped patterns (e.g., ["v1.*", "latest", "dev-??"])
    """
    if not patterns:
        return []
    return [p.strip() for p in patterns.split(',') if p.strip()]


def glob_to_regex(pattern: str) -> str:
    """Translate a single glob pattern into an anchored regular expression."""
    parts = []
    for char in pattern:
        if char == '*':
            parts.append('.*')
        elif char == '?':
            parts.append('.')
        else:
            parts.append(re.escape(char))
    return '^' + ''.join(parts) + '$'


@functools.lru_cache(maxsize=256)
def _compile(patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(glob_to_regex(p), re.DOTALL) for p in split_patterns(patterns))


def matches(patterns: str, tag: str) -> bool:
    """Check if a tag matches any pattern of a comma-separated glob list.

    An empty pattern list matches nothing.

    Args:
        patterns: Comma-separated glob list (e.g., "v1.*,latest")
        tag: Tag to test (e.g., "v1.2")

    Returns:
        True if any pattern matches the whole tag, False otherwise
    """
    return any(regex.match(tag) for regex in _compile(patterns or ''))


class TagMatcher:
    """Callable matcher bound to one pattern list"""

    def __init__(self, patterns: str):
        self.patterns = patterns or ''

    def __call__(self, tag: str) -> bool:
        return matches(self.patterns, tag)

    def __bool__(self) -> bool:
        return bool(split_patterns(self.patterns))

    def filter(self, tags: Iterable[str]) -> List[str]:
        """Return the matching tags, preserving their order."""
        return [tag for tag in tags if self(tag)]
