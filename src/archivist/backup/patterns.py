"""Filename glob matching for backup filters.

Only two wildcards are supported: ``*`` matches any run of characters and
``?`` matches a single character. Everything else is literal. Patterns are
applied to the bare filename, never to a path, and ignore case.
"""

import re
from collections.abc import Iterable
from functools import lru_cache


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored, case-insensitive regex."""
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def matches(filename: str, patterns: Iterable[str] | None) -> bool:
    """Return True if ``filename`` matches any of ``patterns``.

    An empty or missing pattern list matches every file.
    """
    if not patterns:
        return True
    return any(compile_pattern(p).fullmatch(filename) for p in patterns)


class PatternMatcher:
    """A precompiled set of filename patterns."""

    def __init__(self, patterns: Iterable[str] | None = None) -> None:
        """Compile ``patterns`` once for repeated matching."""
        self.patterns = list(patterns or [])
        self._compiled = [compile_pattern(p) for p in self.patterns]

    @property
    def matches_everything(self) -> bool:
        return not self._compiled

    def __call__(self, filename: str) -> bool:
        """Return True if ``filename`` passes the filter."""
        if self.matches_everything:
            return True
        return any(regex.fullmatch(filename) for regex in self._compiled)

    def __repr__(self) -> str:
        return f"PatternMatcher({self.patterns!r})"
