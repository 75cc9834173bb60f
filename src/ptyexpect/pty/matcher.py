"""Pattern matching for terminal output."""

from __future__ import annotations

import functools
import re
from collections.abc import Sequence

from ptyexpect.errors import InvalidPatternError


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def find_match(text: str, patterns: Sequence[str]) -> str | None:
    """Return the first pattern (in list order) that matches anywhere in text.

    Matching is a case-insensitive ``re.search``. The pattern string itself
    is returned, not the substring of ``text`` it matched. Patterns that fail
    to compile never match.
    """
    for pattern in patterns:
        try:
            compiled = _compile(pattern)
        except re.error:
            continue
        if compiled.search(text):
            return pattern
    return None


def validate_patterns(patterns: str | Sequence[str]) -> tuple[str, ...]:
    """Normalize patterns to a tuple and check that each one compiles.

    Raises:
        InvalidPatternError: If the list is empty or a pattern is not a
            valid regular expression.
    """
    if isinstance(patterns, str):
        patterns = (patterns,)
    result = tuple(patterns)
    if not result:
        raise InvalidPatternError("At least one pattern is required")
    for pattern in result:
        try:
            _compile(pattern)
        except re.error as e:
            raise InvalidPatternError(f"Invalid pattern {pattern!r}: {e}") from e
    return result
