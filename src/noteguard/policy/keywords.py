"""
Keyword matching for text-based formula predicates.

A keyword pattern is either:
    - A regular expression written as `/body/flags`, e.g. `/spam+/i`
    - Space-separated words, all of which must appear in the text

An invalid regular expression never raises; the pattern simply doesn't
match.
"""

import re
from abc import ABC, abstractmethod
from functools import lru_cache

_REGEX_PATTERN = re.compile(r"^/(.+)/(.*)$")

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    # Meaningless for a single test against the whole text
    "g": 0,
    "u": 0,
    "y": 0,
}


class KeywordMatcher(ABC):
    """Decides whether a piece of text matches any of a list of patterns."""

    @abstractmethod
    def matches(self, text: str, patterns: list[str]) -> bool:
        """Return True if any pattern matches the text."""
        ...


class KeywordFilter(KeywordMatcher):
    """
    Default keyword matcher.

    Example:
        >>> KeywordFilter().matches("buy cheap pills", ["cheap pills"])
        True
        >>> KeywordFilter().matches("Hello", ["/^hello$/i"])
        True
    """

    def matches(self, text: str, patterns: list[str]) -> bool:
        if not patterns or text == "":
            return False
        return any(self._matches_one(text, pattern) for pattern in patterns)

    def _matches_one(self, text: str, pattern: str) -> bool:
        m = _REGEX_PATTERN.match(pattern)
        if m is None:
            words = pattern.split(" ")
            return all(word in text for word in words)

        compiled = _compile(m.group(1), m.group(2))
        if compiled is None:
            return False
        return compiled.search(text) is not None


@lru_cache(maxsize=256)
def _compile(body: str, flags: str) -> re.Pattern[str] | None:
    """Compile a `/body/flags` pattern, or None if it isn't valid."""
    re_flags = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            return None
        re_flags |= _REGEX_FLAGS[flag]
    try:
        return re.compile(body, re_flags)
    except re.error:
        return None
