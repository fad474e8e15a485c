# ABOUTME: Cached regex compilation with a bounded per-match timeout.
# ABOUTME: Invalid patterns and timeouts downgrade to non-match and are logged, never raised.

import threading

import regex
import structlog

from feed_rules.config import get_settings

log = structlog.get_logger()


class RegexMatcher:
    """Compiles author-supplied patterns on demand and matches them under a timeout.

    Compiled patterns are cached by (pattern, case_sensitive). The cache is
    append-only: it grows with the number of distinct patterns in stored
    rules and is never evicted. Lookups are lock-free; insertion takes a lock
    so each key is compiled at most once.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else get_settings().regex_timeout
        self._cache: dict[tuple[str, bool], regex.Pattern] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def compile(self, pattern: str, case_sensitive: bool) -> regex.Pattern:
        """Get or compile a pattern. Raises regex.error for invalid syntax."""
        key = (pattern, case_sensitive)
        compiled = self._cache.get(key)
        if compiled is not None:
            return compiled

        with self._lock:
            compiled = self._cache.get(key)
            if compiled is None:
                flags = regex.VERSION0 if case_sensitive else regex.VERSION0 | regex.IGNORECASE
                compiled = regex.compile(pattern, flags)
                self._cache[key] = compiled
        return compiled

    def is_match(self, text: str, pattern: str, case_sensitive: bool = False) -> bool:
        """Search text for pattern, returning False on bad pattern or timeout."""
        if not pattern or not pattern.strip():
            log.warning("regex_empty_pattern")
            return False

        try:
            compiled = self.compile(pattern, case_sensitive)
        except regex.error as e:
            log.error("regex_invalid_pattern", pattern=pattern, error=str(e))
            return False

        try:
            return compiled.search(text, timeout=self.timeout) is not None
        except TimeoutError:
            log.warning("regex_timeout", pattern=pattern, timeout=self.timeout, length=len(text))
            return False

    @staticmethod
    def validate(pattern: str) -> str | None:
        """Return a syntax error message for pattern, or None if it compiles."""
        try:
            regex.compile(pattern, regex.VERSION0)
        except regex.error as e:
            return str(e)
        return None
