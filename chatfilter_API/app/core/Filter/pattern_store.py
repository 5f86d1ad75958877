"""
pattern_store.py
Description: Ordered regex rule lists (blacklist / whitelist) and the matcher that scans them.

Notes:
- Lists are most-recently-added-first: `add` inserts at the front, and `match`
  returns the first pattern (in list order) that finds a hit, so list order is
  the tie-break between overlapping rules.
- Patterns compare equal by their source text, never by compiled form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import regex
from loguru import logger

from chatfilter_API.app.core.Filter.exceptions import InvalidPatternError

BLACKLIST = "blacklist"
WHITELIST = "whitelist"
LIST_NAMES = (BLACKLIST, WHITELIST)

# Case-insensitive, Unicode-aware; the `regex` engine adds \p{...} property classes.
PATTERN_FLAGS = regex.IGNORECASE | regex.UNICODE

LOAD_ORDER_PRESERVE = "preserve"
LOAD_ORDER_REVERSE = "reverse"


@dataclass(frozen=True)
class Pattern:
    source: str
    compiled: regex.Pattern = field(compare=False, repr=False)


def compile_pattern(source: str) -> Pattern:
    """Compile `source` into a Pattern or raise InvalidPatternError with the engine's diagnostic."""
    try:
        return Pattern(source=source, compiled=regex.compile(source, PATTERN_FLAGS))
    except regex.error as e:
        raise InvalidPatternError(source, str(e)) from e


class PatternStore:
    """Owns one ordered pattern list per list name."""

    def __init__(self, load_order: str = LOAD_ORDER_PRESERVE) -> None:
        if load_order not in (LOAD_ORDER_PRESERVE, LOAD_ORDER_REVERSE):
            raise ValueError(f"Unknown load order: {load_order}")
        self.load_order = load_order
        self._lists: Dict[str, List[Pattern]] = {name: [] for name in LIST_NAMES}

    def _get(self, list_name: str) -> List[Pattern]:
        try:
            return self._lists[list_name]
        except KeyError:
            raise KeyError(f"Unknown pattern list: {list_name}") from None

    def patterns(self, list_name: str) -> List[Pattern]:
        """Return a copy of the list in current (scan) order."""
        return list(self._get(list_name))

    def sources(self, list_name: str) -> List[str]:
        return [p.source for p in self._get(list_name)]

    def add(self, list_name: str, source: str) -> Pattern:
        """Compile and prepend `source`; the list is untouched when compilation fails."""
        pattern = compile_pattern(source)
        self._get(list_name).insert(0, pattern)
        return pattern

    def remove(self, list_name: str, source: str) -> int:
        """Remove every pattern whose source equals `source`; return how many were removed."""
        current = self._get(list_name)
        kept = [p for p in current if p.source != source]
        removed = len(current) - len(kept)
        current[:] = kept
        return removed

    def replace(self, list_name: str, sources: Iterable[str]) -> int:
        """Replace the whole list from stored sources, skipping those that do not compile.

        Stored order is scan order under LOAD_ORDER_PRESERVE. LOAD_ORDER_REVERSE
        front-inserts each source in turn, which reverses it.
        """
        loaded: List[Pattern] = []
        for source in sources:
            try:
                pattern = compile_pattern(source)
            except InvalidPatternError as e:
                logger.warning(f"filter: Regex error: {e.reason}\nSkipping invalid regex: {source}")
                continue
            loaded.append(pattern)
        if self.load_order == LOAD_ORDER_REVERSE:
            loaded.reverse()
        self._get(list_name)[:] = loaded
        return len(loaded)


class Matcher:
    """Scans a PatternStore list for the first pattern that matches a token."""

    def __init__(self, store: PatternStore, timeout: Optional[float] = None) -> None:
        self.store = store
        self.timeout = timeout
        self._last_match: Dict[str, str] = {name: "" for name in LIST_NAMES}

    def match(self, list_name: str, token: str) -> Optional[Pattern]:
        for pattern in self.store.patterns(list_name):
            try:
                hit = pattern.compiled.search(token, timeout=self.timeout)
            except TimeoutError:
                logger.warning(f"filter: regex '{pattern.source}' timed out on a {len(token)} character token")
                continue
            if hit:
                self._last_match[list_name] = pattern.source
                return pattern
        return None

    def last_match(self, list_name: str) -> str:
        """Source of the most recent hit on `list_name`, or '' if nothing matched since startup."""
        if list_name not in self._last_match:
            raise KeyError(f"Unknown pattern list: {list_name}")
        return self._last_match[list_name]


def is_too_long(token: str, max_len: int) -> bool:
    return len(token) > max_len
