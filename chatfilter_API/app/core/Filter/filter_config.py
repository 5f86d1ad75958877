"""
filter_config.py
Description: Runtime filter configuration (mode and maximum message length).

Both values live in memory and are written through to the structured store on
every change; the in-memory value stays authoritative if that write fails.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional

from chatfilter_API.app.core.Filter.persistence import MAX_LEN_KEY, MODE_KEY, PersistenceManager

DEFAULT_MAX_LEN = 1024
# Stored as an unsigned 32-bit value by the host.
MAX_LEN_LIMIT = 2 ** 32 - 1


class FilterMode(IntEnum):
    PERMISSIVE = 0
    ENFORCING = 1

    @property
    def label(self) -> str:
        return "Enforcing" if self is FilterMode.ENFORCING else "Permissive"

    @classmethod
    def parse(cls, text: str) -> Optional["FilterMode"]:
        """Accept `1`/`0`/`Enforcing`/`Permissive` in any case; None for anything else."""
        value = (text or "").strip().lower()
        if value in ("1", "enforcing"):
            return cls.ENFORCING
        if value in ("0", "permissive"):
            return cls.PERMISSIVE
        return None


class ConfigState:
    def __init__(
        self,
        persistence: PersistenceManager,
        mode: FilterMode = FilterMode.ENFORCING,
        max_len: int = DEFAULT_MAX_LEN,
    ) -> None:
        self._persistence = persistence
        self._mode = FilterMode(mode)
        self._max_len = int(max_len)

    @classmethod
    def load(cls, persistence: PersistenceManager) -> "ConfigState":
        """Build from stored values, falling back to Enforcing / 1024."""
        stored_mode = persistence.load_conf(MODE_KEY, int(FilterMode.ENFORCING))
        # Any non-zero stored mode has always meant enforcing.
        mode = FilterMode.ENFORCING if stored_mode else FilterMode.PERMISSIVE
        max_len = persistence.load_conf(MAX_LEN_KEY, DEFAULT_MAX_LEN)
        if max_len < 0:
            max_len = DEFAULT_MAX_LEN
        return cls(persistence, mode=mode, max_len=max_len)

    def get_mode(self) -> FilterMode:
        return self._mode

    def get_max_len(self) -> int:
        return self._max_len

    def set_mode(self, mode: FilterMode) -> bool:
        """Switch mode and persist it. Returns False when `mode` is already active.

        Raises StorageIOError if the write fails; the new mode is kept in memory.
        """
        mode = FilterMode(mode)
        if mode == self._mode:
            return False
        self._mode = mode
        self._persistence.store_conf(MODE_KEY, int(mode))
        return True

    def set_max_len(self, max_len: int) -> bool:
        """Change the maximum message length and persist it. Returns False when unchanged."""
        if max_len < 0 or max_len > MAX_LEN_LIMIT:
            raise ValueError(f"max_len out of range: {max_len}")
        if max_len == self._max_len:
            return False
        self._max_len = max_len
        self._persistence.store_conf(MAX_LEN_KEY, max_len)
        return True
