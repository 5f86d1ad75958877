"""
persistence.py
Description: Two-tier persistence for the filter's pattern lists and scalar settings.

Tiers:
- Structured store (primary): one mod-storage entry per list name holding a JSON
  array of pattern sources, plus integer entries for `mode` and `max_len`.
- Flat file (fallback and export target): `<data_dir>/<list name>`, UTF-8, one
  pattern per line, no escaping.

`save` only ever writes the structured store and `export` only ever writes the
file. `reload` drops the structured entry so the next load comes from the file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Sequence, Union

from loguru import logger

from chatfilter_API.app.core.DB_Management.ModStorage_DB import ModStorage
from chatfilter_API.app.core.Filter.exceptions import FileIOError, StorageDecodeError, StorageIOError
from chatfilter_API.app.core.Filter.pattern_store import PatternStore

MODE_KEY = "mode"
MAX_LEN_KEY = "max_len"

# Old key -> current key. `words` held the whole blacklist before whitelists existed.
LEGACY_INT_KEYS = {"maxLen": MAX_LEN_KEY}
LEGACY_STRING_KEYS = {"words": "blacklist"}

_LEGACY_PREFIX = "return "


def to_valid_json(raw: str) -> str:
    """Rewrite a legacy serialized table (`return {"a", "b"}`) into a JSON array.

    Values that are already JSON pass through unchanged.
    """
    text = raw.strip()
    if text.startswith(_LEGACY_PREFIX):
        text = text[len(_LEGACY_PREFIX):].lstrip()
    if text.endswith("}"):
        text = text[:-1] + "]"
    if text.startswith("{"):
        text = "[" + text[1:]
    return text


class PersistenceManager:
    def __init__(
        self,
        storage: ModStorage,
        data_dir: Union[str, Path],
        legacy_compat: bool = True,
    ) -> None:
        self.storage = storage
        self.data_dir = Path(data_dir)
        self.legacy_compat = legacy_compat

    def list_path(self, list_name: str) -> Path:
        return self.data_dir / list_name

    # --------------- Pattern lists ---------------
    def load(self, list_name: str) -> List[str]:
        """Return stored pattern sources for `list_name`, preferring the structured store."""
        try:
            in_storage = self.storage.contains(list_name)
        except StorageIOError as e:
            logger.warning(f"filter's mod storage is unavailable ({e}). Loading {list_name} from file...")
            in_storage = False
        if in_storage:
            try:
                return self._load_from_storage(list_name)
            except StorageDecodeError as e:
                logger.warning(f"filter's {e.message}")
                logger.info(f"Loading {list_name} from file...")
            except StorageIOError as e:
                logger.warning(f"{e.message}. Loading {list_name} from file...")
        try:
            return self._load_from_file(list_name)
        except FileIOError as e:
            logger.warning(f"{e.message}. Using empty {list_name}")
            return []

    def _load_from_storage(self, list_name: str) -> List[str]:
        try:
            raw = self.storage.get_string(list_name)
        except UnicodeDecodeError as e:
            raise StorageDecodeError(list_name, f"decode error: {e}") from e
        if not raw:
            return []
        if self.legacy_compat:
            raw = to_valid_json(raw)
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageDecodeError(list_name, str(e)) from e
        if not isinstance(doc, list):
            raise StorageDecodeError(list_name, "not an array")
        sources: List[str] = []
        for item in doc:
            if isinstance(item, str):
                sources.append(item)
            else:
                logger.warning(f"Found non-string element in filter's {list_name}: {item!r}")
        return sources

    def _load_from_file(self, list_name: str) -> List[str]:
        path = self.list_path(list_name)
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise FileIOError(f"Error opening filter's {list_name} file: {e}", path=str(path)) from e
        return [line for line in content.split("\n") if line]

    def save(self, list_name: str, sources: Sequence[str]) -> None:
        """Write `sources` (current scan order) as a JSON array to the structured store."""
        payload = json.dumps(list(sources), indent=4, ensure_ascii=False)
        try:
            self.storage.set_string(list_name, payload)
        except StorageIOError as e:
            logger.error(f"Failed to save filter's {list_name} to mod storage: {e}")
            raise

    def export(self, list_name: str, sources: Sequence[str]) -> Path:
        """Write `sources` one per line to the list's file and return its path."""
        path = self.list_path(list_name)
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="\n") as f:
                for source in sources:
                    f.write(source + "\n")
        except OSError as e:
            logger.error(f"Error opening filter's {list_name} file: {e}")
            raise FileIOError(f"Error opening filter's {list_name} file.", path=str(path)) from e
        return path

    def clear(self, list_name: str) -> None:
        self.storage.set_string(list_name, "")
        logger.info(f"Modstorage {list_name} erased")

    def reload(self, store: PatternStore, list_name: str) -> int:
        """Drop the structured entry and rebuild `list_name` from its file.

        Changes that were saved but never exported are discarded. Returns the
        number of patterns loaded.
        """
        self.clear(list_name)
        count = store.replace(list_name, self.load(list_name))
        logger.info(f"Loaded {count} entries")
        return count

    # --------------- Scalar settings ---------------
    def load_conf(self, key: str, default: int) -> int:
        try:
            if self.storage.contains(key):
                return self.storage.get_int(key)
        except StorageIOError as e:
            logger.warning(f"Could not read filter setting '{key}' ({e}); using {default}")
        except UnicodeDecodeError as e:
            logger.warning(f"filter setting '{key}' present in modstorage, but failed to decode ({e}); using {default}")
        return default

    def store_conf(self, key: str, value: int) -> None:
        try:
            self.storage.set_int(key, value)
        except StorageIOError as e:
            logger.error(f"Failed to store filter setting '{key}': {e}")
            raise

    # --------------- Legacy schema ---------------
    def migrate_legacy(self) -> List[str]:
        """Move values stored under legacy keys to the current keys.

        New keys are written before the legacy ones are cleared, so an interrupted
        migration is simply repeated on the next startup. A legacy value that
        cannot be decoded is left where it is. Returns the legacy keys that were
        migrated (empty once the store is on the current schema).
        """
        migrated: List[str] = []
        if not self.legacy_compat:
            return migrated
        for old_key, new_key in LEGACY_INT_KEYS.items():
            if self.storage.contains(old_key):
                try:
                    value = self.storage.get_int(old_key)
                except UnicodeDecodeError as e:
                    logger.warning(f"Skipping legacy filter setting '{old_key}': failed to decode ({e})")
                    continue
                self.storage.set_int(new_key, value)
                self.storage.set_string(old_key, "")
                migrated.append(old_key)
        for old_key, new_key in LEGACY_STRING_KEYS.items():
            if self.storage.contains(old_key):
                try:
                    value = self.storage.get_string(old_key)
                except UnicodeDecodeError as e:
                    logger.warning(f"Skipping legacy filter setting '{old_key}': failed to decode ({e})")
                    continue
                self.storage.set_string(new_key, value)
                self.storage.set_string(old_key, "")
                migrated.append(old_key)
        for old_key in migrated:
            logger.info(f"Migrated legacy filter setting '{old_key}'")
        return migrated


def default_data_dir(mod_data_dir: Union[str, Path], modname: str) -> Path:
    """Per-engine, per-mod directory holding the list files."""
    return Path(mod_data_dir) / modname


__all__ = [
    "MODE_KEY",
    "MAX_LEN_KEY",
    "LEGACY_INT_KEYS",
    "LEGACY_STRING_KEYS",
    "PersistenceManager",
    "default_data_dir",
    "to_valid_json",
]
