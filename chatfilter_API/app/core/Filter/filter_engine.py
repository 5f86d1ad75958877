"""
filter_engine.py
Description: The filter engine context the host chat pipeline talks to.

Features:
- Startup: legacy-schema migration, then settings and both pattern lists are
  loaded from the structured store (falling back to the list files)
- Per-token predicates: is_blacklisted / is_whitelisted / is_message_too_long
- The `/filter` administration console

Notes:
- The engine reports matches only; combining blacklist, whitelist and mode into
  a pass/block decision is up to the caller.
- Public methods never raise on bad input or storage failures; problems are
  logged and reported through return values.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Union

from loguru import logger

from chatfilter_API.app.core.config import FilterSettings, load_filter_settings
from chatfilter_API.app.core.DB_Management.ModStorage_DB import (
    MemoryModStorage,
    ModStorage,
    SQLiteModStorage,
)
from chatfilter_API.app.core.Filter.console import CommandResult, ConsoleController
from chatfilter_API.app.core.Filter.exceptions import FileIOError, StorageIOError
from chatfilter_API.app.core.Filter.filter_config import ConfigState
from chatfilter_API.app.core.Filter.pattern_store import (
    BLACKLIST,
    LIST_NAMES,
    LOAD_ORDER_PRESERVE,
    WHITELIST,
    Matcher,
    PatternStore,
    is_too_long,
)
from chatfilter_API.app.core.Filter.persistence import PersistenceManager, default_data_dir


def _is_token(function_name: str, token: Any) -> bool:
    if not isinstance(token, str):
        logger.warning(f"filter: {function_name} called with a non-string argument ({type(token).__name__})")
        return False
    return True


class FilterEngine:
    """Owns the pattern lists, configuration and console of one filter instance."""

    def __init__(
        self,
        storage: ModStorage,
        data_dir: Union[str, Path],
        *,
        legacy_compat: bool = True,
        load_order: str = LOAD_ORDER_PRESERVE,
        match_timeout: Optional[float] = None,
        command_name: str = "filter",
    ) -> None:
        self.persistence = PersistenceManager(storage, data_dir, legacy_compat=legacy_compat)
        try:
            self.persistence.migrate_legacy()
        except StorageIOError as e:
            logger.error(f"filter: legacy settings migration failed: {e.message}")
        self.config = ConfigState.load(self.persistence)
        self.store = PatternStore(load_order=load_order)
        self.matcher = Matcher(self.store, timeout=match_timeout)
        for list_name in LIST_NAMES:
            count = self.store.replace(list_name, self.persistence.load(list_name))
            logger.info(f"Loaded {count} {list_name} entries")
        self.console_controller = ConsoleController(
            self.store,
            self.matcher,
            self.config,
            self.persistence,
            command_name=command_name,
        )

    # --------------- Host predicates ---------------
    def is_blacklisted(self, token: str) -> bool:
        if not _is_token("is_blacklisted", token):
            return False
        return self.matcher.match(BLACKLIST, token) is not None

    def is_whitelisted(self, token: str) -> bool:
        if not _is_token("is_whitelisted", token):
            return False
        return self.matcher.match(WHITELIST, token) is not None

    def is_message_too_long(self, token: str) -> bool:
        if not _is_token("is_message_too_long", token):
            return False
        return is_too_long(token, self.config.get_max_len())

    def get_mode(self) -> int:
        """1 for Enforcing, 0 for Permissive."""
        return int(self.config.get_mode())

    def get_max_len(self) -> int:
        return self.config.get_max_len()

    def get_last_match(self, list_name: str) -> str:
        if list_name not in LIST_NAMES:
            logger.warning(f"filter: get_last_match called for a non-existent list: {list_name}")
            return ""
        return self.matcher.last_match(list_name)

    def export_list(self, list_name: str, caller: Optional[str] = None) -> bool:
        """Write a list to its file; `caller` only labels the log line."""
        if list_name not in LIST_NAMES:
            logger.warning(f"filter: Tried to export a non-existent list: {list_name}")
            return False
        try:
            path = self.persistence.export(list_name, self.store.sources(list_name))
        except FileIOError:
            return False
        logger.info(f"filter: {caller or 'host'} exported {list_name} to {path}")
        return True

    # --------------- Administration ---------------
    def console(self, admin: str, param: str) -> CommandResult:
        return self.console_controller.execute(admin, param)

    def command_definition(self) -> dict:
        return self.console_controller.command_definition()


def create_filter_engine(
    settings: Optional[FilterSettings] = None,
    storage: Optional[ModStorage] = None,
) -> FilterEngine:
    """Build an engine from config.txt settings (or the ones given)."""
    settings = settings or load_filter_settings()
    if storage is None:
        try:
            storage = SQLiteModStorage(settings.storage_db_path, modname=settings.modname)
        except StorageIOError as e:
            logger.error(f"filter: {e.message}; settings and lists will only be kept in memory")
            storage = MemoryModStorage()
    return FilterEngine(
        storage,
        default_data_dir(settings.mod_data_dir, settings.modname),
        legacy_compat=settings.legacy_compat,
        load_order=settings.load_order,
        match_timeout=settings.match_timeout,
    )
