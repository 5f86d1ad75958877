"""
console.py
Description: The `/filter` administration console.

One invocation = one command line from one administrator. The first token picks
the handler from the dispatch table; every handler returns a CommandResult and
malformed input is answered with a usage string instead of an exception.
Commands that change lists or settings write one audit record naming the
administrator and the change.
"""

from __future__ import annotations

import re
from functools import partial
from typing import Callable, Dict, List, NamedTuple, Sequence

from loguru import logger

from chatfilter_API.app.core.Filter.exceptions import (
    FileIOError,
    InvalidPatternError,
    StorageIOError,
    UsageError,
)
from chatfilter_API.app.core.Filter.filter_config import MAX_LEN_LIMIT, ConfigState, FilterMode
from chatfilter_API.app.core.Filter.pattern_store import BLACKLIST, LIST_NAMES, WHITELIST, Matcher, PatternStore
from chatfilter_API.app.core.Filter.persistence import PersistenceManager
from chatfilter_API.app.core.Logging.log_context import get_audit_logger, log_context

COMMAND_NAME = "filter"
COMMAND_PRIVILEGE = "filtering"

_UNSIGNED = re.compile(r"[0-9]+")


class CommandResult(NamedTuple):
    success: bool
    message: str


Handler = Callable[[str, List[str]], CommandResult]


HELP_TEXT = """The filter works by matching regex patterns from lists with each message to try and find the match.
If match is found in blacklist, the message is blocked.
It passes if no match is found in blacklist, or if a match is found in whitelist (in which case the blacklist isn't even checked)

List of possible commands:
export <list_name>: Export given list to a file in mod folder
getenforce: Get the current filter mode
get_max_len: Get currently set maximum message length
setenforce <mode>: Set new filter mode
set_max_len <max_len>: Set new maximum message length
help: Print this help menu
dump: Dump current blacklist to chat
dumpwl: Dump current whitelist to chat
last: Get the regex pattern that was last matched from blacklist
lastwl: Get the regex pattern that was last matched from whitelist
reload: Reload blacklist from file in mod folder
reloadwl: Reload whitelist from file in mod folder
addwl <regex>: Add regex to whitelist
rmwl <regex>: Remove regex from whitelist
add <regex>: Add regex to blacklist
rm <regex>: Remove regex from blacklist"""


class ConsoleController:
    def __init__(
        self,
        store: PatternStore,
        matcher: Matcher,
        config: ConfigState,
        persistence: PersistenceManager,
        command_name: str = COMMAND_NAME,
    ) -> None:
        self.store = store
        self.matcher = matcher
        self.config = config
        self.persistence = persistence
        self.command_name = command_name
        self._handlers: Dict[str, Handler] = {
            "export": self._cmd_export,
            "getenforce": self._cmd_getenforce,
            "get_max_len": self._cmd_get_max_len,
            "setenforce": self._cmd_setenforce,
            "set_max_len": self._cmd_set_max_len,
            "help": self._cmd_help,
            "dump": partial(self._cmd_dump, BLACKLIST),
            "dumpwl": partial(self._cmd_dump, WHITELIST),
            "last": partial(self._cmd_last, BLACKLIST),
            "lastwl": partial(self._cmd_last, WHITELIST),
            "reload": partial(self._cmd_reload, BLACKLIST),
            "reloadwl": partial(self._cmd_reload, WHITELIST),
            "add": partial(self._cmd_add, BLACKLIST),
            "addwl": partial(self._cmd_add, WHITELIST),
            "rm": partial(self._cmd_rm, BLACKLIST),
            "rmwl": partial(self._cmd_rm, WHITELIST),
        }

    @property
    def commands(self) -> List[str]:
        return list(self._handlers)

    def command_definition(self) -> Dict[str, object]:
        """Chat-command registration record for the host."""
        return {
            "name": self.command_name,
            "privs": [COMMAND_PRIVILEGE],
            "description": "filter management console",
            "params": "<command> <args>",
            "func": self.execute,
        }

    def _usage(self, text: str) -> str:
        return f"Usage: /{self.command_name} {text}"

    def execute(self, admin: str, param: str) -> CommandResult:
        """Run one raw command line (everything after `/filter`)."""
        return self.dispatch(admin, (param or "").split())

    def dispatch(self, admin: str, tokens: Sequence[str]) -> CommandResult:
        general_usage = f"{self._usage('<command> <args>')}\nCheck /{self.command_name} help"
        if not tokens:
            return CommandResult(False, general_usage)
        handler = self._handlers.get(tokens[0])
        if handler is None:
            return CommandResult(False, f"Unknown command. {general_usage}")
        with log_context(admin=admin, command=tokens[0]):
            try:
                return handler(admin, list(tokens[1:]))
            except UsageError as e:
                return CommandResult(False, e.message)

    @staticmethod
    def _audit(admin: str, command: str, message: str) -> None:
        get_audit_logger(admin, command).info(message)

    # --------------- Handlers ---------------
    def _cmd_export(self, admin: str, args: List[str]) -> CommandResult:
        if len(args) != 1 or args[0] not in LIST_NAMES:
            raise UsageError(self._usage("export [ blacklist | whitelist ]"))
        list_name = args[0]
        try:
            self.persistence.export(list_name, self.store.sources(list_name))
        except FileIOError as e:
            return CommandResult(False, e.message)
        logger.info(f"filter: {admin} exported {list_name} to file")
        return CommandResult(True, f"{list_name} exported successfully to file")

    def _cmd_getenforce(self, admin: str, args: List[str]) -> CommandResult:
        return CommandResult(True, self.config.get_mode().label)

    def _cmd_get_max_len(self, admin: str, args: List[str]) -> CommandResult:
        return CommandResult(True, str(self.config.get_max_len()))

    def _cmd_setenforce(self, admin: str, args: List[str]) -> CommandResult:
        mode = FilterMode.parse(args[0]) if len(args) == 1 else None
        if mode is None:
            raise UsageError(self._usage("setenforce [ Enforcing | Permissive | 1 | 0 ]"))
        try:
            changed = self.config.set_mode(mode)
        except StorageIOError as e:
            self._audit(admin, "setenforce", f"filter: {admin} set mode to {mode.label} (not saved)")
            return CommandResult(False, f"New filter mode: {mode.label}, but saving it failed: {e.message}")
        if not changed:
            return CommandResult(False, f"Filter mode already set to {mode.label}")
        self._audit(admin, "setenforce", f"filter: {admin} set mode to {mode.label}")
        return CommandResult(True, f"New filter mode: {mode.label}")

    def _cmd_set_max_len(self, admin: str, args: List[str]) -> CommandResult:
        usage = self._usage("set_max_len <max_len: number>")
        if len(args) != 1 or not _UNSIGNED.fullmatch(args[0]):
            raise UsageError(usage)
        max_len = int(args[0])
        if max_len > MAX_LEN_LIMIT:
            raise UsageError(usage)
        try:
            changed = self.config.set_max_len(max_len)
        except StorageIOError as e:
            self._audit(admin, "set_max_len", f"filter: {admin} set max_len to {max_len} (not saved)")
            return CommandResult(False, f"Maximum message length changed, but saving it failed: {e.message}")
        if not changed:
            return CommandResult(False, f"Maximum message length was already {max_len}")
        self._audit(admin, "set_max_len", f"filter: {admin} set max_len to {max_len}")
        return CommandResult(True, "Maximum message length changed")

    def _cmd_help(self, admin: str, args: List[str]) -> CommandResult:
        return CommandResult(True, HELP_TEXT)

    def _cmd_dump(self, list_name: str, admin: str, args: List[str]) -> CommandResult:
        lines = [f"{list_name} contents:"]
        lines.extend(f'"{source}"' for source in self.store.sources(list_name))
        return CommandResult(True, "\n".join(lines))

    def _cmd_last(self, list_name: str, admin: str, args: List[str]) -> CommandResult:
        last = self.matcher.last_match(list_name)
        if not last:
            return CommandResult(False, f"No {list_name} regex was matched since server startup.")
        return CommandResult(True, f"Last {list_name} regex: {last}")

    def _cmd_reload(self, list_name: str, admin: str, args: List[str]) -> CommandResult:
        command = "reload" if list_name == BLACKLIST else "reloadwl"
        try:
            count = self.persistence.reload(self.store, list_name)
        except StorageIOError as e:
            logger.error(f"filter: {admin} could not reload {list_name}: {e.message}")
            return CommandResult(False, f"Could not erase {list_name} from mod storage: {e.message}")
        self._audit(admin, command, f"filter: {admin} reloaded {list_name} from file ({count} entries)")
        return CommandResult(True, f"Reloaded {count} {list_name} entries from file")

    def _cmd_add(self, list_name: str, admin: str, args: List[str]) -> CommandResult:
        command = "add" if list_name == BLACKLIST else "addwl"
        if len(args) != 1:
            raise UsageError(self._usage("add|addwl <regex>"))
        source = args[0]
        try:
            self.store.add(list_name, source)
        except InvalidPatternError as e:
            return CommandResult(False, e.message)
        self._audit(admin, command, f"filter: {admin} added '{source}' to {list_name}")
        try:
            self.persistence.save(list_name, self.store.sources(list_name))
        except StorageIOError as e:
            return CommandResult(False, f"Added '{source}' to {list_name}, but saving it failed: {e.message}")
        return CommandResult(True, f"Added '{source}' to {list_name}")

    def _cmd_rm(self, list_name: str, admin: str, args: List[str]) -> CommandResult:
        command = "rm" if list_name == BLACKLIST else "rmwl"
        if len(args) != 1:
            raise UsageError(self._usage("rm|rmwl <regex>"))
        source = args[0]
        count = self.store.remove(list_name, source)
        self._audit(
            admin,
            command,
            f"filter: {admin} removed '{source}' from {list_name}. Affected {count} entries",
        )
        if count:
            try:
                self.persistence.save(list_name, self.store.sources(list_name))
            except StorageIOError as e:
                return CommandResult(False, f"Removed {count} entries from {list_name}, but saving failed: {e.message}")
        return CommandResult(True, f"Removed {count} entries from {list_name}")
