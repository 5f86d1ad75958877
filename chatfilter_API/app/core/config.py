# config.py
# Description: Configuration settings for the chat filter engine.
#
# Imports
import configparser
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

#
# 3rd-party Libraries
from dotenv import load_dotenv
from loguru import logger

#
########################################################################################################################
#
# Functions:

# __file__ is .../chatfilter_API/app/core/config.py; the package root holds Config_Files/
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
CONFIG_SECTION = "Filter"

# Setting name -> environment variable that overrides it
_ENV_OVERRIDES = {
    "modname": "CHATFILTER_MODNAME",
    "mod_data_dir": "CHATFILTER_MOD_DATA_DIR",
    "storage_db_path": "CHATFILTER_STORAGE_DB",
    "legacy_compat": "CHATFILTER_LEGACY_COMPAT",
    "load_order": "CHATFILTER_LOAD_ORDER",
    "match_timeout": "CHATFILTER_MATCH_TIMEOUT",
    "log_level": "CHATFILTER_LOG_LEVEL",
    "audit_log_file": "CHATFILTER_AUDIT_LOG",
}


@dataclass(frozen=True)
class FilterSettings:
    modname: str = "filter"
    mod_data_dir: str = "Databases/mod_data"
    storage_db_path: str = "Databases/mod_storage.sqlite"
    legacy_compat: bool = True
    load_order: str = "preserve"
    match_timeout: Optional[float] = None
    log_level: str = "INFO"
    audit_log_file: Optional[str] = None


def get_config_path() -> Path:
    """Return config.txt, honouring CHATFILTER_CONFIG_PATH."""
    override = os.getenv("CHATFILTER_CONFIG_PATH")
    if override:
        return Path(override).expanduser()
    return PROJECT_ROOT / "Config_Files" / "config.txt"


def _load_env_files() -> None:
    """Load .env/.ENV from the package root or Config_Files; real environment variables win."""
    candidate_env_paths = [
        PROJECT_ROOT / '.env',
        PROJECT_ROOT / '.ENV',
        PROJECT_ROOT / 'Config_Files' / '.env',
        PROJECT_ROOT / 'Config_Files' / '.ENV',
    ]
    for p in candidate_env_paths:
        if p.exists():
            logger.info(f"Loading environment variables from: {str(p)}")
            load_dotenv(dotenv_path=str(p), override=False)


@lru_cache(maxsize=1)
def load_comprehensive_config() -> configparser.ConfigParser:
    _load_env_files()
    config_path_obj = get_config_path()
    config_parser = configparser.ConfigParser()
    if not config_path_obj.exists():
        logger.warning(f"Config file not found at {str(config_path_obj)}; using built-in filter defaults")
        return config_parser
    try:
        config_parser.read(config_path_obj, encoding="utf-8")
    except configparser.Error as e:
        logger.error(f"Error parsing config file {str(config_path_obj)}: {e}")
        raise
    logger.debug(f"load_comprehensive_config(): Sections found in config: {config_parser.sections()}")
    return config_parser


def _as_bool(val: object, default: bool) -> bool:
    if val is None:
        return default
    s = str(val).strip().lower()
    if s in ("1", "true", "yes", "on", "y"):  # truthy
        return True
    if s in ("0", "false", "no", "off", "n"):
        return False
    return default


def _as_timeout(val: Optional[str]) -> Optional[float]:
    if val is None or not str(val).strip():
        return None
    try:
        timeout = float(val)
    except ValueError:
        logger.warning(f"Ignoring invalid match_timeout value: {val!r}")
        return None
    return timeout if timeout > 0 else None


def _anchor(path: Optional[str]) -> Optional[str]:
    """Resolve relative paths against the package root."""
    if not path:
        return None
    pp = Path(path).expanduser()
    if pp.is_absolute():
        return str(pp)
    return str((PROJECT_ROOT / pp).resolve())


@lru_cache(maxsize=1)
def load_filter_settings() -> FilterSettings:
    parser = load_comprehensive_config()
    raw = {}
    if parser.has_section(CONFIG_SECTION):
        raw = {k: v for k, v in parser.items(CONFIG_SECTION)}
    for key, env_name in _ENV_OVERRIDES.items():
        env_val = os.getenv(env_name)
        if env_val is not None:
            raw[key] = env_val

    defaults = FilterSettings()
    load_order = str(raw.get("load_order", defaults.load_order)).strip().lower()
    if load_order not in ("preserve", "reverse"):
        logger.warning(f"Unknown load_order '{load_order}', using '{defaults.load_order}'")
        load_order = defaults.load_order

    settings = FilterSettings(
        modname=str(raw.get("modname") or defaults.modname).strip(),
        mod_data_dir=_anchor(raw.get("mod_data_dir") or defaults.mod_data_dir),
        storage_db_path=_anchor(raw.get("storage_db_path") or defaults.storage_db_path),
        legacy_compat=_as_bool(raw.get("legacy_compat"), defaults.legacy_compat),
        load_order=load_order,
        match_timeout=_as_timeout(raw.get("match_timeout")),
        log_level=str(raw.get("log_level") or defaults.log_level).strip().upper(),
        audit_log_file=_anchor(raw.get("audit_log_file")),
    )
    logger.debug(f"Filter settings: {settings}")
    return settings


def clear_config_cache() -> None:
    """Clear cached configuration loaders (for tests or dynamic reloads)."""
    load_comprehensive_config.cache_clear()
    load_filter_settings.cache_clear()

#
# End of config.py
#######################################################################################################################
