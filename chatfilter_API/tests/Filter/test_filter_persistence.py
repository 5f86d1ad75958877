import json
import sqlite3

import pytest

from chatfilter_API.app.core.DB_Management.ModStorage_DB import MemoryModStorage, SQLiteModStorage
from chatfilter_API.app.core.Filter.exceptions import FileIOError, StorageIOError
from chatfilter_API.app.core.Filter.filter_engine import FilterEngine
from chatfilter_API.app.core.Filter.pattern_store import BLACKLIST, WHITELIST, PatternStore
from chatfilter_API.app.core.Filter.persistence import PersistenceManager, to_valid_json


class _BrokenStorage(MemoryModStorage):
    """Storage whose reads and writes fail like an unavailable backend."""

    def contains(self, key):
        raise StorageIOError("mod storage unavailable")

    def set_string(self, key, value):
        raise StorageIOError("mod storage unavailable")

    def set_int(self, key, value):
        raise StorageIOError("mod storage unavailable")


UNDECODABLE = b"\xff\xfe"


def _put_blob(db_path, key, value):
    conn = sqlite3.connect(db_path)
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO mod_storage (modname, key, value) VALUES (?, ?, ?)",
            ("filter", key, value),
        )
    conn.close()


@pytest.fixture
def sqlite_storage(tmp_path):
    db_path = str(tmp_path / "mod_storage.sqlite")
    return db_path, SQLiteModStorage(db_path)


@pytest.fixture
def persistence(mod_storage, data_dir):
    return PersistenceManager(mod_storage, data_dir)


@pytest.mark.unit
def test_to_valid_json_rewrites_legacy_serialized_table():
    assert to_valid_json('return {"kill", "die"}') == '["kill", "die"]'
    assert json.loads(to_valid_json('return {"a\\\\b"}')) == ["a\\b"]
    # Already-valid JSON is left alone
    assert to_valid_json('["x"]') == '["x"]'


@pytest.mark.unit
def test_load_prefers_structured_store_over_file(persistence, mod_storage, data_dir):
    (data_dir / BLACKLIST).write_text("from_file\n", encoding="utf-8")
    mod_storage.set_string(BLACKLIST, json.dumps(["from_store", "second"]))
    assert persistence.load(BLACKLIST) == ["from_store", "second"]


@pytest.mark.unit
def test_load_reads_file_when_store_has_no_entry(persistence, data_dir):
    (data_dir / WHITELIST).write_text("one\n\ntwo\nthree", encoding="utf-8")
    assert persistence.load(WHITELIST) == ["one", "two", "three"]


@pytest.mark.unit
def test_load_missing_file_gives_empty_list(persistence, log_records):
    assert persistence.load(BLACKLIST) == []
    assert any("Using empty blacklist" in r["message"] for r in log_records)


@pytest.mark.unit
def test_load_accepts_legacy_literal_form(persistence, mod_storage):
    mod_storage.set_string(BLACKLIST, 'return {"kill", "f+u+c+k"}')
    assert persistence.load(BLACKLIST) == ["kill", "f+u+c+k"]


@pytest.mark.unit
def test_legacy_literal_is_not_rewritten_without_compat(mod_storage, data_dir):
    persistence = PersistenceManager(mod_storage, data_dir, legacy_compat=False)
    (data_dir / BLACKLIST).write_text("fallback\n", encoding="utf-8")
    mod_storage.set_string(BLACKLIST, 'return {"kill"}')
    assert persistence.load(BLACKLIST) == ["fallback"]


@pytest.mark.unit
def test_load_falls_back_to_file_on_malformed_json(persistence, mod_storage, data_dir, log_records):
    (data_dir / BLACKLIST).write_text("fallback\n", encoding="utf-8")
    mod_storage.set_string(BLACKLIST, '["unterminated"')
    assert persistence.load(BLACKLIST) == ["fallback"]
    assert any("failed to parse" in r["message"] for r in log_records)


@pytest.mark.unit
def test_load_falls_back_to_file_when_value_is_not_an_array(persistence, mod_storage, data_dir):
    (data_dir / BLACKLIST).write_text("fallback\n", encoding="utf-8")
    mod_storage.set_string(BLACKLIST, '{"kill": true}')
    # The legacy rewrite turns braces into brackets, which no longer parses -> file tier
    assert persistence.load(BLACKLIST) == ["fallback"]
    mod_storage.set_string(BLACKLIST, '"just a string"')
    assert persistence.load(BLACKLIST) == ["fallback"]


@pytest.mark.unit
def test_non_string_elements_are_skipped_individually(persistence, mod_storage, log_records):
    mod_storage.set_string(BLACKLIST, json.dumps(["a", 1, None, "b", ["c"]]))
    assert persistence.load(BLACKLIST) == ["a", "b"]
    warnings = [r for r in log_records if "non-string element" in r["message"]]
    assert len(warnings) == 3


@pytest.mark.unit
def test_unavailable_store_falls_back_to_file(data_dir):
    (data_dir / BLACKLIST).write_text("fallback\n", encoding="utf-8")
    persistence = PersistenceManager(_BrokenStorage(), data_dir)
    assert persistence.load(BLACKLIST) == ["fallback"]


@pytest.mark.unit
def test_save_writes_json_array_to_store_only(persistence, mod_storage, data_dir):
    persistence.save(BLACKLIST, ["newest", "oldest"])
    assert json.loads(mod_storage.get_string(BLACKLIST)) == ["newest", "oldest"]
    assert not (data_dir / BLACKLIST).exists()


@pytest.mark.unit
def test_save_keeps_non_ascii_sources(persistence, mod_storage):
    persistence.save(WHITELIST, ["привет", r"\p{Han}+"])
    assert persistence.load(WHITELIST) == ["привет", r"\p{Han}+"]


@pytest.mark.unit
def test_save_failure_raises_storage_io_error(data_dir):
    persistence = PersistenceManager(_BrokenStorage(), data_dir)
    with pytest.raises(StorageIOError):
        persistence.save(BLACKLIST, ["x"])


@pytest.mark.unit
def test_export_writes_one_pattern_per_line(persistence, data_dir, mod_storage):
    path = persistence.export(BLACKLIST, ["b", "a"])
    assert path == data_dir / BLACKLIST
    assert path.read_text(encoding="utf-8") == "b\na\n"
    assert not mod_storage.contains(BLACKLIST)


@pytest.mark.unit
def test_export_creates_missing_data_dir(mod_storage, tmp_path):
    persistence = PersistenceManager(mod_storage, tmp_path / "new" / "filter")
    persistence.export(WHITELIST, ["x"])
    assert (tmp_path / "new" / "filter" / WHITELIST).read_text(encoding="utf-8") == "x\n"


@pytest.mark.unit
def test_export_failure_raises_file_io_error(mod_storage, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    persistence = PersistenceManager(mod_storage, blocker)
    with pytest.raises(FileIOError):
        persistence.export(BLACKLIST, ["x"])


@pytest.mark.unit
def test_reload_discards_store_entry_and_restores_from_file(persistence, mod_storage, data_dir):
    store = PatternStore()
    persistence.export(BLACKLIST, ["file_a", "file_b"])
    store.add(BLACKLIST, "unexported")
    persistence.save(BLACKLIST, store.sources(BLACKLIST))

    count = persistence.reload(store, BLACKLIST)

    assert count == 2
    assert store.sources(BLACKLIST) == ["file_a", "file_b"]
    assert not mod_storage.contains(BLACKLIST)


@pytest.mark.unit
def test_reload_skips_invalid_file_lines(persistence, data_dir):
    (data_dir / BLACKLIST).write_text("good\n(bad\nalso good\n", encoding="utf-8")
    store = PatternStore()
    assert persistence.reload(store, BLACKLIST) == 2
    assert store.sources(BLACKLIST) == ["good", "also good"]


@pytest.mark.unit
def test_conf_round_trip_and_defaults(persistence, mod_storage):
    assert persistence.load_conf("max_len", 1024) == 1024
    persistence.store_conf("max_len", 80)
    assert persistence.load_conf("max_len", 1024) == 80
    assert mod_storage.get_int("max_len") == 80


@pytest.mark.unit
def test_migration_moves_legacy_keys_once(data_dir):
    storage = MemoryModStorage({"maxLen": 300, "words": 'return {"kill"}'})
    persistence = PersistenceManager(storage, data_dir)

    assert persistence.migrate_legacy() == ["maxLen", "words"]
    assert not storage.contains("maxLen")
    assert not storage.contains("words")
    assert storage.get_int("max_len") == 300
    assert persistence.load(BLACKLIST) == ["kill"]

    assert persistence.migrate_legacy() == []
    assert storage.get_int("max_len") == 300


@pytest.mark.unit
def test_migration_disabled_without_compat(data_dir):
    storage = MemoryModStorage({"maxLen": 300})
    persistence = PersistenceManager(storage, data_dir, legacy_compat=False)
    assert persistence.migrate_legacy() == []
    assert storage.contains("maxLen")


@pytest.mark.integration
def test_undecodable_list_entry_falls_back_to_file(sqlite_storage, data_dir, log_records):
    db_path, storage = sqlite_storage
    _put_blob(db_path, BLACKLIST, UNDECODABLE)
    (data_dir / BLACKLIST).write_text("fromfile\n", encoding="utf-8")

    assert PersistenceManager(storage, data_dir).load(BLACKLIST) == ["fromfile"]
    assert any(r["level"].name == "WARNING" and "failed to parse" in r["message"] for r in log_records)
    assert FilterEngine(storage, data_dir).is_blacklisted("fromfile") is True


@pytest.mark.integration
@pytest.mark.parametrize("key,default", [("mode", 1), ("max_len", 1024)])
def test_undecodable_setting_reads_as_default(sqlite_storage, data_dir, log_records, key, default):
    db_path, storage = sqlite_storage
    _put_blob(db_path, key, UNDECODABLE)
    assert PersistenceManager(storage, data_dir).load_conf(key, default) == default
    assert any("failed to decode" in r["message"] for r in log_records)


@pytest.mark.integration
@pytest.mark.parametrize("legacy_key", ["maxLen", "words"])
def test_undecodable_legacy_value_is_left_in_place(sqlite_storage, data_dir, log_records, legacy_key):
    db_path, storage = sqlite_storage
    _put_blob(db_path, legacy_key, UNDECODABLE)
    persistence = PersistenceManager(storage, data_dir)

    assert persistence.migrate_legacy() == []
    assert storage.contains(legacy_key)
    assert not storage.contains("max_len")
    assert not storage.contains(BLACKLIST)
    assert any(f"Skipping legacy filter setting '{legacy_key}'" in r["message"] for r in log_records)


@pytest.mark.integration
@pytest.mark.parametrize("key", ["mode", "max_len", "maxLen", "words"])
def test_engine_starts_over_undecodable_values(sqlite_storage, data_dir, key):
    db_path, storage = sqlite_storage
    _put_blob(db_path, key, UNDECODABLE)
    engine = FilterEngine(storage, data_dir)
    assert engine.get_mode() == 1
    assert engine.get_max_len() == 1024
    assert engine.console("admin", "dump") == (True, "blacklist contents:")
