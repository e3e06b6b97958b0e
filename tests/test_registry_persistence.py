import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from connhub import (  # noqa: E402
    Connection,
    ConnectionRegistry,
    Context,
    DuckDBPersistence,
    FlushPolicy,
    InMemoryPersistence,
    JsonFilePersistence,
    PersistenceAdapter,
    PersistenceFailureError,
    RegistrySettings,
    dump_state,
)


class _BrokenSaveAdapter(InMemoryPersistence):
    def save(self, document: dict) -> None:
        raise OSError("read-only file system")


class _BrokenLoadAdapter(PersistenceAdapter):
    def load(self):
        raise OSError("permission denied")

    def save(self, document: dict) -> None:
        raise AssertionError("save should not be called")


def _populate(registry: ConnectionRegistry) -> None:
    registry.upsert_connection(
        Connection.with_contexts(
            "123-connection",
            "http://smilecdr/fhir",
            [Context("test", "Patient")],
        )
    )
    registry.upsert_connection(Connection(name="connection-2", endpoint="http://smilecdr/fhir"))
    registry.set_current_connection("123-connection")
    registry.upsert_context("123-connection", Context("test-2", "Patient", "A Test Patient"))


def test_every_mutation_is_flushed_by_default() -> None:
    store = InMemoryPersistence()
    registry = ConnectionRegistry(store)

    _populate(registry)

    assert store.save_count == 4
    assert store.load() == dump_state(registry.snapshot())


def test_rejected_operations_do_not_flush() -> None:
    store = InMemoryPersistence()
    registry = ConnectionRegistry(store)
    registry.upsert_connection(Connection(name="c1", endpoint="http://a"))

    registry.delete_connection("missing")
    registry.set_current_connection("c1")
    registry.set_current_connection("c1")

    assert store.save_count == 2


def test_registry_hydrates_from_previous_session(tmp_path: Path) -> None:
    store = JsonFilePersistence(tmp_path / "connections.json")
    with ConnectionRegistry(store) as registry:
        _populate(registry)
        expected = registry.snapshot()

    restored = ConnectionRegistry(store)

    assert restored.snapshot() == expected
    assert restored.get_current_connection().context_keys() == ["Patient/test", "Patient/test-2"]


def test_hydrate_then_close_does_not_rewrite(tmp_path: Path) -> None:
    store = InMemoryPersistence()
    _populate(ConnectionRegistry(store))
    saves = store.save_count

    ConnectionRegistry(store).close()

    assert store.save_count == saves


def test_duckdb_backed_registry_round_trip(tmp_path: Path) -> None:
    store = DuckDBPersistence(db_path=tmp_path / "registry.duckdb")
    registry = ConnectionRegistry(store)
    _populate(registry)
    registry.delete_connection("123-connection")
    registry.close()

    restored = ConnectionRegistry(store)

    assert [conn.name for conn in restored.get_all_connections()] == ["connection-2"]
    assert restored.get_current_connection() is None


@pytest.mark.parametrize("backend", ["json", "duckdb"])
def test_reopened_registry_keeps_listing_order(tmp_path: Path, backend: str) -> None:
    if backend == "json":
        store = JsonFilePersistence(tmp_path / "connections.json")
    else:
        store = DuckDBPersistence(db_path=tmp_path / "registry.duckdb")
    names = ["zeta", "alpha", "mid", "Beta"]
    with ConnectionRegistry(store) as registry:
        for name in names:
            registry.upsert_connection(Connection(name=name, endpoint="http://a"))

    restored = ConnectionRegistry(store)

    assert [conn.name for conn in restored.get_all_connections()] == names


def test_on_close_policy_defers_writes_until_close() -> None:
    store = InMemoryPersistence()
    registry = ConnectionRegistry(store, settings=RegistrySettings(flush_policy=FlushPolicy.ON_CLOSE))

    _populate(registry)
    assert store.save_count == 0

    registry.close()
    assert store.save_count == 1
    assert store.load()["currentConnection"] == "123-connection"


def test_manual_policy_only_writes_on_flush() -> None:
    store = InMemoryPersistence()
    registry = ConnectionRegistry(store, settings=RegistrySettings(flush_policy=FlushPolicy.MANUAL))

    _populate(registry)
    registry.close()
    assert store.save_count == 0

    registry = ConnectionRegistry(store, settings=RegistrySettings(flush_policy=FlushPolicy.MANUAL))
    _populate(registry)
    registry.flush()
    assert store.save_count == 1


def test_async_flush_persists_final_state_on_close() -> None:
    store = InMemoryPersistence()
    registry = ConnectionRegistry(store, settings=RegistrySettings(async_flush=True))

    for index in range(50):
        registry.upsert_connection(Connection(name=f"c{index}", endpoint="http://a"))
    registry.set_current_connection("c49")
    registry.delete_connection("c0")
    registry.close()

    document = store.load()
    assert len(document["connections"]) == 49
    assert document["currentConnection"] == "c49"


def test_save_failure_keeps_memory_state_and_reports_on_flush() -> None:
    registry = ConnectionRegistry(_BrokenSaveAdapter())

    registry.upsert_connection(Connection(name="c1", endpoint="http://a"))

    assert "c1" in registry
    assert isinstance(registry.last_persistence_error, PersistenceFailureError)
    with pytest.raises(PersistenceFailureError, match="read-only"):
        registry.flush()


def test_strict_save_raises_from_mutation() -> None:
    registry = ConnectionRegistry(_BrokenSaveAdapter(), settings=RegistrySettings(strict_save=True))

    with pytest.raises(PersistenceFailureError):
        registry.upsert_connection(Connection(name="c1", endpoint="http://a"))

    assert registry.get_connection("c1").endpoint == "http://a"


def test_async_save_failure_surfaces_on_flush() -> None:
    registry = ConnectionRegistry(_BrokenSaveAdapter(), settings=RegistrySettings(async_flush=True))
    registry.upsert_connection(Connection(name="c1", endpoint="http://a"))

    with pytest.raises(PersistenceFailureError):
        registry.flush()


def test_load_failure_is_raised_by_default() -> None:
    with pytest.raises(PersistenceFailureError, match="permission denied"):
        ConnectionRegistry(_BrokenLoadAdapter())


def test_corrupt_file_is_raised_by_default(tmp_path: Path) -> None:
    path = tmp_path / "connections.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(PersistenceFailureError):
        ConnectionRegistry(JsonFilePersistence(path))


def test_lenient_load_starts_empty_and_records_error(tmp_path: Path) -> None:
    path = tmp_path / "connections.json"
    path.write_text('{"connections": {"c1": {"name": "c1"}}}', encoding="utf-8")

    registry = ConnectionRegistry(
        JsonFilePersistence(path), settings=RegistrySettings(strict_load=False)
    )

    assert len(registry) == 0
    assert isinstance(registry.last_persistence_error, PersistenceFailureError)


def test_lenient_load_never_overwrites_unreadable_file(tmp_path: Path) -> None:
    path = tmp_path / "connections.json"
    original = (
        '{"connections": {"keep": {"name": "keep", "endpoint": "http://a", "extra": 1}}}'
    )
    path.write_text(original, encoding="utf-8")

    registry = ConnectionRegistry(
        JsonFilePersistence(path), settings=RegistrySettings(strict_load=False)
    )
    registry.upsert_connection(Connection(name="new", endpoint="http://b"))
    registry.flush()
    registry.close()

    assert path.read_text(encoding="utf-8") == original
    assert "new" in registry
    assert isinstance(registry.last_persistence_error, PersistenceFailureError)
