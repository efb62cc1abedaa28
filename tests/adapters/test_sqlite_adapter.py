import sqlite3

import pytest

from personnel.adapters import ConnectionConfig, SQLiteAdapter
from personnel.errors import ConstraintViolation, StorageFailure, StorageUnavailable


@pytest.fixture
def adapter(tmp_path):
    adapter = SQLiteAdapter()
    adapter.connect(ConnectionConfig(url=f"sqlite:///{tmp_path / 'test.db'}"))
    yield adapter
    adapter.close()


def test_connect_creates_database(tmp_path):
    adapter = SQLiteAdapter()
    connection = adapter.connect(ConnectionConfig(url=f"sqlite:///{tmp_path / 'connect.db'}"))
    assert isinstance(connection, sqlite3.Connection)
    assert (tmp_path / "connect.db").exists()
    adapter.close()


def test_execute_and_last_insert_id(adapter):
    adapter.execute("CREATE TABLE example (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
    cursor = adapter.execute("INSERT INTO example (name) VALUES (?)", ("Joan",))
    inserted_id = adapter.last_insert_id(cursor, "example", "id")
    assert inserted_id == 1
    rows = adapter.execute("SELECT name FROM example WHERE id = ?", (inserted_id,)).fetchall()
    assert rows[0]["name"] == "Joan"


def test_transaction_commit_and_rollback(adapter):
    adapter.execute("CREATE TABLE item (id INTEGER PRIMARY KEY, value INTEGER)")

    adapter.begin()
    assert adapter.in_transaction
    adapter.execute("INSERT INTO item (value) VALUES (?)", (10,))
    adapter.commit()
    assert adapter.execute("SELECT COUNT(*) FROM item").fetchone()[0] == 1

    adapter.begin()
    adapter.execute("INSERT INTO item (value) VALUES (?)", (20,))
    adapter.rollback()
    assert adapter.execute("SELECT COUNT(*) FROM item").fetchone()[0] == 1


def test_foreign_keys_are_enforced(adapter):
    adapter.execute("CREATE TABLE parent (id INTEGER PRIMARY KEY)")
    adapter.execute("CREATE TABLE child (id INTEGER PRIMARY KEY, parent_id INTEGER REFERENCES parent (id))")
    with pytest.raises(ConstraintViolation):
        adapter.execute("INSERT INTO child (parent_id) VALUES (?)", (7,))


def test_bad_sql_is_a_storage_failure(adapter):
    with pytest.raises(StorageFailure) as excinfo:
        adapter.execute("SELECT * FROM nowhere")
    assert not isinstance(excinfo.value, StorageUnavailable)
    assert "nowhere" in str(excinfo.value)


def test_closed_adapter_is_unavailable(adapter):
    adapter.close()
    with pytest.raises(StorageUnavailable):
        adapter.execute("SELECT 1")


@pytest.mark.parametrize("url", ["sqlite:///:memory:", "sqlite://", "sqlite:///:memory:?timeout=1"])
def test_in_memory_database(url):
    adapter = SQLiteAdapter()
    adapter.connect(ConnectionConfig.from_dsn(url))
    adapter.execute("CREATE TABLE sample (value TEXT)")
    adapter.execute("INSERT INTO sample (value) VALUES (?)", ("hello",))
    assert adapter.execute("SELECT value FROM sample").fetchone()[0] == "hello"
    adapter.close()


def test_begin_takes_the_write_lock(tmp_path):
    url = f"sqlite:///{tmp_path / 'locks.db'}"
    holder, waiter = SQLiteAdapter(), SQLiteAdapter()
    holder.connect(ConnectionConfig(url=url))
    waiter.connect(ConnectionConfig(url=url, timeout=0.05))
    holder.execute("CREATE TABLE item (id INTEGER PRIMARY KEY)")

    holder.begin()
    with pytest.raises(StorageUnavailable):
        waiter.begin()
    holder.commit()

    waiter.begin()
    waiter.execute("INSERT INTO item DEFAULT VALUES")
    waiter.commit()
    assert holder.execute("SELECT COUNT(*) FROM item").fetchone()[0] == 1
    holder.close()
    waiter.close()
