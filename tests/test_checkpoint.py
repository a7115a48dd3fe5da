"""Tests for the checkpoint store."""

import pytest
from sqlalchemy import inspect, text

from stepwise.checkpoint import DEFAULT_TABLE_NAME, Checkpoint, CheckpointStore
from stepwise.errors import DirtyStateError, PersistenceError


@pytest.fixture
def store(engine) -> CheckpointStore:
    return CheckpointStore(engine)


def rows(engine, table=DEFAULT_TABLE_NAME):
    with engine.connect() as conn:
        result = conn.execute(text(f"SELECT version, dirty FROM {table}")).fetchall()
    return [(r.version, bool(r.dirty)) for r in result]


class TestEnsureSchema:
    """Tests for creating the checkpoint table."""

    def test_creates_table(self, engine, store) -> None:
        store.ensure_schema()
        assert DEFAULT_TABLE_NAME in inspect(engine).get_table_names()

    def test_is_idempotent(self, engine, store) -> None:
        store.ensure_schema()
        store.ensure_schema()
        assert rows(engine) == []

    def test_columns_default_to_dirty(self, engine, store) -> None:
        """A row inserted without values is dirty until initialized."""
        store.ensure_schema()
        with engine.begin() as conn:
            conn.execute(text(f"INSERT INTO {DEFAULT_TABLE_NAME} DEFAULT VALUES"))

        assert rows(engine) == [(0, True)]


class TestLoadOrInit:
    """Tests for reading or initializing the checkpoint row."""

    def test_initializes_clean_row(self, engine, store) -> None:
        store.ensure_schema()

        assert store.load_or_init() == Checkpoint(version=0, dirty=False)
        assert rows(engine) == [(0, False)]

    def test_returns_existing_row(self, engine, store) -> None:
        store.ensure_schema()
        store.load_or_init()
        store.advance(3)

        assert store.load_or_init() == Checkpoint(version=3, dirty=False)
        assert rows(engine) == [(3, False)]

    def test_dirty_row_raises(self, store) -> None:
        store.ensure_schema()
        store.load_or_init()
        store.mark_dirty(4)

        with pytest.raises(DirtyStateError) as exc_info:
            store.load_or_init()

        assert exc_info.value.version == 4

    def test_missing_table_is_persistence_error(self, store) -> None:
        with pytest.raises(PersistenceError):
            store.load_or_init()

    def test_multiple_rows_rejected(self, engine, store) -> None:
        store.ensure_schema()
        with engine.begin() as conn:
            conn.execute(text(f"INSERT INTO {DEFAULT_TABLE_NAME} VALUES (1, 0)"))
            conn.execute(text(f"INSERT INTO {DEFAULT_TABLE_NAME} VALUES (2, 0)"))

        with pytest.raises(PersistenceError, match="2 rows"):
            store.load_or_init()


class TestUpdates:
    """Tests for advance and mark_dirty."""

    def test_advance_clears_dirty(self, engine, store) -> None:
        store.ensure_schema()
        store.load_or_init()
        store.mark_dirty(2)
        store.advance(2)

        assert rows(engine) == [(2, False)]

    def test_mark_dirty_records_index(self, engine, store) -> None:
        store.ensure_schema()
        store.load_or_init()
        store.advance(1)
        store.mark_dirty(2)

        assert rows(engine) == [(2, True)]

    def test_update_without_row_fails(self, store) -> None:
        store.ensure_schema()

        with pytest.raises(PersistenceError, match="0 rows"):
            store.advance(1)

    def test_update_without_table_fails(self, store) -> None:
        with pytest.raises(PersistenceError):
            store.mark_dirty(1)


class TestOperatorSurface:
    """Tests for read and force."""

    def test_read_without_table(self, engine, store) -> None:
        assert store.read() is None
        assert DEFAULT_TABLE_NAME not in inspect(engine).get_table_names()

    def test_read_without_row(self, store) -> None:
        store.ensure_schema()
        assert store.read() is None

    def test_read_returns_dirty_row(self, store) -> None:
        store.ensure_schema()
        store.load_or_init()
        store.mark_dirty(7)

        assert store.read() == Checkpoint(version=7, dirty=True)

    def test_force_clears_dirty(self, engine, store) -> None:
        store.ensure_schema()
        store.load_or_init()
        store.mark_dirty(3)

        store.force(2)

        assert rows(engine) == [(2, False)]
        assert store.load_or_init() == Checkpoint(version=2, dirty=False)

    def test_force_creates_table_and_row(self, engine, store) -> None:
        store.force(5)
        assert rows(engine) == [(5, False)]

    def test_force_rejects_negative(self, store) -> None:
        with pytest.raises(ValueError):
            store.force(-1)

    def test_separate_tables_are_independent(self, engine) -> None:
        first = CheckpointStore(engine, "first_migrations")
        second = CheckpointStore(engine, "second_migrations")
        first.force(3)
        second.force(1)

        assert first.read() == Checkpoint(3, False)
        assert second.read() == Checkpoint(1, False)
