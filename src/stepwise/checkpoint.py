"""Durable checkpoint record for migration progress.

One row per migration stream, in a table whose name the caller chooses:

    version  INTEGER  NOT NULL DEFAULT 0     -- last unit applied successfully
    dirty    BOOLEAN  NOT NULL DEFAULT true  -- last attempt did not succeed

Initialization writes ``dirty=false`` explicitly. A dirty row blocks
every further run until an operator clears it (see ``force``).
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    Table,
    func,
    inspect,
    select,
    true,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from stepwise.errors import DirtyStateError, PersistenceError
from stepwise.logging import get_logger

log = get_logger("checkpoint")

DEFAULT_TABLE_NAME = "schema_migrations"


@dataclass(frozen=True)
class Checkpoint:
    """Snapshot of the checkpoint row."""

    version: int
    dirty: bool


def checkpoint_table(name: str, metadata: MetaData | None = None) -> Table:
    """Build the table definition for a checkpoint stream."""
    return Table(
        name,
        metadata if metadata is not None else MetaData(),
        Column("version", Integer, nullable=False, server_default="0"),
        Column("dirty", Boolean, nullable=False, server_default=true()),
    )


class CheckpointStore:
    """Reads and writes the checkpoint row of one migration stream."""

    def __init__(self, engine: Engine, table_name: str = DEFAULT_TABLE_NAME) -> None:
        self.engine = engine
        self.table_name = table_name
        self.table = checkpoint_table(table_name)

    def ensure_schema(self) -> None:
        """Create the checkpoint table if it does not exist."""
        try:
            self.table.create(self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"cannot create checkpoint table {self.table_name}: {e}"
            ) from e

    def load_or_init(self) -> Checkpoint:
        """Return the checkpoint row, creating it at version 0 if absent.

        Raises:
            DirtyStateError: If the stored row is dirty.
            PersistenceError: If the row cannot be read or written, or the
                table holds more than one row.
        """
        try:
            with self.engine.begin() as conn:
                checkpoint = self._fetch(conn)
                if checkpoint is None:
                    conn.execute(self.table.insert().values(version=0, dirty=False))
                    log.info("checkpoint_initialized", table=self.table_name)
                    checkpoint = Checkpoint(version=0, dirty=False)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"cannot load checkpoint from {self.table_name}: {e}"
            ) from e

        if checkpoint.dirty:
            raise DirtyStateError(checkpoint.version)
        return checkpoint

    def read(self) -> Checkpoint | None:
        """Return the checkpoint row without creating anything.

        Returns None when the table or the row does not exist yet.
        """
        try:
            if not inspect(self.engine).has_table(self.table_name):
                return None
            with self.engine.connect() as conn:
                return self._fetch(conn)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"cannot read checkpoint from {self.table_name}: {e}"
            ) from e

    def advance(self, index: int) -> None:
        """Record that unit ``index`` completed successfully."""
        self._write(version=index, dirty=False)

    def mark_dirty(self, index: int) -> None:
        """Record that unit ``index`` failed."""
        self._write(version=index, dirty=True)

    def force(self, version: int) -> None:
        """Set the version and clear the dirty flag.

        Operator remediation only: call this after the data has been
        inspected and repaired by hand. Creates the row if missing.
        """
        if version < 0:
            raise ValueError(f"version must be >= 0, got {version}")

        self.ensure_schema()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    self.table.update().values(version=version, dirty=False)
                )
                if result.rowcount == 0:
                    conn.execute(
                        self.table.insert().values(version=version, dirty=False)
                    )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"cannot force checkpoint in {self.table_name}: {e}"
            ) from e

        log.warning("checkpoint_forced", table=self.table_name, version=version)

    def _fetch(self, conn: Connection) -> Checkpoint | None:
        count = conn.execute(select(func.count()).select_from(self.table)).scalar_one()
        if count > 1:
            raise PersistenceError(
                f"checkpoint table {self.table_name} holds {count} rows, expected 1"
            )

        row = conn.execute(select(self.table.c.version, self.table.c.dirty)).first()
        if row is None:
            return None
        return Checkpoint(version=int(row.version), dirty=bool(row.dirty))

    def _write(self, *, version: int, dirty: bool) -> None:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    self.table.update().values(version=version, dirty=dirty)
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"cannot update checkpoint in {self.table_name}: {e}"
            ) from e

        if result.rowcount != 1:
            raise PersistenceError(
                f"checkpoint table {self.table_name} has {result.rowcount} rows, expected 1"
            )
