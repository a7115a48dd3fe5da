"""Migration orchestrator.

Collects units from every registered source, validates that their
indices form the sequence 1..N, and applies the pending ones in order
while keeping the checkpoint row current:

- success of unit k advances the checkpoint to ``version=k``
- failure of unit k marks it ``version=k, dirty=true`` and stops the run

A dirty checkpoint blocks every later run until an operator clears it.
Nothing here guards against two processes migrating the same checkpoint
at once.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.engine import Engine

from stepwise.checkpoint import DEFAULT_TABLE_NAME, Checkpoint, CheckpointStore
from stepwise.context import ExecutionContext, background
from stepwise.errors import (
    ActionError,
    DiscoveryError,
    DuplicateIndexError,
    IndexGapError,
    PersistenceError,
    StaleCheckpointError,
)
from stepwise.logging import get_logger
from stepwise.units import Source, Unit, describe

log = get_logger("orchestrator")


@dataclass
class MigrationStatus:
    """Read-only view of a migration stream."""

    checkpoint: Checkpoint | None
    units: list[Unit] = field(default_factory=list)

    @property
    def current_version(self) -> int:
        return self.checkpoint.version if self.checkpoint else 0

    @property
    def dirty(self) -> bool:
        return bool(self.checkpoint and self.checkpoint.dirty)

    @property
    def pending(self) -> list[Unit]:
        return [u for u in self.units if u.index > self.current_version]


def validate_units(units: Iterable[Unit]) -> list[Unit]:
    """Sort units by index and check they form the sequence 1..N.

    Raises:
        DuplicateIndexError: If any index appears more than once.
        IndexGapError: If an index is negative or the sequence skips a value
            or does not start at 1.
    """
    ordered = sorted(units, key=lambda u: u.index)

    for unit in ordered:
        if unit.index < 0:
            raise IndexGapError(0, expected=1, found=unit.index)

    duplicates = sorted(i for i, n in Counter(u.index for u in ordered).items() if n > 1)
    if duplicates:
        raise DuplicateIndexError(duplicates[0])

    previous = 0
    for unit in ordered:
        if unit.index != previous + 1:
            raise IndexGapError(previous, expected=previous + 1, found=unit.index)
        previous = unit.index

    return ordered


class Orchestrator:
    """Applies units from registered sources against one checkpoint stream.

    Calls to ``run``, ``add_sources`` and ``add_units`` on the same instance
    are serialized.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        table_name: str = DEFAULT_TABLE_NAME,
        sources: Iterable[Source] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._store = CheckpointStore(engine, table_name)
        self._sources: list[Source] = list(sources)
        self._units: list[Unit] = []

    @property
    def store(self) -> CheckpointStore:
        return self._store

    def add_sources(self, *sources: Source) -> None:
        """Register sources to be queried on every run."""
        with self._lock:
            self._sources.extend(sources)

    def add_units(self, *units: Unit) -> None:
        """Register units directly, bypassing discovery."""
        with self._lock:
            self._units.extend(units)

    def collect(self) -> list[Unit]:
        """Gather and validate every unit, in index order."""
        with self._lock:
            return self._collect()

    def status(self) -> MigrationStatus:
        """Return the checkpoint and known units without writing anything."""
        with self._lock:
            units = self._collect()
            return MigrationStatus(checkpoint=self._store.read(), units=units)

    def run(
        self,
        ctx: ExecutionContext | None = None,
        target: int | None = None,
    ) -> int:
        """Apply all pending units, or those up to ``target``.

        Args:
            ctx: Execution context handed to every unit. Defaults to a
                context that is never cancelled.
            target: Highest index to apply. If None, apply all.

        Returns:
            The checkpoint version after the run.

        Raises:
            DiscoveryError: A source failed to enumerate its units.
            DuplicateIndexError: Two units share an index.
            IndexGapError: The indices are not contiguous from 1.
            DirtyStateError: A previous run left the checkpoint dirty.
            StaleCheckpointError: The checkpoint is beyond the last unit.
            ContextCancelledError: ``ctx`` was cancelled between units.
            ActionError: A unit failed; the checkpoint is now dirty.
            PersistenceError: The checkpoint could not be read or written.
        """
        ctx = ctx if ctx is not None else background()

        with self._lock:
            units = self._collect()

            self._store.ensure_schema()
            checkpoint = self._store.load_or_init()

            if checkpoint.version > len(units):
                raise StaleCheckpointError(checkpoint.version, len(units))

            pending = [u for u in units if u.index > checkpoint.version]
            if target is not None:
                pending = [u for u in pending if u.index <= target]

            if not pending:
                log.info("no_pending_migrations", version=checkpoint.version)
                return checkpoint.version

            version = checkpoint.version
            for unit in pending:
                ctx.raise_if_cancelled()
                self._apply(unit, ctx)
                version = unit.index

            log.info(
                "migrations_complete",
                count=len(pending),
                version=version,
            )
            return version

    def _apply(self, unit: Unit, ctx: ExecutionContext) -> None:
        log.info("applying_migration", index=unit.index, description=describe(unit))

        try:
            unit.execute(ctx)
        except BaseException as e:
            log.error("migration_failed", index=unit.index, error=repr(e))
            action_error = ActionError(unit.index, e)
            try:
                self._store.mark_dirty(unit.index)
            except PersistenceError as mark_error:
                log.error(
                    "checkpoint_mark_dirty_failed",
                    index=unit.index,
                    error=str(mark_error),
                )
                mark_error.action_error = action_error
                raise
            # KeyboardInterrupt, SystemExit: recorded as dirty, propagated as is
            if not isinstance(e, Exception):
                raise
            raise action_error from e

        self._store.advance(unit.index)
        log.info("migration_applied", index=unit.index)

    def _collect(self) -> list[Unit]:
        units = list(self._units)
        for source in self._sources:
            try:
                units.extend(source.list_units())
            except DiscoveryError:
                raise
            except Exception as e:
                raise DiscoveryError(
                    f"{type(source).__name__} could not list its units: {e}"
                ) from e
        return validate_units(units)
