"""stepwise - ordered, resumable database migrations."""

from stepwise.checkpoint import DEFAULT_TABLE_NAME, Checkpoint, CheckpointStore
from stepwise.context import ExecutionContext, background
from stepwise.errors import (
    ActionError,
    ContextCancelledError,
    DirtyStateError,
    DiscoveryError,
    DuplicateIndexError,
    IndexGapError,
    MigrationError,
    PersistenceError,
    StaleCheckpointError,
)
from stepwise.orchestrator import MigrationStatus, Orchestrator
from stepwise.units import CachedSource, Source, Unit

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_TABLE_NAME",
    "ActionError",
    "CachedSource",
    "Checkpoint",
    "CheckpointStore",
    "ContextCancelledError",
    "DirtyStateError",
    "DiscoveryError",
    "DuplicateIndexError",
    "ExecutionContext",
    "IndexGapError",
    "MigrationError",
    "MigrationStatus",
    "Orchestrator",
    "PersistenceError",
    "Source",
    "StaleCheckpointError",
    "Unit",
    "background",
]
