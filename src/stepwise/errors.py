"""Exception hierarchy for stepwise.

Every failure of a migration run surfaces to the caller as one of these.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base class for all stepwise errors."""


class DiscoveryError(MigrationError):
    """A source could not enumerate its units."""


class DuplicateIndexError(MigrationError):
    """Two or more units claim the same index."""

    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"duplicate index {index}")


class IndexGapError(MigrationError):
    """The combined unit indices are not a contiguous 1..N sequence."""

    def __init__(self, index: int, expected: int, found: int) -> None:
        self.index = index
        self.expected = expected
        self.found = found
        super().__init__(
            f"index gap after {index}: expected {expected}, found {found}"
        )


class DirtyStateError(MigrationError):
    """The checkpoint records an unresolved failure at ``version``."""

    def __init__(self, version: int) -> None:
        self.version = version
        super().__init__(
            f"checkpoint is dirty at version {version}; "
            "repair the data and clear the flag before migrating again"
        )


class StaleCheckpointError(MigrationError):
    """The checkpoint claims more progress than the known units account for."""

    def __init__(self, version: int, unit_count: int) -> None:
        self.version = version
        self.unit_count = unit_count
        super().__init__(
            f"checkpoint version {version} exceeds the {unit_count} known units"
        )


class ActionError(MigrationError):
    """A unit's action failed."""

    def __init__(self, index: int, cause: BaseException) -> None:
        self.index = index
        self.cause = cause
        super().__init__(f"migration {index} failed: {cause}")


class PersistenceError(MigrationError):
    """The checkpoint store could not be read or written.

    When raised while recording a failed unit, ``action_error`` holds the
    ``ActionError`` that could not be recorded.
    """

    action_error: ActionError | None = None


class ContextCancelledError(MigrationError):
    """The execution context was cancelled or its deadline passed."""
