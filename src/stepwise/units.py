"""Unit and Source capabilities.

A unit is one indexed migration step. A source enumerates units; any
object with a ``list_units()`` method can be registered with the
orchestrator, and any object with an ``index`` and an ``execute(ctx)``
method can act as a unit.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from stepwise.context import ExecutionContext


@runtime_checkable
class Unit(Protocol):
    """A single migration step.

    ``execute`` signals failure by raising. It runs at most once per
    successful run.
    """

    index: int

    def execute(self, ctx: ExecutionContext) -> None: ...


@runtime_checkable
class Source(Protocol):
    """A provider of units. Order of the returned list does not matter."""

    def list_units(self) -> list[Unit]: ...


class CachedSource(ABC):
    """Base for sources whose discovery is costly.

    The first successful ``list_units()`` call runs ``_discover()`` and
    keeps the result for the lifetime of the instance. A failed discovery
    is not cached, so the next call retries it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loaded = False
        self._units: list[Unit] = []

    def list_units(self) -> list[Unit]:
        with self._lock:
            if not self._loaded:
                self._units = self._discover()
                self._loaded = True
            return list(self._units)

    @abstractmethod
    def _discover(self) -> list[Unit]:
        """Enumerate the units; raise DiscoveryError on failure."""


def describe(unit: Unit) -> str:
    """Short human-readable label for a unit."""
    return getattr(unit, "description", None) or type(unit).__name__
