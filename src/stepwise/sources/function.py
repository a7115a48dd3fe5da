"""In-process function migrations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from stepwise.context import ExecutionContext
from stepwise.units import Unit

MigrationFunc = Callable[[ExecutionContext], None]


@dataclass(frozen=True)
class FunctionUnit:
    """A callable taking the execution context."""

    index: int
    func: MigrationFunc
    description: str | None = None

    def execute(self, ctx: ExecutionContext) -> None:
        self.func(ctx)


class FunctionSource:
    """A fixed list of function units.

    Units can be passed in directly or registered with the ``unit``
    decorator::

        source = FunctionSource()

        @source.unit(2)
        def backfill_totals(ctx):
            ...
    """

    def __init__(self, *units: FunctionUnit) -> None:
        self._units: list[FunctionUnit] = list(units)

    def unit(
        self, index: int, description: str | None = None
    ) -> Callable[[MigrationFunc], MigrationFunc]:
        def register(func: MigrationFunc) -> MigrationFunc:
            self._units.append(
                FunctionUnit(index, func, description or func.__name__)
            )
            return func

        return register

    def list_units(self) -> list[Unit]:
        return list(self._units)
