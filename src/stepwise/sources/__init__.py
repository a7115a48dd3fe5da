"""Concrete migration sources."""

from stepwise.sources.function import FunctionSource, FunctionUnit
from stepwise.sources.modules import ModuleSource, ModuleUnit
from stepwise.sources.sql import SqlFileSource, SqlFileUnit, SqlStatementError

__all__ = [
    "FunctionSource",
    "FunctionUnit",
    "ModuleSource",
    "ModuleUnit",
    "SqlFileSource",
    "SqlFileUnit",
    "SqlStatementError",
]
