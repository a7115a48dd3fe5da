"""Python migration modules.

Each migration is a file named ``<index>_description.py``. Files whose
name starts with an underscore are ignored; any other ``.py`` file must
follow the pattern:

    VERSION = N  # Must match file prefix
    DESCRIPTION = "What this migration does"

    def upgrade(engine):
        '''Apply this migration.'''
"""

from __future__ import annotations

import importlib.util
import re
import sys
from pathlib import Path
from types import ModuleType

from sqlalchemy.engine import Engine

from stepwise.context import ExecutionContext
from stepwise.errors import DiscoveryError
from stepwise.logging import get_logger
from stepwise.units import CachedSource, Unit

log = get_logger("sources.modules")

_FILENAME_RE = re.compile(r"^(\d+)_")


class ModuleUnit:
    """A migration module whose ``upgrade(engine)`` is the action."""

    def __init__(self, module: ModuleType, engine: Engine) -> None:
        self.module = module
        self.index: int = module.VERSION
        self.engine = engine

    @property
    def description(self) -> str:
        return getattr(self.module, "DESCRIPTION", "No description")

    def execute(self, ctx: ExecutionContext) -> None:
        self.module.upgrade(self.engine)

    def __repr__(self) -> str:
        return f"ModuleUnit(index={self.index}, module={self.module.__name__!r})"


def load_module(path: Path, namespace: str = "stepwise_migrations") -> ModuleType:
    """Import a migration file by path.

    Raises:
        DiscoveryError: If the file cannot be imported.
    """
    name = f"{namespace}.{path.stem}"
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise DiscoveryError(f"cannot load migration module {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        del sys.modules[name]
        raise DiscoveryError(f"cannot import migration module {path}: {e}") from e
    return module


class ModuleSource(CachedSource):
    """Units from the Python migration modules of a directory."""

    def __init__(self, engine: Engine, directory: Path | str) -> None:
        super().__init__()
        self.engine = engine
        self.directory = Path(directory)

    def _discover(self) -> list[Unit]:
        if not self.directory.is_dir():
            raise DiscoveryError(f"migration directory not found: {self.directory}")

        units: list[Unit] = []
        for path in sorted(self.directory.glob("*.py")):
            if path.name.startswith("_"):
                continue

            match = _FILENAME_RE.match(path.name)
            if match is None:
                raise DiscoveryError(
                    f"migration file name must start with '<index>_': {path.name}"
                )

            module = load_module(path)

            if not hasattr(module, "VERSION"):
                raise DiscoveryError(f"migration module missing VERSION: {path.name}")
            if not callable(getattr(module, "upgrade", None)):
                raise DiscoveryError(f"migration module missing upgrade(): {path.name}")

            prefix = int(match.group(1))
            if module.VERSION != prefix:
                raise DiscoveryError(
                    f"VERSION {module.VERSION!r} does not match file prefix in {path.name}"
                )

            units.append(ModuleUnit(module, self.engine))

        log.debug("module_migrations_discovered", directory=str(self.directory), count=len(units))
        return units
