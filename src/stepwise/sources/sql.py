"""SQL file migrations.

Every ``<index>_<name>.sql`` file in a directory becomes one unit. Files
with another extension are ignored; anything else that does not fit the
pattern makes discovery fail.
"""

from __future__ import annotations

import re
from pathlib import Path

from sqlalchemy.engine import Connection, Engine

from stepwise.context import ExecutionContext
from stepwise.errors import DiscoveryError
from stepwise.logging import get_logger
from stepwise.units import CachedSource, Unit

log = get_logger("sources.sql")

DEFAULT_SOURCE_DIR = Path("./migrations")
SQL_EXT = ".sql"

_FILENAME_RE = re.compile(r"^(\d+)_")
_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")
_NEXT_WORD_RE = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*)")
_DOLLAR_QUOTE_RE = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")

# words after BEGIN that make it a transaction statement
_TRANSACTION_WORDS = frozenset(
    {"TRANSACTION", "WORK", "TRAN", "DEFERRED", "IMMEDIATE", "EXCLUSIVE", "ISOLATION", "READ"}
)
# END IF / END LOOP ... close blocks whose opening keyword is not counted
_UNTRACKED_END = frozenset({"IF", "LOOP", "WHILE", "REPEAT", "FOR", "TRANSACTION"})

BACKSLASH_ESCAPE_DIALECTS = frozenset({"mysql", "mariadb"})


class SqlStatementError(Exception):
    """A statement in a SQL migration file failed."""

    def __init__(self, statement: str, cause: BaseException) -> None:
        self.statement = statement
        super().__init__(f"{cause}\nstatement: {statement}")


def split_statements(sql: str, backslash_escapes: bool = False) -> list[str]:
    """Split a SQL script into individual statements.

    Semicolons inside quoted strings, quoted identifiers, dollar-quoted
    bodies, comments and ``BEGIN``/``CASE`` ... ``END`` blocks do not end a
    statement. Comment-only and empty statements are dropped.

    Args:
        sql: The script.
        backslash_escapes: Treat ``\\`` inside string literals as an escape
            character, as MySQL does.
    """
    statements: list[str] = []
    current: list[str] = []
    has_code = False
    depth = 0
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]

        if ch in ("'", '"', "`"):
            end = _quote_end(sql, i, backslash_escapes)
            current.append(sql[i:end])
            has_code = True
            i = end
            continue

        if ch == "$":
            match = _DOLLAR_QUOTE_RE.match(sql, i)
            if match is not None:
                tag = match.group(0)
                close = sql.find(tag, match.end())
                end = n if close == -1 else close + len(tag)
                current.append(sql[i:end])
                has_code = True
                i = end
                continue

        if sql.startswith("--", i):
            end = sql.find("\n", i)
            end = n if end == -1 else end
            current.append(sql[i:end])
            i = end
            continue

        if sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            end = n if end == -1 else end + 2
            current.append(sql[i:end])
            i = end
            continue

        if ch == ";" and depth == 0:
            if has_code:
                statements.append("".join(current).strip())
            current = []
            has_code = False
            i += 1
            continue

        word = _WORD_RE.match(sql, i) if ch.isalpha() or ch == "_" else None
        if word is not None:
            keyword = word.group(0).upper()
            end = word.end()
            following = _NEXT_WORD_RE.match(sql, end)
            next_keyword = following.group(1).upper() if following else None

            if keyword == "CASE":
                depth += 1
            elif keyword == "BEGIN":
                # BEGIN; / BEGIN TRANSACTION is transaction control, not a block
                if next_keyword is not None and next_keyword not in _TRANSACTION_WORDS:
                    depth += 1
            elif keyword == "END" and depth > 0 and next_keyword not in _UNTRACKED_END:
                depth -= 1
                if next_keyword == "CASE":
                    end = following.end()

            current.append(sql[i:end])
            has_code = True
            i = end
            continue

        if not ch.isspace():
            has_code = True
        current.append(ch)
        i += 1

    if has_code:
        statements.append("".join(current).strip())

    return statements


def _quote_end(sql: str, start: int, backslash_escapes: bool) -> int:
    """Return the position just past the literal opened at ``start``."""
    quote = sql[start]
    i = start + 1
    n = len(sql)
    while i < n:
        ch = sql[i]
        if backslash_escapes and ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            # doubled quote is an escaped quote
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return n


class SqlFileUnit:
    """One SQL file, applied inside a single transaction."""

    def __init__(
        self, index: int, path: Path, statements: list[str], engine: Engine
    ) -> None:
        self.index = index
        self.path = path
        self.statements = statements
        self.engine = engine

    @property
    def description(self) -> str:
        return self.path.name

    def execute(self, ctx: ExecutionContext) -> None:
        with self.engine.begin() as conn:
            _ensure_transaction(conn)
            for statement in self.statements:
                ctx.raise_if_cancelled()
                try:
                    conn.exec_driver_sql(statement)
                except Exception as e:
                    raise SqlStatementError(statement, e) from e

    def __repr__(self) -> str:
        return f"SqlFileUnit(index={self.index}, path={str(self.path)!r})"


def _ensure_transaction(conn: Connection) -> None:
    """Open the database transaction explicitly on SQLite.

    pysqlite only emits BEGIN before DML, so leading DDL would otherwise
    autocommit statement by statement.
    """
    if conn.dialect.name != "sqlite":
        return
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN")
class SqlFileSource(CachedSource):
    """Units read from the ``.sql`` files of a directory."""

    def __init__(self, engine: Engine, directory: Path | str | None = None) -> None:
        super().__init__()
        self.engine = engine
        self.directory = Path(directory) if directory else DEFAULT_SOURCE_DIR

    def _discover(self) -> list[Unit]:
        if not self.directory.is_dir():
            raise DiscoveryError(f"migration directory not found: {self.directory}")

        units: list[Unit] = []
        for path in sorted(self.directory.iterdir()):
            if path.is_dir():
                raise DiscoveryError(f"unexpected directory in migrations: {path}")
            if path.suffix != SQL_EXT:
                continue

            match = _FILENAME_RE.match(path.name)
            if match is None:
                raise DiscoveryError(
                    f"migration file name must start with '<index>_': {path.name}"
                )

            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise DiscoveryError(f"cannot read migration file {path}: {e}") from e

            units.append(
                SqlFileUnit(
                    index=int(match.group(1)),
                    path=path,
                    statements=split_statements(
                        content,
                        backslash_escapes=self.engine.dialect.name in BACKSLASH_ESCAPE_DIALECTS,
                    ),
                    engine=self.engine,
                )
            )

        log.debug("sql_migrations_discovered", directory=str(self.directory), count=len(units))
        return units
