"""Database connection management for stepwise.

Uses SQLAlchemy Core (not ORM) for explicit SQL control.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from stepwise.config import Config


def get_engine(config: Config) -> Engine:
    """Create SQLAlchemy engine from config.

    Args:
        config: Application configuration.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = config.database_url

    if not config.database.url:
        # Ensure data directory exists
        config.database_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, echo=config.log_level == "DEBUG")

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _sqlite_connect)
        event.listen(engine, "begin", _sqlite_begin)

    return engine


def _sqlite_connect(dbapi_connection, connection_record) -> None:
    # SQLAlchemy owns BEGIN; pysqlite would skip it before DDL
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")
