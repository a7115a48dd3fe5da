"""Pytest configuration and shared fixtures."""

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_data_dir(tmp_path):
    """Provide a temporary data directory for tests."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def engine(tmp_path) -> Engine:
    """Create an engine on an empty SQLite file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def sql_dir(tmp_path):
    """Provide an empty directory for SQL migration files."""
    directory = tmp_path / "migrations"
    directory.mkdir()
    return directory
