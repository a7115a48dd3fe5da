"""Tests for the configuration module."""

from pathlib import Path

import pytest
import yaml

from stepwise.config import Config, DatabaseConfig, MigrationsConfig


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    """Create a sample config file for testing."""
    config = {
        "data_dir": str(tmp_path / "data"),
        "log_level": "debug",
        "log_json": False,
        "database": {"path": "app.db"},
        "migrations": {
            "table_name": "app_migrations",
            "sql_dir": str(tmp_path / "sql"),
            "python_dir": str(tmp_path / "py"),
            "timeout_seconds": 30,
        },
    }
    config_path = tmp_path / "stepwise.yaml"
    with open(config_path, "w") as f:
        yaml.dump(config, f)
    return config_path


@pytest.fixture(autouse=True)
def clear_env(monkeypatch) -> None:
    for name in (
        "STEPWISE_DATA_DIR",
        "STEPWISE_LOG_LEVEL",
        "STEPWISE_LOG_JSON",
        "STEPWISE_DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for default configuration values."""

    def test_defaults(self) -> None:
        config = Config()

        assert config.log_level == "INFO"
        assert config.log_json is True
        assert config.migrations.table_name == "schema_migrations"
        assert config.migrations.sql_dir == Path("migrations")
        assert config.migrations.python_dir is None
        assert config.migrations.timeout_seconds is None

    def test_sqlite_url_from_path(self, tmp_path) -> None:
        config = Config(data_dir=tmp_path)

        assert config.database_path == tmp_path / "stepwise.db"
        assert config.database_url == f"sqlite:///{tmp_path / 'stepwise.db'}"

    def test_explicit_url_wins(self) -> None:
        config = Config(database=DatabaseConfig(url="postgresql://db/app"))
        assert config.database_url == "postgresql://db/app"


class TestValidation:
    """Tests for config validation."""

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValueError, match="log_level"):
            Config(log_level="LOUD")

    @pytest.mark.parametrize("name", ["schema migrations", "1table", "x;DROP TABLE y", ""])
    def test_invalid_table_name(self, name: str) -> None:
        with pytest.raises(ValueError, match="table_name"):
            MigrationsConfig(table_name=name)

    def test_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout_seconds"):
            MigrationsConfig(timeout_seconds=0)


class TestLoading:
    """Tests for loading config from YAML and environment."""

    def test_load(self, sample_config_yaml: Path, tmp_path: Path) -> None:
        config = Config.load(sample_config_yaml)

        assert config.log_level == "DEBUG"
        assert config.log_json is False
        assert config.database_path == tmp_path / "data" / "app.db"
        assert config.migrations.table_name == "app_migrations"
        assert config.migrations.sql_dir == tmp_path / "sql"
        assert config.migrations.python_dir == tmp_path / "py"
        assert config.migrations.timeout_seconds == 30

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Config.load(tmp_path / "absent.yaml")

    def test_load_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert Config.load(path).log_level == "INFO"

    def test_load_or_default_missing_file(self, tmp_path: Path) -> None:
        config = Config.load_or_default(tmp_path / "absent.yaml")
        assert config.migrations.table_name == "schema_migrations"

    def test_load_or_default_searches_cwd(
        self, sample_config_yaml: Path, tmp_path: Path, monkeypatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        config = Config.load_or_default()
        assert config.migrations.table_name == "app_migrations"

    def test_env_overrides(self, sample_config_yaml: Path, monkeypatch) -> None:
        monkeypatch.setenv("STEPWISE_LOG_LEVEL", "ERROR")
        monkeypatch.setenv("STEPWISE_LOG_JSON", "true")
        monkeypatch.setenv("STEPWISE_DATABASE_URL", "sqlite:///:memory:")

        config = Config.load(sample_config_yaml)

        assert config.log_level == "ERROR"
        assert config.log_json is True
        assert config.database_url == "sqlite:///:memory:"
        assert config.database.path == "app.db"

    def test_env_overrides_without_file(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("STEPWISE_DATA_DIR", str(tmp_path))

        config = Config.load_or_default(tmp_path / "absent.yaml")

        assert config.data_dir == tmp_path
