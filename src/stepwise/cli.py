"""Command-line interface for stepwise."""

from pathlib import Path

import click

from stepwise import __version__
from stepwise.config import Config
from stepwise.logging import get_logger, setup_logging

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """stepwise - ordered, resumable database migrations.

    Applies numbered migrations in order and records progress so an
    interrupted or failed run can be diagnosed and resumed.
    """
    ctx.ensure_object(dict)

    try:
        config = Config.load_or_default(config_file)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)
    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    # CLI overrides config
    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


def build_orchestrator(config: Config):
    """Create an orchestrator wired to the configured sources."""
    from stepwise.database import get_engine
    from stepwise.orchestrator import Orchestrator
    from stepwise.sources import ModuleSource, SqlFileSource

    engine = get_engine(config)
    orchestrator = Orchestrator(engine, table_name=config.migrations.table_name)

    if config.migrations.sql_dir is not None:
        orchestrator.add_sources(SqlFileSource(engine, config.migrations.sql_dir))
    if config.migrations.python_dir is not None:
        orchestrator.add_sources(ModuleSource(engine, config.migrations.python_dir))

    return orchestrator


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"stepwise {__version__}")


@cli.group()
def db() -> None:
    """Database management commands."""
    pass


@db.command(name="status")
@click.pass_context
def db_status(ctx: click.Context) -> None:
    """Show database migration status."""
    from stepwise.errors import MigrationError
    from stepwise.units import describe

    config = ctx.obj["config"]

    try:
        status = build_orchestrator(config).status()
    except MigrationError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Database: {config.database_url}")
    click.echo(f"Checkpoint table: {config.migrations.table_name}")
    if status.checkpoint is None:
        click.echo("Current version: 0 (not initialized)")
    else:
        click.echo(f"Current version: {status.current_version}")
    click.echo(f"Available migrations: {len(status.units)}")

    if status.dirty:
        click.echo(
            f"DIRTY: migration {status.current_version} failed. Repair the data, "
            "then run 'stepwise db force VERSION'."
        )

    pending = status.pending
    if pending:
        click.echo(f"Pending migrations: {len(pending)}")
        for unit in pending:
            click.echo(f"  {unit.index}: {describe(unit)}")
    else:
        click.echo("No pending migrations")


@db.command(name="migrate")
@click.option(
    "--target",
    type=int,
    default=None,
    help="Target version (default: latest).",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Give up after this many seconds (overrides config).",
)
@click.pass_context
def db_migrate(ctx: click.Context, target: int | None, timeout: float | None) -> None:
    """Apply pending database migrations."""
    from stepwise.context import ExecutionContext
    from stepwise.errors import MigrationError

    config = ctx.obj["config"]
    orchestrator = build_orchestrator(config)
    run_ctx = ExecutionContext(timeout=timeout or config.migrations.timeout_seconds)

    try:
        before = orchestrator.store.read()
        after = orchestrator.run(run_ctx, target=target)
    except MigrationError as e:
        log.error("migrate_command_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    before_version = before.version if before else 0
    if before_version == after:
        click.echo(f"Database already at version {after}")
    else:
        click.echo(f"Migrated from version {before_version} to {after}")


@db.command(name="force")
@click.argument("version", type=int)
@click.pass_context
def db_force(ctx: click.Context, version: int) -> None:
    """Set the checkpoint VERSION and clear the dirty flag.

    Use only after inspecting and repairing the failed migration by hand.
    """
    from stepwise.errors import MigrationError

    config = ctx.obj["config"]
    orchestrator = build_orchestrator(config)

    try:
        orchestrator.store.force(version)
    except (MigrationError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Checkpoint set to version {version} (clean)")


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="stepwise.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
        click.echo(f"Configuration valid: {config_file}")
        click.echo(f"  Data directory: {cfg.data_dir}")
        click.echo(f"  Database: {cfg.database_url}")
        click.echo(f"  Checkpoint table: {cfg.migrations.table_name}")
        click.echo(f"  Log level: {cfg.log_level}")

        if cfg.migrations.sql_dir is not None:
            click.echo(f"  SQL migrations: {cfg.migrations.sql_dir}")
        if cfg.migrations.python_dir is not None:
            click.echo(f"  Python migrations: {cfg.migrations.python_dir}")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
