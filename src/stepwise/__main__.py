"""CLI entrypoint for running stepwise as a module."""

from stepwise.cli import cli

if __name__ == "__main__":
    cli()
