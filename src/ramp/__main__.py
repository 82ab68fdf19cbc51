"""CLI entrypoint for running ramp as a module."""

from ramp.cli import cli
from ramp.logging import setup_logging

if __name__ == "__main__":
    setup_logging()
    cli()
