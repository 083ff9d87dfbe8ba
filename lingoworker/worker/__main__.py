"""Entry point for the inference worker subprocess."""

import sys
from pathlib import Path

import typer
from loguru import logger

from lingoworker.config.access import resolve_config_path
from lingoworker.config.loader import load_settings
from lingoworker.worker.backends import create_backend
from lingoworker.worker.runtime import run_worker


def serve(config_path: Path | None = None, log_level: str | None = None) -> None:
    """Load settings, route logs to stderr (stdout carries frames only) and serve."""
    settings = load_settings(resolve_config_path(config_path))
    logger.remove()
    logger.add(sys.stderr, level=log_level or settings.logging.level)
    run_worker(create_backend(settings))


def main(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.json"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level for stderr output"),
) -> None:
    """lingoworker inference worker (JSON lines on stdio)."""
    serve(config, log_level)


if __name__ == "__main__":
    typer.run(main)
