"""
Command-line interface for the buildjob build runner.

This module provides the CLI entry point: it configures logging, loads the
configuration, builds the collaborator services and runs one job on a fresh
event loop, exiting with the job's exit code.
"""

import argparse
import asyncio
import logging
import sys
import tomllib
from pathlib import Path

from ..config import get_config, set_config_path
from ..models.config import AppConfig
from ..orchestration import JobController
from ..services import create_services
from ..validation import handle_cli_error, ValidationError

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


async def run_job(app_config: AppConfig) -> int:
    """Build the collaborators and run one job to completion."""
    services = create_services(app_config)
    controller = JobController(app_config, services)
    return await controller.run()


def main_cli() -> None:
    """
    Main command-line interface for the build job.

    Project and collaborator settings are read from the environment; job
    tunables from the optional config.toml.

    Raises:
        SystemExit: With 0 on success or interruption by a signal, 1 on any failure.
    """
    parser = argparse.ArgumentParser(
        description="Run one build job: install, build, upload artifacts and report logs."
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to the job settings file (defaults to $BUILDJOB_CONFIG or conf/config.toml).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    if args.config:
        set_config_path(args.config)

    logger.info("Starting build job")

    try:
        app_config = get_config()
    except (ValidationError, tomllib.TOMLDecodeError, OSError) as e:
        handle_cli_error(
            error=e,
            context="configuration loading",
            exit_code=1,
            include_traceback=not isinstance(e, ValidationError),
            logger=logger,
        )

    try:
        exit_code = asyncio.run(run_job(app_config))
    except ValidationError as e:
        handle_cli_error(
            error=e,
            context="configuration validation",
            exit_code=1,
            logger=logger,
        )
    except Exception as e:
        handle_cli_error(
            error=e,
            context="build job execution",
            exit_code=1,
            include_traceback=True,
            logger=logger,
        )

    sys.exit(exit_code)


if __name__ == "__main__":
    main_cli()
