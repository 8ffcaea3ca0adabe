# File: aseflow/cli.py
# Location: aseflow/aseflow/cli.py

"""
Command-line interface (CLI) module.

This module defines the main entry point for aseflow's CLI. It handles:
- Parsing arguments
- Configuring logging
- Loading the configuration
- Running one scheduler pass and reporting the result
"""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import SchedulerConfig, load_config
from .pipeline_core.error_handling import FreshnessCheckFailed, PipelineError
from .pipeline_core.runner import run_scheduler
from .version import __version__

logger = logging.getLogger("aseflow")

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description=(
            "aseflow: inspect the ASE pipeline's data directories and write the "
            "scripts that advance it."
        )
    )

    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"aseflow {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to a JSON configuration file. It is passed on to every generated command.",
    )

    check_group = parser.add_argument_group("Checks")
    check_group.add_argument(
        "-d",
        "--check-dependencies",
        action="store_true",
        help=(
            "Verify that every existing output is newer than its inputs before "
            "scheduling; write no scripts if any is not."
        ),
    )
    return parser


def parse_args(args_list: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Parameters
    ----------
    args_list : list of str, optional
        Arguments to parse; defaults to sys.argv

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def _configure_file_logging(log_file: str, level: int) -> None:
    log_file_path = Path(log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    fh = logging.FileHandler(log_file)
    fh.setLevel(level)
    fh.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(fh)
    logger.debug(f"Logging to file enabled: {log_file}")


def main(args_list: Optional[List[str]] = None) -> int:
    """Run main entry point for the aseflow CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Run one scheduler pass (optionally after the freshness check).
        4. Return 0 on success, 1 on any failure.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    args = parse_args(args_list)

    logger.setLevel(LOG_LEVEL_MAP[args.log_level])
    if args.log_file:
        _configure_file_logging(args.log_file, LOG_LEVEL_MAP[args.log_level])

    start_time = datetime.datetime.now()
    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        cfg: Dict[str, Any] = load_config(args.config)
        config = SchedulerConfig.from_dict(cfg, configuration_file=args.config)
    except (FileNotFoundError, ValueError, TypeError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    logger.debug(f"Configuration loaded: {config}")

    try:
        run_scheduler(config, check_dependencies=args.check_dependencies)
    except FreshnessCheckFailed as e:
        logger.error(f"{e}. No scripts were written.")
        return 1
    except PipelineError as e:
        logger.error(f"Scheduling failed: {e}")
        return 1
    except OSError as e:
        logger.error(f"Scheduling failed: {e}")
        return 1

    logger.info(f"Run finished in {(datetime.datetime.now() - start_time).total_seconds():.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
