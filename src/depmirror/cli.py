"""CLI entry point: wires arguments, configuration and the pipeline together."""

from __future__ import annotations

import logging
import sys
from typing import Any, List, Optional

from .args import parse_args
from .common.logging_utils import add_file_handler, configure_logging
from .config import MirrorConfig, load_config_file
from .constants import ExitCodes
from .exceptions import ChecksumMismatchError, FetchError, ManifestError, VersionResolutionError
from .sync import run

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments."""
    configure_logging(getattr(args, "LOG_LEVEL", None))
    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        add_file_handler(log_file)
        logger.info("Logging to file: %s", log_file)


def exit_code_for(exc: BaseException) -> ExitCodes:
    """Map a fatal error to the process exit code."""
    if isinstance(exc, ChecksumMismatchError):
        return ExitCodes.CHECKSUM_ERROR
    if isinstance(exc, VersionResolutionError):
        return ExitCodes.RESOLUTION_ERROR
    if isinstance(exc, FetchError):
        return ExitCodes.CONNECTION_ERROR
    return ExitCodes.FILE_ERROR


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        config = MirrorConfig.from_args(args, load_config_file(getattr(args, "CONFIG", None)))
    except (OSError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    logger.info("Mirroring %s into %s (served at %s)", config.manifest, config.root_folder, config.local_url)
    try:
        statuses = run(config)
    except (ManifestError, FetchError, ChecksumMismatchError, VersionResolutionError) as e:
        logger.error("%s, aborting", e)
        sys.exit(exit_code_for(e).value)
    except OSError as e:
        logger.error("IO error: %s, aborting", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    logger.info("Finished: %d package versions mirrored", len(statuses))
    sys.exit(ExitCodes.SUCCESS.value)
