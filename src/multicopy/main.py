#!/usr/bin/env python3
"""
multicopy command line front-end.

Copies files and directories to one or more destinations with an optional
checksum check of every copy, logging progress as it goes.
"""

import argparse
import logging
import re
import sys
from pathlib import Path

from .config import CopierConfig
from .engine import FileCopier
from .exceptions import CopierError, CopyConfigurationError
from .hashing import SUPPORTED_ALGORITHMS
from .models import CopyJob, Source
from .progress import LoggingProgressReporter


def setup_logging(verbose: bool = False) -> None:
    """
    Configure logging for the application.

    Parameters
    ----------
    verbose : bool
        Enable verbose logging
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        description="Copy files to several destinations with integrity verification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s -c clip.mov -d /mnt/backup1 -d /mnt/backup2
  %(prog)s -r -p '.*\\.wav' /media/card -d /mnt/archive
        """,
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )

    parser.add_argument(
        "-c",
        "--check",
        action="store_true",
        help="Check every copy against the checksum of its source",
    )

    parser.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        help="Descend into subdirectories of source directories",
    )

    parser.add_argument(
        "-p",
        "--pattern",
        type=str,
        default=".*",
        help="Regular expression for paths below source directories (default: .*)",
    )

    parser.add_argument(
        "-t",
        "--hash",
        type=str,
        default="xxh128",
        choices=list(SUPPORTED_ALGORITHMS),
        help="Hash algorithm for verification (default: xxh128)",
    )

    parser.add_argument(
        "--no-evict",
        action="store_true",
        help="Do not drop OS caches before checking copies",
    )

    parser.add_argument(
        "sources", nargs="+", type=Path, help="Source files or directories"
    )

    parser.add_argument(
        "-d",
        "--destination",
        dest="destinations",
        action="append",
        required=True,
        help="Destination directory or file (repeat for several destinations)",
    )

    return parser.parse_args(argv)


def build_copy_job(args: argparse.Namespace) -> CopyJob:
    """
    Turn the source arguments into one copy job.

    Raises
    ------
    CopyConfigurationError
        If a source argument does not exist
    """
    sources = []
    for path in args.sources:
        if not path.exists():
            raise CopyConfigurationError(f"source {path} does not exist")
        if path.is_dir():
            sources.append(Source(path, args.pattern, args.recursive))
        else:
            # a single file is its parent directory with an exact pattern
            sources.append(Source(path.parent, re.escape(path.name), False))
    return CopyJob(sources=sources, destinations=args.destinations)


def main(argv: list[str] | None = None) -> int:
    """
    Main function for multicopy.

    Returns
    -------
    int
        Exit code: 0 for success, 1 for failure, 130 for keyboard interrupt
    """
    args = parse_arguments(argv)

    try:
        config = CopierConfig.from_args(args)
        setup_logging(config.verbose)
        job = build_copy_job(args)

        digest_cache: dict[str, bytes] = {}
        with FileCopier(digest_cache=digest_cache, config=config) as copier:
            reporter = LoggingProgressReporter(lambda: copier.byte_count)
            reporter.attach(copier.notifier)
            copier.copy(job, check_copies=args.check)

        logging.info("All copy operations completed successfully")
        return 0

    except KeyboardInterrupt:
        logging.error("Operation interrupted by user")
        return 130
    except CopierError as e:
        logging.error(f"Copy failed: {e}")
        return 1
    except ValueError as e:
        logging.error(f"Invalid parameter: {e}")
        return 1
    except OSError as e:
        logging.error(f"I/O error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
