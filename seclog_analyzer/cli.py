"""
Command-line entry point.

Usage:
    seclog-analyzer <log_dir_or_file> [options]

Examples:
    seclog-analyzer /var/log/fortigate --output reports
    seclog-analyzer logs/ --mode parse --recursive
    seclog-analyzer logs/ --trusted-country "United States" --trusted-country Canada
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .analyzer import SecurityLogAnalyzer
from .config import MODES, AnalysisConfig, load_config
from .exceptions import ConfigurationError, NoFilesProcessedError
from .logging_config import configure_for_cli, get_logger

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="seclog-analyzer",
        description="Parse key=value security logs and flag suspicious connections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes:
  analyze   FailedConnections, UnusualIPs and ConnectionFrequency CSVs
            plus a run summary (default)
  parse     one CSV per input file with every parsed field
        """,
    )

    parser.add_argument("inputs", nargs="+", help="Log files or directories to process")
    parser.add_argument("--mode", "-m", choices=MODES, help="Run mode (default: analyze)")
    parser.add_argument("--output", "-o", dest="output_dir", help="Output directory (default: output)")
    parser.add_argument("--config", "-c", help="JSON configuration file")
    parser.add_argument(
        "--trusted-country",
        dest="trusted_countries",
        action="append",
        metavar="NAME",
        help="Trusted source country; repeat for several (default: United States, Reserved)",
    )
    parser.add_argument(
        "--threshold",
        dest="min_connection_threshold",
        type=int,
        help="Attempts at which a source becomes Medium risk; twice this is High (default: 10)",
    )
    parser.add_argument(
        "--workers", "-w", dest="max_concurrency", type=int, help="Concurrent files (default: CPU count)"
    )
    parser.add_argument(
        "--timeout", dest="task_timeout", type=float, help="Per-file timeout in seconds (default: 1800)"
    )
    parser.add_argument("--top", dest="top_n", type=int, help="Entries in summary top lists (default: 10)")
    parser.add_argument(
        "--recursive", "-r", action="store_true", default=None, help="Search directories recursively"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Warnings and errors only")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AnalysisConfig:
    overrides = {
        "mode": args.mode,
        "output_dir": args.output_dir,
        "trusted_countries": tuple(args.trusted_countries) if args.trusted_countries else None,
        "min_connection_threshold": args.min_connection_threshold,
        "max_concurrency": args.max_concurrency,
        "task_timeout": args.task_timeout,
        "top_n": args.top_n,
        "recursive": args.recursive,
    }
    if args.config:
        return load_config(args.config, overrides)
    return AnalysisConfig().with_overrides(**overrides)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    configure_for_cli(verbose=args.verbose, quiet=args.quiet)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 1

    logger.info("Security Log Analyzer %s", __version__)
    logger.info("=" * 50)

    analyzer = SecurityLogAnalyzer(config)
    try:
        analyzer.run(args.inputs)
    except NoFilesProcessedError as e:
        logger.error("Error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
