"""slowlog-digest — fingerprint and aggregate MySQL slow query logs."""

import logging
import sys
from argparse import ArgumentParser

from slowlog import __version__
from slowlog.config import OUTPUT_FORMATS, load_config, load_yaml_config
from slowlog.extractor import FatalLogFormatError
from slowlog.filters import FilterError, build_filters
from slowlog.pipeline import run_pipeline
from slowlog.report import (
    SORT_ORDERS,
    format_report_json,
    format_report_text,
    sort_entries,
    sort_records,
    top_n,
)

logger = logging.getLogger("slowlog")

EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> ArgumentParser:
    """Build the CLI argument parser."""
    parser = ArgumentParser(
        prog="slowlog-digest",
        description="Fingerprint and aggregate MySQL slow query logs.",
    )
    parser.add_argument(
        "-i", "--infile",
        help="Path to the slow log. Reads stdin when omitted",
    )
    parser.add_argument(
        "-F", "--filter",
        dest="filters",
        action="append",
        metavar="EXPR",
        help="Filter expression, e.g. 'user!=root', 'query~=^SELECT', "
             "'query_time>=500' (milliseconds). May be repeated",
    )
    parser.add_argument(
        "-o", "--order",
        choices=SORT_ORDERS,
        help="Sort results by this statistic (default: none)",
    )
    parser.add_argument(
        "-a", "--aggregate",
        action="store_true",
        help="Combine identical queries",
    )
    parser.add_argument(
        "-n", "--normalize",
        action="store_true",
        help="Replace literal values with placeholders before comparing queries",
    )
    parser.add_argument(
        "-l", "--limit",
        type=int,
        help="Show at most N results (default: 10, 0 for all)",
    )
    parser.add_argument(
        "--output",
        choices=OUTPUT_FORMATS,
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Threads used to normalize queries (default: 1)",
    )
    parser.add_argument(
        "--dialect",
        help="SQL dialect used to parse queries (default: mysql)",
    )
    parser.add_argument(
        "--config",
        help="Path to YAML config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s v{__version__}",
    )
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [SLOWLOG] %(levelname)s %(message)s",
        stream=sys.stderr,
    )


def run(args) -> int:
    """Load config, run the pipeline and print the report. Returns an exit code."""
    try:
        config = load_config(args, load_yaml_config(args.config))
        filters = build_filters(config.filters)
    except FilterError as e:
        logger.error("Invalid filter: %s", e)
        return EXIT_USAGE
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_USAGE

    try:
        if config.infile:
            # undecodable bytes from binary literals become U+FFFD
            with open(config.infile, "r", encoding="utf-8", errors="replace") as f:
                result = _run_on(f, config, filters)
        else:
            sys.stdin.reconfigure(encoding="utf-8", errors="replace")
            result = _run_on(sys.stdin, config, filters)
    except FatalLogFormatError as e:
        logger.error("Malformed slow log, aborting: %s", e)
        return EXIT_FAILURE
    except OSError as e:
        logger.error("Unable to read %s: %s", config.infile, e)
        return EXIT_FAILURE

    if config.aggregate:
        entries = top_n(sort_entries(result.entries.values(), config.order), config.limit)
        records = []
    else:
        entries = []
        records = top_n(sort_records(result.records, config.order), config.limit)

    if config.output == "json":
        print(format_report_json(result.summary, entries, records))
    else:
        print(format_report_text(result.summary, entries, records))
    return 0


def _run_on(stream, config, filters):
    return run_pipeline(
        stream,
        filters,
        aggregate=config.aggregate,
        normalize=config.normalize,
        workers=config.workers,
        dialect=config.dialect,
    )


def main():
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    sys.exit(run(args))


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        sys.exit(0)
    except BrokenPipeError:
        sys.exit(0)
