"""Command-line interface for the version lister.

Provides argument parsing and main entry point for listing objects and
object versions from the command line.
"""

import argparse
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from s3versions.client import build_client
from s3versions.config import ConfigError, load_config
from s3versions.errors import ListingError
from s3versions.models import ContinuationToken, ListingResult
from s3versions.paginator import DEFAULT_PAGE_SIZE
from s3versions.reporters import ConsoleReporter, JsonReporter, Reporter
from s3versions.retry import DEFAULT_MAX_ATTEMPTS
from s3versions.runner import ListingRunner, md5_of_file
from s3versions.transport import DEFAULT_TIMEOUT, CancelToken

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters.

    Allows using both ConsoleReporter and JsonReporter simultaneously.
    """

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_listing_start(self, bucket: str, prefix: str) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_listing_start(bucket, prefix)

    def on_page_complete(self, bucket: str, prefix: str, page_number: int, record_count: int) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_page_complete(bucket, prefix, page_number, record_count)

    def on_retry(self, bucket: str, prefix: str, attempt: int, error: Exception, delay: float) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_retry(bucket, prefix, attempt, error, delay)

    def on_listing_complete(self, result: ListingResult) -> None:
        """Delegate to all reporters."""
        for reporter in self._reporters:
            reporter.on_listing_complete(result)


def positive_int(value: str) -> int:
    """argparse type for integers greater than zero."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="s3versions",
        description="List objects and object versions in an S3-compatible bucket",
    )

    parser.add_argument(
        "-c", "--config",
        default="config.json",
        help="Path to configuration file (default: config.json)",
    )

    parser.add_argument(
        "--env-file",
        default=".env",
        metavar="PATH",
        help="Path to a .env file with credentials (default: .env)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress per-page progress, show only results",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    parser.add_argument(
        "-j", "--json-output",
        metavar="PATH",
        help="Write JSON results to file",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help=f"Per-request timeout in seconds (default: {DEFAULT_TIMEOUT:g})",
    )

    parser.add_argument(
        "--retries",
        type=positive_int,
        default=DEFAULT_MAX_ATTEMPTS,
        metavar="N",
        help=f"Attempts per page request (default: {DEFAULT_MAX_ATTEMPTS})",
    )

    parser.add_argument(
        "--skip-versioning-check",
        action="store_true",
        help="Do not require versioning to be enabled on the bucket",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    versions = subparsers.add_parser("versions", help="List reconciled version histories")
    versions.add_argument("prefixes", nargs="*", metavar="PREFIX", help="Key prefixes to list")
    versions.add_argument("--delimiter", help="Group keys into common prefixes")
    versions.add_argument(
        "--page-size",
        type=positive_int,
        default=DEFAULT_PAGE_SIZE,
        help=f"Records per page request (default: {DEFAULT_PAGE_SIZE})",
    )
    versions.add_argument("--max-items", type=positive_int, help="Stop after N records")
    versions.add_argument("--key-marker", help="Resume after this key")
    versions.add_argument("--version-id-marker", help="Resume after this version of --key-marker")
    versions.add_argument(
        "--workers",
        type=positive_int,
        default=4,
        help="Prefixes listed concurrently (default: 4)",
    )

    list_versions = subparsers.add_parser("list-versions", help="List the versions of one key")
    list_versions.add_argument("name", help="Object key")

    ls = subparsers.add_parser("ls", help="List objects under a prefix")
    ls.add_argument("prefix", help="Key prefix")

    subparsers.add_parser("list-files", help="List every object in the bucket")

    find_version = subparsers.add_parser(
        "find-version",
        help="Find the version of a key whose content matches a local file",
    )
    find_version.add_argument("name", help="Object key")
    find_version.add_argument("file", help="Local file to compare")

    args = parser.parse_args(argv)
    if args.command == "versions":
        if args.version_id_marker and not args.key_marker:
            versions.error("--version-id-marker requires --key-marker")
        if args.key_marker and len(args.prefixes) > 1:
            versions.error("--key-marker resumes a single listing; give at most one PREFIX")
    return args


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Keep httpx request logging out of normal output
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create reporters based on command-line arguments.

    Args:
        args: Parsed command-line arguments

    Returns:
        List of configured reporters
    """
    show_versions = args.command not in ("ls", "list-files")
    reporters: list[Reporter] = [ConsoleReporter(quiet=args.quiet, show_versions=show_versions)]

    if args.json_output:
        reporters.append(JsonReporter(output_path=args.json_output))

    return reporters


def _start_token(args: argparse.Namespace) -> Optional[ContinuationToken]:
    if not args.key_marker:
        return None
    return ContinuationToken(
        key_marker=args.key_marker,
        version_id_marker=args.version_id_marker,
    )


def run_command(args: argparse.Namespace, runner: ListingRunner, bucket: str) -> int:
    """Run the selected command and return its exit code."""
    if args.command == "find-version":
        try:
            md5_hex = md5_of_file(args.file)
        except OSError as e:
            print(f"Cannot read {args.file}: {e}", file=sys.stderr)
            return EXIT_FAILURE

        version_id, result = runner.find_version_by_hash(bucket, args.name, md5_hex)
        if not result.ok:
            return EXIT_FAILURE
        if version_id is None:
            print(f"No version of {args.name} matches {args.file}")
            return EXIT_FAILURE
        print(f"match: {version_id}")
        return EXIT_OK

    if args.command == "versions":
        results = runner.list_versions_many(
            bucket,
            args.prefixes or [""],
            max_workers=args.workers,
            delimiter=args.delimiter,
            page_size=args.page_size,
            max_items=args.max_items,
            start=_start_token(args),
        )
    elif args.command == "list-versions":
        results = [runner.list_versions(bucket, prefix=args.name, requested_keys=[args.name])]
    elif args.command == "ls":
        results = [runner.list_objects(bucket, prefix=args.prefix, delimiter="/")]
    else:
        results = [runner.list_objects(bucket)]

    return EXIT_OK if all(result.ok for result in results) else EXIT_FAILURE


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for listing errors, 2 for configuration errors
    """
    args = parse_args(argv)
    setup_logging(args.verbose)

    # Load configuration
    try:
        config = load_config(args.config, args.env_file)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    # Create reporters
    reporters = create_reporters(args)
    if len(reporters) == 1:
        reporter = reporters[0]
    else:
        reporter = CompositeReporter(reporters)

    cancel_token = CancelToken()
    client = build_client(config, timeout=args.timeout)
    runner = ListingRunner(
        client,
        reporter=reporter,
        max_attempts=args.retries,
        cancel_token=cancel_token,
    )

    try:
        if not args.skip_versioning_check:
            try:
                enabled = runner.check_versioning(config.bucket_name)
            except ListingError as e:
                print(f"{type(e).__name__}: {e}", file=sys.stderr)
                return EXIT_FAILURE
            if not enabled:
                print(f"Versioning is not enabled on bucket {config.bucket_name}", file=sys.stderr)
                return EXIT_FAILURE

        exit_code = run_command(args, runner, config.bucket_name)
    except KeyboardInterrupt:
        cancel_token.cancel()
        print("Cancelled", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        client.close()

    for json_reporter in reporters:
        if isinstance(json_reporter, JsonReporter):
            json_reporter.write()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
