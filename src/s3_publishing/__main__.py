#!/usr/bin/env python3
"""
S3 Publishing Command Line Interface

Commands:
  connect        Check connectivity and credentials
  list-buckets   List the account's buckets
  flush-bucket   Remove all objects from a bucket
  upload         Upload a local file to a bucket
  import         Import local files into a collection
  publish        Publish a collection and remove obsolete objects
  republish      Force publishing of every resource of a collection
  diff           Find bucket objects without a matching resource
"""

import argparse
import asyncio
import sys

from .commands import COMMANDS
from .constants import DEFAULT_PUBLISH_CONCURRENCY, DEFAULT_SETTINGS_FILE, DEFAULT_TRANSFER_TIMEOUT
from .exceptions import ConfigurationError
from .logging_config import setup_logging
from .run_config import load_settings
from .storage import create_client


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="s3-publishing",
        description="Publish content-addressed resources to S3 buckets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check that the credentials can write to a bucket
  python -m s3_publishing connect --bucket my-bucket --prefix test/

  # Import files and publish the collection
  python -m s3_publishing import persistent ./images/*.jpg
  python -m s3_publishing publish persistent

  # Report objects without a registered resource and remove them
  python -m s3_publishing diff my-bucket --prefix persistent/ --remove-unregistered
        """,
    )
    parser.add_argument(
        "--settings", default=DEFAULT_SETTINGS_FILE, help=f"Settings file (default: {DEFAULT_SETTINGS_FILE})"
    )
    parser.add_argument(
        "--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    connect_parser = subparsers.add_parser("connect", help="Check connectivity and credentials")
    connect_parser.add_argument("--bucket", help="Write and delete a test object in this bucket")
    connect_parser.add_argument("--prefix", default="", help="Key prefix for the test object")

    subparsers.add_parser("list-buckets", help="List the account's buckets")

    flush_parser = subparsers.add_parser("flush-bucket", help="Remove all objects from a bucket")
    flush_parser.add_argument("bucket", help="Name of the bucket")
    flush_parser.add_argument("--prefix", default="", help="Only remove objects under this prefix")
    flush_parser.add_argument("--yes", "-y", action="store_true", help="Auto-confirm without prompting (dangerous!)")
    flush_parser.add_argument(
        "--dry-run", action="store_true", help="Show what would be deleted without actually deleting"
    )

    upload_parser = subparsers.add_parser("upload", help="Upload a local file to a bucket")
    upload_parser.add_argument("bucket", help="Name of the bucket")
    upload_parser.add_argument("file", help="Path of the file to upload")
    upload_parser.add_argument("--key", default="", help="Object key (default: the file's name)")

    import_parser = subparsers.add_parser("import", help="Import local files into a collection")
    import_parser.add_argument("collection", help="Name of the collection")
    import_parser.add_argument("files", nargs="+", help="Files to import")

    publish_parser = subparsers.add_parser("publish", help="Publish a collection and remove obsolete objects")
    publish_parser.add_argument("collection", nargs="?", default="persistent", help="Name of the collection")
    publish_parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_PUBLISH_CONCURRENCY,
        help=f"Concurrent transfers (default: {DEFAULT_PUBLISH_CONCURRENCY})",
    )
    publish_parser.add_argument(
        "--transfer-timeout",
        type=float,
        default=DEFAULT_TRANSFER_TIMEOUT,
        help=f"Seconds per copy or upload (default: {DEFAULT_TRANSFER_TIMEOUT:.0f})",
    )
    publish_parser.add_argument("--verbose", "-v", action="store_true", help="Print every transfer")

    republish_parser = subparsers.add_parser("republish", help="Force publishing of every resource of a collection")
    republish_parser.add_argument("collection", nargs="?", default="persistent", help="Name of the collection")

    diff_parser = subparsers.add_parser("diff", help="Find bucket objects without a matching resource")
    diff_parser.add_argument("bucket", help="Name of the bucket")
    diff_parser.add_argument("--prefix", default="", help="Key prefix of the stored objects")
    diff_parser.add_argument(
        "--remove-unregistered", action="store_true", help="Delete objects without a matching resource"
    )
    diff_parser.add_argument("--debug", action="store_true", help="Print every unregistered object")

    return parser


async def main(argv: list[str] | None = None) -> int:
    """Main entry point for the s3-publishing CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level)

    try:
        settings = load_settings(args.settings)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1

    client = create_client(settings.profile)
    try:
        return await COMMANDS[args.command](args, settings, client)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1
    finally:
        await client.close()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
