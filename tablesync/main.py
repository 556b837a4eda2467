"""Main entry point for the table sync tool."""
import argparse
import sys
import signal
import logging
from typing import List, Optional

from tablesync.core.config import load_config
from tablesync.core.logging import attach_migration_log, detach_migration_log, setup_logging, log_config
from tablesync.core.exceptions import ConfigError, DatabaseError, InvalidRequest, TableSyncError
from tablesync.cli.commands import stats_command, precheck_command, migrate_command
from tablesync.infrastructure.parallel import CancelToken, parse_worker_count
from tablesync.services.engine import MigrationEngine
from tablesync.ui.console import create_interface

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID_REQUEST = 2

# Token of the migration in progress, cancelled from the signal handler
cancel_token: Optional[CancelToken] = None


def signal_handler(sig, frame):
    """Handle SIGINT (Ctrl+C): stop starting tables, exit on a second interrupt.

    Args:
        sig: Signal number
        frame: Current stack frame
    """
    if cancel_token is not None and not cancel_token.is_cancelled():
        print("\nReceived interrupt signal. Finishing tables in progress, press Ctrl+C again to exit.")
        logging.info("Received interrupt signal, cancelling migration")
        cancel_token.cancel()
        return

    logging.info("Received interrupt signal. Exiting.")
    sys.exit(EXIT_ERROR)


def _add_request_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--source-conn", required=True, help="Source connection id")
    parser.add_argument("--source-db", required=True, help="Source database")
    parser.add_argument("--target-conn", required=True, help="Target connection id")
    parser.add_argument("--target-db", required=True, help="Target database")
    parser.add_argument("--tables", nargs="+", help="Specific tables to migrate (default: all)")
    parser.add_argument("--mode", choices=["schema", "data", "both"], help="What to copy for each table")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Copy tables between MySQL/MariaDB databases")
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    stats_parser = subparsers.add_parser("stats", help="List tables with row count and size")
    stats_parser.add_argument("--conn", required=True, help="Connection id")
    stats_parser.add_argument("--db", required=True, help="Database")
    stats_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    precheck_parser = subparsers.add_parser("precheck", help="Check a migration for conflicts")
    _add_request_arguments(precheck_parser)

    migrate_parser = subparsers.add_parser("migrate", help="Precheck and copy tables")
    _add_request_arguments(migrate_parser)
    migrate_parser.add_argument("--exclude", nargs="+", help="Tables to leave out of the run")
    migrate_parser.add_argument("--parallel-workers", help="Number of parallel workers (e.g. 4, 50%%, auto)")
    migrate_parser.add_argument("--table-timeout", type=float, help="Seconds allowed per table (0 disables)")

    args = parser.parse_args(argv)

    # Show help if no command is specified
    if not args.command:
        parser.print_help()
        sys.exit(EXIT_OK)

    return args


def main(argv: Optional[List[str]] = None) -> int:
    """Run the table sync tool.

    Returns:
        int: Exit code
    """
    global cancel_token

    try:
        signal.signal(signal.SIGINT, signal_handler)

        args = parse_args(argv)

        # Load configuration first so we can access logging settings
        config = load_config(args.config)

        if args.verbose:
            config.logging.level = 'DEBUG'
        setup_logging(config.logging)
        log_config(config)

        if getattr(args, 'parallel_workers', None):
            config.migration.parallel_workers = parse_worker_count(args.parallel_workers)
        if getattr(args, 'table_timeout', None) is not None:
            if args.table_timeout < 0:
                raise ConfigError("--table-timeout cannot be negative")
            config.migration.table_timeout = args.table_timeout

        ui = None if getattr(args, 'json', False) else create_interface(config.ui)
        engine = MigrationEngine.from_config(config, ui=ui)

        # Migration log lines go to the console interface while progress is shown
        log_feed = None
        if ui is not None and getattr(ui, 'show_progress', False):
            log_feed = attach_migration_log(ui.display_log)
        try:
            if args.command == "stats":
                return stats_command(args, engine, ui)
            elif args.command == "precheck":
                return precheck_command(args, engine, ui)
            elif args.command == "migrate":
                cancel_token = CancelToken()
                try:
                    return migrate_command(args, engine, ui, cancel_token)
                finally:
                    cancel_token = None
            return EXIT_ERROR
        finally:
            detach_migration_log(log_feed)

    except InvalidRequest as e:
        logging.error(f"Invalid request: {str(e)}")
        return EXIT_INVALID_REQUEST
    except ConfigError as e:
        logging.error(f"Configuration error: {str(e)}")
        return EXIT_ERROR
    except DatabaseError as e:
        logging.error(f"Database error: {str(e)}")
        return EXIT_ERROR
    except TableSyncError as e:
        logging.error(f"Error: {str(e)}")
        return EXIT_ERROR
    except Exception as e:
        logging.exception(f"Unexpected error: {str(e)}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
