"""Global logging configuration for the application."""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional
from dataclasses import dataclass

# Logger used for operator-facing migration progress lines
MIGRATION_LOGGER = "tablesync.migration"

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"             # Logging level (DEBUG, INFO, etc.)
    file: str = ""                  # Path to log file (optional)
    format: str = DEFAULT_FORMAT    # Format string for log messages


class MigrationLogFormatter(logging.Formatter):
    """Formats migration lines as ``[HH:MM:SS] message``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        return f"[{timestamp}] {record.getMessage()}"


class MigrationLogHandler(logging.Handler):
    """Forwards migration log lines to a callback, e.g. a UI log panel."""

    def __init__(self, callback: Callable[[str], None]):
        super().__init__()
        self.callback = callback
        self.setFormatter(MigrationLogFormatter())

    def emit(self, record):
        try:
            self.callback(self.format(record))
        except Exception:
            self.handleError(record)


def setup_logging(config: LoggingConfig) -> None:
    """Set up global logging configuration.

    Args:
        config: Logging configuration
    """
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s\n'
        '  Location: %(pathname)s:%(lineno)d\n'
        '  Function: %(funcName)s\n'
        '  Thread: %(threadName)s'
    )

    simple_formatter = logging.Formatter(config.format or DEFAULT_FORMAT)

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(simple_formatter)
    console_handler.addFilter(skip_forwarded_migration_lines)
    handlers.append(console_handler)

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(detailed_formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(config.level.upper())

    # Remove any existing handlers to avoid duplicate log entries
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    for handler in handlers:
        root_logger.addHandler(handler)

    root_logger.debug("Logging system initialized")
    root_logger.debug(f"Log level: {config.level}")
    if config.file:
        root_logger.info(f"Log file: {config.file}")

    sys.excepthook = _global_exception_handler


def _global_exception_handler(exc_type, exc_value, exc_traceback):
    """Global exception handler to ensure all unhandled exceptions are logged."""
    if not issubclass(exc_type, KeyboardInterrupt):
        logger = get_logger("exception_handler")
        logger.error(
            "Unhandled exception",
            exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.__excepthook__(exc_type, exc_value, exc_traceback)


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance with the specified name.

    This is the preferred way to get a logger in this application.
    The logger will inherit the root logger's configuration.

    Args:
        name: The name for the logger. If None, returns the root logger.

    Returns:
        A configured logger instance
    """
    return logging.getLogger(name) if name else logging.getLogger()


def get_migration_logger() -> logging.Logger:
    """Logger for the operator-facing migration log."""
    return logging.getLogger(MIGRATION_LOGGER)


def attach_migration_log(callback: Callable[[str], None]) -> MigrationLogHandler:
    """Send every migration log line to ``callback`` until the handler is removed.

    Migration lines are INFO records, so the migration logger is lowered to
    INFO while a callback is attached if the configured level would drop them.
    """
    logger = get_migration_logger()
    handler = MigrationLogHandler(callback)
    handler.previous_level = logger.level
    if not logger.isEnabledFor(logging.INFO):
        logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    return handler


def detach_migration_log(handler: Optional[logging.Handler]) -> None:
    if handler is not None:
        logger = get_migration_logger()
        logger.removeHandler(handler)
        logger.setLevel(getattr(handler, 'previous_level', logging.NOTSET))


def skip_forwarded_migration_lines(record: logging.LogRecord) -> bool:
    """Console filter: leave migration lines to an attached callback."""
    if record.name != MIGRATION_LOGGER:
        return True
    return not any(isinstance(h, MigrationLogHandler) for h in get_migration_logger().handlers)


def log_config(config: Any) -> None:
    """Log configuration settings.

    Passwords are never logged.

    Args:
        config: Loaded Config object
    """
    logger = get_logger(__name__)

    logger.debug("Connection Profiles:")
    for profile in config.connections.values():
        logger.debug(
            f"  {profile.id}: {profile.user}@{profile.host}:{profile.port}"
            f" (ssl: {profile.ssl}, connect timeout: {profile.connect_timeout}s)"
        )

    migration = config.migration
    logger.debug("Migration Configuration:")
    logger.debug(f"  Parallel Workers: {migration.parallel_workers}")
    logger.debug(f"  Table Timeout: {migration.table_timeout}")
    logger.debug(f"  Batch Size: {migration.batch_size}")
    logger.debug(f"  Disable Foreign Keys: {migration.disable_foreign_keys}")
    logger.debug(f"  Default Mode: {migration.mode.value}")

    logger.debug("Logging Configuration:")
    logger.debug(f"  Level: {config.logging.level}")
    logger.debug(f"  File: {config.logging.file}")
