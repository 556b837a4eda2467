"""MariaDB database operations implementation."""
import time
from contextlib import contextmanager
from typing import List, Dict, Any, Optional, Iterator

import mysql.connector
from mysql.connector import Error

from tablesync.core.exceptions import DatabaseConnectionError, QueryError, OperationCancelled
from tablesync.core.logging import get_logger, get_migration_logger
from ..domain.interfaces import ConnectionExecutor
from ..domain.models import ConnectionProfile, TableStat

logger = get_logger(__name__)
migration_log = get_migration_logger()

TABLE_STATS_QUERY = """
    SELECT TABLE_NAME, TABLE_ROWS, DATA_LENGTH, INDEX_LENGTH
    FROM information_schema.tables
    WHERE table_schema = %s AND table_type = 'BASE TABLE'
    ORDER BY TABLE_NAME
"""

SCHEMA_EXISTS_QUERY = """
    SELECT COUNT(*)
    FROM information_schema.schemata
    WHERE schema_name = %s
"""


def quote_identifier(name: str) -> str:
    """Quote a database, table or column name with backticks."""
    return "`" + str(name).replace("`", "``") + "`"


def build_insert_statement(table_name: str, columns: List[str]) -> str:
    """Build a parameterised single-row INSERT for ``executemany``."""
    column_sql = ", ".join(quote_identifier(c) for c in columns)
    placeholders = ", ".join(["%s"] * len(columns))
    return f"INSERT INTO {quote_identifier(table_name)} ({column_sql}) VALUES ({placeholders})"


class MariaDB:
    """Connection handle for one resolved connection profile.

    A handle never keeps a live session; every operation opens its own
    connection through ``session`` so that worker threads never share one.
    """

    def __init__(self, profile: ConnectionProfile, statement_timeout: float = 0):
        self.profile = profile
        self.statement_timeout = statement_timeout

        self._config = {
            'host': profile.host,
            'port': profile.port,
            'user': profile.user,
            'password': profile.password,
            'use_pure': profile.use_pure,
            'connection_timeout': profile.connect_timeout,
        }

        if profile.auth_plugin:
            self._config['auth_plugin'] = profile.auth_plugin

        if profile.ssl:
            ssl_options = {}
            if profile.ssl_ca:
                ssl_options['ssl_ca'] = profile.ssl_ca
            if profile.ssl_cert:
                ssl_options['ssl_cert'] = profile.ssl_cert
            if profile.ssl_key:
                ssl_options['ssl_key'] = profile.ssl_key
            self._config['ssl_disabled'] = False
            self._config.update(ssl_options)
        else:
            self._config['ssl_disabled'] = True

        # Retry settings
        self.max_retries = 2
        self.retry_backoff_factor = 1.5  # Each retry will wait 1.5 times longer

    @property
    def config(self) -> Dict[str, Any]:
        """Connection arguments passed to mysql.connector (password included)."""
        return self._config

    @property
    def id(self) -> str:
        return self.profile.id

    def __repr__(self):
        return f"MariaDB({self.profile.id!r}, {self.profile.host}:{self.profile.port})"

    def connect(self, database: Optional[str] = None):
        """Open a new connection with retry logic.

        Uses exponential backoff for connection retries.

        Raises:
            DatabaseConnectionError: If connection fails after all retries
        """
        conn_config = self._config.copy()
        if database:
            conn_config['database'] = database

        retry_count = 0
        last_error = None

        while retry_count <= self.max_retries:
            try:
                connection = mysql.connector.connect(**conn_config)
                connection.autocommit = True
                cursor = connection.cursor()
                try:
                    cursor.execute("SET SESSION sql_mode = 'STRICT_TRANS_TABLES,NO_ENGINE_SUBSTITUTION'")
                    if self.statement_timeout:
                        self._set_statement_timeout(cursor)
                finally:
                    cursor.close()
                logger.debug(f"Connected to {self.profile.host}:{self.profile.port} ({database or 'no database'})")
                return connection
            except Error as e:
                retry_count += 1
                last_error = str(e)

                if retry_count <= self.max_retries:
                    wait_time = self.retry_backoff_factor ** (retry_count - 1)
                    logger.warning(
                        f"Connection attempt {retry_count} to {self.profile.id} failed: {str(e)}. "
                        f"Retrying in {wait_time:.1f} seconds..."
                    )
                    time.sleep(wait_time)
                else:
                    logger.error(f"Failed to connect to {self.profile.id} after {self.max_retries} retries: {str(e)}")

        raise DatabaseConnectionError(f"Failed to connect to {self.profile.display_name}: {last_error}")

    def _set_statement_timeout(self, cursor) -> None:
        """Ask the server to abandon statements running past the table timeout."""
        try:
            cursor.execute(f"SET SESSION max_statement_time = {float(self.statement_timeout)}")
        except Error as e:
            # MySQL has no max_statement_time; the worker pool timeout still applies
            logger.debug(f"Server-side statement timeout not supported: {str(e)}")

    @contextmanager
    def session(self, database: Optional[str] = None) -> Iterator[Any]:
        """Open a connection for the duration of a ``with`` block."""
        connection = self.connect(database)
        try:
            yield connection
        finally:
            try:
                connection.close()
            except Error as e:
                logger.warning(f"Error during disconnect from {self.profile.id}: {str(e)}")

    def ping(self) -> None:
        """Verify the server accepts a session.

        Raises:
            DatabaseConnectionError: If the server cannot be reached
        """
        with self.session() as connection:
            cursor = connection.cursor()
            try:
                cursor.execute("SELECT 1")
                cursor.fetchall()
            except Error as e:
                raise DatabaseConnectionError(f"Connection {self.profile.id} is not usable: {str(e)}")
            finally:
                cursor.close()


class MariaDBExecutor(ConnectionExecutor):
    """mysql.connector implementation of the operations the engine consumes."""

    def __init__(
        self,
        profiles: Dict[str, ConnectionProfile],
        batch_size: int = 500,
        disable_foreign_keys: bool = True,
        statement_timeout: float = 0,
        verify_connections: bool = True
    ):
        self.profiles = dict(profiles)
        self.batch_size = max(1, batch_size)
        self.disable_foreign_keys = disable_foreign_keys
        self.statement_timeout = statement_timeout
        self.verify_connections = verify_connections

    def resolve_connection(self, conn_id: str) -> MariaDB:
        profile = self.profiles.get(conn_id)
        if profile is None:
            raise DatabaseConnectionError(f"Unknown connection: {conn_id}")
        if not profile.is_complete:
            raise DatabaseConnectionError(f"Connection {conn_id} is incomplete: host, user and port are required")

        handle = MariaDB(profile, statement_timeout=self.statement_timeout)
        if self.verify_connections:
            handle.ping()
        return handle

    def list_table_stats(self, handle: MariaDB, database: str) -> List[TableStat]:
        with handle.session() as connection:
            cursor = connection.cursor()
            try:
                cursor.execute(SCHEMA_EXISTS_QUERY, (database,))
                (exists,) = cursor.fetchone()
                if not exists:
                    raise QueryError(f"Unknown database '{database}' on {handle.profile.display_name}")

                cursor.execute(TABLE_STATS_QUERY, (database,))
                rows = cursor.fetchall()
            except Error as e:
                raise QueryError(f"Failed to read table statistics for {database}: {str(e)}")
            finally:
                cursor.close()

        stats = []
        for name, row_count, data_length, index_length in rows:
            if isinstance(name, (bytes, bytearray)):
                name = name.decode('utf-8')
            stats.append(TableStat(
                name=name,
                row_count=int(row_count or 0),
                size_bytes=int(data_length or 0) + int(index_length or 0)
            ))
        logger.debug(f"Found {len(stats)} tables in {handle.id}/{database}")
        return stats

    def _show_create_table(self, source: MariaDB, source_db: str, table_name: str) -> str:
        with source.session(source_db) as connection:
            cursor = connection.cursor()
            try:
                cursor.execute(
                    f"SHOW CREATE TABLE {quote_identifier(source_db)}.{quote_identifier(table_name)}"
                )
                row = cursor.fetchone()
            except Error as e:
                raise QueryError(f"Failed to read structure of {table_name}: {str(e)}")
            finally:
                cursor.close()
        if not row:
            raise QueryError(f"No CREATE statement returned for {table_name}")
        create_sql = row[1]
        if isinstance(create_sql, (bytes, bytearray)):
            create_sql = create_sql.decode('utf-8')
        return create_sql

    def copy_schema(self, source: MariaDB, source_db: str, target: MariaDB, target_db: str, table_name: str) -> None:
        create_sql = self._show_create_table(source, source_db, table_name)

        with target.session(target_db) as connection:
            cursor = connection.cursor()
            try:
                cursor.execute("SET FOREIGN_KEY_CHECKS = 0")
                cursor.execute(create_sql)
                cursor.execute("SET FOREIGN_KEY_CHECKS = 1")
            except Error as e:
                raise QueryError(f"Failed to create table {table_name} on {target_db}: {str(e)}")
            finally:
                cursor.close()
        migration_log.info(f"Created table structure: {table_name}")

    def copy_data(
        self,
        source: MariaDB,
        source_db: str,
        target: MariaDB,
        target_db: str,
        table_name: str,
        cancel_token: Optional[Any] = None
    ) -> int:
        total_rows = 0
        with source.session(source_db) as src_conn, target.session(target_db) as tgt_conn:
            src_cursor = src_conn.cursor()
            tgt_cursor = tgt_conn.cursor()
            try:
                if self.disable_foreign_keys:
                    tgt_cursor.execute("SET FOREIGN_KEY_CHECKS = 0")
                tgt_conn.start_transaction()

                src_cursor.execute(
                    f"SELECT * FROM {quote_identifier(source_db)}.{quote_identifier(table_name)}"
                )
                insert_sql = build_insert_statement(table_name, list(src_cursor.column_names))

                while True:
                    if cancel_token is not None and cancel_token.is_cancelled():
                        raise OperationCancelled()
                    batch = src_cursor.fetchmany(self.batch_size)
                    if not batch:
                        break
                    tgt_cursor.executemany(insert_sql, [tuple(row) for row in batch])
                    total_rows += len(batch)
                    logger.debug(f"Copied {total_rows} rows into {target_db}.{table_name}")

                if cancel_token is not None and cancel_token.is_cancelled():
                    raise OperationCancelled()
                tgt_conn.commit()
            except (Error, OperationCancelled) as e:
                self._rollback(tgt_conn, table_name)
                if isinstance(e, OperationCancelled):
                    raise
                raise QueryError(f"Failed to copy rows of {table_name}: {str(e)}")
            finally:
                self._close_cursor(src_cursor)
                self._close_cursor(tgt_cursor)

        migration_log.info(f"Table {table_name} data copied ({total_rows} rows)")
        return total_rows

    def _rollback(self, connection, table_name: str) -> None:
        try:
            connection.rollback()
        except Error as e:
            logger.warning(f"Rollback failed for {table_name}: {str(e)}")

    def _close_cursor(self, cursor) -> None:
        try:
            cursor.close()
        except Error as e:
            # Unread rows remain when a copy stops early
            logger.debug(f"Error closing cursor: {str(e)}")
