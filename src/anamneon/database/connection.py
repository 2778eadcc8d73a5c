"""SQLite connection, initialization and raw backup utilities."""

import logging
import shutil
import sqlite3
import threading
from pathlib import Path

from .migrations import apply_migrations
from ..core.exceptions import FormatError, StorageError

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"


class DatabaseConnection:
    """Manage SQLite connections, schema migration and file-level backup."""

    __slots__ = ("db_path", "_local", "_lock", "_initialized")

    def __init__(self, db_path="./anamneon.db"):
        """Initialize connection state."""
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self):
        """Create or migrate the schema if not already done for this instance."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Initializing database at %s", self.db_path)

                conn = self._get_connection()
                ran = apply_migrations(conn)
                if ran:
                    logger.info("Applied migrations: %s", ran)

                self._initialized = True

            except sqlite3.Error as e:
                raise StorageError(f"Failed to initialize database: {e}")

    def _get_connection(self):
        """Get or create a thread-local SQLite connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path), check_same_thread=False, isolation_level=None
            )
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA foreign_keys = ON")

        return self._local.connection

    def get_cursor_context(self):
        """Return a context manager for a SQLite cursor."""
        return CursorContext(self._get_connection())

    def get_transaction_context(self):
        """Return a transaction context manager (BEGIN/COMMIT/ROLLBACK)."""
        return TransactionContext(self._get_connection())

    def execute(self, query, params=None):
        """Execute a single SQL statement and return the affected row count."""
        with self.get_cursor_context() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)
            return cursor.rowcount

    def fetch_one(self, query, params=None):
        """Fetch a single row as a dict or None."""
        with self.get_cursor_context() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            row = cursor.fetchone()
            return dict(row) if row else None

    def fetch_all(self, query, params=None):
        """Fetch all rows as a list of dicts."""
        with self.get_cursor_context() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            rows = cursor.fetchall()
            return [dict(row) for row in rows]

    def get_version(self):
        """Return the highest applied migration version."""
        try:
            result = self.fetch_one("SELECT MAX(version) as version FROM schema_version")
            return result["version"] if result and result["version"] else 0
        except sqlite3.Error:
            return 0

    def backup_to(self, destination):
        """Copy the raw store file (ciphertext only) to ``destination``."""
        destination = Path(destination)
        conn = self._get_connection()
        if conn.in_transaction:
            raise StorageError("Cannot back up while a transaction is open")
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(self.db_path, destination)
        logger.info("Backed up database to %s", destination)
        return destination

    def restore_from(self, source):
        """Replace the store file with ``source`` and reopen it.

        The file must look like a SQLite database; migrations run on reopen so
        an older backup is brought to the current shape.
        """
        source = Path(source)
        with open(source, "rb") as f:
            if f.read(len(SQLITE_HEADER)) != SQLITE_HEADER:
                raise FormatError(f"{source.name} is not a SQLite database")

        self.close()
        with self._lock:
            self._initialized = False
        shutil.copyfile(source, self.db_path)
        logger.info("Restored database from %s", source)
        self.initialize()

    def close(self):
        """Close the thread-local connection if open."""
        if hasattr(self._local, "connection") and self._local.connection:
            self._local.connection.close()
            self._local.connection = None


class CursorContext:
    """Context manager for SQLite cursor."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Create and return a cursor."""
        self.cursor = self.connection.cursor()
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Close the cursor."""
        if self.cursor:
            self.cursor.close()


class TransactionContext:
    """Context manager for transactions (BEGIN/COMMIT/ROLLBACK)."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Begin a transaction and return a cursor."""
        self.cursor = self.connection.cursor()
        self.cursor.execute("BEGIN")
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Commit on success, rollback on error, then close cursor."""
        try:
            if exc_type is None:
                self.connection.commit()
            else:
                self.connection.rollback()
        finally:
            if self.cursor:
                self.cursor.close()
