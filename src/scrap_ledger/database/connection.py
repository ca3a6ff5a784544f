import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

Connection = sqlite3.Connection

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Milliseconds a writer waits for another connection's lock
BUSY_TIMEOUT_MS = 5000

class DatabaseConfig:
    """Where the ledger database lives."""

    def __init__(self, db_path: Path | str = "data/ledger.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def connection_string(self) -> str:
        return str(self.db_path.absolute())

def configure_connection(conn: Connection) -> None:
    """
    Pragmas every ledger connection needs.

    Foreign keys must be on for unique key claims to be released with their
    document; the busy timeout makes a second writer queue behind the first.
    """
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    conn.row_factory = sqlite3.Row

class DatabaseManager:
    """
    Owns one SQLite connection for the process.

    The connection is opened lazily and shared between threads, so every
    transaction on it holds a re-entrant lock. Separate managers on the same
    file are serialized by SQLite itself.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connection: Connection | None = None
        self._lock = threading.RLock()

    def get_connection(self) -> Connection:
        if self._connection is None:
            conn = sqlite3.connect(self.config.connection_string, check_same_thread=False)
            configure_connection(conn)
            self._connection = conn
        return self._connection

    def close(self) -> None:
        if self._connection:
            self._connection.close()
            self._connection = None

    def ensure_schema(self, schema_path: Path = SCHEMA_PATH) -> None:
        """Create missing tables. Safe to call on every start."""
        with self._lock:
            execute_schema(self.get_connection(), schema_path)

    @contextmanager
    def transaction(self, immediate: bool = False) -> Iterator[Connection]:
        """
        Run a block as one transaction: commit on success, roll back on error.

        Args:
            immediate: Start with BEGIN IMMEDIATE, taking the write lock before
                the block reads anything. Needed whenever the block reads a
                value and writes something derived from it.

        Usage:
            with db_manager.transaction(immediate=True) as conn:
                row = conn.execute("SELECT ...").fetchone()
                conn.execute("UPDATE ...")
        """
        with self._lock:
            conn = self.get_connection()
            if immediate and not conn.in_transaction:
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

def execute_schema(conn: Connection, schema_path: Path) -> None:
    """Execute a SQL schema file."""
    with open(schema_path) as f:
        conn.executescript(f.read())
    conn.commit()
