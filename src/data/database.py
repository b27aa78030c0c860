import logging
import random
import time
from pathlib import Path
from typing import Optional

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)


def connect_with_retry(
    db_path: Optional[str], read_only: bool = True, max_retries: int = 3
) -> duckdb.DuckDBPyConnection:
    """
    Open a DuckDB connection, backing off while another process holds the lock.

    Args:
        db_path: Path to DuckDB file, or None / ":memory:" for an in-memory database
        read_only: Open existing files read-only (avoids write locks)
        max_retries: Maximum number of connection attempts

    Returns:
        DuckDB connection
    """
    target = db_path or ":memory:"
    in_memory = target == ":memory:"

    for attempt in range(max_retries):
        try:
            if read_only and not in_memory and Path(target).exists():
                conn = duckdb.connect(target, read_only=True)
                logger.debug(f"Opened read-only connection to {target}")
            else:
                conn = duckdb.connect(target)
                logger.debug(f"Opened read-write connection to {target}")
            return conn

        except duckdb.IOException as e:
            if "lock" in str(e).lower() and attempt < max_retries - 1:
                wait_time = (2**attempt) + random.uniform(0, 1)  # nosec B311
                logger.warning(
                    f"Database locked, retrying in {wait_time:.2f}s (attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(wait_time)
                continue
            logger.error(
                f"Failed to connect to database after {attempt + 1} attempts: {e}"
            )
            raise

    raise duckdb.IOException(
        f"Could not establish database connection after {max_retries} attempts"
    )


class BallotDatabase:
    """
    DuckDB holding the contestants and rankings tables of one election.
    Connections are opened on demand and closed with close() or the context manager.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = True):
        """
        Initialize database connection manager.

        Args:
            db_path: Path to DuckDB file. If None, uses in-memory database.
            read_only: Open existing files read-only (recommended for reporting)
        """
        self.db_path = db_path
        self.read_only = read_only
        self._conn = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create a database connection on-demand."""
        if self._conn is None:
            self._conn = connect_with_retry(self.db_path, self.read_only)
        return self._conn

    def query(self, sql: str, params: Optional[list] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as DataFrame.

        Args:
            sql: SQL query to execute
            params: Optional positional parameters for ``?`` placeholders
        """
        if params:
            return self.conn.execute(sql, params).fetchdf()
        return self.conn.execute(sql).fetchdf()

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the database."""
        result = self.conn.execute(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
            [table_name],
        ).fetchone()
        return result[0] > 0

    def close(self):
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug(f"Closed database connection to {self.db_path}")
            except duckdb.Error as e:
                logger.warning(f"Error closing database connection: {e}")
            finally:
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
