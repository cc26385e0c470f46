"""Environment-variable-based configuration."""

import logging
import os
import sys
from pathlib import Path


def get_driver() -> str:
    """Return the backend driver name from POLYSQL_DRIVER."""
    return os.environ.get("POLYSQL_DRIVER", "sqlite")


def get_db_path() -> Path | str:
    """Return the SQLite database path from POLYSQL_DB_PATH.

    ``:memory:`` is passed through untouched.
    """
    raw = os.environ.get("POLYSQL_DB_PATH", ":memory:")
    if raw == ":memory:":
        return raw
    return Path(raw).expanduser()


def get_database_url() -> str:
    """Return the PostgreSQL connection string from POLYSQL_DATABASE_URL."""
    return os.environ.get("POLYSQL_DATABASE_URL", "")


def is_exclusive_locking() -> bool:
    """Return True if POLYSQL_EXCLUSIVE_LOCKING is set to TRUE."""
    return os.environ.get("POLYSQL_EXCLUSIVE_LOCKING", "").upper() == "TRUE"


def is_multithreaded() -> bool:
    """Return True if POLYSQL_MULTITHREADED is set to TRUE."""
    return os.environ.get("POLYSQL_MULTITHREADED", "").upper() == "TRUE"


def get_journal_size_limit() -> int:
    """Return the SQLite journal size limit from POLYSQL_JOURNAL_SIZE_LIMIT."""
    return int(os.environ.get("POLYSQL_JOURNAL_SIZE_LIMIT", "-1"))


def get_test_postgres_url() -> str | None:
    """Return the connection string for live PostgreSQL tests, if any."""
    return os.environ.get("POLYSQL_TEST_POSTGRES_URL") or None


def get_log_level() -> str:
    """Return the logging level from POLYSQL_LOG_LEVEL."""
    return os.environ.get("POLYSQL_LOG_LEVEL", "WARNING")


def configure_logging() -> None:
    """Send polysql logs to stderr at the configured level."""
    logging.basicConfig(
        level=getattr(logging, get_log_level().upper()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
