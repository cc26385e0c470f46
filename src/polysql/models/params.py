"""Connection open parameters."""

from pathlib import Path

from pydantic import BaseModel

from polysql.config import (
    get_database_url,
    get_db_path,
    get_driver,
    get_journal_size_limit,
    is_exclusive_locking,
    is_multithreaded,
)


class OpenParams(BaseModel):
    """Parameters for ``Connection.open``.

    ``driver`` selects the backend. ``path`` and the locking/journal options
    are used by SQLite; ``connection_string`` is handed verbatim to libpq.
    """

    driver: str = ""
    path: Path | str = ":memory:"
    connection_string: str = ""
    exclusive_locking: bool = False
    multithreaded: bool = False
    journal_size_limit: int = -1

    @classmethod
    def from_env(cls) -> "OpenParams":
        """Build open parameters from POLYSQL_* environment variables."""
        return cls(
            driver=get_driver(),
            path=get_db_path(),
            connection_string=get_database_url(),
            exclusive_locking=is_exclusive_locking(),
            multithreaded=is_multithreaded(),
            journal_size_limit=get_journal_size_limit(),
        )
