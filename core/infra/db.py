"""
Database infrastructure with SQLite and async support.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiosqlite


logger = logging.getLogger(__name__)


# Ordered schema migrations; the index + 1 is the version number.
MIGRATIONS: Sequence[str] = (
    """
    CREATE TABLE IF NOT EXISTS refresh_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        contract_id TEXT NOT NULL,
        token_class TEXT NOT NULL,
        token_ids TEXT,
        emitter TEXT,
        txid TEXT,
        event_index INTEGER,
        block_height INTEGER,
        enqueued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_refresh_tasks_contract
    ON refresh_tasks(contract_id)
    """,
)


class Database:
    """Async SQLite database wrapper."""

    def __init__(self, db_path: str = "watcher.db"):
        # Handle sqlite+aiosqlite:///path URLs as well as plain paths
        if db_path.startswith("sqlite"):
            actual_path = db_path.split("///")[-1] if "///" in db_path else db_path.split("//")[-1]
            self.db_path = Path(actual_path)
        else:
            self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Connect to the database and run migrations."""
        if self._connection:
            return

        self._connection = await aiosqlite.connect(self.db_path, timeout=30)
        self._connection.row_factory = aiosqlite.Row
        # WAL lets indexer workers read the queue while we append
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA busy_timeout=30000;")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Execute a SQL statement."""
        if not self._connection:
            await self.connect()
        return await self._connection.execute(sql, params)

    async def fetch_one(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        cursor = await self.execute(sql, params)
        return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        cursor = await self.execute(sql, params)
        return await cursor.fetchall()

    async def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert one row, commit, and return its rowid."""
        columns = list(data.keys())
        placeholders = ", ".join("?" * len(columns))
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"

        cursor = await self.execute(sql, tuple(data.values()))
        await self._connection.commit()
        return cursor.lastrowid

    async def _run_migrations(self) -> None:
        """Apply any migrations newer than the recorded schema version."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor = await self._connection.execute("SELECT MAX(version) FROM migrations")
        row = await cursor.fetchone()
        current = row[0] or 0

        for version, ddl in enumerate(MIGRATIONS, start=1):
            if version <= current:
                continue
            await self._connection.execute(ddl)
            await self._connection.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
            logger.debug(f"Applied migration {version}")
        await self._connection.commit()
