"""Async SQLite storage for wallets and transfer history.

Backed by ``aiosqlite`` with WAL journaling and dict rows.  The schema is
versioned through ``PRAGMA user_version``; :data:`MIGRATIONS` is append-only.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger("baintwallet.storage.database")

MEMORY = ":memory:"

# Each entry upgrades the schema by one version. Never edit a shipped entry.
MIGRATIONS: tuple[str, ...] = (
    """\
    CREATE TABLE wallets (
        identity TEXT PRIMARY KEY,
        address TEXT NOT NULL,
        keystore_json TEXT NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    """\
    CREATE TABLE transfers (
        id TEXT PRIMARY KEY,
        identity TEXT NOT NULL REFERENCES wallets(identity),
        tx_hash TEXT NOT NULL,
        from_address TEXT NOT NULL,
        to_address TEXT NOT NULL,
        amount TEXT NOT NULL,
        status TEXT DEFAULT 'submitted',
        block_number INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX idx_transfers_identity ON transfers (identity, created_at);
    CREATE INDEX idx_transfers_tx_hash ON transfers (tx_hash);
    """,
)


class Database:
    """Single-connection async SQLite handle.

    Parameters
    ----------
    db_path:
        Database file; parent directories are created on :meth:`connect`.
        Pass ``":memory:"`` for a throwaway database (tests).
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = MEMORY if str(db_path) == MEMORY else Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection and bring the schema up to date."""
        if self._conn is not None:
            return
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        await self._conn.execute("PRAGMA journal_mode=WAL;")
        await self._conn.execute("PRAGMA foreign_keys=ON;")
        try:
            await self._migrate()
        except Exception:
            await self.close()
            raise

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: tuple = ()) -> int:
        """Run a write statement, commit, and return the affected row count."""
        conn = self._require()
        cursor = await conn.execute(sql, params)
        await conn.commit()
        return cursor.rowcount

    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        conn = self._require()
        async with conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        conn = self._require()
        async with conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def schema_version(self) -> int:
        conn = self._require()
        async with conn.execute("PRAGMA user_version;") as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def _migrate(self) -> None:
        conn = self._require()
        current = await self.schema_version()
        if current > len(MIGRATIONS):
            raise RuntimeError(
                f"Database schema v{current} is newer than this release "
                f"(v{len(MIGRATIONS)})."
            )
        for version, script in enumerate(MIGRATIONS[current:], start=current + 1):
            await conn.executescript(
                f"BEGIN;\n{script}\nPRAGMA user_version = {version};\nCOMMIT;"
            )
            logger.info(f"Migrated {self.db_path} to schema v{version}")


def get_database(db_path: Path | str) -> Database:
    """Return an unconnected :class:`Database` for *db_path*."""
    return Database(db_path)
