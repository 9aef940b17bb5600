"""Async SQLite access for wallet and transaction rows.

One ``aiosqlite`` connection per service, WAL journaling and foreign keys
switched on at connect time. Rows come back as plain dicts. A UNIQUE
violation is re-raised as :class:`~custodial_wallet.errors.DuplicateRecordError`
so the layers above never import ``sqlite3``.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite

from custodial_wallet.errors import DuplicateRecordError

SCHEMA = """\
CREATE TABLE IF NOT EXISTS wallets (
    id TEXT PRIMARY KEY,
    user_id TEXT UNIQUE NOT NULL,
    address TEXT UNIQUE NOT NULL,
    encrypted_key TEXT NOT NULL,
    network TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    wallet_id TEXT NOT NULL REFERENCES wallets(id),
    type TEXT NOT NULL CHECK (type IN ('send', 'receive')),
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    amount TEXT NOT NULL,
    tx_hash TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'completed', 'failed')),
    block_number INTEGER,
    gas_used TEXT,
    gas_price TEXT,
    nonce INTEGER,
    created_at TEXT NOT NULL
);

-- A broadcast hash is recorded once across all wallets. Empty hashes
-- belong to sends still waiting for broadcast.
CREATE UNIQUE INDEX IF NOT EXISTS ux_transactions_hash
    ON transactions (tx_hash) WHERE tx_hash <> '';

CREATE INDEX IF NOT EXISTS ix_transactions_wallet_created
    ON transactions (wallet_id, created_at);
"""


class Database:
    """Owns the SQLite connection and the schema.

    Parameters
    ----------
    db_path:
        Location of the database file. Missing parent directories are
        created by :meth:`connect`.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        await conn.executescript(SCHEMA)
        await conn.commit()
        self._conn = conn

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._conn

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Run one write statement and commit it.

        The cursor is returned for ``rowcount``.

        Raises
        ------
        DuplicateRecordError
            The statement hit a UNIQUE constraint or index.
        """
        try:
            cursor = await self.conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" not in str(exc):
                raise
            raise DuplicateRecordError(str(exc)) from exc
        await self.conn.commit()
        return cursor

    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        async with self.conn.execute(sql, params) as cursor:
            row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        async with self.conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]


def get_database(db_path: str | Path) -> Database:
    """Build an unconnected :class:`Database`; await ``connect()`` before use."""
    return Database(Path(db_path))
