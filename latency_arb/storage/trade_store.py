"""
Durable trade storage.

The trade engine only needs two operations: load everything at startup and
upsert one trade by id. Both are synchronous so a write has landed before
the calling handler returns.
"""

import json
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import Protocol, Union

from ..models import Trade
from ..utils.logger import get_logger

logger = get_logger("trade_store")


class TradeStoreError(Exception):
    """Raised when the stored ledger cannot be read."""


class TradeStore(Protocol):
    """System of record for trades across restarts."""

    def load(self) -> list[Trade]:
        ...

    def upsert(self, trade: Trade) -> None:
        ...


class SqliteTradeStore:
    """SQLite-backed store, one row per trade id."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        """Initialize the database with required tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                id TEXT PRIMARY KEY,
                market_id TEXT NOT NULL,
                status TEXT NOT NULL,
                entry_timestamp REAL NOT NULL,
                payload TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_trades_status ON trades (status)")

        conn.commit()
        conn.close()

    def load(self) -> list[Trade]:
        """Load all trades, oldest entry first."""
        conn = self._connect()
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()

        cursor.execute("SELECT payload FROM trades ORDER BY entry_timestamp ASC")
        rows = cursor.fetchall()
        conn.close()

        return [Trade.from_dict(json.loads(row["payload"])) for row in rows]

    def upsert(self, trade: Trade) -> None:
        """Insert or replace a trade by id."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO trades (id, market_id, status, entry_timestamp, payload, updated_at)
            VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                market_id = excluded.market_id,
                status = excluded.status,
                entry_timestamp = excluded.entry_timestamp,
                payload = excluded.payload,
                updated_at = CURRENT_TIMESTAMP
        """, (
            trade.id, trade.market_id, trade.status.value,
            trade.entry_timestamp, json.dumps(trade.to_dict())
        ))

        conn.commit()
        conn.close()


class JsonTradeStore:
    """
    Whole-file JSON ledger, compatible with ``saved_trades.json``.

    Each upsert rewrites the file through a temp file and ``os.replace`` so
    a crash never leaves a half-written ledger.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._trades: dict[str, Trade] = {}
        self._loaded = False

    def load(self) -> list[Trade]:
        self._trades = {}
        if self.path.exists():
            for trade in self._read():
                self._trades[trade.id] = trade
        self._loaded = True
        return list(self._trades.values())

    def _read(self) -> list[Trade]:
        # Unreadable ledgers are fatal; a rewrite would drop their trades
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                records = json.load(f)
            if not isinstance(records, list):
                raise TypeError(f"expected a list, got {type(records).__name__}")
            return [Trade.from_dict(record) for record in records]
        except (json.JSONDecodeError, TypeError, KeyError, ValueError) as e:
            logger.error(f"Trade ledger {self.path} is unreadable: {e}")
            raise TradeStoreError(f"Trade ledger {self.path} is unreadable: {e}") from e

    def upsert(self, trade: Trade) -> None:
        if not self._loaded:
            self.load()
        self._trades[trade.id] = trade
        self._write()

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        records = [t.to_dict() for t in self._trades.values()]

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".trades-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            os.unlink(tmp_path)
            raise


def open_trade_store(path: Union[str, Path]) -> TradeStore:
    """Pick a store implementation from the file suffix."""
    path = Path(path)
    if path.suffix.lower() == ".json":
        logger.info(f"Using JSON trade store at {path}")
        return JsonTradeStore(path)
    logger.info(f"Using SQLite trade store at {path}")
    return SqliteTradeStore(path)
