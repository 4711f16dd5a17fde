"""
SQLite database for trades and persistent bot state.
"""
import sqlite3
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from .models import Direction, TradeRecord


class TradeDatabase:
    """
    Trade log and key/value bot state.

    Each call opens its own connection; the bot is single-threaded and
    writes are small.
    """

    def __init__(self, path: Union[str, Path] = "data/latency_arb.db"):
        self.path = Path(path)
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        """Initialize the database with required tables."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                window_start INTEGER NOT NULL,
                market_slug TEXT,
                token_id TEXT,
                direction TEXT NOT NULL,
                limit_price REAL NOT NULL,
                shares INTEGER NOT NULL,
                cost REAL NOT NULL,
                confidence REAL,
                fair_value REAL,
                venue_price REAL,
                entry_price REAL,
                window_open_price REAL,
                delta REAL,
                seconds_into_window REAL,
                hour_utc INTEGER,
                order_id TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                pnl REAL DEFAULT 0,
                reasons TEXT,
                placed_at REAL NOT NULL,
                settled_at REAL
            )
        """)
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_trades_status ON trades (status)")

        # Bankroll, pause flag and config overrides
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bot_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()

    def add_trade(self, trade: TradeRecord) -> int:
        """Insert a trade and return its id (also set on the record)."""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO trades (window_start, market_slug, token_id, direction, limit_price, shares, cost,
                                confidence, fair_value, venue_price, entry_price, window_open_price, delta,
                                seconds_into_window, hour_utc, order_id, status, pnl, reasons, placed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            trade.window_start, trade.market_slug, trade.token_id, trade.direction.value,
            trade.limit_price, trade.shares, trade.cost, trade.confidence, trade.fair_value,
            trade.venue_price, trade.entry_price, trade.window_open_price, trade.delta,
            trade.seconds_into_window, trade.hour_utc, trade.order_id, trade.status, trade.pnl,
            json.dumps(list(trade.reasons)), trade.placed_at
        ))

        trade.id = cursor.lastrowid
        conn.commit()
        conn.close()
        return trade.id

    def update_trade(self, trade: TradeRecord):
        """Persist status, P&L and settlement time."""
        if trade.id is None:
            raise ValueError("Trade has no id; add it first")

        conn = self._connect()
        conn.execute("""
            UPDATE trades SET status = ?, pnl = ?, settled_at = ?, order_id = ?
            WHERE id = ?
        """, (trade.status, trade.pnl, trade.settled_at, trade.order_id, trade.id))
        conn.commit()
        conn.close()

    def get_trades(self, limit: int = 50, status: Optional[str] = None) -> list[TradeRecord]:
        """Most recent trades first."""
        conn = self._connect()
        if status:
            rows = conn.execute(
                "SELECT * FROM trades WHERE status = ? ORDER BY placed_at DESC, id DESC LIMIT ?",
                (status, limit)
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM trades ORDER BY placed_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        conn.close()
        return [self._row_to_trade(row) for row in rows]

    def get_pending_trades(self) -> list[TradeRecord]:
        """Unsettled trades, oldest first."""
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM trades WHERE status = 'pending' ORDER BY window_start ASC, id ASC"
        ).fetchall()
        conn.close()
        return [self._row_to_trade(row) for row in rows]

    def hourly_stats(self) -> dict[int, dict[str, Any]]:
        """Settled trades aggregated by UTC hour of entry. Only hours with trades."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT hour_utc,
                   COUNT(*) AS trades,
                   SUM(CASE WHEN status = 'win' THEN 1 ELSE 0 END) AS wins,
                   SUM(CASE WHEN status = 'loss' THEN 1 ELSE 0 END) AS losses,
                   SUM(pnl) AS pnl
            FROM trades
            WHERE status IN ('win', 'loss')
            GROUP BY hour_utc
            ORDER BY hour_utc
        """).fetchall()
        conn.close()

        stats = {}
        for row in rows:
            trades = row['trades']
            stats[row['hour_utc']] = {
                "trades": trades,
                "wins": row['wins'],
                "losses": row['losses'],
                "pnl": round(row['pnl'] or 0.0, 2),
                "win_rate": round(row['wins'] / trades * 100, 1) if trades else 0.0,
            }
        return stats

    def save_state(self, key: str, value: Any):
        """Store a JSON-serializable value."""
        conn = self._connect()
        conn.execute("""
            INSERT INTO bot_state (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """, (key, json.dumps(value), datetime.now(timezone.utc).isoformat()))
        conn.commit()
        conn.close()

    def load_state(self, key: str, default: Any = None) -> Any:
        conn = self._connect()
        row = conn.execute("SELECT value FROM bot_state WHERE key = ?", (key,)).fetchone()
        conn.close()
        if row is None:
            return default
        return json.loads(row['value'])

    @staticmethod
    def _row_to_trade(row: sqlite3.Row) -> TradeRecord:
        return TradeRecord(
            id=row['id'],
            window_start=row['window_start'],
            market_slug=row['market_slug'] or "",
            token_id=row['token_id'] or "",
            direction=Direction(row['direction']),
            limit_price=row['limit_price'],
            shares=row['shares'],
            cost=row['cost'],
            confidence=row['confidence'],
            fair_value=row['fair_value'],
            venue_price=row['venue_price'],
            entry_price=row['entry_price'],
            window_open_price=row['window_open_price'],
            delta=row['delta'],
            seconds_into_window=row['seconds_into_window'],
            order_id=row['order_id'],
            status=row['status'],
            pnl=row['pnl'] or 0.0,
            reasons=tuple(json.loads(row['reasons'] or "[]")),
            placed_at=row['placed_at'],
            settled_at=row['settled_at'],
        )
