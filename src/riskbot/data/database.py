"""Async SQLite database manager for portfolio risk persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import os
from typing import Self

import aiosqlite

from riskbot.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS portfolios (
    portfolio_id INTEGER PRIMARY KEY,
    name TEXT NOT NULL DEFAULT '',
    initial_capital TEXT NOT NULL,
    current_equity TEXT NOT NULL,
    current_cash TEXT NOT NULL,
    buying_power TEXT NOT NULL,
    peak_value TEXT NOT NULL,
    current_drawdown_percent TEXT NOT NULL DEFAULT '0',
    is_trading_paused INTEGER NOT NULL DEFAULT 0,
    paused_reason TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    last_synced_at TEXT
);

CREATE TABLE IF NOT EXISTS performance_metrics (
    portfolio_id INTEGER NOT NULL,
    period_type TEXT NOT NULL,
    period_date TEXT NOT NULL,
    portfolio_value TEXT NOT NULL,
    period_return_percent TEXT NOT NULL,
    total_return_percent TEXT NOT NULL,
    max_drawdown_percent TEXT NOT NULL,
    sharpe_ratio TEXT,
    win_rate TEXT,
    total_trades INTEGER NOT NULL DEFAULT 0,
    winning_trades INTEGER NOT NULL DEFAULT 0,
    losing_trades INTEGER NOT NULL DEFAULT 0,
    average_win TEXT,
    average_loss TEXT,
    PRIMARY KEY (portfolio_id, period_type, period_date)
);

CREATE TABLE IF NOT EXISTS trade_history (
    trade_id INTEGER PRIMARY KEY AUTOINCREMENT,
    portfolio_id INTEGER NOT NULL,
    strategy_id INTEGER,
    symbol TEXT NOT NULL,
    quantity TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    exit_price TEXT NOT NULL,
    realized_pl TEXT NOT NULL,
    realized_pl_percent TEXT NOT NULL,
    holding_period_days INTEGER NOT NULL,
    exit_date TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS price_bars (
    symbol TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    open TEXT NOT NULL,
    high TEXT NOT NULL,
    low TEXT NOT NULL,
    close TEXT NOT NULL,
    volume TEXT NOT NULL,
    indicators TEXT,
    PRIMARY KEY (symbol, timestamp)
);

CREATE TABLE IF NOT EXISTS audit_log (
    audit_id INTEGER PRIMARY KEY AUTOINCREMENT,
    portfolio_id INTEGER NOT NULL,
    action TEXT NOT NULL,
    details TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_trades_portfolio_exit
    ON trade_history(portfolio_id, exit_date);

CREATE INDEX IF NOT EXISTS idx_audit_portfolio
    ON audit_log(portfolio_id, created_at);
"""


class RiskDatabase:
    """Async SQLite connection manager for portfolio, metric and bar data.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        async with RiskDatabase("/path/to/db") as db:
            await db.db.execute("SELECT ...")
    """

    def __init__(self, db_path: str = "data/portfolio.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("risk_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("risk_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
