"""
Async SQLite persistence for rooms, stock baskets, price history and chat.
"""
from typing import Iterable, List, Optional
import asyncio
import json
import logging
import random

import aiosqlite

from ..core.errors import RoomNotFound, StoreNotInitialized
from ..core.types import GameStatus, RoomSettings, StockState

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS global_stocks (
    stock_name TEXT PRIMARY KEY,
    price REAL NOT NULL,
    pe_ratio REAL,
    sectors TEXT,
    total_volume INTEGER,
    volatility REAL,
    last_updated TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS game_rooms (
    room_id TEXT PRIMARY KEY,
    room_name TEXT,
    num_stocks INTEGER,
    round_time REAL NOT NULL,
    max_players INTEGER,
    initial_money REAL,
    num_rounds INTEGER NOT NULL,
    created_by TEXT
);

CREATE TABLE IF NOT EXISTS games (
    game_id TEXT PRIMARY KEY,
    game_status TEXT NOT NULL DEFAULT 'waiting',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS game_stocks (
    game_id TEXT NOT NULL,
    stock_name TEXT NOT NULL,
    price REAL NOT NULL,
    pe_ratio REAL,
    sectors TEXT,
    total_volume INTEGER,
    volatility REAL,
    PRIMARY KEY (game_id, stock_name)
);

CREATE TABLE IF NOT EXISTS game_stock_history (
    game_id TEXT NOT NULL,
    round_number INTEGER NOT NULL,
    stock_name TEXT NOT NULL,
    price REAL NOT NULL,
    recorded_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (game_id, round_number, stock_name)
);

CREATE TABLE IF NOT EXISTS game_chats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game_id TEXT NOT NULL,
    user_id TEXT,
    username TEXT,
    message TEXT NOT NULL,
    round_number INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class GameStore:
    """
    Data access for the simulation service.

    The connection is opened lazily by init(); every method raises
    StoreNotInitialized until then.
    """

    def __init__(self, db_path: str = "marketmania.db") -> None:
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._conn_lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the connection and ensure the schema exists."""
        async with self._conn_lock:
            if self._conn:
                return
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row
            await self._conn.executescript(SCHEMA_SQL)
            await self._conn.commit()
            logger.info(f"Game store ready at {self.db_path}")

    async def close(self) -> None:
        async with self._conn_lock:
            if self._conn:
                await self._conn.close()
                self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise StoreNotInitialized("GameStore not initialized. Call .init() before use.")
        return self._conn

    # ========================================================================
    # GLOBAL STOCK CATALOG
    # ========================================================================

    async def seed_global_stocks(self, stocks: Iterable[StockState]) -> int:
        """Upsert catalog stocks; returns how many records were written"""
        count = 0
        for stock in stocks:
            await self.conn.execute(
                """
                INSERT INTO global_stocks (stock_name, price, pe_ratio, sectors, total_volume, volatility, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT (stock_name) DO UPDATE SET
                    price = excluded.price,
                    pe_ratio = excluded.pe_ratio,
                    sectors = excluded.sectors,
                    total_volume = excluded.total_volume,
                    volatility = excluded.volatility,
                    last_updated = CURRENT_TIMESTAMP
                """,
                _stock_params(stock)
            )
            count += 1
        await self.conn.commit()
        logger.info(f"Seeded {count} global stocks")
        return count

    async def list_global_stocks(self) -> List[StockState]:
        async with self.conn.execute(
            "SELECT stock_name, price, pe_ratio, sectors, total_volume, volatility "
            "FROM global_stocks ORDER BY stock_name"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_stock(row) for row in rows]

    # ========================================================================
    # ROOMS
    # ========================================================================

    async def create_room(
        self,
        room_id: str,
        round_time: float,
        num_rounds: int,
        num_stocks: int,
        room_name: str = "",
        max_players: int = 8,
        initial_money: float = 100_000.0,
        created_by: Optional[str] = None,
        rng=random
    ) -> List[StockState]:
        """
        Create a room with a random basket drawn from the global catalog.
        Returns the basket in the order it was stored.
        """
        catalog = await self.list_global_stocks()
        basket = rng.sample(catalog, min(num_stocks, len(catalog)))

        await self.conn.execute(
            """
            INSERT INTO game_rooms (room_id, room_name, num_stocks, round_time, max_players, initial_money, num_rounds, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (room_id, room_name, num_stocks, round_time, max_players, initial_money, num_rounds, created_by)
        )
        await self.conn.execute(
            "INSERT INTO games (game_id, game_status) VALUES (?, ?)",
            (room_id, GameStatus.WAITING.value)
        )
        for stock in basket:
            await self.conn.execute(
                """
                INSERT INTO game_stocks (game_id, stock_name, price, pe_ratio, sectors, total_volume, volatility)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (room_id, *_stock_params(stock))
            )
        await self.conn.commit()
        logger.info(f"Created room {room_id}: {len(basket)} stocks, {num_rounds} rounds of {round_time}s")
        return basket

    async def get_room_settings(self, room_id: str) -> RoomSettings:
        async with self.conn.execute(
            "SELECT round_time, num_rounds FROM game_rooms WHERE room_id = ?",
            (room_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise RoomNotFound(room_id)
        return RoomSettings(
            room_id=room_id,
            round_duration_seconds=float(row['round_time']),
            round_count=int(row['num_rounds'])
        )

    async def get_room_stocks(self, room_id: str) -> List[StockState]:
        async with self.conn.execute(
            "SELECT stock_name, price, pe_ratio, sectors, total_volume, volatility "
            "FROM game_stocks WHERE game_id = ? ORDER BY rowid",
            (room_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_stock(row) for row in rows]

    async def set_game_status(self, room_id: str, status: GameStatus) -> None:
        status = GameStatus(status)
        await self.conn.execute(
            "UPDATE games SET game_status = ? WHERE game_id = ?",
            (status.value, room_id)
        )
        await self.conn.commit()
        logger.debug(f"Room {room_id} status -> {status.value}")

    async def get_game_status(self, room_id: str) -> Optional[GameStatus]:
        async with self.conn.execute(
            "SELECT game_status FROM games WHERE game_id = ?",
            (room_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return GameStatus(row['game_status']) if row else None

    # ========================================================================
    # PRICE HISTORY
    # ========================================================================

    async def append_history(self, room_id: str, round_number: int, stock_name: str, price: float) -> bool:
        """
        Record one price point. Duplicate (room, round, stock) rows are ignored.
        Returns True when a new row was written.
        """
        cursor = await self.conn.execute(
            """
            INSERT INTO game_stock_history (game_id, round_number, stock_name, price)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (game_id, round_number, stock_name) DO NOTHING
            """,
            (room_id, round_number, stock_name, price)
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    async def get_stock_history(self, room_id: str) -> List[dict]:
        async with self.conn.execute(
            "SELECT round_number, stock_name, price FROM game_stock_history "
            "WHERE game_id = ? ORDER BY round_number ASC, rowid ASC",
            (room_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    # ========================================================================
    # CHAT
    # ========================================================================

    async def add_chat_message(
        self,
        room_id: str,
        user_id: Optional[str],
        username: Optional[str],
        message: str,
        round_number: int = 0
    ) -> None:
        await self.conn.execute(
            "INSERT INTO game_chats (game_id, user_id, username, message, round_number) VALUES (?, ?, ?, ?, ?)",
            (room_id, user_id, username, message, round_number)
        )
        await self.conn.commit()

    async def get_chat_messages(self, room_id: str) -> List[dict]:
        async with self.conn.execute(
            "SELECT user_id, username, message AS text, round_number, created_at "
            "FROM game_chats WHERE game_id = ? ORDER BY id ASC",
            (room_id,)
        ) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]


def _stock_params(stock: StockState) -> tuple:
    return (
        stock.name,
        stock.price,
        stock.pe_ratio,
        json.dumps(list(stock.sectors)),
        stock.total_volume,
        stock.volatility
    )


def _row_to_stock(row) -> StockState:
    return StockState.from_record({
        'stock_name': row['stock_name'],
        'price': row['price'],
        'pe_ratio': row['pe_ratio'],
        'sectors': json.loads(row['sectors']) if row['sectors'] else [],
        'total_volume': row['total_volume'],
        'volatility': row['volatility']
    })
