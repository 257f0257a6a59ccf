"""SQLite storage layer."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from .errors import FormatError, PersistenceError
from .timeutils import from_storage_format, to_storage_format


LOGGER = logging.getLogger(__name__)

CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    register_date TEXT NOT NULL,
    timezone INTEGER NOT NULL DEFAULT 0,
    max_kcal REAL
);
"""

CREATE_CONSUMED = """
CREATE TABLE IF NOT EXISTS consumed (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    date TEXT NOT NULL,
    text TEXT NOT NULL,
    kcal REAL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

CREATE_CONSUMED_INDEX = """
CREATE INDEX IF NOT EXISTS consumed_user_date ON consumed (user_id, date);
"""

MIGRATIONS = {
    1: [CREATE_USERS, CREATE_CONSUMED, CREATE_CONSUMED_INDEX],
}

SCHEMA_VERSION = max(MIGRATIONS)


@dataclass(slots=True)
class User:
    id: int
    register_date: datetime
    timezone_offset: int = 0
    max_kcal: Optional[float] = None


@dataclass(slots=True)
class ConsumedItem:
    id: int
    user_id: int
    date: datetime
    text: str
    kcal: Optional[float] = None


class Gateway(Protocol):
    """Operations the dispatcher needs from a persistence backend."""

    def has_user(self, user_id: int) -> bool: ...

    def register_user(self, user_id: int, register_date: datetime) -> bool: ...

    def add_consumed_item(
        self, user_id: int, name: str, kcal: Optional[float], date: datetime
    ) -> Optional[ConsumedItem]: ...

    def remove_consumed_item(self, item_id: int, owner_id: Optional[int]) -> Optional[ConsumedItem]: ...

    def get_consumed_sum(self, begin: Optional[datetime], end: Optional[datetime], user_id: int) -> float: ...

    def get_consumed_items(
        self, begin: Optional[datetime], end: Optional[datetime], user_id: Optional[int]
    ) -> list[ConsumedItem]: ...

    def get_user_timezone_offset(self, user_id: int) -> int: ...

    def set_user_timezone_offset(self, user_id: int, offset: int) -> bool: ...

    def get_max_kcal(self, user_id: int) -> Optional[float]: ...

    def set_max_kcal(self, user_id: int, max_kcal: Optional[float]) -> bool: ...


class Storage:
    """Simple SQLite backed repository."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            self._migrate(conn)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database {self.path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    def _migrate(self, conn: sqlite3.Connection) -> None:
        version = int(conn.execute("PRAGMA user_version").fetchone()[0])
        for target in sorted(MIGRATIONS):
            if target <= version:
                continue
            for statement in MIGRATIONS[target]:
                conn.execute(statement)
            # PRAGMA does not accept bound parameters.
            conn.execute(f"PRAGMA user_version = {int(target)}")
            LOGGER.info("Database %s migrated to version %s", self.path, target)

    def _range_filter(
        self,
        begin: Optional[datetime],
        end: Optional[datetime],
        user_id: Optional[int],
    ) -> tuple[str, list[Any]]:
        query = " WHERE 1=1"
        params: list[Any] = []
        if user_id is not None:
            query += " AND user_id=?"
            params.append(user_id)
        if begin is not None:
            query += " AND date >= ?"
            params.append(to_storage_format(begin))
        if end is not None:
            query += " AND date <= ?"
            params.append(to_storage_format(end))
        return query, params

    def _row_to_item(self, row: sqlite3.Row) -> ConsumedItem:
        try:
            date = from_storage_format(row["date"])
        except FormatError as exc:
            raise PersistenceError(f"Consumed item {row['id']} has a broken date: {exc}") from exc
        return ConsumedItem(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            date=date,
            text=row["text"],
            kcal=row["kcal"],
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def has_user(self, user_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT EXISTS(SELECT 1 FROM users WHERE id=?)", (user_id,)).fetchone()
            return bool(row[0])

    def register_user(self, user_id: int, register_date: datetime) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO users (id, register_date) VALUES (?, ?)",
                (user_id, to_storage_format(register_date)),
            )
            return cursor.rowcount == 1

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id=?", (user_id,)).fetchone()
            if not row:
                return None
            try:
                register_date = from_storage_format(row["register_date"])
            except FormatError as exc:
                raise PersistenceError(f"User {user_id} has a broken register date: {exc}") from exc
            return User(
                id=int(row["id"]),
                register_date=register_date,
                timezone_offset=int(row["timezone"]),
                max_kcal=row["max_kcal"],
            )

    def delete_user(self, user_id: int) -> bool:
        """Delete a user together with all consumed items."""

        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM users WHERE id=?", (user_id,))
            return cursor.rowcount == 1

    def get_user_timezone_offset(self, user_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT timezone FROM users WHERE id=?", (user_id,)).fetchone()
            return int(row["timezone"]) if row and row["timezone"] is not None else 0

    def set_user_timezone_offset(self, user_id: int, offset: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("UPDATE users SET timezone=? WHERE id=?", (offset, user_id))
            return cursor.rowcount == 1

    def get_max_kcal(self, user_id: int) -> Optional[float]:
        with self._connect() as conn:
            row = conn.execute("SELECT max_kcal FROM users WHERE id=?", (user_id,)).fetchone()
            return row["max_kcal"] if row else None

    def set_max_kcal(self, user_id: int, max_kcal: Optional[float]) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("UPDATE users SET max_kcal=? WHERE id=?", (max_kcal, user_id))
            return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Consumed items
    # ------------------------------------------------------------------
    def add_consumed_item(
        self,
        user_id: int,
        name: str,
        kcal: Optional[float],
        date: datetime,
    ) -> Optional[ConsumedItem]:
        if not name:
            raise ValueError("Consumed item text must not be empty")
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO consumed (user_id, date, text, kcal) VALUES (?, ?, ?, ?)",
                (user_id, to_storage_format(date), name, kcal),
            )
            row = conn.execute("SELECT * FROM consumed WHERE id=?", (cursor.lastrowid,)).fetchone()
            return self._row_to_item(row) if row else None

    def remove_consumed_item(self, item_id: int, owner_id: Optional[int]) -> Optional[ConsumedItem]:
        """Delete an item by id. ``owner_id=None`` skips the ownership check."""

        query = "SELECT * FROM consumed WHERE id=?"
        params: list[Any] = [item_id]
        if owner_id is not None:
            query += " AND user_id=?"
            params.append(owner_id)
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
            if not row:
                return None
            conn.execute("DELETE FROM consumed WHERE id=?", (item_id,))
            return self._row_to_item(row)

    def get_consumed_sum(
        self,
        begin: Optional[datetime],
        end: Optional[datetime],
        user_id: int,
    ) -> float:
        where, params = self._range_filter(begin, end, user_id)
        with self._connect() as conn:
            row = conn.execute("SELECT COALESCE(SUM(kcal), 0) FROM consumed" + where, params).fetchone()
            return float(row[0]) if row else 0.0

    def get_consumed_items(
        self,
        begin: Optional[datetime],
        end: Optional[datetime],
        user_id: Optional[int],
    ) -> list[ConsumedItem]:
        """Items in the inclusive range ordered by date; ``user_id=None`` means every user."""

        where, params = self._range_filter(begin, end, user_id)
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM consumed" + where + " ORDER BY date, id", params).fetchall()
            return [self._row_to_item(row) for row in rows]
