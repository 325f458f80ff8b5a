"""Concrete implementations for the persistence gateway."""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Set, Union

from .errors import PersistenceError
from .models import TurnRecord, utc_now

logger = logging.getLogger(__name__)


class Store(ABC):
    """Interface for the durable, per-conversation turn log.

    Every write is durable once the call returns. Appends for the same
    conversation are applied in the order they are submitted.
    """

    @abstractmethod
    def init(self) -> None:
        """Prepares the underlying storage. Safe to call more than once."""
        pass

    @abstractmethod
    def append(self, conversation_id: str, role: str, content: str) -> int:
        """Appends a turn to a conversation and returns its record id."""
        pass

    @abstractmethod
    def list_turns(self, conversation_id: str) -> List[TurnRecord]:
        """Returns the turns of a conversation in creation order."""
        pass

    @abstractmethod
    def list_conversation_ids(self) -> Set[str]:
        """Returns every conversation id that has at least one turn."""
        pass

    @abstractmethod
    def delete(self, record_id: int) -> bool:
        """Removes a record. Returns False if no such record exists."""
        pass

    @abstractmethod
    def update(self, record_id: int, new_content: str) -> bool:
        """Replaces a record's content. Returns False if no such record exists."""
        pass

    def close(self) -> None:
        """Releases any resources held by the store."""
        pass


class InMemory(Store):
    """Keeps turns in a dictionary for the lifetime of the process."""

    def __init__(self):
        self._turns: Dict[str, List[TurnRecord]] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def init(self) -> None:
        pass

    def append(self, conversation_id: str, role: str, content: str) -> int:
        with self._lock:
            record = TurnRecord(
                id=self._next_id,
                conversation_id=conversation_id,
                role=role,
                content=content,
            )
            self._next_id += 1
            self._turns.setdefault(conversation_id, []).append(record)
            return record.id

    def list_turns(self, conversation_id: str) -> List[TurnRecord]:
        with self._lock:
            return list(self._turns.get(conversation_id, []))

    def list_conversation_ids(self) -> Set[str]:
        with self._lock:
            return {convo_id for convo_id, turns in self._turns.items() if turns}

    def delete(self, record_id: int) -> bool:
        with self._lock:
            for turns in self._turns.values():
                for index, record in enumerate(turns):
                    if record.id == record_id:
                        del turns[index]
                        return True
            return False

    def update(self, record_id: int, new_content: str) -> bool:
        with self._lock:
            for turns in self._turns.values():
                for index, record in enumerate(turns):
                    if record.id == record_id:
                        turns[index] = record.model_copy(update={"content": new_content})
                        return True
            return False


class SQLite(Store):
    """Persists turns in a single SQLite ``messages`` table."""

    def __init__(self, db_path: Union[str, Path] = "chat_history.db"):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            # One connection shared by the foreground loop and the workers;
            # ``_lock`` serializes access to it.
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            logger.error("Failed to open database %s: %s", self.db_path, e)
            raise PersistenceError(f"cannot open {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self.init()
        logger.info("Database initialized at %s", self.db_path)

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                cursor = self.conn.execute(query, params)
                self.conn.commit()
                return cursor
            except sqlite3.Error as e:
                logger.error("Query failed (%s): %s", query.split()[0], e)
                raise PersistenceError(str(e)) from e

    def _query(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self.conn.execute(query, params).fetchall()
            except sqlite3.Error as e:
                logger.error("Query failed (%s): %s", query.split()[0], e)
                raise PersistenceError(str(e)) from e

    def init(self) -> None:
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                conversation_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
            """
        )
        self._execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_conversation "
            "ON messages(conversation_id, id)"
        )

    def append(self, conversation_id: str, role: str, content: str) -> int:
        cursor = self._execute(
            "INSERT INTO messages (conversation_id, role, content, timestamp) "
            "VALUES (?, ?, ?, ?)",
            (conversation_id, role, content, utc_now().isoformat()),
        )
        record_id = int(cursor.lastrowid)
        logger.info(
            "Message added (id=%d, conversation=%s, role=%s)",
            record_id,
            conversation_id,
            role,
        )
        return record_id

    def list_turns(self, conversation_id: str) -> List[TurnRecord]:
        rows = self._query(
            "SELECT id, conversation_id, role, content, timestamp FROM messages "
            "WHERE conversation_id = ? ORDER BY id",
            (conversation_id,),
        )
        logger.info("Retrieved %d messages for conversation %s", len(rows), conversation_id)
        return [
            TurnRecord(
                id=row["id"],
                conversation_id=row["conversation_id"],
                role=row["role"],
                content=row["content"],
                timestamp=_parse_timestamp(row["timestamp"]),
            )
            for row in rows
        ]

    def list_conversation_ids(self) -> Set[str]:
        rows = self._query("SELECT DISTINCT conversation_id FROM messages")
        return {row["conversation_id"] for row in rows}

    def delete(self, record_id: int) -> bool:
        cursor = self._execute("DELETE FROM messages WHERE id = ?", (record_id,))
        logger.info("Deleted message id %d (rows affected: %d)", record_id, cursor.rowcount)
        return cursor.rowcount > 0

    def update(self, record_id: int, new_content: str) -> bool:
        cursor = self._execute(
            "UPDATE messages SET content = ? WHERE id = ?", (new_content, record_id)
        )
        logger.info("Updated message id %d (rows affected: %d)", record_id, cursor.rowcount)
        return cursor.rowcount > 0

    def close(self) -> None:
        with self._lock:
            self.conn.close()


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
