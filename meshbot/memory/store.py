"""Storage layer for the memory system.

MemoryStore owns the rules (truncation, history cap, profile refresh) and
delegates persistence to a backend: InMemoryMemoryStore keeps everything in
process-local dicts, SQLiteMemoryStore uses SQLite with WAL mode.
"""

from __future__ import annotations

import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Optional

from loguru import logger

from meshbot.config.schema import MemoryConfig
from meshbot.memory.models import (
    ConversationTurn,
    EventCategory,
    LearningEvent,
    UserProfile,
)
from meshbot.memory.profile import ProfileBuilder
from meshbot.memory.topics import extract_topic
from meshbot.utils.logging import short_id


class MemoryStore(ABC):
    """
    Per-user conversation history, derived profiles and the learning event log.

    Args:
        config: Memory configuration (caps, truncation limits, retention)
        builder: Profile derivation strategy
    """

    def __init__(self, config: Optional[MemoryConfig] = None, builder: Optional[ProfileBuilder] = None):
        self.config = config or MemoryConfig()
        self.builder = builder or ProfileBuilder(self.config)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def save_turn(
        self,
        user_id: str,
        user_text: str,
        bot_text: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ConversationTurn]:
        """
        Append a turn to the user's history.

        Text fields are truncated, the history is trimmed to the cap (oldest
        first) and the profile is re-derived. Storage errors are logged and
        reported as None; profile errors keep the previous profile.

        Args:
            user_id: Opaque user identifier
            user_text: What the user said
            bot_text: What the bot answered
            metadata: Optional extra fields; "channel" selects the turn channel

        Returns:
            The stored turn, or None if it could not be stored
        """
        metadata = dict(metadata or {})
        user_text = user_text or ""
        bot_text = bot_text or ""
        metadata.setdefault("message_length", len(user_text))
        metadata.setdefault("response_length", len(bot_text))

        turn = ConversationTurn(
            user_id=user_id,
            timestamp=datetime.now(),
            user_text=user_text[: self.config.max_input_chars],
            bot_text=bot_text[: self.config.max_output_chars],
            channel=str(metadata.pop("channel", None) or "default"),
            topic=extract_topic(user_text),
            metadata=metadata,
        )

        try:
            self._append_turn(turn)
            self._trim_turns(user_id, self.config.max_history)
        except Exception as e:
            logger.error(f"Failed to save turn for {short_id(user_id)}: {e}")
            return None

        logger.debug(f"Turn saved for {short_id(user_id)} (topic: {turn.topic})")
        self.refresh_profile(user_id)
        return turn

    def get_history(self, user_id: str, limit: Optional[int] = None) -> list[ConversationTurn]:
        """
        Get the most recent turns for a user, oldest first.

        Args:
            user_id: Opaque user identifier
            limit: Maximum number of turns (all stored turns if None)
        """
        if limit is not None and limit <= 0:
            return []
        return self._load_turns(user_id, limit)

    def count_recent_turns(self, user_id: str, days: int = 7, now: Optional[datetime] = None) -> int:
        """Number of stored turns newer than `days` days."""
        since = (now or datetime.now()) - timedelta(days=days)
        return sum(1 for turn in self._load_turns(user_id, None) if turn.timestamp > since)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_profile(self, user_id: str) -> UserProfile:
        """Get a user's profile, creating and storing a default one on first use."""
        profile = self._load_profile(user_id)
        if profile is None:
            profile = UserProfile.default(user_id)
            self._store_profile(profile)
            logger.debug(f"Created default profile for {short_id(user_id)}")
        return profile

    def put_profile(self, profile: UserProfile) -> None:
        """Replace a stored profile."""
        self._store_profile(profile)

    def refresh_profile(self, user_id: str) -> UserProfile:
        """
        Re-derive the turn-based profile fields.

        Best effort: on any error the previous profile is kept and returned.
        An unreadable stored profile is rebuilt from a default one.
        """
        previous: Optional[UserProfile] = None
        try:
            previous = self.get_profile(user_id)
        except Exception as e:
            logger.error(f"Stored profile for {short_id(user_id)} is unreadable, rebuilding: {e}")

        try:
            updated = self.builder.from_turns(
                previous or UserProfile.default(user_id), self._load_turns(user_id, None)
            )
            self._store_profile(updated)
            return updated
        except Exception as e:
            logger.error(f"Profile derivation failed for {short_id(user_id)}: {e}")
            return previous or UserProfile.default(user_id)

    def list_users(self) -> list[str]:
        """All user ids with a profile or history."""
        return self._list_users()

    # ------------------------------------------------------------------
    # Learning events
    # ------------------------------------------------------------------

    def append_event(self, event: LearningEvent) -> None:
        """Add a learning event to the log."""
        self._insert_event(event)

    def get_events(
        self,
        category: Optional[EventCategory] = None,
        processed: Optional[bool] = None,
        user_id: Optional[str] = None,
    ) -> list[LearningEvent]:
        """Query the event log, oldest first."""
        return self._query_events(category, processed, user_id)

    def pending_events(self) -> list[LearningEvent]:
        """Events not yet folded into a profile."""
        return self._query_events(None, False, None)

    def mark_processed(self, event_ids: Iterable[str]) -> None:
        """Flag events as folded into their profile."""
        ids = list(event_ids)
        if ids:
            self._set_processed(ids)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def cleanup(self, cutoff: Optional[datetime] = None) -> dict[str, int]:
        """
        Remove turns and learning events older than the cutoff.

        Profiles of users who lost turns are re-derived from what remains.

        Args:
            cutoff: Oldest timestamp to keep (default: now minus retention_days)

        Returns:
            Counts of removed turns and events
        """
        if cutoff is None:
            cutoff = datetime.now() - timedelta(days=self.config.retention_days)
        removed, affected = self._purge(cutoff)
        for user_id in sorted(affected):
            self.refresh_profile(user_id)
        logger.info(
            f"Memory cleanup removed {removed['turns']} turns and "
            f"{removed['events']} events older than {cutoff.isoformat()}"
        )
        return removed

    def get_stats(self) -> dict[str, Any]:
        """Aggregate counts for inspection endpoints."""
        stats = self._counts()
        stats["timestamp"] = datetime.now().isoformat()
        return stats

    def close(self) -> None:
        """Release backend resources."""

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _append_turn(self, turn: ConversationTurn) -> None: ...

    @abstractmethod
    def _trim_turns(self, user_id: str, cap: int) -> None: ...

    @abstractmethod
    def _load_turns(self, user_id: str, limit: Optional[int]) -> list[ConversationTurn]: ...

    @abstractmethod
    def _load_profile(self, user_id: str) -> Optional[UserProfile]: ...

    @abstractmethod
    def _store_profile(self, profile: UserProfile) -> None: ...

    @abstractmethod
    def _list_users(self) -> list[str]: ...

    @abstractmethod
    def _insert_event(self, event: LearningEvent) -> None: ...

    @abstractmethod
    def _query_events(
        self,
        category: Optional[EventCategory],
        processed: Optional[bool],
        user_id: Optional[str],
    ) -> list[LearningEvent]: ...

    @abstractmethod
    def _set_processed(self, event_ids: list[str]) -> None: ...

    @abstractmethod
    def _purge(self, cutoff: datetime) -> tuple[dict[str, int], set[str]]:
        """Delete old records; return the removed counts and the users who lost turns."""

    @abstractmethod
    def _counts(self) -> dict[str, Any]: ...


class InMemoryMemoryStore(MemoryStore):
    """
    Process-local store.

    Turns and profiles are keyed by user id; events are partitioned by
    category. Cleanup builds filtered copies and swaps them in, so request
    handlers never see a half-scanned collection.
    """

    def __init__(self, config: Optional[MemoryConfig] = None, builder: Optional[ProfileBuilder] = None):
        super().__init__(config, builder)
        self._turns: dict[str, list[ConversationTurn]] = {}
        self._profiles: dict[str, UserProfile] = {}
        self._events: dict[EventCategory, list[LearningEvent]] = {}

    def _append_turn(self, turn: ConversationTurn) -> None:
        self._turns.setdefault(turn.user_id, []).append(turn)

    def _trim_turns(self, user_id: str, cap: int) -> None:
        history = self._turns.get(user_id, [])
        if len(history) > cap:
            del history[: len(history) - cap]

    def _load_turns(self, user_id: str, limit: Optional[int]) -> list[ConversationTurn]:
        history = self._turns.get(user_id, [])
        return list(history[-limit:]) if limit else list(history)

    def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    def _store_profile(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile

    def _list_users(self) -> list[str]:
        return sorted(set(self._profiles) | set(self._turns))

    def _insert_event(self, event: LearningEvent) -> None:
        self._events.setdefault(event.category, []).append(event)

    def _query_events(self, category, processed, user_id) -> list[LearningEvent]:
        partitions = [self._events.get(category, [])] if category else list(self._events.values())
        events = [
            e for part in partitions for e in part
            if (processed is None or e.processed == processed)
            and (user_id is None or e.user_id == user_id)
        ]
        return sorted(events, key=lambda e: e.timestamp)

    def _set_processed(self, event_ids: list[str]) -> None:
        wanted = set(event_ids)
        for part in self._events.values():
            for event in part:
                if event.id in wanted:
                    event.processed = True

    def _purge(self, cutoff: datetime) -> tuple[dict[str, int], set[str]]:
        turns_snapshot = dict(self._turns)
        events_snapshot = dict(self._events)

        new_turns = {}
        removed_turns = 0
        affected = set()
        for user_id, history in turns_snapshot.items():
            kept = [t for t in history if t.timestamp >= cutoff]
            if len(kept) < len(history):
                removed_turns += len(history) - len(kept)
                affected.add(user_id)
            if kept:
                new_turns[user_id] = kept

        new_events = {}
        removed_events = 0
        for category, part in events_snapshot.items():
            kept = [e for e in part if e.timestamp >= cutoff]
            removed_events += len(part) - len(kept)
            new_events[category] = kept

        self._turns = new_turns
        self._events = new_events
        return {"turns": removed_turns, "events": removed_events}, affected

    def _counts(self) -> dict[str, Any]:
        events = [e for part in self._events.values() for e in part]
        return {
            "users": len(self._list_users()),
            "conversations": sum(len(h) for h in self._turns.values()),
            "learning_events": len(events),
            "pending_events": sum(1 for e in events if not e.processed),
        }


class SQLiteMemoryStore(MemoryStore):
    """
    SQLite-based store.

    Uses WAL mode so inspection reads don't block the request path. One row
    per turn (indexed by user), one row per profile, one row per learning
    event (indexed by category).
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        builder: Optional[ProfileBuilder] = None,
        db_path: Optional[Path] = None,
    ):
        super().__init__(config, builder)
        self.db_path = Path(db_path) if db_path else self.config.db_file
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        logger.info(f"SQLiteMemoryStore initialized: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection with WAL mode."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._init_tables()
        return self._conn

    def _init_tables(self) -> None:
        conn = self._conn
        conn.execute("""
            CREATE TABLE IF NOT EXISTS turns (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                timestamp REAL NOT NULL,
                user_text TEXT NOT NULL,
                bot_text TEXT NOT NULL,
                channel TEXT,
                topic TEXT,
                metadata TEXT
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_turns_user ON turns(user_id, id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_turns_timestamp ON turns(timestamp)")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                user_id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS learning_events (
                id TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                user_id TEXT NOT NULL,
                timestamp REAL NOT NULL,
                payload TEXT,
                processed INTEGER DEFAULT 0
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_events_category ON learning_events(category)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_events_processed ON learning_events(processed)")
        conn.commit()

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> ConversationTurn:
        return ConversationTurn(
            user_id=row["user_id"],
            timestamp=datetime.fromtimestamp(row["timestamp"]),
            user_text=row["user_text"],
            bot_text=row["bot_text"],
            channel=row["channel"] or "default",
            topic=row["topic"] or "general",
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> LearningEvent:
        return LearningEvent(
            id=row["id"],
            category=EventCategory(row["category"]),
            user_id=row["user_id"],
            timestamp=datetime.fromtimestamp(row["timestamp"]),
            payload=json.loads(row["payload"]) if row["payload"] else {},
            processed=bool(row["processed"]),
        )

    def _append_turn(self, turn: ConversationTurn) -> None:
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO turns (user_id, timestamp, user_text, bot_text, channel, topic, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                turn.user_id,
                turn.timestamp.timestamp(),
                turn.user_text,
                turn.bot_text,
                turn.channel,
                turn.topic,
                json.dumps(turn.metadata, default=str),
            ),
        )
        conn.commit()

    def _trim_turns(self, user_id: str, cap: int) -> None:
        conn = self._get_connection()
        conn.execute(
            """
            DELETE FROM turns WHERE user_id = ? AND id NOT IN (
                SELECT id FROM turns WHERE user_id = ? ORDER BY id DESC LIMIT ?
            )
            """,
            (user_id, user_id, cap),
        )
        conn.commit()

    def _load_turns(self, user_id: str, limit: Optional[int]) -> list[ConversationTurn]:
        conn = self._get_connection()
        rows = conn.execute(
            """
            SELECT * FROM (
                SELECT * FROM turns WHERE user_id = ? ORDER BY id DESC LIMIT ?
            ) ORDER BY id ASC
            """,
            (user_id, limit if limit else -1),
        ).fetchall()
        return [self._row_to_turn(row) for row in rows]

    def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        conn = self._get_connection()
        row = conn.execute("SELECT data FROM profiles WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return UserProfile.from_dict(json.loads(row["data"]))

    def _store_profile(self, profile: UserProfile) -> None:
        conn = self._get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO profiles (user_id, data, updated_at) VALUES (?, ?, ?)",
            (profile.user_id, json.dumps(profile.to_dict()), profile.updated_at.timestamp()),
        )
        conn.commit()

    def _list_users(self) -> list[str]:
        conn = self._get_connection()
        rows = conn.execute(
            "SELECT user_id FROM profiles UNION SELECT DISTINCT user_id FROM turns ORDER BY user_id"
        ).fetchall()
        return [row["user_id"] for row in rows]

    def _insert_event(self, event: LearningEvent) -> None:
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO learning_events (id, category, user_id, timestamp, payload, processed)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.category.value,
                event.user_id,
                event.timestamp.timestamp(),
                json.dumps(event.payload, default=str),
                int(event.processed),
            ),
        )
        conn.commit()

    def _query_events(self, category, processed, user_id) -> list[LearningEvent]:
        conn = self._get_connection()
        clauses = []
        params: list[Any] = []
        if category is not None:
            clauses.append("category = ?")
            params.append(category.value)
        if processed is not None:
            clauses.append("processed = ?")
            params.append(int(processed))
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)

        sql = "SELECT * FROM learning_events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp ASC"

        return [self._row_to_event(row) for row in conn.execute(sql, params).fetchall()]

    def _set_processed(self, event_ids: list[str]) -> None:
        conn = self._get_connection()
        conn.executemany(
            "UPDATE learning_events SET processed = 1 WHERE id = ?",
            [(event_id,) for event_id in event_ids],
        )
        conn.commit()

    def _purge(self, cutoff: datetime) -> tuple[dict[str, int], set[str]]:
        conn = self._get_connection()
        ts = cutoff.timestamp()
        affected = {
            row["user_id"]
            for row in conn.execute("SELECT DISTINCT user_id FROM turns WHERE timestamp < ?", (ts,))
        }
        turns = conn.execute("DELETE FROM turns WHERE timestamp < ?", (ts,)).rowcount
        events = conn.execute("DELETE FROM learning_events WHERE timestamp < ?", (ts,)).rowcount
        conn.commit()
        return {"turns": turns, "events": events}, affected

    def _counts(self) -> dict[str, Any]:
        conn = self._get_connection()
        return {
            "users": len(self._list_users()),
            "conversations": conn.execute("SELECT COUNT(*) FROM turns").fetchone()[0],
            "learning_events": conn.execute("SELECT COUNT(*) FROM learning_events").fetchone()[0],
            "pending_events": conn.execute(
                "SELECT COUNT(*) FROM learning_events WHERE processed = 0"
            ).fetchone()[0],
        }

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("SQLiteMemoryStore closed")


def create_memory_store(config: Optional[MemoryConfig] = None) -> MemoryStore:
    """
    Factory function to create the configured memory store.

    Args:
        config: Memory configuration; backend selects "memory" or "sqlite"
    """
    config = config or MemoryConfig()
    if config.backend == "sqlite":
        return SQLiteMemoryStore(config)
    logger.info("Using in-memory conversation store")
    return InMemoryMemoryStore(config)
