"""
Database module for eventjam.

Handles SQLite database initialization, schema creation, connection management,
and the repositories that read and write each table.
"""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import ConfigEntry, Event, Expense, Participant, PlaylistItem, Poll, PollOption


def _now() -> str:
    """Current UTC time as an ISO 8601 string (microsecond resolution)."""
    return datetime.now(timezone.utc).isoformat()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses ~/.eventjam/eventjam.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            data_dir = Path.home() / ".eventjam"
            data_dir.mkdir(exist_ok=True)
            db_path = str(data_dir / "eventjam.db")

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info("Database initialized at %s", self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                access_code TEXT NOT NULL UNIQUE,
                host_participant_id TEXT,
                created_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS event_participants (
                id TEXT PRIMARY KEY,
                event_id TEXT NOT NULL,
                name TEXT NOT NULL,
                is_extra INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                FOREIGN KEY (event_id) REFERENCES events(id)
            )
            """
        )

        # rowid breaks ties between items added within the same microsecond
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS playlist_items (
                id TEXT PRIMARY KEY,
                event_id TEXT NOT NULL,
                youtube_video_id TEXT NOT NULL,
                title TEXT NOT NULL,
                thumbnail_url TEXT,
                channel_title TEXT,
                added_by_participant_id TEXT NOT NULL,
                added_at TEXT NOT NULL,
                FOREIGN KEY (event_id) REFERENCES events(id),
                FOREIGN KEY (added_by_participant_id) REFERENCES event_participants(id)
            )
            """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_playlist_event_added
            ON playlist_items(event_id, added_at)
            """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_participants_event
            ON event_participants(event_id)
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT PRIMARY KEY,
                event_id TEXT NOT NULL,
                title TEXT NOT NULL,
                amount REAL NOT NULL,
                paid_by_participant_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (event_id) REFERENCES events(id),
                FOREIGN KEY (paid_by_participant_id) REFERENCES event_participants(id)
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS polls (
                id TEXT PRIMARY KEY,
                event_id TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                created_by_participant_id TEXT NOT NULL,
                allow_multiple_votes INTEGER NOT NULL DEFAULT 0,
                is_closed INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                FOREIGN KEY (event_id) REFERENCES events(id)
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS poll_options (
                id TEXT PRIMARY KEY,
                poll_id TEXT NOT NULL,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (poll_id) REFERENCES polls(id)
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS poll_votes (
                poll_id TEXT NOT NULL,
                option_id TEXT NOT NULL,
                participant_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (poll_id, option_id, participant_id),
                FOREIGN KEY (poll_id) REFERENCES polls(id),
                FOREIGN KEY (option_id) REFERENCES poll_options(id)
            )
            """
        )

        cursor.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_expenses_event
            ON expenses(event_id)
            """
        )

        conn.commit()

        # Run migrations
        self._run_migrations(conn)

        conn.close()
        self.logger.debug("Database schema created/verified")

    def _run_migrations(self, conn):
        """Run database migrations."""
        cursor = conn.cursor()

        # Migration: add is_extra to event_participants
        cursor.execute("PRAGMA table_info(event_participants)")
        columns = [row[1] for row in cursor.fetchall()]

        if "is_extra" not in columns:
            self.logger.info("Migrating database: adding event_participants.is_extra")
            cursor.execute(
                "ALTER TABLE event_participants ADD COLUMN is_extra INTEGER NOT NULL DEFAULT 0"
            )
            conn.commit()

    def get_connection(self):
        """
        Get a new database connection (thread-safe).

        Each thread should get its own connection. Caller is responsible
        for closing the connection when done.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def close(self):
        """Close database connection (no-op since we use per-call connections)."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ConfigRepository:
    """Reads and writes the key/value config table."""

    def __init__(self, database: Database):
        self.database = database

    def initialize_defaults(self, defaults: dict) -> None:
        """Insert default values for keys that are not stored yet."""
        conn = self.database.get_connection()
        try:
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)",
                    (key, str(value)),
                )
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[ConfigEntry]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT key, value, updated_at FROM config WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return ConfigEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])

    def set(self, key: str, value: str) -> bool:
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
            conn.commit()
            return True
        finally:
            conn.close()

    def get_all(self) -> List[ConfigEntry]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT key, value, updated_at FROM config").fetchall()
        finally:
            conn.close()
        return [
            ConfigEntry(key=row["key"], value=row["value"], updated_at=row["updated_at"])
            for row in rows
        ]


class EventRepository:
    """Persistence for events and their participants."""

    def __init__(self, database: Database):
        self.database = database

    def _row_to_event(self, row) -> Event:
        return Event(
            id=row["id"],
            name=row["name"],
            access_code=row["access_code"],
            host_participant_id=row["host_participant_id"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def _row_to_participant(self, row) -> Participant:
        return Participant(
            id=row["id"],
            event_id=row["event_id"],
            name=row["name"],
            is_extra=bool(row["is_extra"]),
            created_at=_parse_timestamp(row["created_at"]),
        )

    def create_event(self, name: str, access_code: str) -> Event:
        event_id = str(uuid.uuid4())
        conn = self.database.get_connection()
        try:
            conn.execute(
                "INSERT INTO events (id, name, access_code, created_at) VALUES (?, ?, ?, ?)",
                (event_id, name, access_code, _now()),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_event(event_id)

    def set_host(self, event_id: str, participant_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "UPDATE events SET host_participant_id = ? WHERE id = ?",
                (participant_id, event_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_event(self, event_id: str) -> Optional[Event]:
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_event(row) if row else None

    def get_event_by_access_code(self, access_code: str) -> Optional[Event]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM events WHERE access_code = ?", (access_code,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_event(row) if row else None

    def add_participant(self, event_id: str, name: str, is_extra: bool = False) -> Participant:
        participant_id = str(uuid.uuid4())
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO event_participants (id, event_id, name, is_extra, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (participant_id, event_id, name, int(is_extra), _now()),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_participant(participant_id)

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM event_participants WHERE id = ?", (participant_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._row_to_participant(row) if row else None

    def get_participants(self, event_id: str) -> List[Participant]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM event_participants WHERE event_id = ? ORDER BY created_at, rowid",
                (event_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_participant(row) for row in rows]


class PlaylistRepository:
    """Persistence for playlist items, ordered by insertion time."""

    _SELECT = """
        SELECT p.id, p.event_id, p.youtube_video_id, p.title, p.thumbnail_url,
               p.channel_title, p.added_by_participant_id, p.added_at,
               ep.name AS participant_name
        FROM playlist_items p
        LEFT JOIN event_participants ep ON ep.id = p.added_by_participant_id
    """

    def __init__(self, database: Database):
        self.database = database

    def _row_to_item(self, row) -> PlaylistItem:
        return PlaylistItem(
            id=row["id"],
            event_id=row["event_id"],
            external_media_id=row["youtube_video_id"],
            title=row["title"],
            channel_label=row["channel_title"],
            thumbnail_url=row["thumbnail_url"],
            added_by_participant_id=row["added_by_participant_id"],
            added_by_name=row["participant_name"] or None,
            added_at=_parse_timestamp(row["added_at"]),
        )

    def add(
        self,
        event_id: str,
        participant_id: str,
        external_media_id: str,
        title: str,
        thumbnail_url: Optional[str] = None,
        channel_label: Optional[str] = None,
    ) -> PlaylistItem:
        item_id = str(uuid.uuid4())
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO playlist_items
                (id, event_id, youtube_video_id, title, thumbnail_url, channel_title,
                 added_by_participant_id, added_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item_id,
                    event_id,
                    external_media_id,
                    title,
                    thumbnail_url,
                    channel_label,
                    participant_id,
                    _now(),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_item(item_id)

    def remove(self, item_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM playlist_items WHERE id = ?", (item_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_item(self, item_id: str) -> Optional[PlaylistItem]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(self._SELECT + " WHERE p.id = ?", (item_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_item(row) if row else None

    def list_ordered(self, event_id: str) -> List[PlaylistItem]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                self._SELECT + " WHERE p.event_id = ? ORDER BY p.added_at ASC, p.rowid ASC",
                (event_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_item(row) for row in rows]


class ExpenseRepository:
    """Persistence for shared expenses, newest first."""

    _SELECT = """
        SELECT x.id, x.event_id, x.title, x.amount, x.paid_by_participant_id, x.created_at,
               ep.name AS participant_name
        FROM expenses x
        LEFT JOIN event_participants ep ON ep.id = x.paid_by_participant_id
    """

    def __init__(self, database: Database):
        self.database = database

    def _row_to_expense(self, row) -> Expense:
        return Expense(
            id=row["id"],
            event_id=row["event_id"],
            title=row["title"],
            amount=float(row["amount"]),
            paid_by_participant_id=row["paid_by_participant_id"],
            paid_by_name=row["participant_name"] or None,
            created_at=_parse_timestamp(row["created_at"]),
        )

    def add(self, event_id: str, participant_id: str, title: str, amount: float) -> Expense:
        expense_id = str(uuid.uuid4())
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO expenses (id, event_id, title, amount, paid_by_participant_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (expense_id, event_id, title, amount, participant_id, _now()),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_expense(expense_id)

    def remove(self, expense_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM expenses WHERE id = ?", (expense_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_expense(self, expense_id: str) -> Optional[Expense]:
        conn = self.database.get_connection()
        try:
            row = conn.execute(self._SELECT + " WHERE x.id = ?", (expense_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_expense(row) if row else None

    def list_for_event(self, event_id: str) -> List[Expense]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                self._SELECT + " WHERE x.event_id = ? ORDER BY x.created_at DESC, x.rowid DESC",
                (event_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_expense(row) for row in rows]


class PollRepository:
    """Persistence for polls, their options and votes."""

    def __init__(self, database: Database):
        self.database = database

    def _row_to_poll(self, row) -> Poll:
        return Poll(
            id=row["id"],
            event_id=row["event_id"],
            title=row["title"],
            description=row["description"],
            created_by_participant_id=row["created_by_participant_id"],
            allow_multiple_votes=bool(row["allow_multiple_votes"]),
            is_closed=bool(row["is_closed"]),
            created_at=_parse_timestamp(row["created_at"]),
        )

    def _row_to_option(self, row) -> PollOption:
        return PollOption(
            id=row["id"],
            poll_id=row["poll_id"],
            title=row["title"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def create(
        self,
        event_id: str,
        participant_id: str,
        title: str,
        description: Optional[str],
        options: List[str],
        allow_multiple_votes: bool,
    ) -> Poll:
        """Insert a poll and its options in one transaction."""
        poll_id = str(uuid.uuid4())
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO polls
                (id, event_id, title, description, created_by_participant_id,
                 allow_multiple_votes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (poll_id, event_id, title, description, participant_id, int(allow_multiple_votes), _now()),
            )
            for option_title in options:
                conn.execute(
                    "INSERT INTO poll_options (id, poll_id, title, created_at) VALUES (?, ?, ?, ?)",
                    (str(uuid.uuid4()), poll_id, option_title, _now()),
                )
            conn.commit()
        finally:
            conn.close()
        return self.get_poll(poll_id)

    def get_poll(self, poll_id: str) -> Optional[Poll]:
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM polls WHERE id = ?", (poll_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_poll(row) if row else None

    def list_for_event(self, event_id: str) -> List[Poll]:
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM polls WHERE event_id = ? ORDER BY created_at DESC, rowid DESC",
                (event_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_poll(row) for row in rows]

    def set_closed(self, poll_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("UPDATE polls SET is_closed = 1 WHERE id = ?", (poll_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete(self, poll_id: str) -> bool:
        """Delete a poll with its options and votes."""
        conn = self.database.get_connection()
        try:
            conn.execute("DELETE FROM poll_votes WHERE poll_id = ?", (poll_id,))
            conn.execute("DELETE FROM poll_options WHERE poll_id = ?", (poll_id,))
            cursor = conn.execute("DELETE FROM polls WHERE id = ?", (poll_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def add_option(self, poll_id: str, title: str) -> PollOption:
        option_id = str(uuid.uuid4())
        conn = self.database.get_connection()
        try:
            conn.execute(
                "INSERT INTO poll_options (id, poll_id, title, created_at) VALUES (?, ?, ?, ?)",
                (option_id, poll_id, title, _now()),
            )
            conn.commit()
        finally:
            conn.close()
        return self.get_option(option_id)

    def get_option(self, option_id: str) -> Optional[PollOption]:
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM poll_options WHERE id = ?", (option_id,)).fetchone()
        finally:
            conn.close()
        return self._row_to_option(row) if row else None

    def remove_option(self, option_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            conn.execute("DELETE FROM poll_votes WHERE option_id = ?", (option_id,))
            cursor = conn.execute("DELETE FROM poll_options WHERE id = ?", (option_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_options(self, poll_id: str) -> List[PollOption]:
        """Options in creation order, each with its voters."""
        conn = self.database.get_connection()
        try:
            option_rows = conn.execute(
                "SELECT * FROM poll_options WHERE poll_id = ? ORDER BY created_at, rowid",
                (poll_id,),
            ).fetchall()
            vote_rows = conn.execute(
                "SELECT option_id, participant_id FROM poll_votes WHERE poll_id = ? ORDER BY rowid",
                (poll_id,),
            ).fetchall()
        finally:
            conn.close()

        options = [self._row_to_option(row) for row in option_rows]
        by_id = {option.id: option for option in options}
        for row in vote_rows:
            option = by_id.get(row["option_id"])
            if option is not None:
                option.voter_ids.append(row["participant_id"])
        return options

    def get_votes(self, poll_id: str, participant_id: str) -> List[str]:
        """Option ids a participant voted for."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT option_id FROM poll_votes WHERE poll_id = ? AND participant_id = ?",
                (poll_id, participant_id),
            ).fetchall()
        finally:
            conn.close()
        return [row["option_id"] for row in rows]

    def add_vote(self, poll_id: str, option_id: str, participant_id: str) -> None:
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT OR IGNORE INTO poll_votes (poll_id, option_id, participant_id, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (poll_id, option_id, participant_id, _now()),
            )
            conn.commit()
        finally:
            conn.close()

    def replace_vote(self, poll_id: str, option_id: str, participant_id: str) -> None:
        """Make option_id the participant's only vote in the poll."""
        conn = self.database.get_connection()
        try:
            conn.execute(
                "DELETE FROM poll_votes WHERE poll_id = ? AND participant_id = ?",
                (poll_id, participant_id),
            )
            conn.execute(
                """
                INSERT INTO poll_votes (poll_id, option_id, participant_id, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (poll_id, option_id, participant_id, _now()),
            )
            conn.commit()
        finally:
            conn.close()

    def remove_vote(self, poll_id: str, option_id: str, participant_id: str) -> bool:
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM poll_votes WHERE poll_id = ? AND option_id = ? AND participant_id = ?",
                (poll_id, option_id, participant_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()
