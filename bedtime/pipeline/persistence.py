"""
Story store backed by SQLite.

Provides the persistence contract the pipeline relies on:
- create: insert a Story, then fire after_create hooks
- update: partial field merge, version bump, then fire after_update hooks
- get / find / find_by_ids: lookups for the pipeline and the API

Hooks run after the write has committed, including for writes issued by
a hook itself. That re-entry is what keeps a story moving through its
stages; the pipeline turns it into an explicit loop (see driver.py).
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional

from .entities import Story, StoryState, MUTABLE_FIELDS, utcnow
from .errors import (
    ConcurrencyViolationError,
    InvalidOperationError,
    StoryNotFoundError,
)


logger = logging.getLogger(__name__)


AfterCreateHook = Callable[[Story], None]
AfterUpdateHook = Callable[[Story, frozenset], None]

# Columns whose values are stored as JSON text
_JSON_COLUMNS = {"image"}
_BOOL_COLUMNS = {"is_public", "is_daily_story"}
_DATETIME_COLUMNS = {"completed_at", "created_at", "updated_at"}

# Sortable columns for find(); "-" prefix means descending
_SORTABLE = {"created_at", "updated_at", "completed_at", "title"}


def _encode(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in _JSON_COLUMNS:
        return json.dumps(value)
    if column in _BOOL_COLUMNS:
        return 1 if value else 0
    if column in _DATETIME_COLUMNS:
        return value.isoformat()
    if column == "state":
        return StoryState(value).value
    return value


class StoryStore:
    """
    SQLite-based persistence for Story records.

    - Abstracts SQLite storage
    - Fires lifecycle hooks after each committed write
    - Does NOT contain pipeline logic
    """

    def __init__(self, db_path: str | Path):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file.
        """
        self.db_path = str(db_path)
        self._after_create: list[AfterCreateHook] = []
        self._after_update: list[AfterUpdateHook] = []
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stories (
                    id TEXT PRIMARY KEY,
                    prompt TEXT NOT NULL,
                    state TEXT NOT NULL DEFAULT 'created',
                    attempt INTEGER NOT NULL DEFAULT 1,
                    parent_story_id TEXT,
                    user_id TEXT,
                    is_public INTEGER NOT NULL DEFAULT 0,
                    is_daily_story INTEGER NOT NULL DEFAULT 0,
                    title TEXT,
                    summary TEXT,
                    text TEXT,
                    image_prompt TEXT,
                    image TEXT,
                    audio TEXT,
                    duration REAL,
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    FOREIGN KEY (parent_story_id) REFERENCES stories(id)
                )
            """)

            # Feed queries: ready stories, newest first
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_stories_state_created
                ON stories (state, created_at DESC)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_stories_user
                ON stories (user_id)
            """)

    # =========================================================================
    # Hook Registration
    # =========================================================================

    def register_after_create(self, hook: AfterCreateHook) -> None:
        """Register a callback fired after a story is inserted."""
        self._after_create.append(hook)

    def register_after_update(self, hook: AfterUpdateHook) -> None:
        """
        Register a callback fired after every update.

        The callback receives the freshly persisted Story and the set of
        field names whose value actually changed.
        """
        self._after_update.append(hook)

    # =========================================================================
    # Story Operations
    # =========================================================================

    def create(self, story: Story) -> Story:
        """Insert a new story and fire after_create hooks."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO stories
                (id, prompt, state, attempt, parent_story_id, user_id, is_public,
                 is_daily_story, title, summary, text, image_prompt, image, audio,
                 duration, completed_at, created_at, updated_at, version)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    story.id,
                    story.prompt,
                    _encode("state", story.state),
                    story.attempt,
                    story.parent_story_id,
                    story.user_id,
                    _encode("is_public", story.is_public),
                    _encode("is_daily_story", story.is_daily_story),
                    story.title,
                    story.summary,
                    story.text,
                    story.image_prompt,
                    _encode("image", story.image),
                    story.audio,
                    story.duration,
                    _encode("completed_at", story.completed_at),
                    _encode("created_at", story.created_at),
                    _encode("updated_at", story.updated_at),
                    story.version,
                ),
            )

        logger.debug(f"[StoryStore] Created story {story.id}")

        for hook in list(self._after_create):
            hook(story)

        return story

    def get(self, story_id: str) -> Optional[Story]:
        """Get a story by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM stories WHERE id = ?",
                (story_id,),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_story(row)

    def update(
        self,
        story_id: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
        expected: Optional[dict[str, Any]] = None,
    ) -> Story:
        """
        Apply a partial update and fire after_update hooks.

        Args:
            story_id: Story to update
            fields: Field values to merge into the record
            expected_version: If given, reject the write unless the stored
                version still matches
            expected: Field -> value the stored record must still hold.
                Unlike expected_version, writes to other fields don't
                invalidate it.

        Returns:
            The updated Story

        Raises:
            StoryNotFoundError: If story_id doesn't exist
            InvalidOperationError: If a field is not writable
            ConcurrencyViolationError: If a guard no longer matches
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise InvalidOperationError(
                f"Cannot update fields {sorted(unknown)} on story {story_id}"
            )

        guards = dict(expected or {})
        if expected_version is not None:
            guards["version"] = expected_version
        unguardable = set(guards) - MUTABLE_FIELDS - {"version"}
        if unguardable:
            raise InvalidOperationError(f"Cannot guard on fields {sorted(unguardable)}")

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM stories WHERE id = ?",
                (story_id,),
            ).fetchone()

            if row is None:
                raise StoryNotFoundError(story_id)

            before = self._row_to_story(row)
            changed = frozenset(
                name for name, value in fields.items()
                if getattr(before, name) != value
            )

            updates = [f"{name} = ?" for name in fields]
            values = [_encode(name, value) for name, value in fields.items()]
            updates.extend(["updated_at = ?", "version = version + 1"])
            values.append(_encode("updated_at", utcnow()))

            # Guards live in the WHERE clause so the check and write are one statement
            where = ["id = ?"]
            values.append(story_id)
            for name, value in guards.items():
                where.append(f"{name} IS ?")
                values.append(value if name == "version" else _encode(name, value))

            cursor = conn.execute(
                f"UPDATE stories SET {', '.join(updates)} WHERE {' AND '.join(where)}",
                values,
            )

            row = conn.execute(
                "SELECT * FROM stories WHERE id = ?",
                (story_id,),
            ).fetchone()

            if cursor.rowcount == 0:
                current = self._row_to_story(row)
                if expected is None:
                    raise ConcurrencyViolationError(story_id, expected_version, current.version)
                raise ConcurrencyViolationError(
                    story_id,
                    guards,
                    {name: getattr(current, name) for name in guards},
                )

        story = self._row_to_story(row)
        logger.debug(
            f"[StoryStore] Updated story {story_id} "
            f"(version={story.version}, changed={sorted(changed)})"
        )

        for hook in list(self._after_update):
            hook(story, changed)

        return story

    def find(
        self,
        filters: Optional[dict[str, Any]] = None,
        sort: str = "-created_at",
        limit: Optional[int] = None,
        visible_to: Optional[str] = None,
        include_public: bool = True,
    ) -> list[Story]:
        """
        Find stories matching equality filters.

        Args:
            filters: column -> value; a list/tuple value means IN (...)
            sort: Column name, "-" prefix for descending
            limit: Maximum rows to return
            visible_to: Restrict to public stories or stories owned by this user
            include_public: With visible_to, whether public stories count

        Returns:
            Stories in the requested order
        """
        clauses = []
        values: list[Any] = []

        for column, value in (filters or {}).items():
            if column not in _SORTABLE and column not in {
                "id", "state", "user_id", "parent_story_id", "is_public", "is_daily_story"
            }:
                raise InvalidOperationError(f"Cannot filter on {column}")
            if isinstance(value, (list, tuple, set, frozenset)):
                items = list(value)
                if not items:
                    return []
                clauses.append(f"{column} IN ({', '.join('?' for _ in items)})")
                values.extend(_encode(column, v) for v in items)
            else:
                clauses.append(f"{column} = ?")
                values.append(_encode(column, value))

        if visible_to is not None:
            if include_public:
                clauses.append("(is_public = 1 OR user_id = ?)")
            else:
                clauses.append("user_id = ?")
            values.append(visible_to)
        elif not include_public:
            return []

        descending = sort.startswith("-")
        sort_column = sort.lstrip("-")
        if sort_column not in _SORTABLE:
            raise InvalidOperationError(f"Cannot sort on {sort_column}")

        query = "SELECT * FROM stories"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += f" ORDER BY {sort_column} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            query += " LIMIT ?"
            values.append(limit)

        with self._connection() as conn:
            rows = conn.execute(query, values).fetchall()

        return [self._row_to_story(row) for row in rows]

    def find_by_ids(self, story_ids: Iterable[str]) -> list[Story]:
        """Fetch the stories that exist among story_ids (order not preserved)."""
        return self.find(filters={"id": list(story_ids)})

    def count(self) -> int:
        """Count all stories."""
        with self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM stories").fetchone()[0]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _row_to_story(self, row: sqlite3.Row) -> Story:
        """Convert database row to Story entity."""
        return Story(
            id=row["id"],
            prompt=row["prompt"],
            state=StoryState(row["state"]),
            attempt=row["attempt"],
            parent_story_id=row["parent_story_id"],
            user_id=row["user_id"],
            is_public=bool(row["is_public"]),
            is_daily_story=bool(row["is_daily_story"]),
            title=row["title"],
            summary=row["summary"],
            text=row["text"],
            image_prompt=row["image_prompt"],
            image=json.loads(row["image"]) if row["image"] else None,
            audio=row["audio"],
            duration=row["duration"],
            completed_at=_parse_datetime(row["completed_at"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
            version=row["version"],
        )


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)
