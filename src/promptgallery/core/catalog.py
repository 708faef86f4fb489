"""Gallery catalog: image records, owner indices, and the catalog writer.

The catalog holds one :class:`ImageRecord` per generated image and, for each
user, the ordered list of image ids they created.  Two layers live here:

- :class:`CatalogStore` / :class:`SQLiteCatalogStore`: record-level reads and
  writes.  Each method is a single statement or a single transaction; there is
  no transaction spanning methods.
- :class:`CatalogWriter`: the two-step commit used by the generation
  pipeline: create the record, then append its id to the creator's index.

Commit ordering
---------------
The record is always written before it is indexed.  If the process dies (or
the index write fails) between the two steps the result is an orphan record:
it exists and can be browsed, it is just not listed on the creator's
profile.  The reverse order could leave an index entry pointing at nothing.
No automatic rollback is attempted; the orphan is logged with its id.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from promptgallery.core.artifact_store import StorageReference
from promptgallery.core.errors import CatalogStoreError, CatalogWriteError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ImageRecord:
    """Durable metadata for one generated image.

    ``like_count`` always equals ``len(liked_by)``; both start empty.
    ``creator_name`` is display-only and is not persisted on the record.
    """

    id: str
    prompt: str
    image_url: str
    storage_key: str
    creator_id: str
    tags: list[str] = field(default_factory=list)
    like_count: int = 0
    liked_by: list[str] = field(default_factory=list)
    comment_ids: list[str] = field(default_factory=list)
    is_public: bool = True
    view_count: int = 0
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    creator_name: str | None = None

    @classmethod
    def new(
        cls,
        prompt: str,
        storage_ref: StorageReference,
        creator_id: str,
        tags: list[str],
    ) -> ImageRecord:
        """Build a fresh record with a new id and zeroed counters."""
        timestamp = _now()
        return cls(
            id=uuid.uuid4().hex,
            prompt=prompt,
            image_url=storage_ref.public_url,
            storage_key=storage_ref.storage_key,
            creator_id=creator_id,
            tags=list(tags),
            created_at=timestamp,
            updated_at=timestamp,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserRecord:
    """A catalog user and the ids of the images they created, oldest first."""

    id: str
    username: str
    created_images: list[str] = field(default_factory=list)


class CatalogStore(ABC):
    """Record-level access to the catalog.

    Every method raises :class:`~promptgallery.core.errors.CatalogStoreError`
    on storage failure.
    """

    @abstractmethod
    def ensure_user(self, user_id: str, username: str | None = None) -> UserRecord:
        """Return the user, creating it first if it does not exist."""

    @abstractmethod
    def get_user(self, user_id: str) -> UserRecord | None:
        """Return the user or ``None``."""

    @abstractmethod
    def create_image(self, record: ImageRecord) -> None:
        """Insert a new image record."""

    @abstractmethod
    def append_created_image(self, user_id: str, image_id: str) -> UserRecord:
        """Append *image_id* to the user's created images and return the user."""

    @abstractmethod
    def get_image(self, image_id: str) -> ImageRecord | None:
        """Return the record with ``creator_name`` populated, or ``None``."""

    @abstractmethod
    def list_public_images(self, page: int, per_page: int) -> dict:
        """Return one page of public images, newest first."""

    @abstractmethod
    def increment_views(self, image_id: str) -> ImageRecord | None:
        """Add one view and return the updated record, or ``None``."""

    @abstractmethod
    def delete_image(self, image_id: str) -> bool:
        """Delete the record and its index entries; ``False`` if absent."""


class SQLiteCatalogStore(CatalogStore):
    """Catalog backed by a local SQLite database.

    Every operation opens its own connection so the store can be called from
    worker threads without sharing connection state.  List-valued fields
    (tags, liked_by, comment_ids) are stored as JSON text; the owner index is
    a separate table so appending is a single atomic ``INSERT``.
    """

    def __init__(self, db_path: Path):
        """Initialize the catalog database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized catalog database at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    username TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS images (
                    id TEXT PRIMARY KEY,
                    prompt TEXT NOT NULL,
                    image_url TEXT NOT NULL,
                    storage_key TEXT NOT NULL,
                    creator_id TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    like_count INTEGER NOT NULL DEFAULT 0 CHECK (like_count >= 0),
                    liked_by TEXT NOT NULL DEFAULT '[]',
                    comment_ids TEXT NOT NULL DEFAULT '[]',
                    is_public INTEGER NOT NULL DEFAULT 1,
                    view_count INTEGER NOT NULL DEFAULT 0 CHECK (view_count >= 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                -- Newest-first gallery listing
                CREATE INDEX IF NOT EXISTS idx_images_created_at
                ON images(created_at DESC);

                CREATE TABLE IF NOT EXISTS user_created_images (
                    position INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL REFERENCES users(id),
                    image_id TEXT NOT NULL,
                    UNIQUE (user_id, image_id)
                );
                """)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ImageRecord:
        return ImageRecord(
            id=row["id"],
            prompt=row["prompt"],
            image_url=row["image_url"],
            storage_key=row["storage_key"],
            creator_id=row["creator_id"],
            tags=json.loads(row["tags"]),
            like_count=row["like_count"],
            liked_by=json.loads(row["liked_by"]),
            comment_ids=json.loads(row["comment_ids"]),
            is_public=bool(row["is_public"]),
            view_count=row["view_count"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            creator_name=row["username"],
        )

    def _select_image(self, conn: sqlite3.Connection, image_id: str) -> ImageRecord | None:
        row = conn.execute(
            """
            SELECT images.*, users.username
            FROM images LEFT JOIN users ON users.id = images.creator_id
            WHERE images.id = ?
            """,
            (image_id,),
        ).fetchone()
        return self._row_to_record(row) if row else None

    def _select_user(self, conn: sqlite3.Connection, user_id: str) -> UserRecord | None:
        row = conn.execute("SELECT id, username FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        created = [
            r["image_id"]
            for r in conn.execute(
                "SELECT image_id FROM user_created_images WHERE user_id = ? ORDER BY position",
                (user_id,),
            )
        ]
        return UserRecord(id=row["id"], username=row["username"], created_images=created)

    def ensure_user(self, user_id: str, username: str | None = None) -> UserRecord:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR IGNORE INTO users (id, username, created_at) VALUES (?, ?, ?)",
                    (user_id, username or user_id, _now()),
                )
                return self._select_user(conn, user_id)
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error ensuring user {user_id}: {e}") from e

    def get_user(self, user_id: str) -> UserRecord | None:
        try:
            with self._connect() as conn:
                return self._select_user(conn, user_id)
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error reading user {user_id}: {e}") from e

    def create_image(self, record: ImageRecord) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO images (
                        id, prompt, image_url, storage_key, creator_id, tags,
                        like_count, liked_by, comment_ids, is_public, view_count,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.prompt,
                        record.image_url,
                        record.storage_key,
                        record.creator_id,
                        json.dumps(record.tags),
                        record.like_count,
                        json.dumps(record.liked_by),
                        json.dumps(record.comment_ids),
                        int(record.is_public),
                        record.view_count,
                        record.created_at,
                        record.updated_at,
                    ),
                )
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error creating image {record.id}: {e}") from e
        logger.debug(f"Created image record {record.id}")

    def append_created_image(self, user_id: str, image_id: str) -> UserRecord:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT OR IGNORE INTO user_created_images (user_id, image_id) VALUES (?, ?)",
                    (user_id, image_id),
                )
                user = self._select_user(conn, user_id)
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error indexing image {image_id} for {user_id}: {e}") from e
        if user is None:
            raise CatalogStoreError(f"Unknown user {user_id}")
        return user

    def get_image(self, image_id: str) -> ImageRecord | None:
        try:
            with self._connect() as conn:
                return self._select_image(conn, image_id)
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error reading image {image_id}: {e}") from e

    def list_public_images(self, page: int, per_page: int) -> dict:
        """Return one page of public images, clamping *page* to valid bounds.

        Returns:
            Dictionary containing ``total``, ``page``, ``per_page``, ``pages``,
            and ``images`` (list of :class:`ImageRecord`).
        """
        try:
            with self._connect() as conn:
                total = conn.execute(
                    "SELECT COUNT(*) FROM images WHERE is_public = 1"
                ).fetchone()[0]
                pages = (total + per_page - 1) // per_page if total > 0 else 1
                resolved_page = min(max(page, 1), pages)
                rows = conn.execute(
                    """
                    SELECT images.*, users.username
                    FROM images LEFT JOIN users ON users.id = images.creator_id
                    WHERE images.is_public = 1
                    ORDER BY images.created_at DESC, images.rowid DESC
                    LIMIT ? OFFSET ?
                    """,
                    (per_page, (resolved_page - 1) * per_page),
                ).fetchall()
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error listing images: {e}") from e

        return {
            "total": total,
            "page": resolved_page,
            "per_page": per_page,
            "pages": pages,
            "images": [self._row_to_record(row) for row in rows],
        }

    def increment_views(self, image_id: str) -> ImageRecord | None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE images SET view_count = view_count + 1 WHERE id = ?",
                    (image_id,),
                )
                return self._select_image(conn, image_id)
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error counting view for {image_id}: {e}") from e

    def delete_image(self, image_id: str) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM images WHERE id = ?", (image_id,))
                conn.execute("DELETE FROM user_created_images WHERE image_id = ?", (image_id,))
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise CatalogStoreError(f"Error deleting image {image_id}: {e}") from e
        if deleted:
            logger.info(f"Deleted image record {image_id}")
        return deleted


class CatalogWriter:
    """Create an image record and link it from its creator's index.

    Store calls run in worker threads so the event loop is never blocked by
    database I/O.

    Args:
        store: The catalog store to write to.
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    async def commit(
        self,
        prompt: str,
        storage_ref: StorageReference,
        creator_id: str,
        tags: list[str],
    ) -> ImageRecord:
        """Persist a new record, then append it to the creator's index.

        A user row is created for *creator_id* first if none exists, so the
        index entry always has an owner to attach to.

        Returns:
            The created record with ``creator_name`` populated.

        Raises:
            CatalogWriteError: If either write fails.  When the second write
                fails the record remains in the catalog unindexed.
        """
        record = ImageRecord.new(prompt, storage_ref, creator_id, tags)

        try:
            await asyncio.to_thread(self.store.ensure_user, creator_id)
            await asyncio.to_thread(self.store.create_image, record)
        except CatalogStoreError as exc:
            logger.error(
                f"Image record write failed; stored object {storage_ref.storage_key} "
                f"is orphaned: {exc}"
            )
            raise CatalogWriteError(
                "The generated image could not be saved to the gallery."
            ) from exc

        try:
            user = await asyncio.to_thread(self.store.append_created_image, creator_id, record.id)
        except CatalogStoreError as exc:
            logger.error(
                f"Owner index update failed; record {record.id} exists but is not "
                f"linked from user {creator_id}: {exc}"
            )
            raise CatalogWriteError(
                f"Image {record.id} was saved but could not be added to your profile."
            ) from exc

        record.creator_name = user.username
        logger.info(f"Cataloged image {record.id} for user {creator_id}")
        return record
