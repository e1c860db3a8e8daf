"""
vault/store.py -- SQLAlchemy-backed persistence layer for vault items.

Uses SQLAlchemy Core (not ORM) so the dataclass in vault/models.py remains
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. VaultStore is the repository; _row_to_item
is the mapper. Route handlers never touch SQL directly.

Ownership: every method that reads or writes an existing item takes user_id
and includes it in the WHERE clause. An item id belonging to another user
behaves exactly like a missing id.

The store is encryption-agnostic. It persists whatever string is in
VaultItem.password; the API layer encrypts before writing and decrypts after
reading.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = VaultStore()                               # SQLite default
    item_id = store.create_item(item)
    items = store.list_items(user_id, category="password")
    store.soft_delete(item_id, user_id)
    store.close()
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from vault.models import VaultItem

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'stashit_vault.db'}"

# Fields a caller may change through update_item(). Ownership, deletion state
# and timestamps are managed by dedicated methods.
_UPDATABLE_FIELDS = frozenset({"category", "name", "website", "username", "password", "notes", "tags", "favorite"})

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_items = Table(
    "vault_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False),
    Column("category", String(20), nullable=False),
    Column("name", String(255), nullable=False),
    Column("website", Text),
    Column("username", Text),
    Column("password", Text),  # iv:tag:ciphertext envelope (legacy rows: plaintext)
    Column("notes", Text),
    Column("tags", Text),  # JSON array serialized as text
    Column("favorite", Integer, nullable=False, server_default="0"),
    Column("deleted", Integer, nullable=False, server_default="0"),
    Column("deleted_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_vault_items_owner", "user_id", "deleted", "category"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _like_pattern(query: str) -> str:
    """Build a LIKE pattern matching query as a literal substring."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped.lower()}%"


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class VaultStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        db_url = db_url or _DEFAULT_DB_URL
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # FastAPI runs sync route handlers in a thread pool, so the same
            # pooled connection may be touched from several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_item(self, item: VaultItem) -> int:
        """Insert a new item and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.insert().values(
                    user_id=item.user_id,
                    category=item.category,
                    name=item.name,
                    website=item.website,
                    username=item.username,
                    password=item.password,
                    notes=item.notes,
                    tags=json.dumps(item.tags),
                    favorite=1 if item.favorite else 0,
                    deleted=0,
                    created_at=item.created_at or now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_item(self, item_id: int, user_id: int, **fields) -> bool:
        """Update mutable fields on a live (not trashed) item.

        Accepts any subset of _UPDATABLE_FIELDS. tags must be a list[str] and
        favorite a bool; both are converted for storage here.

        Returns True if a row was updated, False if the item was not found,
        belongs to another user, or is in the trash.

        Raises:
            ValueError: If fields contains a name outside _UPDATABLE_FIELDS.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown vault item fields: {sorted(unknown)!r}")
        if "tags" in fields:
            fields["tags"] = json.dumps(fields["tags"] or [])
        if "favorite" in fields:
            fields["favorite"] = 1 if fields["favorite"] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.update()
                .where((_items.c.id == item_id) & (_items.c.user_id == user_id) & (_items.c.deleted == 0))
                .values(**fields)
            )
            conn.commit()
        return result.rowcount > 0

    def soft_delete(self, item_id: int, user_id: int) -> bool:
        """Move a live item to the trash. Returns False if not found."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.update()
                .where((_items.c.id == item_id) & (_items.c.user_id == user_id) & (_items.c.deleted == 0))
                .values(deleted=1, deleted_at=now, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    def restore(self, item_id: int, user_id: int) -> bool:
        """Take an item back out of the trash. Returns False if not found or not trashed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.update()
                .where((_items.c.id == item_id) & (_items.c.user_id == user_id) & (_items.c.deleted == 1))
                .values(deleted=0, deleted_at=None, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def purge(self, item_id: int, user_id: int) -> bool:
        """Permanently delete an item, live or trashed. Returns False if not found or not owned."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.delete().where((_items.c.id == item_id) & (_items.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_item(self, item_id: int, user_id: int, include_trashed: bool = False) -> Optional[VaultItem]:
        """Fetch a single item. Returns None if missing or not owned by user_id.

        Trashed items are only returned when include_trashed is set.
        """
        stmt = _items.select().where((_items.c.id == item_id) & (_items.c.user_id == user_id))
        if not include_trashed:
            stmt = stmt.where(_items.c.deleted == 0)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_item(row) if row is not None else None

    def list_items(self, user_id: int, category: Optional[str] = None) -> list[VaultItem]:
        """Return live items, favorites first, then most recently updated."""
        stmt = _items.select().where((_items.c.user_id == user_id) & (_items.c.deleted == 0))
        if category:
            stmt = stmt.where(_items.c.category == category)
        stmt = stmt.order_by(_items.c.favorite.desc(), _items.c.updated_at.desc())
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_item(r) for r in rows]

    def search_items(
        self,
        user_id: int,
        query: str,
        category: Optional[str] = None,
        limit: int = 50,
    ) -> list[VaultItem]:
        """Case-insensitive substring search over name, website, username, notes and tags.

        The query is matched literally: LIKE wildcards in it are escaped.
        """
        pattern = _like_pattern(query)
        searchable = (_items.c.name, _items.c.website, _items.c.username, _items.c.notes, _items.c.tags)
        stmt = _items.select().where(
            (_items.c.user_id == user_id)
            & (_items.c.deleted == 0)
            & or_(*(func.lower(col).like(pattern, escape="\\") for col in searchable))
        )
        if category:
            stmt = stmt.where(_items.c.category == category)
        stmt = stmt.order_by(_items.c.favorite.desc(), _items.c.updated_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_trash(self, user_id: int, since: str) -> list[VaultItem]:
        """Return trashed items deleted at or after since (ISO 8601), newest deletion first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _items.select()
                .where((_items.c.user_id == user_id) & (_items.c.deleted == 1) & (_items.c.deleted_at >= since))
                .order_by(_items.c.deleted_at.desc())
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def category_counts(self, user_id: int) -> dict[str, int]:
        """Return {category: live item count} for categories that have at least one item."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_items.c.category, func.count().label("n"))
                .where((_items.c.user_id == user_id) & (_items.c.deleted == 0))
                .group_by(_items.c.category)
            ).fetchall()
        return {row.category: row.n for row in rows}

    def all_items(self, user_id: int) -> list[VaultItem]:
        """Return every live item for export, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _items.select()
                .where((_items.c.user_id == user_id) & (_items.c.deleted == 0))
                .order_by(_items.c.created_at, _items.c.id)
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_item(row) -> VaultItem:
    return VaultItem(
        id=row.id,
        user_id=row.user_id,
        category=row.category,
        name=row.name,
        website=row.website,
        username=row.username,
        password=row.password,
        notes=row.notes,
        tags=json.loads(row.tags) if row.tags else [],
        favorite=bool(row.favorite),
        deleted=bool(row.deleted),
        deleted_at=row.deleted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
