"""
auth/store.py -- SQLAlchemy Core persistence layer for user identity records.

Pattern: Repository + Data Mapper (same as vault/store.py).
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(google_id) is enforced by the schema. Two concurrent first logins
  for the same Google account race on the INSERT; the loser gets an
  IntegrityError and auth/service.py re-reads the winner's record.

DB path: auth/stashit_auth.db (sibling to vault/stashit_vault.db).

Layer rule: no imports from api/ or vault/.

Schema migration notes:
  last_login_at TEXT column: added via ALTER TABLE ADD COLUMN so databases
  created before login tracking existed are upgraded on first startup.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'stashit_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("google_id", String(255), nullable=False, unique=True),  # provider "sub" claim
    Column("email", String(320), nullable=False),
    Column("name", String(255)),
    Column("avatar", Text),
    Column("created_at", String(32), nullable=False),
    Column("last_login_at", Text),  # ISO 8601 timestamp of last successful login
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore()
        uid = store.create_user(User(google_id="1134...", email="a@example.com"))
        user = store.get_by_google_id("1134...")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        db_url = db_url or _DEFAULT_DB_URL
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._ensure_last_login_column()

    def _ensure_last_login_column(self) -> None:
        """Add last_login_at TEXT column to users table if it does not exist.

        SQLite does not support IF NOT EXISTS in ALTER TABLE, so the column
        list is checked via PRAGMA table_info first.
        """
        if self.engine.url.get_backend_name() != "sqlite":
            return
        with self.engine.connect() as conn:
            rows = conn.execute(text("PRAGMA table_info(users)")).fetchall()
            existing_cols = {row[1] for row in rows}
            if "last_login_at" not in existing_cols:
                conn.execute(text("ALTER TABLE users ADD COLUMN last_login_at TEXT"))
                conn.commit()

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        created_at is stamped here; last_login_at starts equal to it because
        creation only ever happens during a login.

        Raises sqlalchemy.exc.IntegrityError if the google_id already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    google_id=user.google_id,
                    email=user.email,
                    name=user.name,
                    avatar=user.avatar,
                    created_at=now,
                    last_login_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_google_id(self, google_id: str) -> User | None:
        """Look up a user by Google subject ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.google_id == google_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login_at for the given user.

        The only write a repeat login performs. Email, name and avatar stay as
        they were at account creation.
        """
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login_at=_now_iso()))
            conn.commit()

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        google_id=row.google_id,
        email=row.email,
        name=row.name,
        avatar=row.avatar,
        created_at=row.created_at,
        last_login_at=getattr(row, "last_login_at", None),
    )
