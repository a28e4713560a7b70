"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper (same as telemetry/store.py).
AccountStore is the repository; _row_to_account is the mapper.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  The store only ever sees password hashes; hashing is the caller's job
  (AuthService.register / change_password) so it happens exactly once and
  visibly in the call graph, not in a persistence hook.

Uniqueness:
  UNIQUE(username) is enforced by the database. create_account() translates
  the IntegrityError into Conflict, which also covers the race where two
  concurrent registrations both pass the find_account() pre-check.

Layer rule: no imports from api/ or telemetry/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account, Role
from core.config import get_settings
from core.errors import Conflict, NotFound

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(16), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
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


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore()
        store.create_account("admin", hash_password("secret"), Role.ADMIN)
        account = store.find_account("admin")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, echo=get_settings().debug)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def find_account(self, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_accounts(self) -> list[Account]:
        """Return all accounts ordered by username. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_accounts.select().order_by(_accounts.c.username)).fetchall()
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_account(self, username: str, password_hash: str, role: Role = Role.USER) -> Account:
        """Insert a new account and return it with its assigned id.

        Raises Conflict if the username already exists.
        """
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        username=username,
                        password_hash=password_hash,
                        role=Role(role).value,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise Conflict("Username is already taken.") from exc
        return Account(
            id=result.inserted_primary_key[0],
            username=username,
            password_hash=password_hash,
            role=Role(role),
            created_at=now,
            updated_at=now,
        )

    def save_password_hash(self, username: str, new_hash: str) -> None:
        """Replace the stored hash. Raises NotFound if the account does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.username == username)
                .values(password_hash=new_hash, updated_at=_now_iso())
            )
            conn.commit()
        if result.rowcount == 0:
            raise NotFound("User not found.")

    def delete_account(self, username: str) -> bool:
        """Permanently delete an account. Returns True if deleted, False if not found.

        Owned telemetry data is NOT touched here; AuthService.delete_account
        cascades through TelemetryStore.delete_owner_data first.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.delete().where(_accounts.c.username == username))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Run a trivial query to verify the database is reachable."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=Role(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
