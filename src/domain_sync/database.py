"""
SQLite Storage

SQLite-backed DomainStore and SyncAuditLog sharing one connection.
Dates and timestamps are stored as ISO-8601 text.
"""

import logging
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from dateutil.parser import isoparse

from domain_sync.exceptions import StoreError
from domain_sync.models import Domain, DomainCategory, ServiceKind, SyncAuditEntry
from domain_sync.store import DomainStore, SyncAuditLog

logger = logging.getLogger("domain_sync.database")

SCHEMA = """
CREATE TABLE IF NOT EXISTS domains (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    registrar_id TEXT UNIQUE,
    name TEXT NOT NULL,
    owner TEXT,
    registered_on TEXT,
    is_expired INTEGER NOT NULL DEFAULT 0,
    is_locked INTEGER NOT NULL DEFAULT 0,
    auto_renew INTEGER NOT NULL DEFAULT 0,
    whois_guard_status TEXT,
    is_premium INTEGER,
    uses_own_dns INTEGER,
    expiry_date TEXT,
    active INTEGER NOT NULL DEFAULT 1,
    name_server1 TEXT,
    name_server2 TEXT,
    blocked INTEGER NOT NULL DEFAULT 0,
    description TEXT,
    category TEXT,
    is_used INTEGER NOT NULL DEFAULT 0,
    is_defense INTEGER NOT NULL DEFAULT 0,
    is_link_alt INTEGER NOT NULL DEFAULT 0,
    group_id INTEGER,
    cpanel_id INTEGER,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_domains_name ON domains (name COLLATE NOCASE);

CREATE TABLE IF NOT EXISTS sync_audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind INTEGER NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sync_audit_kind ON sync_audit (kind, timestamp);
"""

DOMAIN_COLUMNS = [
    "registrar_id", "name", "owner", "registered_on",
    "is_expired", "is_locked", "auto_renew", "whois_guard_status",
    "is_premium", "uses_own_dns", "expiry_date", "active",
    "name_server1", "name_server2", "blocked",
    "description", "category", "is_used", "is_defense", "is_link_alt",
    "group_id", "cpanel_id", "created_at", "updated_at",
]

_BOOL_COLUMNS = {"is_expired", "is_locked", "auto_renew", "active", "blocked",
                 "is_used", "is_defense", "is_link_alt"}
_OPTIONAL_BOOL_COLUMNS = {"is_premium", "uses_own_dns"}


class SQLiteDatabase:
    """
    Single SQLite connection with query helpers.

    Usage:
        db = SQLiteDatabase("~/.domain-sync/domains.db")
        await db.initialize()
        rows = await db.query("SELECT * FROM domains WHERE is_used = :used", {"used": 1})
        await db.close()
    """

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        if self._conn is not None:
            logger.warning("Database already initialized")
            return
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open database {self.path}: {e}") from e
        logger.info(f"Database opened: {self.path}")

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Database closed")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Database not initialized")
        return self._conn

    @asynccontextmanager
    async def transaction(self):
        """
        Cursor with transaction semantics.

        Commits on successful exit, rolls back on exception.
        """
        cursor = self.conn.cursor()
        try:
            yield cursor
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise StoreError(f"Constraint violation: {e}") from e
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Transaction failed: {e}")
            raise StoreError(f"Transaction failed: {e}") from e
        except Exception:
            self.conn.rollback()
            raise
        finally:
            cursor.close()

    async def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Execute one statement and commit.

        Returns:
            lastrowid for INSERT, else rowcount
        """
        async with self.transaction() as cursor:
            cursor.execute(sql, params or {})
            if sql.lstrip().upper().startswith("INSERT"):
                return cursor.lastrowid
            return cursor.rowcount

    async def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params or {}).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Query failed: {e}")
            logger.debug(f"SQL: {sql}")
            raise StoreError(f"Query failed: {e}") from e

    async def query_one(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Optional[sqlite3.Row]:
        rows = await self.query(sql, params)
        return rows[0] if rows else None


# =============================================================================
# Row conversion
# =============================================================================

def _to_row(domain: Domain) -> Dict[str, Any]:
    row = {}
    for column in DOMAIN_COLUMNS:
        value = getattr(domain, column)
        if isinstance(value, bool):
            value = int(value)
        elif isinstance(value, DomainCategory):
            value = value.value
        elif isinstance(value, (date, datetime)):
            value = value.isoformat()
        row[column] = value
    # Empty registrar ids would collide under the unique constraint
    row["registrar_id"] = domain.registrar_id or None
    return row


def _from_row(row: sqlite3.Row) -> Domain:
    values = dict(row)
    for column in _BOOL_COLUMNS:
        values[column] = bool(values[column])
    for column in _OPTIONAL_BOOL_COLUMNS:
        if values[column] is not None:
            values[column] = bool(values[column])
    if values["expiry_date"]:
        values["expiry_date"] = isoparse(values["expiry_date"]).date()
    for column in ("created_at", "updated_at"):
        if values[column]:
            values[column] = isoparse(values[column])
    if values["category"]:
        values["category"] = DomainCategory(values["category"])
    return Domain(**values)


# =============================================================================
# Repositories
# =============================================================================

class SQLiteDomainStore(DomainStore):
    """DomainStore on the domains table."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def get(self, domain_id: int) -> Optional[Domain]:
        row = await self.db.query_one("SELECT * FROM domains WHERE id = :id", {"id": domain_id})
        return _from_row(row) if row else None

    async def find_by_registrar_id(self, registrar_id: str) -> Optional[Domain]:
        if not registrar_id:
            return None
        row = await self.db.query_one(
            "SELECT * FROM domains WHERE registrar_id = :rid", {"rid": registrar_id}
        )
        return _from_row(row) if row else None

    async def find_by_name(self, name: str) -> Optional[Domain]:
        row = await self.db.query_one(
            "SELECT * FROM domains WHERE LOWER(name) = LOWER(:name) ORDER BY id LIMIT 1",
            {"name": (name or "").strip()},
        )
        return _from_row(row) if row else None

    async def find_all(self) -> List[Domain]:
        rows = await self.db.query("SELECT * FROM domains ORDER BY id")
        return [_from_row(r) for r in rows]

    async def find_all_used(self) -> List[Domain]:
        rows = await self.db.query(
            "SELECT * FROM domains WHERE is_used = 1 ORDER BY LOWER(name), id"
        )
        return [_from_row(r) for r in rows]

    async def upsert(self, domain: Domain, fields: Optional[Sequence[str]] = None) -> Domain:
        now = datetime.now()
        domain = replace(domain, updated_at=now)

        if domain.id is None:
            domain.created_at = domain.created_at or now
            row = _to_row(domain)
            columns = ", ".join(DOMAIN_COLUMNS)
            placeholders = ", ".join(f":{c}" for c in DOMAIN_COLUMNS)
            new_id = await self.db.execute(
                f"INSERT INTO domains ({columns}) VALUES ({placeholders})", row
            )
            logger.debug(f"Inserted domain {domain.name} as id {new_id}")
            return await self.get(new_id)

        async with self.db.transaction() as cursor:
            self._update(cursor, domain, fields)
        return await self.get(domain.id)

    def _update(self, cursor: sqlite3.Cursor, domain: Domain, fields: Optional[Sequence[str]] = None) -> None:
        row = _to_row(domain)
        row.pop("created_at")
        if fields is not None:
            unknown = set(fields) - set(DOMAIN_COLUMNS)
            if unknown:
                raise ValueError(f"Unknown domain fields: {', '.join(sorted(unknown))}")
            row = {c: row[c] for c in list(fields) + ["updated_at"]}
        assignments = ", ".join(f"{c} = :{c}" for c in row)
        row["id"] = domain.id
        cursor.execute(f"UPDATE domains SET {assignments} WHERE id = :id", row)
        if cursor.rowcount == 0:
            raise StoreError(f"Domain with id {domain.id} does not exist")

    async def batch_update(self, domains: List[Domain], fields: Optional[Sequence[str]] = None) -> int:
        if not domains:
            return 0
        now = datetime.now()
        async with self.db.transaction() as cursor:
            for domain in domains:
                self._update(cursor, replace(domain, updated_at=now), fields)
        return len(domains)


class SQLiteSyncAuditLog(SyncAuditLog):
    """SyncAuditLog on the sync_audit table."""

    def __init__(self, db: SQLiteDatabase):
        self.db = db

    async def record(self, kind: ServiceKind, timestamp: Optional[datetime] = None) -> SyncAuditEntry:
        kind = ServiceKind(kind)
        timestamp = timestamp or datetime.now()
        entry_id = await self.db.execute(
            "INSERT INTO sync_audit (kind, timestamp) VALUES (:kind, :ts)",
            {"kind": int(kind), "ts": timestamp.isoformat()},
        )
        logger.debug(f"Recorded {kind.name} at {timestamp.isoformat()}")
        return SyncAuditEntry(kind=kind, timestamp=timestamp, id=entry_id)

    async def last_timestamp(self, kind: ServiceKind) -> Optional[datetime]:
        row = await self.db.query_one(
            "SELECT timestamp FROM sync_audit WHERE kind = :kind "
            "ORDER BY timestamp DESC, id DESC LIMIT 1",
            {"kind": int(kind)},
        )
        return isoparse(row["timestamp"]) if row else None
