"""
Tests for the in-memory and SQLite domain stores and audit logs.
"""

from datetime import date, datetime

import pytest

from domain_sync.database import SQLiteDatabase, SQLiteDomainStore, SQLiteSyncAuditLog
from domain_sync.exceptions import StoreError
from domain_sync.models import (
    NAMESERVER_FIELDS,
    REGISTRAR_FIELDS,
    Domain,
    DomainCategory,
    ServiceKind,
)
from domain_sync.store import InMemoryDomainStore, InMemorySyncAuditLog


@pytest.fixture(params=["memory", "sqlite"])
def backend(request):
    """(store, audit log, db or None) for each backend."""
    if request.param == "memory":
        return InMemoryDomainStore(), InMemorySyncAuditLog(), None
    db = SQLiteDatabase(":memory:")
    return SQLiteDomainStore(db), SQLiteSyncAuditLog(db), db


async def open_backend(backend):
    store, audit, db = backend
    if db is not None:
        await db.initialize()
    return store, audit


class TestDomainStore:
    """Behaviour shared by both DomainStore implementations."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, backend):
        """Insert assigns id and timestamps."""
        store, _ = await open_backend(backend)

        stored = await store.upsert(Domain(name="example.com", registrar_id="127"))

        assert stored.id is not None
        assert stored.created_at is not None
        assert stored.updated_at is not None
        fetched = await store.get(stored.id)
        assert fetched.name == "example.com"
        assert fetched.registrar_id == "127"
        assert await store.get(9999) is None

    @pytest.mark.asyncio
    async def test_field_round_trip(self, backend):
        """Dates, enums and optional booleans survive storage."""
        store, _ = await open_backend(backend)
        domain = Domain(
            name="shop.com",
            registrar_id="9",
            expiry_date=date(2026, 12, 31),
            category=DomainCategory.WP,
            is_premium=None,
            uses_own_dns=True,
            is_used=True,
            name_server1="ns1.host.net",
            group_id=4,
        )

        stored = await store.upsert(domain)
        fetched = await store.get(stored.id)

        assert fetched.expiry_date == date(2026, 12, 31)
        assert fetched.category is DomainCategory.WP
        assert fetched.is_premium is None
        assert fetched.uses_own_dns is True
        assert fetched.is_used is True
        assert fetched.name_server1 == "ns1.host.net"
        assert fetched.name_server2 is None
        assert fetched.group_id == 4

    @pytest.mark.asyncio
    async def test_caller_object_is_detached(self, backend):
        """Mutating a returned object does not change the store."""
        store, _ = await open_backend(backend)
        stored = await store.upsert(Domain(name="a.com"))

        stored.description = "changed locally"

        assert (await store.get(stored.id)).description is None

    @pytest.mark.asyncio
    async def test_lookup_by_registrar_id_and_name(self, backend):
        store, _ = await open_backend(backend)
        await store.upsert(Domain(name="Example.COM", registrar_id="55"))

        assert (await store.find_by_registrar_id("55")).name == "Example.COM"
        assert await store.find_by_registrar_id("56") is None
        assert (await store.find_by_name("example.com")).registrar_id == "55"
        assert await store.find_by_name("other.com") is None

    @pytest.mark.asyncio
    async def test_registrar_id_unique(self, backend):
        """A registrar id belongs to at most one row."""
        store, _ = await open_backend(backend)
        await store.upsert(Domain(name="a.com", registrar_id="1"))

        with pytest.raises(StoreError):
            await store.upsert(Domain(name="b.com", registrar_id="1"))

    @pytest.mark.asyncio
    async def test_rows_without_registrar_id(self, backend):
        """Several rows may lack a registrar id."""
        store, _ = await open_backend(backend)
        await store.upsert(Domain(name="a.com"))
        await store.upsert(Domain(name="b.com", registrar_id=""))

        assert len(await store.find_all()) == 2

    @pytest.mark.asyncio
    async def test_ordering(self, backend):
        """find_all is by id; find_all_used is by name."""
        store, _ = await open_backend(backend)
        for name in ["zeta.com", "alpha.com", "mid.com", "unused.com"]:
            await store.upsert(Domain(name=name, is_used=name != "unused.com"))

        assert [d.name for d in await store.find_all()] == [
            "zeta.com", "alpha.com", "mid.com", "unused.com",
        ]
        assert [d.name for d in await store.find_all_used()] == [
            "alpha.com", "mid.com", "zeta.com",
        ]

    @pytest.mark.asyncio
    async def test_update_keeps_created_at(self, backend):
        store, _ = await open_backend(backend)
        stored = await store.upsert(Domain(name="a.com"))

        stored.blocked = True
        updated = await store.upsert(stored)

        assert updated.blocked is True
        assert updated.created_at == stored.created_at

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, backend):
        store, _ = await open_backend(backend)

        with pytest.raises(StoreError):
            await store.upsert(Domain(name="ghost.com", id=42))

    @pytest.mark.asyncio
    async def test_batch_update(self, backend):
        store, _ = await open_backend(backend)
        a = await store.upsert(Domain(name="a.com"))
        b = await store.upsert(Domain(name="b.com"))

        a.name_server1 = "ns1.x.net"
        b.blocked = True
        written = await store.batch_update([a, b])

        assert written == 2
        assert (await store.get(a.id)).name_server1 == "ns1.x.net"
        assert (await store.get(b.id)).blocked is True
        assert await store.batch_update([]) == 0

    @pytest.mark.asyncio
    async def test_batch_update_all_or_nothing(self, backend):
        """A bad row leaves the whole batch unapplied."""
        store, _ = await open_backend(backend)
        a = await store.upsert(Domain(name="a.com"))

        a.blocked = True
        with pytest.raises(StoreError):
            await store.batch_update([a, Domain(name="ghost.com", id=999)])

        assert (await store.get(a.id)).blocked is False

    @pytest.mark.asyncio
    async def test_batch_update_named_fields_only(self, backend):
        """Columns outside the field list keep their stored values."""
        store, _ = await open_backend(backend)
        stored = await store.upsert(Domain(name="a.com", blocked=True, description="note", is_used=True))

        stale = Domain(name="a.com", id=stored.id, name_server1="ns1.x.net", name_server2="ns2.x.net")
        await store.batch_update([stale], fields=NAMESERVER_FIELDS)

        domain = await store.get(stored.id)
        assert (domain.name_server1, domain.name_server2) == ("ns1.x.net", "ns2.x.net")
        assert domain.blocked is True
        assert domain.description == "note"
        assert domain.is_used is True
        assert domain.created_at == stored.created_at

    @pytest.mark.asyncio
    async def test_upsert_named_fields_only(self, backend):
        store, _ = await open_backend(backend)
        stored = await store.upsert(Domain(name="a.com", registrar_id="1", category=DomainCategory.MS))

        await store.upsert(Domain(name="a.com", id=stored.id, registrar_id="1", owner="acme"), fields=REGISTRAR_FIELDS)

        domain = await store.get(stored.id)
        assert domain.owner == "acme"
        assert domain.category is DomainCategory.MS

    @pytest.mark.asyncio
    async def test_unknown_field(self, backend):
        store, _ = await open_backend(backend)
        stored = await store.upsert(Domain(name="a.com"))

        with pytest.raises(ValueError):
            await store.batch_update([stored], fields=("nameserver",))


class TestSyncAuditLog:
    """Behaviour shared by both SyncAuditLog implementations."""

    @pytest.mark.asyncio
    async def test_empty_metadata(self, backend):
        _, audit = await open_backend(backend)

        meta = await audit.metadata()

        assert meta.last_registrar_sync is None
        assert meta.last_nameserver_refresh is None
        assert meta.last_content_filter_check is None

    @pytest.mark.asyncio
    async def test_latest_per_kind(self, backend):
        """metadata() reports the newest timestamp of each kind."""
        _, audit = await open_backend(backend)
        await audit.record(ServiceKind.NAMESERVER_REFRESH, datetime(2025, 1, 2, 10, 0))
        await audit.record(ServiceKind.NAMESERVER_REFRESH, datetime(2025, 1, 3, 10, 0))
        await audit.record(ServiceKind.NAMESERVER_REFRESH, datetime(2025, 1, 1, 10, 0))
        entry = await audit.record(ServiceKind.CONTENT_FILTER_CHECK, datetime(2025, 2, 1, 8, 30))

        meta = await audit.metadata()

        assert entry.kind is ServiceKind.CONTENT_FILTER_CHECK
        assert meta.last_nameserver_refresh == datetime(2025, 1, 3, 10, 0)
        assert meta.last_content_filter_check == datetime(2025, 2, 1, 8, 30)
        assert meta.last_registrar_sync is None

    @pytest.mark.asyncio
    async def test_record_defaults_to_now(self, backend):
        _, audit = await open_backend(backend)
        before = datetime.now()

        entry = await audit.record(ServiceKind.REGISTRAR_SYNC)

        assert entry.timestamp >= before
        assert await audit.last_timestamp(ServiceKind.REGISTRAR_SYNC) == entry.timestamp


class TestSQLiteDatabase:
    """SQLite-specific behaviour."""

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, tmp_path):
        """Rows written to a file are read back by a new connection."""
        path = str(tmp_path / "domains.db")
        db = SQLiteDatabase(path)
        await db.initialize()
        await SQLiteDomainStore(db).upsert(Domain(name="kept.com", registrar_id="1"))
        await db.close()

        db = SQLiteDatabase(path)
        await db.initialize()
        domains = await SQLiteDomainStore(db).find_all()
        await db.close()

        assert [d.name for d in domains] == ["kept.com"]

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        db = SQLiteDatabase()

        with pytest.raises(StoreError):
            await db.query("SELECT 1")

    @pytest.mark.asyncio
    async def test_transaction_rollback(self):
        """An exception inside a transaction discards its writes."""
        db = SQLiteDatabase()
        await db.initialize()

        with pytest.raises(RuntimeError):
            async with db.transaction() as cursor:
                cursor.execute(
                    "INSERT INTO sync_audit (kind, timestamp) VALUES (1, '2025-01-01T00:00:00')"
                )
                raise RuntimeError("abort")

        assert await db.query("SELECT * FROM sync_audit") == []
        await db.close()

    @pytest.mark.asyncio
    async def test_last_timestamp_reads_one_row(self, monkeypatch):
        """Only the newest audit row is fetched, however long the log."""
        db = SQLiteDatabase()
        await db.initialize()
        audit = SQLiteSyncAuditLog(db)
        for day in range(1, 29):
            await audit.record(ServiceKind.REGISTRAR_SYNC, datetime(2025, 2, day, 6, 0))
        fetched = []
        query = db.query

        async def counting_query(sql, params=None):
            rows = await query(sql, params)
            fetched.append(len(rows))
            return rows

        monkeypatch.setattr(db, "query", counting_query)

        latest = await audit.last_timestamp(ServiceKind.REGISTRAR_SYNC)

        assert latest == datetime(2025, 2, 28, 6, 0)
        assert fetched == [1]
        await db.close()
