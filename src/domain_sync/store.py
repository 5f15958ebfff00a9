"""
Domain Store and Sync Audit Log

Repository interfaces the reconciler works against, plus in-memory
implementations used by tests and dry runs. SQLite-backed versions live
in domain_sync.database.
"""

import abc
import copy
import dataclasses
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from domain_sync.exceptions import StoreError
from domain_sync.models import Domain, ServiceKind, SyncAuditEntry, SyncMetadata
from domain_sync.utils import normalize_name

logger = logging.getLogger("domain_sync.store")

_DOMAIN_FIELDS = {f.name for f in dataclasses.fields(Domain)}


class DomainStore(abc.ABC):
    """
    Domain repository.

    Returned Domain objects are detached copies: changing one has no
    effect until it is passed to upsert or batch_update.
    """

    @abc.abstractmethod
    async def get(self, domain_id: int) -> Optional[Domain]:
        """Get domain by store id."""

    @abc.abstractmethod
    async def find_by_registrar_id(self, registrar_id: str) -> Optional[Domain]:
        """Get domain by registrar id."""

    @abc.abstractmethod
    async def find_by_name(self, name: str) -> Optional[Domain]:
        """Get domain by name, case-insensitively."""

    @abc.abstractmethod
    async def find_all(self) -> List[Domain]:
        """All domains in ascending id order."""

    @abc.abstractmethod
    async def find_all_used(self) -> List[Domain]:
        """Domains with is_used set, in ascending name order."""

    @abc.abstractmethod
    async def upsert(self, domain: Domain, fields: Optional[Sequence[str]] = None) -> Domain:
        """
        Insert (id is None) or update one domain and commit.

        Args:
            domain: Domain to store
            fields: Columns to write on update (all if None); ignored on insert

        Returns:
            Stored copy with id and timestamps set

        Raises:
            StoreError: registrar_id already belongs to another row,
                or the id does not exist
        """

    @abc.abstractmethod
    async def batch_update(self, domains: List[Domain], fields: Optional[Sequence[str]] = None) -> int:
        """
        Update existing domains in one commit; returns rows written.

        Only the named fields are written when fields is given, so
        concurrent writers of other fields are not overwritten.
        """


class SyncAuditLog(abc.ABC):
    """Append-only record of completed sync runs."""

    @abc.abstractmethod
    async def record(self, kind: ServiceKind, timestamp: Optional[datetime] = None) -> SyncAuditEntry:
        """Append an entry (now if no timestamp given)."""

    @abc.abstractmethod
    async def last_timestamp(self, kind: ServiceKind) -> Optional[datetime]:
        """Timestamp of the latest entry of a kind."""

    async def metadata(self) -> SyncMetadata:
        """Last run of each sync kind."""
        return SyncMetadata(
            last_registrar_sync=await self.last_timestamp(ServiceKind.REGISTRAR_SYNC),
            last_nameserver_refresh=await self.last_timestamp(ServiceKind.NAMESERVER_REFRESH),
            last_content_filter_check=await self.last_timestamp(ServiceKind.CONTENT_FILTER_CHECK),
        )


# =============================================================================
# In-memory implementations
# =============================================================================

class InMemoryDomainStore(DomainStore):
    """Dict-backed DomainStore."""

    def __init__(self, domains: List[Domain] = None):
        self._rows: Dict[int, Domain] = {}
        self._next_id = 1
        for domain in domains or []:
            self._insert(domain)

    def _check_unique(self, domain: Domain) -> None:
        if not domain.registrar_id:
            return
        for row in self._rows.values():
            if row.registrar_id == domain.registrar_id and row.id != domain.id:
                raise StoreError(
                    f"registrar_id {domain.registrar_id} already used by domain {row.id}"
                )

    def _insert(self, domain: Domain) -> Domain:
        self._check_unique(domain)
        row = copy.deepcopy(domain)
        if row.id is None:
            row.id = self._next_id
        self._next_id = max(self._next_id, row.id + 1)
        now = datetime.now()
        row.created_at = row.created_at or now
        row.updated_at = now
        self._rows[row.id] = row
        return copy.deepcopy(row)

    def _merged(self, domain: Domain, fields: Optional[Sequence[str]]) -> Domain:
        """Stored row with the given fields (or all) taken from domain."""
        existing = self._rows.get(domain.id)
        if existing is None:
            raise StoreError(f"Domain with id {domain.id} does not exist")
        if fields is None:
            row = copy.deepcopy(domain)
        else:
            unknown = [name for name in fields if name not in _DOMAIN_FIELDS]
            if unknown:
                raise ValueError(f"Unknown domain fields: {', '.join(unknown)}")
            row = copy.deepcopy(existing)
            for name in fields:
                setattr(row, name, copy.deepcopy(getattr(domain, name)))
        row.created_at = existing.created_at
        return row

    def _update(self, domain: Domain, fields: Optional[Sequence[str]] = None) -> Domain:
        row = self._merged(domain, fields)
        self._check_unique(row)
        row.updated_at = datetime.now()
        self._rows[row.id] = row
        return copy.deepcopy(row)

    async def get(self, domain_id: int) -> Optional[Domain]:
        row = self._rows.get(domain_id)
        return copy.deepcopy(row) if row else None

    async def find_by_registrar_id(self, registrar_id: str) -> Optional[Domain]:
        for row in self._rows.values():
            if registrar_id and row.registrar_id == registrar_id:
                return copy.deepcopy(row)
        return None

    async def find_by_name(self, name: str) -> Optional[Domain]:
        key = normalize_name(name)
        for row_id in sorted(self._rows):
            row = self._rows[row_id]
            if normalize_name(row.name) == key:
                return copy.deepcopy(row)
        return None

    async def find_all(self) -> List[Domain]:
        return [copy.deepcopy(self._rows[i]) for i in sorted(self._rows)]

    async def find_all_used(self) -> List[Domain]:
        used = [row for row in self._rows.values() if row.is_used]
        return [copy.deepcopy(row) for row in sorted(used, key=lambda d: normalize_name(d.name))]

    async def upsert(self, domain: Domain, fields: Optional[Sequence[str]] = None) -> Domain:
        if domain.id is None:
            return self._insert(domain)
        return self._update(domain, fields)

    async def batch_update(self, domains: List[Domain], fields: Optional[Sequence[str]] = None) -> int:
        # Validate everything first so the batch applies all-or-nothing
        for domain in domains:
            self._check_unique(self._merged(domain, fields))
        for domain in domains:
            self._update(domain, fields)
        return len(domains)


class InMemorySyncAuditLog(SyncAuditLog):
    """List-backed SyncAuditLog."""

    def __init__(self):
        self.entries: List[SyncAuditEntry] = []

    async def record(self, kind: ServiceKind, timestamp: Optional[datetime] = None) -> SyncAuditEntry:
        entry = SyncAuditEntry(
            kind=ServiceKind(kind),
            timestamp=timestamp or datetime.now(),
            id=len(self.entries) + 1,
        )
        self.entries.append(entry)
        logger.debug(f"Recorded {entry.kind.name} at {entry.timestamp.isoformat()}")
        return entry

    async def last_timestamp(self, kind: ServiceKind) -> Optional[datetime]:
        stamps = [e.timestamp for e in self.entries if e.kind == kind]
        return max(stamps) if stamps else None
