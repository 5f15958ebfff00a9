"""
Domain Reconciler

Merges registrar state, live nameservers and content-filter status into
the stored domain records.

Each source owns a group of fields and a sync only writes its own group;
user-owned fields (description, category, is_used, ...) are never
touched by a sync. Runs of the same kind never overlap: a second caller
joins the run already in flight.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from domain_sync.content_filter import ContentFilterClient, build_status_map, lookup_status
from domain_sync.exceptions import ConfigMissing, DomainNotFound
from domain_sync.models import (
    CONTENT_FILTER_FIELDS,
    ContentFilterRefreshResult,
    Domain,
    DomainRegistrarInfo,
    FilterStatus,
    FullSyncResult,
    NAMESERVER_FIELDS,
    NameserverRefreshResult,
    REGISTRAR_FIELDS,
    ReactivateResult,
    RegistrarDomain,
    RegistrarSyncResult,
    RenewResult,
    ServiceKind,
    SyncMetadata,
    USAGE_FIELDS,
)
from domain_sync.nameservers import NameserverResolver
from domain_sync.registrar import MAX_PAGE_SIZE, RegistrarClient
from domain_sync.script_runner import ExternalScriptRunner
from domain_sync.store import DomainStore, SyncAuditLog
from domain_sync.utils import normalize_name

logger = logging.getLogger("domain_sync.reconciler")

NAMESERVER_BATCH_SIZE = 50


class SingleFlight:
    """
    Per-key guard against overlapping runs.

    While a run for a key is in flight, further callers await the same
    task and receive its result (or its exception).
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._tasks

    async def run(self, key: str, factory: Callable[[], Awaitable]):
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task

            def _forget(done, key=key):
                if self._tasks.get(key) is done:
                    del self._tasks[key]

            task.add_done_callback(_forget)
        else:
            logger.info(f"{key} already running, joining in-flight run")

        # A cancelled waiter must not cancel the run others share
        return await asyncio.shield(task)


def registrar_fields(item: RegistrarDomain) -> Dict[str, object]:
    """Registrar-owned Domain fields for one registrar list item."""
    return {
        "registrar_id": item.id or None,
        "name": item.name,
        "owner": item.user or None,
        "registered_on": item.created or None,
        "is_expired": item.is_expired,
        "is_locked": item.is_locked,
        "auto_renew": item.auto_renew,
        "whois_guard_status": item.whois_guard or None,
        "is_premium": item.is_premium,
        "uses_own_dns": item.is_our_dns,
        "expiry_date": item.expires,
        "active": not item.is_expired,
    }


def apply_registrar_fields(domain: Domain, item: RegistrarDomain) -> bool:
    """Overwrite registrar-owned fields in place; True if anything changed."""
    changed = False
    for key, value in registrar_fields(item).items():
        if getattr(domain, key) != value:
            setattr(domain, key, value)
            changed = True
    return changed


def parse_name_lines(lines: Iterable[str]) -> List[str]:
    """Lower-cased, de-duplicated, non-empty names in file order."""
    names = []
    seen = set()
    for line in lines:
        name = normalize_name(line)
        if name and name not in seen:
            seen.add(name)
            names.append(name)
    return names


class DomainReconciler:
    """
    Orchestrates the three syncs over a DomainStore.

    Example:
        reconciler = DomainReconciler(
            store, audit_log,
            registrar=RegistrarClient(...),
            resolver=NameserverResolver(),
            content_filter=ContentFilterClient(DirectTransport()),
        )
        result = await reconciler.sync()
        print(f"added={result.added} updated={result.updated}")
    """

    def __init__(
        self,
        store: DomainStore,
        audit_log: SyncAuditLog,
        registrar: Optional[RegistrarClient] = None,
        resolver: Optional[NameserverResolver] = None,
        content_filter: Optional[ContentFilterClient] = None,
        script_runner: Optional[ExternalScriptRunner] = None,
        page_size: int = MAX_PAGE_SIZE,
        ns_batch_size: int = NAMESERVER_BATCH_SIZE,
    ):
        """
        Initialize reconciler.

        Args:
            store: Domain repository
            audit_log: Sync audit log
            registrar: Registrar client (registrar sync and admin operations)
            resolver: NS resolver (a default system resolver if None)
            content_filter: In-process content-filter client
            script_runner: When set, content-filter refresh runs externally
            page_size: Registrar list page size
            ns_batch_size: Domains resolved concurrently per batch
        """
        self.store = store
        self.audit_log = audit_log
        self.registrar = registrar
        self.resolver = resolver or NameserverResolver()
        self.content_filter = content_filter
        self.script_runner = script_runner
        self.page_size = page_size
        self.ns_batch_size = ns_batch_size
        self._flights = SingleFlight()

    def _require_registrar(self) -> RegistrarClient:
        if self.registrar is None:
            raise ConfigMissing("Registrar client not configured", ["registrar"])
        return self.registrar

    # =========================================================================
    # Registrar sync
    # =========================================================================

    async def sync_from_registrar(self) -> RegistrarSyncResult:
        """
        Upsert every registrar domain into the store.

        Matches by registrar id, then by name. Each row commits on its own,
        so a failure part-way keeps the rows written so far.
        """
        return await self._flights.run("registrar", self._sync_from_registrar)

    async def _sync_from_registrar(self) -> RegistrarSyncResult:
        registrar = self._require_registrar()
        items = await registrar.fetch_all_domains(page_size=self.page_size)
        result = RegistrarSyncResult(fetched=len(items))

        for item in items:
            existing = None
            if item.id:
                existing = await self.store.find_by_registrar_id(item.id)
            if existing is None:
                existing = await self.store.find_by_name(item.name)

            if existing is None:
                domain = Domain(
                    name=item.name,
                    is_used=False,
                    is_defense=False,
                    is_link_alt=False,
                    description=None,
                    blocked=False,
                )
                apply_registrar_fields(domain, item)
                await self.store.upsert(domain)
                result.added += 1
                logger.debug(f"Added {item.name}")
            elif apply_registrar_fields(existing, item):
                await self.store.upsert(existing, fields=REGISTRAR_FIELDS)
                result.updated += 1
            else:
                result.unchanged += 1

        logger.info(
            f"Registrar sync: fetched={result.fetched} added={result.added} "
            f"updated={result.updated} unchanged={result.unchanged}"
        )
        return result

    # =========================================================================
    # Nameserver refresh
    # =========================================================================

    async def refresh_nameservers(self) -> NameserverRefreshResult:
        """
        Resolve NS records of every stored domain.

        Domains go in ascending id order, ns_batch_size at a time; lookups
        within a batch run concurrently and the batch is written before the
        next starts. A failed lookup leaves the stored values alone.
        """
        return await self._flights.run("nameservers", self._refresh_nameservers)

    async def _refresh_nameservers(self) -> NameserverRefreshResult:
        domains = await self.store.find_all()
        result = NameserverRefreshResult()

        for start in range(0, len(domains), self.ns_batch_size):
            batch = domains[start:start + self.ns_batch_size]
            lookups = await asyncio.gather(
                *(self.resolver.resolve_nameservers(d.name) for d in batch)
            )

            changed = []
            for domain, hosts in zip(batch, lookups):
                result.checked += 1
                if not hosts:
                    continue
                ns1 = hosts[0]
                ns2 = hosts[1] if len(hosts) > 1 else None
                if (domain.name_server1, domain.name_server2) != (ns1, ns2):
                    domain.name_server1 = ns1
                    domain.name_server2 = ns2
                    changed.append(domain)

            if changed:
                await self.store.batch_update(changed, fields=NAMESERVER_FIELDS)
                result.updated += len(changed)
            logger.debug(f"NS batch at {start}: {len(batch)} checked, {len(changed)} changed")

        await self.audit_log.record(ServiceKind.NAMESERVER_REFRESH)
        logger.info(f"Nameserver refresh: checked={result.checked} updated={result.updated}")
        return result

    # =========================================================================
    # Content filter refresh
    # =========================================================================

    async def refresh_content_filter_status(self) -> ContentFilterRefreshResult:
        """
        Refresh the blocked flag of used domains.

        With a script runner configured the check runs in a child process
        that merges and records by itself; otherwise it runs here.

        Raises:
            ContentFilterError: Any batch failed (nothing is written)
            ExternalScriptFailure: The child process failed
        """
        return await self._flights.run("content_filter", self._refresh_content_filter_status)

    async def _refresh_content_filter_status(self) -> ContentFilterRefreshResult:
        if self.script_runner is not None:
            script_result = await self.script_runner.run()
            return ContentFilterRefreshResult(
                checked=script_result.checked,
                updated=script_result.updated,
                via_script=True,
            )

        used = await self.store.find_all_used()
        if not used:
            logger.info("No used domains, skipping content filter check")
            return ContentFilterRefreshResult()

        if self.content_filter is None:
            raise ConfigMissing("Content filter client not configured", ["content_filter"])

        check = await self.content_filter.check_many([d.name for d in used])
        result = await self.apply_content_filter_results(check.results)
        result.unknown_statuses = list(check.unknown_statuses)
        return result

    async def apply_content_filter_results(self, results: List[FilterStatus]) -> ContentFilterRefreshResult:
        """
        Merge content-filter results into used domains and record the check.

        Stored names resolve by exact name first, then without ``www.``.
        Only rows whose blocked flag differs are written.
        """
        if not results:
            logger.info("No content filter results to apply")
            return ContentFilterRefreshResult()

        status_map = build_status_map(results)
        used = await self.store.find_all_used()

        changed = []
        for domain in used:
            blocked = lookup_status(status_map, domain.name)
            if blocked is None:
                logger.debug(f"No content filter result for {domain.name}")
                continue
            if domain.blocked != blocked:
                domain.blocked = blocked
                changed.append(domain)

        if changed:
            await self.store.batch_update(changed, fields=CONTENT_FILTER_FIELDS)
        await self.audit_log.record(ServiceKind.CONTENT_FILTER_CHECK)

        logger.info(f"Content filter: checked={len(used)} updated={len(changed)}")
        return ContentFilterRefreshResult(checked=len(used), updated=len(changed))

    # =========================================================================
    # Full sync
    # =========================================================================

    async def sync(self) -> FullSyncResult:
        """Registrar sync followed by nameserver refresh."""
        return await self._flights.run("sync", self._sync)

    async def _sync(self) -> FullSyncResult:
        registrar_result = await self.sync_from_registrar()
        ns_result = await self.refresh_nameservers()
        await self.audit_log.record(ServiceKind.REGISTRAR_SYNC)
        return FullSyncResult(
            added=registrar_result.added,
            updated=registrar_result.updated,
            unchanged=registrar_result.unchanged,
            ns_updated=ns_result.updated,
        )

    async def sync_metadata(self) -> SyncMetadata:
        return await self.audit_log.metadata()

    # =========================================================================
    # Per-domain admin operations
    # =========================================================================

    async def _get_domain(self, domain_id: int) -> Domain:
        domain = await self.store.get(domain_id)
        if domain is None:
            raise DomainNotFound(domain_id)
        return domain

    async def _refresh_one(self, domain: Domain) -> Domain:
        """Re-read one domain from the registrar list and store any change."""
        registrar = self._require_registrar()
        page = await registrar.list_domains(page=1, page_size=self.page_size, search_term=domain.name)
        key = normalize_name(domain.name)
        match = None
        for item in page.domains:
            if normalize_name(item.name) == key or (item.id and item.id == domain.registrar_id):
                match = item
                break

        if match is None:
            logger.warning(f"{domain.name} not found in registrar list after command")
            return domain
        if apply_registrar_fields(domain, match):
            domain = await self.store.upsert(domain, fields=REGISTRAR_FIELDS)
        return domain

    async def reactivate_domain(self, domain_id: int) -> Tuple[Domain, ReactivateResult]:
        """
        Reactivate an expired domain and refresh its registrar fields.

        Raises:
            DomainNotFound: Unknown id
            RegistrarProtocolError: Registrar rejected the command
        """
        domain = await self._get_domain(domain_id)
        result = await self._require_registrar().reactivate(domain.name)
        return await self._refresh_one(domain), result

    async def renew_domain(self, domain_id: int, years: int = 1) -> Tuple[Domain, RenewResult]:
        """Renew a domain and refresh its registrar fields."""
        domain = await self._get_domain(domain_id)
        result = await self._require_registrar().renew(
            domain.name, years, is_premium_domain=bool(domain.is_premium)
        )
        return await self._refresh_one(domain), result

    async def domain_registrar_info(self, domain_id: int) -> Tuple[Domain, DomainRegistrarInfo]:
        domain = await self._get_domain(domain_id)
        info = await self._require_registrar().get_info(domain.name)
        return domain, info

    async def mark_used_from_lines(self, lines: Iterable[str]) -> Tuple[int, int]:
        """
        Set is_used on every stored domain named in lines.

        Returns:
            (matched, updated): names that exist, rows actually changed
        """
        names = parse_name_lines(lines)
        if not names:
            return 0, 0

        by_name: Dict[str, Domain] = {}
        for domain in await self.store.find_all():
            by_name.setdefault(normalize_name(domain.name), domain)

        changed = []
        matched = 0
        for name in names:
            domain = by_name.get(name)
            if domain is None:
                continue
            matched += 1
            if not domain.is_used:
                domain.is_used = True
                changed.append(domain)

        if changed:
            await self.store.batch_update(changed, fields=USAGE_FIELDS)
        logger.info(f"Mark used: {len(names)} names, matched={matched} updated={len(changed)}")
        return matched, len(changed)
