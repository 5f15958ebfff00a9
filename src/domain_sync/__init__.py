"""
Domain Sync

Keeps a domain portfolio in step with the registrar, live DNS and the
content-filter block list.
"""

__version__ = "1.0.0"

from domain_sync.registrar import RegistrarClient
from domain_sync.nameservers import NameserverResolver
from domain_sync.content_filter import ContentFilterClient
from domain_sync.transports import CurlTransport, DirectTransport, create_transport
from domain_sync.script_runner import ExternalScriptRunner
from domain_sync.reconciler import DomainReconciler
from domain_sync.scheduler import IntervalScheduler
from domain_sync.store import (
    DomainStore,
    SyncAuditLog,
    InMemoryDomainStore,
    InMemorySyncAuditLog,
)
from domain_sync.database import SQLiteDatabase, SQLiteDomainStore, SQLiteSyncAuditLog
from domain_sync.models import (
    BatchCheckResult,
    ContentFilterRefreshResult,
    Domain,
    DomainCategory,
    DomainRegistrarInfo,
    FilterStatus,
    FullSyncResult,
    NameserverRefreshResult,
    RegistrarDomain,
    RegistrarSyncResult,
    ServiceKind,
    SyncMetadata,
)
from domain_sync.exceptions import (
    DomainSyncError,
    ConfigMissing,
    DomainNotFound,
    StoreError,
    RegistrarProtocolError,
    DnsLookupFailure,
    ContentFilterError,
    CsrfExtractionError,
    ContentFilterProtocolError,
    ContentFilterIncompleteError,
    ExternalScriptFailure,
    ScriptFailureReason,
)

__all__ = [
    # Clients
    "RegistrarClient",
    "NameserverResolver",
    "ContentFilterClient",
    "DirectTransport",
    "CurlTransport",
    "create_transport",
    "ExternalScriptRunner",
    # Orchestration
    "DomainReconciler",
    "IntervalScheduler",
    # Storage
    "DomainStore",
    "SyncAuditLog",
    "InMemoryDomainStore",
    "InMemorySyncAuditLog",
    "SQLiteDatabase",
    "SQLiteDomainStore",
    "SQLiteSyncAuditLog",
    # Models
    "BatchCheckResult",
    "ContentFilterRefreshResult",
    "Domain",
    "DomainCategory",
    "DomainRegistrarInfo",
    "FilterStatus",
    "FullSyncResult",
    "NameserverRefreshResult",
    "RegistrarDomain",
    "RegistrarSyncResult",
    "ServiceKind",
    "SyncMetadata",
    # Exceptions
    "DomainSyncError",
    "ConfigMissing",
    "DomainNotFound",
    "StoreError",
    "RegistrarProtocolError",
    "DnsLookupFailure",
    "ContentFilterError",
    "CsrfExtractionError",
    "ContentFilterProtocolError",
    "ContentFilterIncompleteError",
    "ExternalScriptFailure",
    "ScriptFailureReason",
]
