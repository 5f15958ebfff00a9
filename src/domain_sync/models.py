"""
Domain Sync Models

Data classes for registrar responses, content-filter results,
stored domains and sync bookkeeping.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional


# =============================================================================
# Enums
# =============================================================================

class ServiceKind(enum.IntEnum):
    """Kinds of sync recorded in the audit log."""
    REGISTRAR_SYNC = 1
    CONTENT_FILTER_CHECK = 2
    NAMESERVER_REFRESH = 3


class DomainCategory(str, enum.Enum):
    """User-assigned domain category."""
    MS = "MS"
    WP = "WP"
    LP = "LP"
    RTP = "RTP"
    OTHER = "Other"


# =============================================================================
# Registrar Response Models
# =============================================================================

@dataclass
class RegistrarDomain:
    """Single domain from the registrar's domain list."""
    id: str
    name: str
    user: str = ""
    created: str = ""  # Registrar format, e.g. 02/15/2016
    expires: Optional[date] = None
    is_expired: bool = False
    is_locked: bool = False
    auto_renew: bool = False
    whois_guard: str = ""
    is_premium: bool = False
    is_our_dns: bool = False


@dataclass
class Paging:
    """Paging block of a domain list response."""
    total_items: int
    current_page: int
    page_size: int


@dataclass
class RegistrarDomainPage:
    """One page of the registrar's domain list."""
    domains: List[RegistrarDomain] = field(default_factory=list)
    paging: Optional[Paging] = None


@dataclass
class ReactivateResult:
    """Domain reactivate response."""
    domain: str
    success: bool
    charged_amount: Optional[str] = None
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None


@dataclass
class RenewResult:
    """Domain renew response."""
    domain_name: str
    domain_id: str
    renewed: bool
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    charged_amount: Optional[str] = None
    expired_date: Optional[str] = None
    num_years: Optional[int] = None


@dataclass
class DomainRegistrarInfo:
    """Domain get-info response."""
    status: str
    id: str
    domain_name: str
    owner_name: Optional[str] = None
    is_owner: Optional[bool] = None
    is_premium: Optional[bool] = None
    created_date: Optional[str] = None
    expired_date: Optional[str] = None
    dns_provider_type: Optional[str] = None
    nameservers: List[str] = field(default_factory=list)


# =============================================================================
# Content Filter Models
# =============================================================================

@dataclass
class FilterStatus:
    """Block status of one domain as reported by the content filter."""
    domain: str
    blocked: bool
    raw_status: str = ""


@dataclass
class BatchCheckResult:
    """Classified rows of one content-filter query."""
    results: List[FilterStatus] = field(default_factory=list)
    blocked: int = 0
    not_blocked: int = 0
    unknown_statuses: List[str] = field(default_factory=list)

    def extend(self, other: "BatchCheckResult") -> None:
        """Merge another batch into this one."""
        self.results.extend(other.results)
        self.blocked += other.blocked
        self.not_blocked += other.not_blocked
        for status in other.unknown_statuses:
            if status not in self.unknown_statuses:
                self.unknown_statuses.append(status)


# =============================================================================
# Stored Models
# =============================================================================

@dataclass
class Domain:
    """Canonical domain record.

    Field groups:
    - registrar: registrar_id, name, owner, registered_on, is_expired,
      is_locked, auto_renew, whois_guard_status, is_premium, uses_own_dns,
      expiry_date (and the derived ``active``)
    - DNS: name_server1, name_server2
    - content filter: blocked
    - user-owned: description, category, is_used, is_defense, is_link_alt,
      group_id, cpanel_id
    """
    name: str
    id: Optional[int] = None
    registrar_id: Optional[str] = None
    owner: Optional[str] = None
    registered_on: Optional[str] = None
    is_expired: bool = False
    is_locked: bool = False
    auto_renew: bool = False
    whois_guard_status: Optional[str] = None
    is_premium: Optional[bool] = None
    uses_own_dns: Optional[bool] = None
    expiry_date: Optional[date] = None
    active: bool = True
    name_server1: Optional[str] = None
    name_server2: Optional[str] = None
    blocked: bool = False
    description: Optional[str] = None
    category: Optional[DomainCategory] = None
    is_used: bool = False
    is_defense: bool = False
    is_link_alt: bool = False
    group_id: Optional[int] = None
    cpanel_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def nameservers(self) -> List[str]:
        """Non-empty stored nameservers."""
        return [ns for ns in (self.name_server1, self.name_server2) if ns]


# Columns each source writes on update; everything else is left as stored
REGISTRAR_FIELDS = (
    "registrar_id", "name", "owner", "registered_on",
    "is_expired", "is_locked", "auto_renew", "whois_guard_status",
    "is_premium", "uses_own_dns", "expiry_date", "active",
)
NAMESERVER_FIELDS = ("name_server1", "name_server2")
CONTENT_FILTER_FIELDS = ("blocked",)
USAGE_FIELDS = ("is_used",)


@dataclass
class SyncAuditEntry:
    """One completed sync run."""
    kind: ServiceKind
    timestamp: datetime
    id: Optional[int] = None


# =============================================================================
# Sync Results
# =============================================================================

@dataclass
class RegistrarSyncResult:
    """Outcome of a registrar sync."""
    fetched: int = 0
    added: int = 0
    updated: int = 0
    unchanged: int = 0


@dataclass
class NameserverRefreshResult:
    """Outcome of a nameserver refresh."""
    checked: int = 0
    updated: int = 0


@dataclass
class ContentFilterRefreshResult:
    """Outcome of a content-filter refresh."""
    checked: int = 0
    updated: int = 0
    unknown_statuses: List[str] = field(default_factory=list)
    via_script: bool = False


@dataclass
class FullSyncResult:
    """Outcome of registrar sync plus nameserver refresh."""
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    ns_updated: int = 0


@dataclass
class SyncMetadata:
    """Last completed run of each sync kind."""
    last_registrar_sync: Optional[datetime] = None
    last_nameserver_refresh: Optional[datetime] = None
    last_content_filter_check: Optional[datetime] = None
