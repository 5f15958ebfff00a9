"""
Nameserver Resolver

Looks up a domain's NS records through standard DNS resolution.
A failed lookup yields no nameservers, which callers treat as "no change".
"""

import logging
from typing import List, Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from domain_sync.exceptions import DnsLookupFailure

logger = logging.getLogger("domain_sync.nameservers")

MAX_NAMESERVERS = 2


class NameserverResolver:
    """
    Resolves NS records with dnspython's async resolver.

    Example:
        resolver = NameserverResolver(timeout=3.0)
        ns = await resolver.resolve_nameservers("example.com")
        # ['a.iana-servers.net', 'b.iana-servers.net']
    """

    def __init__(
        self,
        nameservers: Optional[List[str]] = None,
        timeout: float = 5.0,
        lifetime: float = 10.0,
        resolver: Optional[dns.asyncresolver.Resolver] = None,
    ):
        """
        Initialize resolver.

        Args:
            nameservers: Resolver IPs to query (system resolvers if empty)
            timeout: Per-server query timeout in seconds
            lifetime: Total time allowed for one lookup in seconds
            resolver: Pre-built resolver (tests)
        """
        if resolver is None:
            resolver = dns.asyncresolver.Resolver(configure=not nameservers)
            if nameservers:
                resolver.nameservers = list(nameservers)
            resolver.timeout = timeout
            resolver.lifetime = lifetime
        self._resolver = resolver

    async def lookup(self, name: str) -> List[str]:
        """
        Resolve all NS hostnames of a domain.

        Returns:
            Hostnames without trailing dot, lower-cased and sorted

        Raises:
            DnsLookupFailure: On NXDOMAIN, timeout, empty answer or resolver error
        """
        try:
            answer = await self._resolver.resolve(name, "NS")
        except dns.resolver.NXDOMAIN:
            raise DnsLookupFailure(name, "NXDOMAIN")
        except dns.resolver.NoAnswer:
            raise DnsLookupFailure(name, "no NS records")
        except dns.resolver.NoNameservers:
            raise DnsLookupFailure(name, "no nameservers available")
        except dns.exception.Timeout:
            raise DnsLookupFailure(name, "timeout")
        except dns.exception.DNSException as e:
            raise DnsLookupFailure(name, str(e) or e.__class__.__name__)

        hosts = sorted({str(rdata.target).rstrip(".").lower() for rdata in answer})
        if not hosts:
            raise DnsLookupFailure(name, "no NS records")
        return hosts

    async def resolve_nameservers(self, name: str) -> List[str]:
        """
        Resolve up to two nameservers; never raises.

        An empty list means the lookup failed and stored values must be kept.
        """
        try:
            hosts = await self.lookup(name)
        except DnsLookupFailure as e:
            logger.debug(str(e))
            return []
        return hosts[:MAX_NAMESERVERS]
