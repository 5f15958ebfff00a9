"""
Async Registrar Client

Asynchronous client for the registrar's XML-over-HTTP command API.
"""

import logging
from typing import Dict, List, Optional

import httpx

from domain_sync.exceptions import ConfigMissing, RegistrarProtocolError
from domain_sync.models import (
    DomainRegistrarInfo,
    ReactivateResult,
    RegistrarDomain,
    RegistrarDomainPage,
    RenewResult,
)
from domain_sync.xml_parser import XMLParser

logger = logging.getLogger("domain_sync.registrar")

DEFAULT_BASE_URL = "https://api.namecheap.com/xml.response"
SANDBOX_BASE_URL = "https://api.sandbox.namecheap.com/xml.response"

# Registrar returns at most 100 domains per page
MAX_PAGE_SIZE = 100

COMMANDS = {
    "get_list": "namecheap.domains.getList",
    "reactivate": "namecheap.domains.reactivate",
    "renew": "namecheap.domains.renew",
    "get_info": "namecheap.domains.getInfo",
}


def _clamp_page_size(page_size: int) -> int:
    # A short page ends pagination, so never ask for more than the registrar serves
    clamped = max(1, min(int(page_size), MAX_PAGE_SIZE))
    if clamped != page_size:
        logger.warning(f"Page size {page_size} out of range, using {clamped}")
    return clamped


class RegistrarClient:
    """
    Asynchronous registrar API client.

    Every command is a single HTTP GET carrying the credentials and the
    command name as query parameters. Responses are parsed by XMLParser,
    which raises RegistrarProtocolError for error envelopes.

    Example:
        async with RegistrarClient(
            api_user="acme",
            api_key="secret",
            username="acme",
            client_ip="203.0.113.10",
        ) as client:
            domains = await client.fetch_all_domains()
            info = await client.get_info("example.com")
    """

    def __init__(
        self,
        api_user: str,
        api_key: str,
        username: str,
        client_ip: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize registrar client.

        Args:
            api_user: API user name
            api_key: API key
            username: Account user name the commands act on
            client_ip: Whitelisted client IP sent with every command
            base_url: Command endpoint URL
            timeout: Request timeout in seconds
            http_client: Pre-built client (tests, shared pools)

        Raises:
            ConfigMissing: If any credential is empty
        """
        missing = [
            key for key, value in (
                ("api_user", api_user),
                ("api_key", api_key),
                ("username", username),
                ("client_ip", client_ip),
            ) if not value
        ]
        if missing:
            raise ConfigMissing("Registrar credentials not set", missing)

        self.api_user = api_user
        self.username = username
        self.client_ip = client_ip
        self.base_url = base_url or DEFAULT_BASE_URL
        self.timeout = timeout

        self._api_key = api_key
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the underlying HTTP client if we created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
        return False

    def _build_params(self, command: str, extra: Dict[str, str] = None) -> Dict[str, str]:
        params = {
            "ApiUser": self.api_user,
            "ApiKey": self._api_key,
            "UserName": self.username,
            "Command": command,
            "ClientIp": self.client_ip,
        }
        if extra:
            params.update(extra)
        return params

    async def _send_command(self, command: str, extra: Dict[str, str] = None) -> bytes:
        """Issue one command and return the raw XML body."""
        params = self._build_params(command, extra)
        logger.debug(f"Registrar command {command} {extra or {}}")

        try:
            response = await self._client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            raise RegistrarProtocolError(f"Request failed: {e}", command=command)

        if response.status_code < 200 or response.status_code >= 300:
            raise RegistrarProtocolError(
                f"Registrar returned HTTP {response.status_code}",
                code=str(response.status_code),
                command=command,
            )

        return response.content

    # =========================================================================
    # Domain Commands
    # =========================================================================

    async def list_domains(
        self,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
        list_type: str = None,
        sort_by: str = None,
        search_term: str = None,
    ) -> RegistrarDomainPage:
        """
        Fetch one page of the account's domains.

        Args:
            page: 1-based page number
            page_size: Domains per page (registrar max 100)
            list_type: ALL, EXPIRING or EXPIRED
            sort_by: Registrar sort key, e.g. NAME or EXPIREDATE
            search_term: Only domains containing this keyword

        Returns:
            RegistrarDomainPage with normalized items and paging
        """
        page_size = _clamp_page_size(page_size)
        extra = {"Page": str(page), "PageSize": str(page_size)}
        if list_type:
            extra["ListType"] = list_type
        if sort_by:
            extra["SortBy"] = sort_by
        if search_term:
            extra["SearchTerm"] = search_term

        xml = await self._send_command(COMMANDS["get_list"], extra)
        return XMLParser.parse_domain_list(xml)

    async def fetch_all_domains(
        self,
        page_size: int = MAX_PAGE_SIZE,
        search_term: str = None,
    ) -> List[RegistrarDomain]:
        """
        Fetch every page of the domain list.

        Pages are requested until one comes back shorter than page_size;
        the registrar's paging block is not relied on for termination.
        """
        page_size = _clamp_page_size(page_size)
        domains: List[RegistrarDomain] = []
        page = 1

        while True:
            result = await self.list_domains(page=page, page_size=page_size, search_term=search_term)
            domains.extend(result.domains)
            logger.debug(f"Fetched registrar page {page}: {len(result.domains)} domains")
            if len(result.domains) < page_size:
                break
            page += 1

        logger.info(f"Fetched {len(domains)} domains from registrar in {page} page(s)")
        return domains

    async def reactivate(self, name: str) -> ReactivateResult:
        """Reactivate an expired domain."""
        xml = await self._send_command(COMMANDS["reactivate"], {"DomainName": name})
        result = XMLParser.parse_reactivate(xml)
        logger.info(f"Reactivate {name}: success={result.success}")
        return result

    async def renew(
        self,
        name: str,
        years: int = 1,
        is_premium_domain: bool = None,
        premium_price: float = None,
        promotion_code: str = None,
    ) -> RenewResult:
        """
        Renew a domain.

        Args:
            name: Domain name
            years: Number of years to renew
            is_premium_domain: Must be set for premium domains
            premium_price: Renewal price of a premium domain
            promotion_code: Optional promo code

        Raises:
            RegistrarProtocolError: On error envelope or missing DomainRenewResult
        """
        extra = {"DomainName": name, "Years": str(years)}
        if promotion_code:
            extra["PromotionCode"] = promotion_code
        if is_premium_domain is not None:
            extra["IsPremiumDomain"] = "true" if is_premium_domain else "false"
        if premium_price is not None:
            extra["PremiumPrice"] = str(premium_price)

        xml = await self._send_command(COMMANDS["renew"], extra)
        result = XMLParser.parse_renew(xml)
        logger.info(f"Renewed {name} for {years} year(s): renewed={result.renewed}")
        return result

    async def get_info(self, name: str, host_name: str = None) -> DomainRegistrarInfo:
        """Get registrar details of a domain."""
        extra = {"DomainName": name}
        if host_name:
            extra["HostName"] = host_name

        xml = await self._send_command(COMMANDS["get_info"], extra)
        return XMLParser.parse_domain_info(xml)
