"""
Registrar XML Parser

Parses the registrar's ApiResponse envelope and command results into
typed models. Raw XML shapes never leave this module.
"""

import logging
from datetime import date, datetime
from typing import List, Optional

from lxml import etree

from domain_sync.exceptions import RegistrarProtocolError
from domain_sync.models import (
    DomainRegistrarInfo,
    Paging,
    ReactivateResult,
    RegistrarDomain,
    RegistrarDomainPage,
    RenewResult,
)

logger = logging.getLogger("domain_sync.parser")

EXPIRES_FORMAT = "%m/%d/%Y"

# Secure parser
_parser = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_blank_text=True,
)


def parse_bool(text: Optional[str], default: bool = False) -> bool:
    """Parse registrar "true"/"false" flags case-insensitively."""
    if text is None or text == "":
        return default
    return text.strip().lower() == "true"


def _parse_optional_bool(text: Optional[str]) -> Optional[bool]:
    if text is None or text == "":
        return None
    return parse_bool(text)


def _parse_int(text: Optional[str], default: int) -> int:
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def parse_expires(text: str) -> date:
    """
    Parse registrar expiry date (MM/DD/YYYY).

    Raises:
        RegistrarProtocolError: If the date is not in registrar format
    """
    try:
        return datetime.strptime(text.strip(), EXPIRES_FORMAT).date()
    except (AttributeError, ValueError):
        raise RegistrarProtocolError(f"Invalid expires date: {text!r}")


def _strip_namespaces(root: etree._Element) -> etree._Element:
    """Drop namespaces so lookups work with and without xmlns."""
    for elem in root.iter():
        if isinstance(elem.tag, str):
            elem.tag = etree.QName(elem).localname
    return root


def _parse_xml(xml_data: bytes) -> etree._Element:
    """Parse XML with secure parser."""
    try:
        return _strip_namespaces(etree.fromstring(xml_data, _parser))
    except etree.XMLSyntaxError as e:
        raise RegistrarProtocolError(f"XML parse error: {e}")


def _find_text(elem: etree._Element, path: str, default: str = None) -> Optional[str]:
    """Find element and return text."""
    found = elem.find(path)
    if found is not None and found.text:
        return found.text.strip()
    return default


def _attr_or_child(elem: etree._Element, name: str) -> Optional[str]:
    """Read a field given either as attribute or as child element."""
    value = elem.get(name)
    if value is not None:
        return value
    return _find_text(elem, name)


class XMLParser:
    """
    Parses registrar XML responses.

    All methods are static. ``parse_envelope`` validates the ApiResponse
    status and returns the CommandResponse element; the command parsers
    build on it.
    """

    @staticmethod
    def parse_envelope(xml_data: bytes, command: str = None) -> etree._Element:
        """
        Validate the ApiResponse envelope.

        Args:
            xml_data: Raw XML bytes
            command: Command name, for error messages

        Returns:
            CommandResponse element (empty element if absent)

        Raises:
            RegistrarProtocolError: On ERROR status or any Errors/Error entry
        """
        root = _parse_xml(xml_data)
        if root.tag != "ApiResponse":
            raise RegistrarProtocolError(
                f"Unexpected root element <{root.tag}>", command=command
            )

        status = root.get("Status", "")
        errors = root.findall("Errors/Error")

        if status.upper() == "ERROR" or errors:
            texts = []
            for err in errors:
                text = (err.text or "").strip() or err.get("Number")
                if text:
                    texts.append(text)
            message = "; ".join(texts) or status or "Unknown error"
            code = errors[0].get("Number") if errors else None
            logger.debug(f"Registrar error envelope for {command}: {message}")
            raise RegistrarProtocolError(
                f"Registrar API error: {message}", code=code, command=command
            )

        cmd = root.find("CommandResponse")
        if cmd is None:
            return etree.Element("CommandResponse")
        return cmd

    @staticmethod
    def parse_domain_list(xml_data: bytes) -> RegistrarDomainPage:
        """Parse namecheap.domains.getList response."""
        cmd = XMLParser.parse_envelope(xml_data, "namecheap.domains.getList")

        result = cmd.find("DomainGetListResult")
        raw_domains = result.findall("Domain") if result is not None else []
        domains = [XMLParser._parse_list_item(d) for d in raw_domains]

        # Paging is a sibling of DomainGetListResult; older responses nest it
        paging_elem = cmd.find("Paging")
        if paging_elem is None and result is not None:
            paging_elem = result.find("Paging")

        if paging_elem is not None:
            paging = Paging(
                total_items=_parse_int(_find_text(paging_elem, "TotalItems"), len(domains)),
                current_page=_parse_int(_find_text(paging_elem, "CurrentPage"), 1),
                page_size=_parse_int(_find_text(paging_elem, "PageSize"), len(domains)),
            )
        else:
            paging = Paging(total_items=len(domains), current_page=1, page_size=len(domains))

        return RegistrarDomainPage(domains=domains, paging=paging)

    @staticmethod
    def _parse_list_item(elem: etree._Element) -> RegistrarDomain:
        """Normalize one attribute-style <Domain/> node."""
        expires = elem.get("Expires")
        return RegistrarDomain(
            id=elem.get("ID", ""),
            name=elem.get("Name", ""),
            user=elem.get("User", ""),
            created=elem.get("Created", ""),
            expires=parse_expires(expires) if expires else None,
            is_expired=parse_bool(elem.get("IsExpired")),
            is_locked=parse_bool(elem.get("IsLocked")),
            auto_renew=parse_bool(elem.get("AutoRenew")),
            whois_guard=elem.get("WhoisGuard", ""),
            is_premium=parse_bool(elem.get("IsPremium")),
            is_our_dns=parse_bool(elem.get("IsOurDNS")),
        )

    @staticmethod
    def parse_reactivate(xml_data: bytes) -> ReactivateResult:
        """Parse namecheap.domains.reactivate response."""
        cmd = XMLParser.parse_envelope(xml_data, "namecheap.domains.reactivate")

        result = cmd.find("DomainReactivateResult")
        if result is None:
            result = cmd

        return ReactivateResult(
            domain=_attr_or_child(result, "Domain") or "",
            success=parse_bool(_attr_or_child(result, "IsSuccess")),
            charged_amount=_attr_or_child(result, "ChargedAmount"),
            order_id=_attr_or_child(result, "OrderID"),
            transaction_id=_attr_or_child(result, "TransactionID"),
        )

    @staticmethod
    def parse_renew(xml_data: bytes) -> RenewResult:
        """Parse namecheap.domains.renew response."""
        command = "namecheap.domains.renew"
        cmd = XMLParser.parse_envelope(xml_data, command)

        result = cmd.find("DomainRenewResult")
        if result is None:
            raise RegistrarProtocolError("No DomainRenewResult in response", command=command)

        details = result.find("DomainDetails")
        expired_date = None
        num_years = None
        if details is not None:
            expired_date = _find_text(details, "ExpiredDate")
            num_years_text = _find_text(details, "NumYears")
            num_years = int(num_years_text) if num_years_text and num_years_text.isdigit() else None

        return RenewResult(
            domain_name=_attr_or_child(result, "DomainName") or "",
            domain_id=_attr_or_child(result, "DomainID") or "",
            renewed=parse_bool(_attr_or_child(result, "Renew")),
            order_id=_attr_or_child(result, "OrderID"),
            transaction_id=_attr_or_child(result, "TransactionID"),
            charged_amount=_attr_or_child(result, "ChargedAmount"),
            expired_date=expired_date,
            num_years=num_years,
        )

    @staticmethod
    def parse_domain_info(xml_data: bytes) -> DomainRegistrarInfo:
        """Parse namecheap.domains.getInfo response."""
        command = "namecheap.domains.getInfo"
        cmd = XMLParser.parse_envelope(xml_data, command)

        result = cmd.find("DomainGetInfoResult")
        if result is None:
            raise RegistrarProtocolError("No DomainGetInfoResult in response", command=command)

        details = result.find("DomainDetails")
        dns = result.find("DnsDetails")

        nameservers: List[str] = []
        provider_type = None
        if dns is not None:
            provider_type = dns.get("ProviderType")
            nameservers = [ns.text.strip() for ns in dns.findall("Nameserver") if ns.text]

        return DomainRegistrarInfo(
            status=_attr_or_child(result, "Status") or "",
            id=_attr_or_child(result, "ID") or "",
            domain_name=_attr_or_child(result, "DomainName") or "",
            owner_name=_attr_or_child(result, "OwnerName"),
            is_owner=_parse_optional_bool(_attr_or_child(result, "IsOwner")),
            is_premium=_parse_optional_bool(_attr_or_child(result, "IsPremium")),
            created_date=_find_text(details, "CreatedDate") if details is not None else None,
            expired_date=_find_text(details, "ExpiredDate") if details is not None else None,
            dns_provider_type=provider_type,
            nameservers=nameservers,
        )
