"""
Tests for registrar XML parser module.
"""

import pytest
from datetime import date

from domain_sync.exceptions import RegistrarProtocolError
from domain_sync.xml_parser import XMLParser, parse_bool, parse_expires


class TestHelpers:
    """Tests for scalar parsing helpers."""

    def test_parse_bool_case_insensitive(self):
        """Registrar flags parse regardless of case."""
        assert parse_bool("true") is True
        assert parse_bool("TRUE") is True
        assert parse_bool("True") is True
        assert parse_bool("false") is False
        assert parse_bool("") is False
        assert parse_bool(None) is False

    def test_parse_expires(self):
        """MM/DD/YYYY parses to a date."""
        assert parse_expires("12/31/2026") == date(2026, 12, 31)
        assert parse_expires("02/01/2025") == date(2025, 2, 1)

    def test_parse_expires_invalid(self):
        """Unparseable dates are protocol errors."""
        with pytest.raises(RegistrarProtocolError):
            parse_expires("2026-12-31")
        with pytest.raises(RegistrarProtocolError):
            parse_expires("13/45/2026")


class TestParseEnvelope:
    """Tests for ApiResponse envelope handling."""

    ERROR_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="ERROR" xmlns="http://api.namecheap.com/xml.response">
        <Errors>
            <Error Number="1011102">Parameter APIKey is missing</Error>
            <Error Number="1011150">Invalid request IP</Error>
        </Errors>
        <CommandResponse />
    </ApiResponse>'''

    ERRORS_WITH_OK_STATUS = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK">
        <Errors>
            <Error Number="2019166">Domain not found</Error>
        </Errors>
    </ApiResponse>'''

    OK_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK">
        <Errors />
        <CommandResponse Type="namecheap.domains.getList" />
    </ApiResponse>'''

    def test_error_status(self):
        """ERROR status raises with all error texts joined."""
        with pytest.raises(RegistrarProtocolError) as exc_info:
            XMLParser.parse_envelope(self.ERROR_RESPONSE, "namecheap.domains.getList")

        err = exc_info.value
        assert err.code == "1011102"
        assert "Parameter APIKey is missing; Invalid request IP" in err.message
        assert err.command == "namecheap.domains.getList"
        assert str(err).startswith("namecheap.domains.getList: [1011102]")

    def test_error_list_with_ok_status(self):
        """Any Error entry is an error even when Status is OK."""
        with pytest.raises(RegistrarProtocolError) as exc_info:
            XMLParser.parse_envelope(self.ERRORS_WITH_OK_STATUS)
        assert "Domain not found" in exc_info.value.message

    def test_ok_envelope(self):
        """OK envelope returns the CommandResponse element."""
        cmd = XMLParser.parse_envelope(self.OK_RESPONSE)
        assert cmd.tag == "CommandResponse"
        assert cmd.get("Type") == "namecheap.domains.getList"

    def test_not_xml(self):
        """Non-XML body is a protocol error."""
        with pytest.raises(RegistrarProtocolError):
            XMLParser.parse_envelope(b"<html><body>Bad gateway")

    def test_wrong_root(self):
        """Unexpected root element is a protocol error."""
        with pytest.raises(RegistrarProtocolError):
            XMLParser.parse_envelope(b"<html><body/></html>")


class TestParseDomainList:
    """Tests for domain list parsing."""

    LIST_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
        <Errors />
        <RequestedCommand>namecheap.domains.getList</RequestedCommand>
        <CommandResponse Type="namecheap.domains.getList">
            <DomainGetListResult>
                <Domain ID="127" Name="example.com" User="owner" Created="02/15/2016"
                        Expires="12/31/2026" IsExpired="false" IsLocked="True"
                        AutoRenew="false" WhoisGuard="ENABLED" IsPremium="false" IsOurDNS="true" />
                <Domain ID="381" Name="Expired-Site.net" User="owner" Created="04/28/2016"
                        Expires="04/28/2023" IsExpired="true" IsLocked="false"
                        AutoRenew="true" WhoisGuard="NOTPRESENT" IsPremium="TRUE" IsOurDNS="false" />
            </DomainGetListResult>
            <Paging>
                <TotalItems>12</TotalItems>
                <CurrentPage>1</CurrentPage>
                <PageSize>2</PageSize>
            </Paging>
        </CommandResponse>
        <Server>WEB1-SANDBOX1</Server>
        <ExecutionTime>0.011</ExecutionTime>
    </ApiResponse>'''

    NO_PAGING_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK">
        <CommandResponse Type="namecheap.domains.getList">
            <DomainGetListResult>
                <Domain ID="1" Name="a.com" Expires="01/01/2027" IsExpired="false" />
                <Domain ID="2" Name="b.com" Expires="01/01/2027" IsExpired="false" />
                <Domain ID="3" Name="c.com" Expires="01/01/2027" IsExpired="false" />
            </DomainGetListResult>
        </CommandResponse>
    </ApiResponse>'''

    def test_parse_domain_list(self):
        """Attribute-style domains normalize into RegistrarDomain."""
        page = XMLParser.parse_domain_list(self.LIST_RESPONSE)

        assert len(page.domains) == 2
        first = page.domains[0]
        assert first.id == "127"
        assert first.name == "example.com"
        assert first.user == "owner"
        assert first.created == "02/15/2016"
        assert first.expires == date(2026, 12, 31)
        assert first.is_expired is False
        assert first.is_locked is True
        assert first.auto_renew is False
        assert first.whois_guard == "ENABLED"
        assert first.is_our_dns is True

        second = page.domains[1]
        assert second.is_expired is True
        assert second.is_premium is True
        assert second.auto_renew is True

    def test_parse_paging(self):
        """Paging sibling of the result is read."""
        page = XMLParser.parse_domain_list(self.LIST_RESPONSE)

        assert page.paging.total_items == 12
        assert page.paging.current_page == 1
        assert page.paging.page_size == 2

    def test_missing_paging_falls_back(self):
        """Absent paging falls back to item count and page 1."""
        page = XMLParser.parse_domain_list(self.NO_PAGING_RESPONSE)

        assert len(page.domains) == 3
        assert page.paging.total_items == 3
        assert page.paging.current_page == 1
        assert page.paging.page_size == 3

    def test_empty_list(self):
        """A result with no Domain nodes is an empty page."""
        xml = b'''<ApiResponse Status="OK"><CommandResponse>
            <DomainGetListResult /></CommandResponse></ApiResponse>'''
        page = XMLParser.parse_domain_list(xml)
        assert page.domains == []
        assert page.paging.total_items == 0

    def test_bad_expires_raises(self):
        """An unparseable Expires attribute fails the page."""
        xml = b'''<ApiResponse Status="OK"><CommandResponse><DomainGetListResult>
            <Domain ID="1" Name="a.com" Expires="not-a-date" />
            </DomainGetListResult></CommandResponse></ApiResponse>'''
        with pytest.raises(RegistrarProtocolError):
            XMLParser.parse_domain_list(xml)


class TestParseCommands:
    """Tests for reactivate, renew and getInfo parsing."""

    REACTIVATE_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
        <CommandResponse Type="namecheap.domains.reactivate">
            <DomainReactivateResult Domain="expired-site.net" IsSuccess="true"
                ChargedAmount="650.0000" OrderID="23569" TransactionID="25080" />
        </CommandResponse>
    </ApiResponse>'''

    RENEW_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
        <CommandResponse Type="namecheap.domains.renew">
            <DomainRenewResult DomainName="example.com" DomainID="127" Renew="true"
                OrderID="23571" TransactionID="25082" ChargedAmount="10.8700">
                <DomainDetails>
                    <ExpiredDate>12/31/2027</ExpiredDate>
                    <NumYears>1</NumYears>
                </DomainDetails>
            </DomainRenewResult>
        </CommandResponse>
    </ApiResponse>'''

    INFO_RESPONSE = b'''<?xml version="1.0" encoding="utf-8"?>
    <ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
        <CommandResponse Type="namecheap.domains.getInfo">
            <DomainGetInfoResult Status="Ok" ID="127" DomainName="example.com"
                OwnerName="owner" IsOwner="true" IsPremium="false">
                <DomainDetails>
                    <CreatedDate>02/15/2016</CreatedDate>
                    <ExpiredDate>12/31/2026</ExpiredDate>
                </DomainDetails>
                <DnsDetails ProviderType="CUSTOM" IsUsingOurDNS="false">
                    <Nameserver>ns1.example.net</Nameserver>
                    <Nameserver>ns2.example.net</Nameserver>
                </DnsDetails>
            </DomainGetInfoResult>
        </CommandResponse>
    </ApiResponse>'''

    EMPTY_COMMAND = b'''<ApiResponse Status="OK"><CommandResponse /></ApiResponse>'''

    def test_parse_reactivate(self):
        """Reactivate reports success from IsSuccess."""
        result = XMLParser.parse_reactivate(self.REACTIVATE_RESPONSE)

        assert result.domain == "expired-site.net"
        assert result.success is True
        assert result.order_id == "23569"
        assert result.charged_amount == "650.0000"

    def test_parse_renew(self):
        """Renew result and details are read."""
        result = XMLParser.parse_renew(self.RENEW_RESPONSE)

        assert result.domain_name == "example.com"
        assert result.domain_id == "127"
        assert result.renewed is True
        assert result.transaction_id == "25082"
        assert result.expired_date == "12/31/2027"
        assert result.num_years == 1

    def test_renew_missing_result(self):
        """Renew without DomainRenewResult is an error."""
        with pytest.raises(RegistrarProtocolError):
            XMLParser.parse_renew(self.EMPTY_COMMAND)

    def test_parse_info(self):
        """Info result, dates and nameservers are read."""
        info = XMLParser.parse_domain_info(self.INFO_RESPONSE)

        assert info.status == "Ok"
        assert info.id == "127"
        assert info.domain_name == "example.com"
        assert info.is_owner is True
        assert info.is_premium is False
        assert info.created_date == "02/15/2016"
        assert info.expired_date == "12/31/2026"
        assert info.dns_provider_type == "CUSTOM"
        assert info.nameservers == ["ns1.example.net", "ns2.example.net"]

    def test_info_missing_result(self):
        """Info without DomainGetInfoResult is an error."""
        with pytest.raises(RegistrarProtocolError):
            XMLParser.parse_domain_info(self.EMPTY_COMMAND)
