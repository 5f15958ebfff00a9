"""
Domain Sync Exceptions

Custom exception hierarchy for registrar, DNS, content-filter and
external script failures.
"""

import enum
from typing import List, Optional


class DomainSyncError(Exception):
    """Base domain sync exception."""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigMissing(DomainSyncError):
    """Required credentials or configuration are absent."""

    def __init__(self, message: str = "Configuration missing", missing: List[str] = None):
        self.missing = list(missing or [])
        if self.missing:
            message = f"{message}: {', '.join(self.missing)}"
        super().__init__(message)


class DomainNotFound(DomainSyncError):
    """No stored domain with the given id."""

    def __init__(self, domain_id: int):
        super().__init__(f"Domain with id {domain_id} not found")
        self.domain_id = domain_id


class StoreError(DomainSyncError):
    """Domain store rejected a write or could not be queried."""


# =============================================================================
# Registrar
# =============================================================================

class RegistrarProtocolError(DomainSyncError):
    """Registrar returned an error envelope or an unusable response."""

    def __init__(self, message: str, code: str = None, command: str = None):
        super().__init__(message, code)
        self.command = command

    def __str__(self):
        base = super().__str__()
        if self.command:
            return f"{self.command}: {base}"
        return base


# =============================================================================
# DNS
# =============================================================================

class DnsLookupFailure(DomainSyncError):
    """NS lookup for a single domain failed (NXDOMAIN, timeout, no answer)."""

    def __init__(self, name: str, reason: str):
        super().__init__(f"NS lookup for {name} failed: {reason}")
        self.name = name
        self.reason = reason


# =============================================================================
# Content filter
# =============================================================================

class ContentFilterError(DomainSyncError):
    """Content-filter batch check could not complete."""


class CsrfExtractionError(ContentFilterError):
    """No CSRF token could be found in the bootstrap page."""

    def __init__(self, message: str = "Could not extract CSRF token from content-filter page"):
        super().__init__(message)


class ContentFilterProtocolError(ContentFilterError):
    """Unexpected HTTP status, transport failure or malformed response body."""

    def __init__(self, message: str, status: Optional[int] = None, preview: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.preview = preview

    def __str__(self):
        base = self.message
        if self.status is not None:
            base = f"[HTTP {self.status}] {base}"
        if self.preview:
            base += f" - body: {self.preview}"
        return base


class ContentFilterIncompleteError(ContentFilterError):
    """Response did not contain a row for every requested domain."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        shown = ", ".join(self.missing[:10])
        if len(self.missing) > 10:
            shown += ", ..."
        super().__init__(
            f"Content filter did not return results for {len(self.missing)} "
            f"requested domain(s): {shown}"
        )


# =============================================================================
# External script
# =============================================================================

class ScriptFailureReason(enum.Enum):
    """Why an external content-filter script run failed."""
    SPAWN = "spawn"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    KILLED = "killed"
    MISSING_RESULT = "missing_result"
    MALFORMED_RESULT = "malformed_result"


class ExternalScriptFailure(DomainSyncError):
    """External content-filter script did not produce a usable result."""

    def __init__(
        self,
        reason: ScriptFailureReason,
        message: str,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
        signal_name: Optional[str] = None,
    ):
        super().__init__(message, code=reason.value)
        self.reason = reason
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.signal_name = signal_name

    @property
    def output_preview(self) -> str:
        """First 400 characters of stderr and stdout combined."""
        return "\n".join(part for part in (self.stderr.strip(), self.stdout.strip()) if part)[:400]
