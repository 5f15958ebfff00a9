"""
Content Filter Client

Checks domains against the content-filter service's public search form.

The service has no API. Each check cycle is:

1. GET the root page and pull the CSRF token out of the HTML form
2. keep the session cookies the page set
3. POST the token and a newline-joined batch of names as a form
4. validate the JSON reply and classify every row

A cycle either returns a row for every requested name or raises.
"""

import json
import logging
import re
from typing import Dict, Iterable, List, Optional, Tuple

from domain_sync.exceptions import (
    ContentFilterIncompleteError,
    ContentFilterProtocolError,
    CsrfExtractionError,
)
from domain_sync.models import BatchCheckResult, FilterStatus
from domain_sync.transports import ContentFilterTransport
from domain_sync.utils import ensure_sequence, normalize_name, preview, strip_www

logger = logging.getLogger("domain_sync.content_filter")

QUERY_PATH = "/Rest_server/getrecordsname_home"

BATCH_SIZE = 50

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "id-ID,id;q=0.9,en-US;q=0.8,en;q=0.7",
}

BLOCKED_STATUSES = frozenset({"ada", "blocked", "terblokir", "yes", "1"})
NOT_BLOCKED_STATUSES = frozenset({"tidak ada", "allowed", "tidak terblokir", "no", "0", ""})

# Attribute order varies between page revisions
_CSRF_PATTERNS = (
    re.compile(r"""name=["']csrf_token["'][^>]*value=["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""value=["']([^"']+)["'][^>]*name=["']csrf_token["']""", re.IGNORECASE),
)


# =============================================================================
# Protocol helpers
# =============================================================================

def extract_csrf_token(html: str) -> str:
    """
    Find the csrf_token hidden field value in the bootstrap page.

    Raises:
        CsrfExtractionError: If no pattern matches
    """
    for pattern in _CSRF_PATTERNS:
        match = pattern.search(html or "")
        if match:
            return match.group(1)
    raise CsrfExtractionError()


def build_cookie_header(set_cookies: Iterable[str]) -> Optional[str]:
    """Join the name=value part of each Set-Cookie header."""
    pairs = []
    for header in set_cookies:
        pair = header.split(";", 1)[0].strip()
        if pair:
            pairs.append(pair)
    return "; ".join(pairs) or None


def classify_status(raw: Optional[str]) -> Tuple[bool, bool]:
    """
    Map a raw status string to (blocked, known).

    Unknown statuses count as not blocked.
    """
    status = (raw or "").strip().lower()
    if status in BLOCKED_STATUSES:
        return True, True
    if status in NOT_BLOCKED_STATUSES:
        return False, True
    return False, False


def parse_query_response(status: int, body: str, requested: List[str]) -> BatchCheckResult:
    """
    Validate a query reply and classify its rows.

    Args:
        status: HTTP status of the POST
        body: Response body
        requested: Names sent in the batch

    Raises:
        ContentFilterProtocolError: Non-2xx, non-JSON body or no values array
        ContentFilterIncompleteError: A requested name has no row
    """
    if status < 200 or status >= 300:
        raise ContentFilterProtocolError(
            "Content filter query failed", status=status, preview=preview(body)
        )

    try:
        payload = json.loads(body)
    except ValueError:
        raise ContentFilterProtocolError(
            "Content filter reply is not JSON", status=status, preview=preview(body)
        )

    if not isinstance(payload, dict) or not isinstance(payload.get("values"), (list, dict)):
        raise ContentFilterProtocolError(
            "Content filter reply has no values array", status=status, preview=preview(body)
        )

    rows = [row for row in ensure_sequence(payload["values"]) if isinstance(row, dict)]

    result = BatchCheckResult()
    returned = set()
    for row in rows:
        name = normalize_name(row.get("Domain") or row.get("domain") or "")
        if not name:
            continue
        raw_status = str(row.get("Status", row.get("status")) or "")
        blocked, known = classify_status(raw_status)
        if not known and raw_status.strip() not in result.unknown_statuses:
            result.unknown_statuses.append(raw_status.strip())
        if blocked:
            result.blocked += 1
        else:
            result.not_blocked += 1
        returned.add(name)
        result.results.append(FilterStatus(domain=name, blocked=blocked, raw_status=raw_status))

    missing = [name for name in requested if normalize_name(name) not in returned]
    if missing:
        raise ContentFilterIncompleteError(missing)

    if result.unknown_statuses:
        logger.warning(f"Unknown content filter statuses treated as not blocked: {result.unknown_statuses}")

    return result


def build_status_map(results: Iterable[FilterStatus]) -> Dict[str, bool]:
    """
    Build a name -> blocked map.

    Each result is also registered under its name without ``www.``;
    exact names take precedence over such aliases.
    """
    results = list(results)
    status_map = {}
    for item in results:
        status_map[normalize_name(item.domain)] = item.blocked
    for item in results:
        status_map.setdefault(strip_www(normalize_name(item.domain)), item.blocked)
    return status_map


def lookup_status(status_map: Dict[str, bool], name: str) -> Optional[bool]:
    """Look a stored name up by exact name, then by its www-stripped alias."""
    key = normalize_name(name)
    if key in status_map:
        return status_map[key]
    return status_map.get(strip_www(key))


# =============================================================================
# Client
# =============================================================================

class ContentFilterClient:
    """
    Batched content-filter checker.

    Example:
        client = ContentFilterClient(DirectTransport())
        result = await client.check_many(["example.com", "example.org"])
        for status in result.results:
            print(status.domain, status.blocked)
    """

    def __init__(self, transport: ContentFilterTransport, batch_size: int = BATCH_SIZE):
        self.transport = transport
        self.batch_size = batch_size

    async def close(self) -> None:
        await self.transport.close()

    async def check_batch(self, names: List[str]) -> BatchCheckResult:
        """
        Run one bootstrap + query cycle for up to batch_size names.

        Raises:
            CsrfExtractionError: Bootstrap page has no token
            ContentFilterProtocolError: Transport or reply failure
            ContentFilterIncompleteError: Reply is missing names
        """
        if not names:
            return BatchCheckResult()
        if len(names) > self.batch_size:
            raise ValueError(f"Batch of {len(names)} exceeds batch size {self.batch_size}")

        base_url = self.transport.base_url

        async with self.transport.session() as session:
            bootstrap = await session.get("/", dict(BROWSER_HEADERS))
            if bootstrap.status < 200 or bootstrap.status >= 300:
                raise ContentFilterProtocolError(
                    "Content filter page request failed",
                    status=bootstrap.status,
                    preview=preview(bootstrap.text),
                )

            token = extract_csrf_token(bootstrap.text)
            cookie = build_cookie_header(bootstrap.set_cookies)
            logger.debug(f"Content filter session ready, cookies={'yes' if cookie else 'no'}")

            headers = dict(BROWSER_HEADERS)
            headers["Accept"] = "application/json, text/javascript, */*; q=0.01"
            headers["Referer"] = base_url + "/"
            headers["Origin"] = base_url
            headers["X-Requested-With"] = "XMLHttpRequest"
            if cookie:
                headers["Cookie"] = cookie

            reply = await session.post_form(
                QUERY_PATH,
                {"csrf_token": token, "name": "\n".join(names)},
                headers,
            )

        result = parse_query_response(reply.status, reply.text, names)
        logger.info(
            f"Content filter batch: {len(names)} checked, "
            f"{result.blocked} blocked, {result.not_blocked} not blocked"
        )
        return result

    async def check_many(self, names: List[str]) -> BatchCheckResult:
        """Check names in sequential fixed-size batches; any failure aborts."""
        combined = BatchCheckResult()
        for start in range(0, len(names), self.batch_size):
            batch = names[start:start + self.batch_size]
            combined.extend(await self.check_batch(batch))
        return combined
