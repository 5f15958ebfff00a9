"""
Content Filter Transports

Two interchangeable ways of performing the content-filter HTTP exchange:

- DirectTransport: httpx, optionally dialing a pinned IP with the TLS
  server name and Host header pinned to the service host, and optionally
  bound to a local source address.
- CurlTransport: the curl binary run as a subprocess, with a cookie jar
  that lives in a temporary directory for one check cycle.

Both hand back TransportResponse objects, so the protocol logic in
ContentFilterClient does not know which one is in use.
"""

import abc
import asyncio
import logging
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

import httpx

from domain_sync.exceptions import ContentFilterProtocolError

logger = logging.getLogger("domain_sync.transports")

DEFAULT_BASE_URL = "https://trustpositif.komdigi.go.id"


@dataclass
class TransportResponse:
    """Status, body and Set-Cookie headers of one response."""
    status: int
    text: str
    set_cookies: List[str] = field(default_factory=list)


class TransportSession(abc.ABC):
    """One bootstrap + submit cycle against the service."""

    @abc.abstractmethod
    async def get(self, path: str, headers: Dict[str, str]) -> TransportResponse:
        """GET a path relative to the service root."""

    @abc.abstractmethod
    async def post_form(
        self,
        path: str,
        data: Dict[str, str],
        headers: Dict[str, str],
    ) -> TransportResponse:
        """POST an urlencoded form to a path relative to the service root."""


class ContentFilterTransport(abc.ABC):
    """Factory of per-cycle sessions."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.host = httpx.URL(self.base_url).host

    @abc.abstractmethod
    def session(self):
        """Async context manager yielding a TransportSession."""

    async def close(self) -> None:
        """Release long-lived resources."""


# =============================================================================
# Direct (httpx)
# =============================================================================

class _DirectSession(TransportSession):

    def __init__(self, transport: "DirectTransport"):
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs) -> TransportResponse:
        t = self._transport
        url = t.request_base + path
        headers = dict(kwargs.pop("headers", {}))
        extensions = {}
        if t.pinned_ip:
            headers["Host"] = t.host
            extensions["sni_hostname"] = t.host
        # A redirect would be resolved by name and leave the pinned address
        kwargs.setdefault("follow_redirects", not t.pinned_ip)

        try:
            response = await t.client.request(
                method, url, headers=headers, extensions=extensions or None, **kwargs
            )
        except httpx.HTTPError as e:
            logger.error(f"Content filter {method} {path} failed: {e}")
            raise ContentFilterProtocolError(f"{method} {path} failed: {e}")

        return TransportResponse(
            status=response.status_code,
            text=response.text,
            set_cookies=response.headers.get_list("set-cookie"),
        )

    async def get(self, path: str, headers: Dict[str, str]) -> TransportResponse:
        return await self._request("GET", path, headers=headers)

    async def post_form(self, path: str, data: Dict[str, str], headers: Dict[str, str]) -> TransportResponse:
        return await self._request("POST", path, headers=headers, data=data)


class DirectTransport(ContentFilterTransport):
    """
    httpx-based transport.

    Example:
        transport = DirectTransport(
            base_url="https://trustpositif.komdigi.go.id",
            pinned_ip="203.0.113.7",
            source_address="10.8.0.2",
        )
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        pinned_ip: Optional[str] = None,
        source_address: Optional[str] = None,
        timeout: float = 30.0,
        verify: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize direct transport.

        Args:
            base_url: Service root URL (its host is the TLS server name)
            pinned_ip: Connect to this IP instead of resolving the host
            source_address: Local address to bind outgoing connections to
            timeout: Request timeout in seconds
            verify: Verify the server certificate
            http_client: Pre-built client (tests)
        """
        super().__init__(base_url, timeout)
        self.pinned_ip = pinned_ip
        self.source_address = source_address

        if pinned_ip:
            self.request_base = str(httpx.URL(self.base_url).copy_with(host=pinned_ip)).rstrip("/")
        else:
            self.request_base = self.base_url

        self._owns_client = http_client is None
        if http_client is None:
            transport = None
            if source_address:
                transport = httpx.AsyncHTTPTransport(local_address=source_address, verify=verify)
            http_client = httpx.AsyncClient(
                transport=transport,
                timeout=timeout,
                verify=verify,
                follow_redirects=not pinned_ip,
                max_redirects=5,
            )
        self.client = http_client

    @asynccontextmanager
    async def session(self) -> AsyncIterator[TransportSession]:
        # Session cookies are carried explicitly per cycle
        self.client.cookies.clear()
        yield _DirectSession(self)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


# =============================================================================
# External process (curl)
# =============================================================================

def _parse_header_dump(text: str) -> List[str]:
    """Set-Cookie values of the last response block in a curl -D dump."""
    blocks = [b for b in text.replace("\r\n", "\n").split("\n\n") if b.strip()]
    if not blocks:
        return []
    cookies = []
    for line in blocks[-1].split("\n"):
        key, sep, value = line.partition(":")
        if sep and key.strip().lower() == "set-cookie":
            cookies.append(value.strip())
    return cookies


class _CurlSession(TransportSession):

    def __init__(self, transport: "CurlTransport", workdir: Path):
        self._transport = transport
        self._workdir = workdir
        self.cookie_jar = workdir / "cookies.txt"

    async def _run(self, path: str, headers: Dict[str, str], extra_args: List[str]) -> TransportResponse:
        t = self._transport
        headers_file = self._workdir / "headers.txt"
        body_file = self._workdir / "body.txt"

        args = [
            t.curl_path, "-sS", "-L", "--max-redirs", "5",
            "--max-time", str(int(t.timeout)),
            "-c", str(self.cookie_jar), "-b", str(self.cookie_jar),
            "-D", str(headers_file), "-o", str(body_file),
            "-w", "%{http_code}",
        ]
        if t.pinned_ip:
            args += ["--resolve", f"{t.host}:{t.port}:{t.pinned_ip}"]
        if t.source_address:
            args += ["--interface", t.source_address]
        if not t.verify:
            args.append("-k")
        for key, value in headers.items():
            # The jar carries session cookies
            if key.lower() == "cookie":
                continue
            args += ["-H", f"{key}: {value}"]
        args += extra_args
        args.append(t.base_url + path)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ContentFilterProtocolError(f"Could not run {t.curl_path}: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=t.timeout + 5)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ContentFilterProtocolError(f"curl {path} did not finish within {t.timeout:.0f}s")

        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            raise ContentFilterProtocolError(f"curl {path} exited with code {proc.returncode}: {err[:200]}")

        try:
            status = int(stdout.decode().strip() or 0)
        except ValueError:
            raise ContentFilterProtocolError(f"curl {path} reported no HTTP status")

        text = body_file.read_text(encoding="utf-8", errors="replace") if body_file.exists() else ""
        dump = headers_file.read_text(encoding="latin-1") if headers_file.exists() else ""
        return TransportResponse(status=status, text=text, set_cookies=_parse_header_dump(dump))

    async def get(self, path: str, headers: Dict[str, str]) -> TransportResponse:
        return await self._run(path, headers, [])

    async def post_form(self, path: str, data: Dict[str, str], headers: Dict[str, str]) -> TransportResponse:
        extra = []
        for key, value in data.items():
            extra += ["--data-urlencode", f"{key}={value}"]
        return await self._run(path, headers, extra)


class CurlTransport(ContentFilterTransport):
    """
    curl-based transport for hosts where only the system network stack
    reaches the service.

    The cookie jar and response files live in a temporary directory that
    is removed when the session ends, whatever the outcome.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        pinned_ip: Optional[str] = None,
        source_address: Optional[str] = None,
        timeout: float = 30.0,
        verify: bool = True,
        curl_path: str = "curl",
    ):
        super().__init__(base_url, timeout)
        self.pinned_ip = pinned_ip
        self.source_address = source_address
        self.verify = verify
        self.curl_path = curl_path

        url = httpx.URL(self.base_url)
        self.port = url.port or (443 if url.scheme == "https" else 80)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[TransportSession]:
        with tempfile.TemporaryDirectory(prefix="domain-sync-curl-") as workdir:
            yield _CurlSession(self, Path(workdir))


def create_transport(kind: str, **kwargs) -> ContentFilterTransport:
    """
    Build a transport by configuration name.

    Args:
        kind: "direct" or "curl"
        kwargs: Constructor arguments of the chosen transport
    """
    if kind == "direct":
        kwargs.pop("curl_path", None)
        return DirectTransport(**kwargs)
    if kind == "curl":
        return CurlTransport(**kwargs)
    raise ValueError(f"Unknown content filter transport: {kind!r}")
