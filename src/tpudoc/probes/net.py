"""Network probes: DNS, TCP reachability, HTTP and listening sockets."""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

import httpx

from tpudoc.errors import ProbeIOError, ProbeParseError

logger = logging.getLogger(__name__)

PROC_NET = Path("/proc/net")
USER_AGENT = "tpu-doc"
PREVIEW_BYTES = 256
HTTPS_PREVIEW = "HTTPS endpoint (TLS not implemented)"

_LISTEN_STATE = "0A"
_ANY_ADDRESSES = frozenset({"00000000", "0" * 32})


@dataclass(frozen=True)
class DnsResult:
    addresses: tuple[str, ...]
    resolution_time_ms: int


@dataclass(frozen=True)
class ConnectResult:
    success: bool
    latency_ms: int


@dataclass(frozen=True)
class HttpResult:
    status_code: int
    latency_ms: int
    body_preview: str


@dataclass(frozen=True)
class BandwidthResult:
    bytes_per_second: float
    latency_ms: int
    bytes_read: int


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def resolve(host: str) -> DnsResult:
    """Resolve *host* to its unique addresses.

    Raises
    ------
    ProbeIOError
        If resolution fails or yields no address.
    """
    start = time.monotonic()
    try:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as exc:
        raise ProbeIOError(f"DNS resolution of {host}", str(exc)) from exc

    addresses: list[str] = []
    for info in infos:
        address = str(info[4][0])
        if address not in addresses:
            addresses.append(address)
    if not addresses:
        raise ProbeIOError(f"DNS resolution of {host}", "no addresses returned")
    return DnsResult(addresses=tuple(addresses), resolution_time_ms=_elapsed_ms(start))


def tcp_connect(host: str, port: int, timeout_ms: int) -> ConnectResult:
    """Attempt a TCP connection to ``host:port``.

    A timeout reports ``success=False`` with ``latency_ms == timeout_ms``;
    a refused or reset connection reports ``success=False`` with the time
    spent.

    Raises
    ------
    ProbeIOError
        Only when *host* cannot be resolved.
    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise ProbeIOError(f"TCP connect to {host}:{port}", f"DNS resolution failed: {exc}") from exc
    if not infos:
        raise ProbeIOError(f"TCP connect to {host}:{port}", "No address resolved")

    family, socktype, proto, _, sockaddr = infos[0]
    start = time.monotonic()
    with socket.socket(family, socktype, proto) as sock:
        sock.settimeout(timeout_ms / 1000)
        try:
            sock.connect(sockaddr)
        except TimeoutError:
            return ConnectResult(success=False, latency_ms=timeout_ms)
        except OSError as exc:
            logger.debug("TCP connect to %s:%d failed: %s", host, port, exc)
            return ConnectResult(success=False, latency_ms=_elapsed_ms(start))
    return ConnectResult(success=True, latency_ms=_elapsed_ms(start))


def _split_url(url: str) -> tuple[str, str, int]:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ProbeParseError("http_get", f"unsupported URL: {url}")
    try:
        port = parts.port or (443 if parts.scheme == "https" else 80)
    except ValueError as exc:
        raise ProbeParseError("http_get", f"bad port in URL: {url}") from exc
    return parts.scheme, parts.hostname, port


def http_get(url: str, timeout_ms: int) -> HttpResult:
    """Issue a GET request and return the status and a body preview.

    For ``https`` URLs only TCP reachability is tested; the status is 200
    when the port accepts connections and 0 otherwise.

    Raises
    ------
    ProbeParseError
        If *url* is not an http or https URL.
    ProbeIOError
        If the request cannot be completed.
    """
    scheme, host, port = _split_url(url)
    if scheme == "https":
        result = tcp_connect(host, port, timeout_ms)
        return HttpResult(
            status_code=200 if result.success else 0,
            latency_ms=result.latency_ms,
            body_preview=HTTPS_PREVIEW,
        )

    start = time.monotonic()
    try:
        with httpx.stream(
            "GET",
            url,
            headers={"User-Agent": USER_AGENT, "Connection": "close"},
            timeout=timeout_ms / 1000,
        ) as response:
            body = b""
            for chunk in response.iter_bytes():
                body += chunk
                if len(body) >= PREVIEW_BYTES:
                    break
            status_code = response.status_code
    except httpx.HTTPError as exc:
        raise ProbeIOError(f"HTTP request to {url}", str(exc)) from exc

    return HttpResult(
        status_code=status_code,
        latency_ms=_elapsed_ms(start),
        body_preview=body[:PREVIEW_BYTES].decode("utf-8", errors="replace"),
    )


def bandwidth(url: str, timeout_ms: int, max_bytes: int = 100 * 1024 * 1024) -> BandwidthResult:
    """Measure download throughput by streaming up to *max_bytes* from *url*.

    Raises
    ------
    ProbeIOError
        On a failed request or a non-2xx response.
    """
    start = time.monotonic()
    first_byte_ms: int | None = None
    total = 0
    try:
        with httpx.stream("GET", url, headers={"User-Agent": USER_AGENT}, timeout=timeout_ms / 1000) as response:
            if not response.is_success:
                raise ProbeIOError(
                    "bandwidth",
                    f"HTTP {response.status_code} for {url}",
                    status_code=response.status_code,
                )
            for chunk in response.iter_bytes():
                if first_byte_ms is None:
                    first_byte_ms = _elapsed_ms(start)
                total += len(chunk)
                if total >= max_bytes:
                    break
    except httpx.HTTPError as exc:
        raise ProbeIOError("bandwidth", f"request to {url} failed: {exc}") from exc

    seconds = max(time.monotonic() - start, 1e-6)
    return BandwidthResult(
        bytes_per_second=total / seconds,
        latency_ms=first_byte_ms if first_byte_ms is not None else _elapsed_ms(start),
        bytes_read=total,
    )


def listening_ports() -> list[int]:
    """Return TCP ports listening on all interfaces (IPv4 and IPv6).

    Parses ``/proc/net/tcp`` and ``/proc/net/tcp6``; missing tables are
    ignored.  Ports are returned once each, in discovery order.
    """
    ports: list[int] = []
    for table in ("tcp", "tcp6"):
        try:
            content = (PROC_NET / table).read_text(encoding="utf-8")
        except OSError:
            continue
        for line in content.splitlines()[1:]:
            fields = line.split()
            if len(fields) < 4 or fields[3] != _LISTEN_STATE:
                continue
            address, _, port_hex = fields[1].rpartition(":")
            if address not in _ANY_ADDRESSES:
                continue
            try:
                port = int(port_hex, 16)
            except ValueError:
                continue
            if port not in ports:
                ports.append(port)
    return ports
