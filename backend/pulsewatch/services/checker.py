"""Checker service - HTTP reachability and TLS certificate probes.

Every probe is bounded by a timeout and reports failures as data: the
caller always gets a ProbeResult back, never an exception from the
network layer.
"""
import asyncio
import logging
import math
import socket
import ssl
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Tuple
from urllib.parse import urlsplit

import httpx
from cryptography import x509
from cryptography.x509.oid import NameOID

from ..config import settings
from ..utils.clock import utcnow

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class ErrorKind(str, Enum):
    """Why a check did not report up."""
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    PROTOCOL_ERROR = "protocol_error"
    NO_CERTIFICATE = "no_certificate"
    SELECTOR_NOT_FOUND = "selector_not_found"
    SKIPPED_INACTIVE = "skipped_inactive"
    SKIPPED_INVALID_CONFIG = "skipped_invalid_config"


class SSLState(str, Enum):
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass
class SSLCertificateSnapshot:
    """Certificate facts read off the leaf certificate of a TLS handshake."""
    valid_from: datetime
    valid_to: datetime
    issuer_name: str
    days_until_expiry: int
    state: SSLState


@dataclass
class BrowserMetrics:
    """Page timings captured by a browser check."""
    load_time_ms: Optional[int] = None
    dom_ready_ms: Optional[int] = None
    found_selector: bool = False
    console_errors: List[str] = field(default_factory=list)


@dataclass
class ProbeResult:
    """Normalized result of one probe."""
    success: bool
    response_time_ms: Optional[int] = None
    http_status_code: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""
    ssl: Optional[SSLCertificateSnapshot] = None
    browser: Optional[BrowserMetrics] = None


def days_until_expiry(not_after: datetime, now: Optional[datetime] = None) -> int:
    """Whole days until expiry, rounded up. Negative once expired."""
    now = now or utcnow()
    return math.ceil((not_after - now).total_seconds() / SECONDS_PER_DAY)


def classify_ssl_state(days: int, warning_days: int = 30) -> SSLState:
    """Map days until expiry to a certificate state.

    0 <= days < warning_days is expiring_soon, negative is expired.
    """
    if days < 0:
        return SSLState.EXPIRED
    if days < warning_days:
        return SSLState.EXPIRING_SOON
    return SSLState.VALID


def _issuer_name(cert: x509.Certificate) -> str:
    for oid in (NameOID.ORGANIZATION_NAME, NameOID.COMMON_NAME):
        attributes = cert.issuer.get_attributes_for_oid(oid)
        if attributes and attributes[0].value:
            return str(attributes[0].value)
    return "Unknown"


def build_ssl_snapshot(
    cert_der: bytes,
    now: Optional[datetime] = None,
    warning_days: int = 30,
) -> SSLCertificateSnapshot:
    """Parse a DER certificate into a snapshot. Timestamps are naive UTC."""
    now = now or utcnow()
    cert = x509.load_der_x509_certificate(cert_der)
    valid_from = cert.not_valid_before_utc.replace(tzinfo=None)
    valid_to = cert.not_valid_after_utc.replace(tzinfo=None)
    days = days_until_expiry(valid_to, now)
    state = classify_ssl_state(days, warning_days)
    # ceil() rounds the last partial day up to 0
    if valid_to <= now:
        state = SSLState.EXPIRED
    return SSLCertificateSnapshot(
        valid_from=valid_from,
        valid_to=valid_to,
        issuer_name=_issuer_name(cert),
        days_until_expiry=days,
        state=state,
    )


def split_host_port(target: str, default_port: int = 443) -> Tuple[str, int]:
    """Extract host and port from a URL or bare hostname."""
    if "://" not in target:
        target = f"https://{target}"
    parts = urlsplit(target)
    return parts.hostname or "", parts.port or default_port


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class CheckerService:
    """Performs HTTP and TLS probes."""

    def __init__(
        self,
        http_timeout: Optional[float] = None,
        ssl_timeout: Optional[float] = None,
        ssl_warning_days: Optional[int] = None,
    ):
        self.http_timeout = http_timeout or settings.http_timeout_seconds
        self.ssl_timeout = ssl_timeout or settings.ssl_timeout_seconds
        self.ssl_warning_days = ssl_warning_days or settings.ssl_expiry_warning_days

    async def probe_http(self, url: str, timeout: Optional[float] = None, ping: bool = False) -> ProbeResult:
        """GET the URL. Up iff a response arrives with a status below 400.

        ``ping`` monitors come through here too: there is no ICMP probe, a
        ping check is an HTTP reachability check.
        """
        timeout = timeout or self.http_timeout
        if ping:
            logger.debug(f"Ping check for {url} performed as HTTP GET")

        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.TIMEOUT,
                error_message=f"Request timed out after {timeout}s",
            )
        except httpx.InvalidURL as e:
            # Not a RequestError, raised before any connection is attempted
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.CONNECTION_ERROR,
                error_message=f"Invalid URL: {e}"[:500],
            )
        except (httpx.RequestError, ssl.SSLError, OSError) as e:
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.CONNECTION_ERROR,
                error_message=str(e)[:500] or type(e).__name__,
            )

        response_time = _elapsed_ms(start)
        status_code = response.status_code
        if status_code >= 400:
            return ProbeResult(
                success=False,
                response_time_ms=response_time,
                http_status_code=status_code,
                error_kind=ErrorKind.PROTOCOL_ERROR,
                error_message=f"HTTP {status_code}",
            )
        return ProbeResult(
            success=True,
            response_time_ms=response_time,
            http_status_code=status_code,
        )

    async def probe_ssl(self, target: str, timeout: Optional[float] = None) -> ProbeResult:
        """Read the leaf certificate of host:443 and classify its expiry.

        No chain validation is done; an expired or self-signed certificate
        still yields a snapshot.
        """
        timeout = timeout or self.ssl_timeout
        host, port = split_host_port(target)
        start = time.monotonic()

        try:
            # Cancellation closes the transport, whether from this bound or a run deadline
            cert_der = await asyncio.wait_for(self._fetch_certificate(host, port), timeout=timeout)
        except (asyncio.TimeoutError, socket.timeout):
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.TIMEOUT,
                error_message=f"TLS handshake with {host}:{port} timed out after {timeout}s",
            )
        except (ssl.SSLError, OSError) as e:
            return ProbeResult(
                success=False,
                response_time_ms=_elapsed_ms(start),
                error_kind=ErrorKind.CONNECTION_ERROR,
                error_message=str(e)[:500] or type(e).__name__,
            )

        response_time = _elapsed_ms(start)
        if not cert_der:
            return ProbeResult(
                success=False,
                response_time_ms=response_time,
                error_kind=ErrorKind.NO_CERTIFICATE,
                error_message=f"No certificate presented by {host}",
            )

        try:
            snapshot = build_ssl_snapshot(cert_der, warning_days=self.ssl_warning_days)
        except ValueError as e:
            return ProbeResult(
                success=False,
                response_time_ms=response_time,
                error_kind=ErrorKind.NO_CERTIFICATE,
                error_message=f"Unreadable certificate: {e}",
            )

        return ProbeResult(
            success=snapshot.state in (SSLState.VALID, SSLState.EXPIRING_SOON),
            response_time_ms=response_time,
            ssl=snapshot,
        )

    async def _fetch_certificate(self, host: str, port: int) -> Optional[bytes]:
        """Handshake and return the DER leaf certificate."""
        # Only expiry and presence matter, not trust
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        _reader, writer = await asyncio.open_connection(host, port, ssl=context, server_hostname=host)
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            if ssl_object is None:
                return None
            # getpeercert() returns {} under CERT_NONE, the binary form does not
            return ssl_object.getpeercert(binary_form=True)
        finally:
            writer.close()


# Global instance
checker_service = CheckerService()
