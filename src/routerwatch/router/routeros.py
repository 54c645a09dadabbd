"""MikroTik RouterOS source via the v7 REST API.

Reads hotspot sessions, DHCP leases, the wireless registration table,
interfaces, connection tracking and the system log, and samples
interface traffic. Web proxy requests and DNS lookups are recovered
from the log, so the router must have the web-proxy and dns topics
logged for those to show up. Uses HTTP basic auth with the router's
API user.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import httpx

from routerwatch.router.base import (
    ClientRecord,
    ConnectionEntry,
    DhcpLease,
    DnsQuery,
    InterfaceRecord,
    LogRecord,
    RouterSnapshotSource,
    TrafficSample,
    TransportError,
    WebRequest,
    WirelessRegistration,
    newest,
    normalize_mac,
)
from routerwatch.router.commands import ONE_SHOT_COMMANDS

logger = logging.getLogger(__name__)

_SIGNAL_RE = re.compile(r"(-?\d+)")
# "10.5.50.11:52144 GET http://example.com/page action=allow cache=MISS"
_WEB_PROXY_RE = re.compile(
    r"(?:web-proxy:\s+)?(?P<address>\d+\.\d+\.\d+\.\d+)(?::\d+)?\s+"
    r"(?P<method>GET|HEAD|POST|PUT|DELETE|PATCH|OPTIONS|CONNECT)\s+(?P<url>\S+)"
)
_WEB_STATUS_RE = re.compile(r"\bstatus=(\d{3})\b")
_WEB_BYTES_RE = re.compile(r"\bbytes=(\d+)\b")
_DNS_RES = (
    # "dns: query[A] example.com from 10.5.50.11"
    re.compile(
        r"query\[(?P<type>[A-Z]+)\]\s+(?P<domain>\S+)\s+from\s+(?P<address>\d+\.\d+\.\d+\.\d+)"
    ),
    # "DNS query from 10.5.50.11 for example.com type AAAA"
    re.compile(
        r"query from (?P<address>\d+\.\d+\.\d+\.\d+):? for (?P<domain>\S+) type (?P<type>\S+)",
        re.IGNORECASE,
    ),
)


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_optional_int(value: Any) -> int | None:
    """Parse a router limit field; RouterOS reports "0" or omits it for no limit."""
    parsed = _to_int(value, 0)
    return parsed or None


def _to_bool(value: Any) -> bool:
    return value is True or value == "true"


def _parse_signal(value: Any) -> int | None:
    """Extract dBm from values like "-63" or "-63@6Mbps"."""
    if value is None:
        return None
    match = _SIGNAL_RE.search(str(value))
    return int(match.group(1)) if match else None


def _has_topic(row: dict[str, Any], topic: str) -> bool:
    return topic in str(row.get("topics", "")).split(",")


def extract_domain(url: str) -> str:
    """Host part of a proxy URL, tolerating CONNECT targets without a scheme."""
    target = url if "://" in url else f"http://{url}"
    try:
        host = urlsplit(target).hostname
    except ValueError:
        host = None
    return host or url


def parse_web_request(row: dict[str, Any]) -> WebRequest | None:
    """Parse a web-proxy log row; None if the message is not a request line."""
    message = str(row.get("message", ""))
    match = _WEB_PROXY_RE.search(message)
    if match is None:
        return None
    status = _WEB_STATUS_RE.search(message)
    size = _WEB_BYTES_RE.search(message)
    return WebRequest(
        time=row.get("time", ""),
        src_address=match.group("address"),
        method=match.group("method"),
        url=match.group("url"),
        domain=extract_domain(match.group("url")),
        status=status.group(1) if status else None,
        bytes=int(size.group(1)) if size else 0,
    )


def parse_dns_query(row: dict[str, Any]) -> DnsQuery | None:
    message = str(row.get("message", ""))
    for pattern in _DNS_RES:
        match = pattern.search(message)
        if match:
            return DnsQuery(
                time=row.get("time", ""),
                src_address=match.group("address"),
                domain=match.group("domain").rstrip("."),
                query_type=match.group("type").upper(),
            )
    return None


def _split_host_port(value: str | None) -> tuple[str, int | None]:
    """Split "1.2.3.4:443" into its parts; bare and IPv6 addresses pass through."""
    if not value:
        return "", None
    host, sep, port = value.rpartition(":")
    if sep and host.count(":") == 0 and port.isdigit():
        return host, int(port)
    return value, None


def parse_connection(row: dict[str, Any]) -> ConnectionEntry:
    src, src_port = _split_host_port(row.get("src-address"))
    dst, dst_port = _split_host_port(row.get("dst-address"))
    # Older firmware reports ports as separate fields
    if row.get("src-port"):
        src_port = _to_int(row["src-port"]) or src_port
    if row.get("dst-port"):
        dst_port = _to_int(row["dst-port"]) or dst_port
    return ConnectionEntry(
        protocol=row.get("protocol", "unknown"),
        src_address=src,
        dst_address=dst,
        src_port=src_port,
        dst_port=dst_port,
        tcp_state=row.get("tcp-state"),
        timeout=row.get("timeout"),
        connection_mark=row.get("connection-mark"),
    )


def build_client_records(
    hotspot_active: list[dict[str, Any]],
    dhcp_leases: list[dict[str, Any]],
    registrations: list[dict[str, Any]],
) -> list[ClientRecord]:
    """Join hotspot sessions with DHCP host names and wireless signal data.

    Wireless registrations are matched by MAC first, then by last-ip.
    """
    leases_by_mac = {
        normalize_mac(lease["mac-address"]): lease
        for lease in dhcp_leases
        if lease.get("mac-address")
    }
    regs_by_mac = {
        normalize_mac(reg["mac-address"]): reg for reg in registrations if reg.get("mac-address")
    }
    regs_by_ip = {reg["last-ip"]: reg for reg in registrations if reg.get("last-ip")}

    records: list[ClientRecord] = []
    for entry in hotspot_active:
        raw_mac = entry.get("mac-address")
        if not raw_mac:
            continue
        mac = normalize_mac(raw_mac)
        address = entry.get("address")
        lease = leases_by_mac.get(mac, {})
        reg = regs_by_mac.get(mac) or (regs_by_ip.get(address) if address else None)

        records.append(
            ClientRecord(
                mac_address=mac,
                ip_address=address,
                host_name=lease.get("host-name") or entry.get("user"),
                medium="wireless" if reg else "hotspot",
                signal_strength=_parse_signal(reg.get("signal-strength")) if reg else None,
                bytes_in=_to_int(entry.get("bytes-in")),
                bytes_out=_to_int(entry.get("bytes-out")),
                session_id=entry.get("session-id") or entry.get(".id"),
                idle_timeout=entry.get("idle-timeout"),
                uptime=entry.get("uptime"),
                limit_bytes_in=_to_optional_int(entry.get("limit-bytes-in")),
                limit_bytes_out=_to_optional_int(entry.get("limit-bytes-out")),
                limit_bytes_total=_to_optional_int(entry.get("limit-bytes-total")),
                login_by=entry.get("login-by"),
                comment=entry.get("comment"),
                raw=dict(entry),
            )
        )
    return records


class RouterOSSource(RouterSnapshotSource):
    """Polls a RouterOS device over its REST API."""

    def __init__(
        self,
        url: str,
        username: str,
        password: str,
        verify_tls: bool = False,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.verify_tls = verify_tls
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.healthy = True

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.url,
            auth=httpx.BasicAuth(self.username, self.password),
            # TODO: Support a custom CA bundle for self-signed router certificates.
            verify=self.verify_tls,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        if self._client is None:
            self._client = self._make_client()
        try:
            resp = await self._client.request(method, f"/rest{path}", json=body)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self.healthy = False
            raise TransportError(f"{method} {path} failed: {e}") from e
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            self.healthy = False
            raise TransportError(f"{method} {path} returned unexpected payload")
        self.healthy = True
        return data

    async def _get(self, path: str) -> list[dict[str, Any]]:
        return await self._request("GET", path)

    async def fetch_attached_clients(self) -> list[ClientRecord]:
        hotspot = await self._get("/ip/hotspot/active")
        leases = await self._get("/ip/dhcp-server/lease")
        registrations = await self._get("/interface/wireless/registration-table")
        logger.debug(
            "RouterOS: %d hotspot sessions, %d leases, %d registrations",
            len(hotspot),
            len(leases),
            len(registrations),
        )
        return build_client_records(hotspot, leases, registrations)

    async def fetch_interfaces(self) -> list[InterfaceRecord]:
        rows = await self._get("/interface")
        return [
            InterfaceRecord(
                name=row.get("name", "unknown"),
                type=row.get("type"),
                running=_to_bool(row.get("running")),
                disabled=_to_bool(row.get("disabled")),
                mac_address=row.get("mac-address"),
                mtu=row.get("mtu"),
                rx_bytes=_to_int(row.get("rx-byte")),
                tx_bytes=_to_int(row.get("tx-byte")),
                last_link_up=row.get("last-link-up-time"),
            )
            for row in rows
        ]

    async def fetch_recent_logs(self, limit: int = 50) -> list[LogRecord]:
        rows = await self._get("/log")
        return [
            LogRecord(
                time=row.get("time", ""),
                topics=row.get("topics", ""),
                message=row.get("message", ""),
            )
            for row in newest(rows, limit)
        ]

    async def fetch_wireless_registrations(self) -> list[WirelessRegistration]:
        rows = await self._get("/interface/wireless/registration-table")
        return [
            WirelessRegistration(
                mac_address=row["mac-address"],
                interface=row.get("interface"),
                signal_strength=_parse_signal(row.get("signal-strength")),
                tx_rate=row.get("tx-rate"),
                rx_rate=row.get("rx-rate"),
                uptime=row.get("uptime"),
                last_ip=row.get("last-ip"),
            )
            for row in rows
            if row.get("mac-address")
        ]

    async def fetch_dhcp_leases(self) -> list[DhcpLease]:
        rows = await self._get("/ip/dhcp-server/lease")
        return [
            DhcpLease(
                mac_address=row["mac-address"],
                address=row.get("address"),
                host_name=row.get("host-name"),
                status=row.get("status"),
                expires_after=row.get("expires-after"),
            )
            for row in rows
            if row.get("mac-address")
        ]

    async def count_hotspot_sessions(self) -> int:
        return len(await self._get("/ip/hotspot/active"))

    async def fetch_web_requests(self, limit: int = 100) -> list[WebRequest]:
        rows = await self._get("/log")
        requests = [parse_web_request(row) for row in rows if _has_topic(row, "web-proxy")]
        return newest([r for r in requests if r is not None], limit)

    async def fetch_dns_queries(self, limit: int = 50) -> list[DnsQuery]:
        rows = await self._get("/log")
        queries = [parse_dns_query(row) for row in rows if _has_topic(row, "dns")]
        return newest([q for q in queries if q is not None], limit)

    async def fetch_connections(self) -> list[ConnectionEntry]:
        rows = await self._get("/ip/firewall/connection")
        return [parse_connection(row) for row in rows]

    async def fetch_traffic(self, interface: str) -> TrafficSample:
        rows = await self._request(
            "POST", "/interface/monitor-traffic", {"interface": interface, "once": ""}
        )
        row = rows[0] if rows else {}
        return TrafficSample(
            interface=interface,
            rx_rate=max(0, _to_int(row.get("rx-bits-per-second"))) / 8,
            tx_rate=max(0, _to_int(row.get("tx-bits-per-second"))) / 8,
            rx_packets=_to_int(row.get("rx-packets-per-second")),
            tx_packets=_to_int(row.get("tx-packets-per-second")),
        )

    async def run_command(self, command: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        body = dict(params)
        if command in ONE_SHOT_COMMANDS:
            body["once"] = ""
        logger.info("Running router command %s", command)
        return await self._request("POST", command, body)

    async def reconnect(self) -> None:
        logger.info("Reconnecting to RouterOS at %s", self.url)
        await self.close()
        self._client = self._make_client()
        self.healthy = True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


@dataclass
class ConnectionResult:
    """Result of a connection test attempt."""

    success: bool
    message: str
    device_count: int | None = None


async def check_connection(
    url: str,
    username: str,
    password: str,
    verify_tls: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConnectionResult:
    """Validate credentials and connectivity against a RouterOS device.

    Returns:
        ConnectionResult with success status, message, and active hotspot count.
    """
    source = RouterOSSource(
        url, username, password, verify_tls=verify_tls, timeout=10.0, transport=transport
    )
    try:
        count = await source.count_hotspot_sessions()
        logger.info("RouterOS connection test successful: %d hotspot sessions", count)
        return ConnectionResult(
            success=True,
            message=f"Connected, {count} active hotspot sessions",
            device_count=count,
        )
    except TransportError as e:
        logger.warning("RouterOS connection test failed: %s", e)
        return ConnectionResult(success=False, message=str(e))
    finally:
        await source.close()
