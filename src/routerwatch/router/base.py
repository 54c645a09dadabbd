"""Base interface and record types for router snapshot sources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

T = TypeVar("T")


class RouterError(Exception):
    """Base class for router-side failures."""


class TransportError(RouterError):
    """A fetch from the router failed (network, auth, malformed payload)."""


def normalize_mac(mac: str) -> str:
    """Normalize a MAC address to uppercase colon-separated format."""
    cleaned = mac.strip().upper().replace("-", ":").replace(".", "")
    # Handle bare hex (e.g. "AABBCCDDEEFF")
    if ":" not in cleaned and len(cleaned) == 12:
        cleaned = ":".join(cleaned[i : i + 2] for i in range(0, 12, 2))
    return cleaned


def newest(rows: list[T], limit: int) -> list[T]:
    """Return the last `limit` rows; a non-positive limit yields none."""
    return rows[-limit:] if limit > 0 else []


@dataclass
class ClientRecord:
    """One attached client as reported by the router in a single poll."""

    mac_address: str
    ip_address: str | None = None
    host_name: str | None = None
    medium: str = "unknown"  # "wired", "wireless", "hotspot" or "unknown"
    signal_strength: int | None = None  # dBm
    bytes_in: int = 0
    bytes_out: int = 0
    session_id: str | None = None
    idle_timeout: str | None = None
    uptime: str | None = None  # router text, e.g. "1h2m3s"
    limit_bytes_in: int | None = None
    limit_bytes_out: int | None = None
    limit_bytes_total: int | None = None
    login_by: str | None = None
    disconnect_reason: str | None = None
    comment: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    raw: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.mac_address = normalize_mac(self.mac_address)

    @property
    def display_name(self) -> str:
        return self.host_name or self.mac_address

    @property
    def total_bytes(self) -> int:
        return self.bytes_in + self.bytes_out


@dataclass
class InterfaceRecord:
    name: str
    type: str | None = None
    running: bool = False
    disabled: bool = False
    mac_address: str | None = None
    mtu: str | None = None
    rx_bytes: int = 0
    tx_bytes: int = 0
    last_link_up: str | None = None


@dataclass
class LogRecord:
    time: str
    topics: str
    message: str

    @property
    def log_id(self) -> str:
        return f"{self.time}-{self.message}"


@dataclass
class WirelessRegistration:
    mac_address: str
    interface: str | None = None
    signal_strength: int | None = None
    tx_rate: str | None = None
    rx_rate: str | None = None
    uptime: str | None = None
    last_ip: str | None = None

    def __post_init__(self) -> None:
        self.mac_address = normalize_mac(self.mac_address)


@dataclass
class DhcpLease:
    mac_address: str
    address: str | None = None
    host_name: str | None = None
    status: str | None = None
    expires_after: str | None = None

    def __post_init__(self) -> None:
        self.mac_address = normalize_mac(self.mac_address)


@dataclass
class WebRequest:
    """One request seen by the router's web proxy."""

    time: str
    src_address: str
    method: str
    url: str
    domain: str
    status: str | None = None
    bytes: int = 0


@dataclass
class DnsQuery:
    time: str
    src_address: str
    domain: str
    query_type: str


WEB_PORTS = frozenset({80, 443, 8080})


@dataclass
class ConnectionEntry:
    """One row of the firewall connection-tracking table."""

    protocol: str
    src_address: str
    dst_address: str
    src_port: int | None = None
    dst_port: int | None = None
    tcp_state: str | None = None
    timeout: str | None = None
    connection_mark: str | None = None

    @property
    def is_web(self) -> bool:
        return self.protocol == "tcp" and self.dst_port in WEB_PORTS


@dataclass
class TrafficSample:
    """Instantaneous interface throughput, in bytes and packets per second."""

    interface: str
    rx_rate: float = 0.0
    tx_rate: float = 0.0
    rx_packets: int = 0
    tx_packets: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class RouterSnapshotSource(ABC):
    """Abstract base for all router backends.

    Each fetch either returns a (possibly empty) list or raises
    TransportError. Sources never retry; the poll loop owns that policy.
    """

    healthy: bool = True

    @abstractmethod
    async def fetch_attached_clients(self) -> list[ClientRecord]:
        """Return the clients currently attached to the router."""

    @abstractmethod
    async def fetch_interfaces(self) -> list[InterfaceRecord]:
        """Return the router's interfaces."""

    @abstractmethod
    async def fetch_recent_logs(self, limit: int = 50) -> list[LogRecord]:
        """Return up to `limit` recent router log lines."""

    @abstractmethod
    async def fetch_wireless_registrations(self) -> list[WirelessRegistration]:
        """Return the wireless registration table."""

    @abstractmethod
    async def fetch_dhcp_leases(self) -> list[DhcpLease]:
        """Return DHCP server leases."""

    @abstractmethod
    async def fetch_web_requests(self, limit: int = 100) -> list[WebRequest]:
        """Return up to `limit` recent web proxy requests."""

    @abstractmethod
    async def fetch_dns_queries(self, limit: int = 50) -> list[DnsQuery]:
        """Return up to `limit` recent DNS lookups made through the router."""

    @abstractmethod
    async def fetch_connections(self) -> list[ConnectionEntry]:
        """Return the firewall connection-tracking table."""

    @abstractmethod
    async def fetch_traffic(self, interface: str) -> TrafficSample:
        """Sample the current throughput of one interface."""

    @abstractmethod
    async def run_command(self, command: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Run a console command path (e.g. "/interface/print") and return its rows.

        Callers are responsible for restricting which commands are allowed.
        """

    async def reconnect(self) -> None:
        """Re-establish the connection after it was marked unhealthy."""
        self.healthy = True

    async def close(self) -> None:
        """Release transport resources."""
