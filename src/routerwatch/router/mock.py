"""Mock router source for development and testing.

Produces a fresh snapshot on every fetch with a mix of realistic
client behaviors: stable residents, intermittent visitors, and
randomized-MAC passersby.
"""

import logging
import random
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any

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
)

logger = logging.getLogger(__name__)

_RESIDENT_CLIENTS = [
    ("AA:BB:CC:11:22:33", "Home-iPhone", "10.5.50.11", -42),
    ("AA:BB:CC:44:55:66", "Living-Room-TV", "10.5.50.12", -35),
    ("AA:BB:CC:77:88:99", "Work-Laptop", "10.5.50.13", -50),
]

_VISITOR_CLIENTS = [
    ("DD:EE:FF:11:22:33", "Guest-Phone", "10.5.50.21", -60),
    ("DD:EE:FF:44:55:66", "Neighbor-Tablet", "10.5.50.22", -72),
]

# Locally administered MACs (randomized, bit 1 of first octet set)
_RANDOM_MACS = [
    "FA:12:34:56:78:9A",
    "F2:AB:CD:EF:01:23",
    "FE:99:88:77:66:55",
]

_LOG_LINES = [
    ("hotspot,info,debug", "Guest-Phone (10.5.50.21): logged in"),
    ("dhcp,info", "defconf assigned 10.5.50.22"),
    ("wireless,warning", "wlan1: excessive retries on channel 6"),
    ("system,error,critical", "login failure for user admin via api"),
]

_DOMAINS = ["example.com", "news.example.org", "video.example.net", "mail.example.com"]


class MockRouterSource(RouterSnapshotSource):
    """Generates fake router state for development."""

    def __init__(self, visitor_probability: float = 0.4, seed: int | None = None) -> None:
        self.visitor_probability = visitor_probability
        self._random = random.Random(seed)
        self._tick = 0
        self._clients: list[ClientRecord] = []
        self.healthy = True

    def _generate_clients(self, now: datetime) -> list[ClientRecord]:
        clients: list[ClientRecord] = []
        minutes = 60 + self._tick

        for mac, name, ip, base_rssi in _RESIDENT_CLIENTS:
            clients.append(
                ClientRecord(
                    mac_address=mac,
                    ip_address=ip,
                    host_name=name,
                    medium="wireless",
                    signal_strength=base_rssi + self._random.randint(-5, 5),
                    bytes_in=self._random.randint(10_000, 50_000) * minutes,
                    bytes_out=self._random.randint(1_000, 5_000) * minutes,
                    uptime=f"{minutes // 60}h{minutes % 60}m0s",
                    idle_timeout="5m",
                    timestamp=now,
                )
            )

        for mac, name, ip, base_rssi in _VISITOR_CLIENTS:
            if self._random.random() < self.visitor_probability:
                clients.append(
                    ClientRecord(
                        mac_address=mac,
                        ip_address=ip,
                        host_name=name,
                        medium="hotspot",
                        signal_strength=base_rssi + self._random.randint(-8, 8),
                        bytes_in=self._random.randint(1_000, 100_000),
                        bytes_out=self._random.randint(100, 10_000),
                        uptime=f"{self._random.randint(1, 20)}m0s",
                        idle_timeout="5m",
                        timestamp=now,
                    )
                )

        if self._random.random() < 0.3:
            clients.append(
                ClientRecord(
                    mac_address=self._random.choice(_RANDOM_MACS),
                    medium="hotspot",
                    signal_strength=self._random.randint(-90, -75),
                    uptime="30s",
                    timestamp=now,
                )
            )
        return clients

    async def fetch_attached_clients(self) -> list[ClientRecord]:
        self._clients = self._generate_clients(datetime.now(UTC))
        self._tick += 1
        return list(self._clients)

    async def fetch_interfaces(self) -> list[InterfaceRecord]:
        return [
            InterfaceRecord(name="ether1", type="ether", running=True),
            InterfaceRecord(name="main-bridge", type="bridge", running=True),
            InterfaceRecord(name="wlan1", type="wlan", running=self._random.random() > 0.1),
        ]

    async def fetch_recent_logs(self, limit: int = 50) -> list[LogRecord]:
        topics, message = self._random.choice(_LOG_LINES)
        stamp = datetime.now(UTC).strftime("%H:%M:%S")
        return newest([LogRecord(time=stamp, topics=topics, message=message)], limit)

    async def fetch_wireless_registrations(self) -> list[WirelessRegistration]:
        return [
            WirelessRegistration(
                mac_address=c.mac_address,
                interface="wlan1",
                signal_strength=c.signal_strength,
                uptime=c.uptime,
                last_ip=c.ip_address,
            )
            for c in self._clients
            if c.medium == "wireless"
        ]

    async def fetch_dhcp_leases(self) -> list[DhcpLease]:
        return [
            DhcpLease(
                mac_address=c.mac_address,
                address=c.ip_address,
                host_name=c.host_name,
                status="bound",
                expires_after="10m",
            )
            for c in self._clients
            if c.ip_address
        ]

    async def fetch_web_requests(self, limit: int = 100) -> list[WebRequest]:
        stamp = datetime.now(UTC).strftime("%H:%M:%S")
        requests = []
        for client in self._clients:
            if not client.ip_address:
                continue
            domain = self._random.choice(_DOMAINS)
            requests.append(
                WebRequest(
                    time=stamp,
                    src_address=client.ip_address,
                    method="GET",
                    url=f"http://{domain}/",
                    domain=domain,
                    status="200",
                    bytes=self._random.randint(500, 50_000),
                )
            )
        return newest(requests, limit)

    async def fetch_dns_queries(self, limit: int = 50) -> list[DnsQuery]:
        stamp = datetime.now(UTC).strftime("%H:%M:%S")
        queries = [
            DnsQuery(
                time=stamp,
                src_address=c.ip_address,
                domain=self._random.choice(_DOMAINS),
                query_type=self._random.choice(["A", "AAAA"]),
            )
            for c in self._clients
            if c.ip_address
        ]
        return newest(queries, limit)

    async def fetch_connections(self) -> list[ConnectionEntry]:
        return [
            ConnectionEntry(
                protocol="tcp",
                src_address=c.ip_address,
                dst_address="93.184.216.34",
                src_port=self._random.randint(49152, 65535),
                dst_port=self._random.choice([80, 443]),
                tcp_state="established",
                timeout="23h59m50s",
            )
            for c in self._clients
            if c.ip_address
        ]

    async def fetch_traffic(self, interface: str) -> TrafficSample:
        known = {i.name for i in await self.fetch_interfaces()}
        if interface not in known:
            raise TransportError(f"no such interface: {interface}")
        return TrafficSample(
            interface=interface,
            rx_rate=float(self._random.randint(10_000, 2_000_000)),
            tx_rate=float(self._random.randint(1_000, 500_000)),
            rx_packets=self._random.randint(10, 2_000),
            tx_packets=self._random.randint(10, 1_000),
        )

    async def run_command(self, command: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        handlers = {
            "/interface/print": self.fetch_interfaces,
            "/interface/wireless/registration-table/print": self.fetch_wireless_registrations,
            "/ip/dhcp-server/lease/print": self.fetch_dhcp_leases,
            "/ip/firewall/connection/print": self.fetch_connections,
            "/log/print": self.fetch_recent_logs,
        }
        if command == "/interface/monitor-traffic":
            sample = await self.fetch_traffic(str(params.get("interface", "")))
            return [asdict(sample)]
        handler = handlers.get(command)
        if handler is None:
            return []
        return [asdict(row) for row in await handler()]
