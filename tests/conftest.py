"""Shared test fixtures."""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import routerwatch.config as config_module
from routerwatch.main import app
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


class FakeClock:
    """Manually advanced clock for SessionTracker."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeRouterSource(RouterSnapshotSource):
    """In-memory router whose state tests set directly."""

    def __init__(self) -> None:
        self.clients: list[ClientRecord] = []
        self.interfaces: list[InterfaceRecord] = []
        self.logs: list[LogRecord] = []
        self.registrations: list[WirelessRegistration] = []
        self.leases: list[DhcpLease] = []
        self.web_requests: list[WebRequest] = []
        self.dns_queries: list[DnsQuery] = []
        self.connections: list[ConnectionEntry] = []
        self.traffic: dict[str, TrafficSample] = {}
        self.command_result: list[dict[str, Any]] = []
        self.commands: list[tuple[str, dict[str, Any]]] = []
        self.error: Exception | None = None
        self.fetch_count = 0
        self.reconnects = 0
        self.closed = False
        self.healthy = True

    def _check(self) -> None:
        self.fetch_count += 1
        if self.error is not None:
            raise self.error

    async def fetch_attached_clients(self) -> list[ClientRecord]:
        self._check()
        return list(self.clients)

    async def fetch_interfaces(self) -> list[InterfaceRecord]:
        self._check()
        return list(self.interfaces)

    async def fetch_recent_logs(self, limit: int = 50) -> list[LogRecord]:
        self._check()
        return newest(self.logs, limit)

    async def fetch_wireless_registrations(self) -> list[WirelessRegistration]:
        self._check()
        return list(self.registrations)

    async def fetch_dhcp_leases(self) -> list[DhcpLease]:
        self._check()
        return list(self.leases)

    async def fetch_web_requests(self, limit: int = 100) -> list[WebRequest]:
        self._check()
        return newest(self.web_requests, limit)

    async def fetch_dns_queries(self, limit: int = 50) -> list[DnsQuery]:
        self._check()
        return newest(self.dns_queries, limit)

    async def fetch_connections(self) -> list[ConnectionEntry]:
        self._check()
        return list(self.connections)

    async def fetch_traffic(self, interface: str) -> TrafficSample:
        self._check()
        if interface not in self.traffic:
            raise TransportError(f"no such interface: {interface}")
        return self.traffic[interface]

    async def run_command(self, command: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        self._check()
        self.commands.append((command, params))
        return list(self.command_result)

    async def reconnect(self) -> None:
        self.reconnects += 1
        self.healthy = True

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_source() -> FakeRouterSource:
    return FakeRouterSource()


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Keep a developer's .env and ROUTERWATCH_* variables out of the test."""
    monkeypatch.setattr(config_module, "_ENV_FILE", tmp_path / ".env")
    monkeypatch.setenv("ROUTERWATCH_AUTOSTART_MONITORING", "false")
    monkeypatch.delenv("ROUTERWATCH_SMTP_HOST", raising=False)
    monkeypatch.delenv("ROUTERWATCH_WEBHOOK_URL", raising=False)
    monkeypatch.delenv("ROUTERWATCH_BANDWIDTH_INTERFACES", raising=False)
    return tmp_path


@pytest.fixture
def client(fake_source, isolated_env) -> Generator[TestClient, None, None]:
    """TestClient wired to a FakeRouterSource with monitoring not started."""
    with patch("routerwatch.main._create_source", return_value=fake_source):
        with TestClient(app) as c:
            yield c


@pytest.fixture
def unconfigured_client(isolated_env) -> Generator[TestClient, None, None]:
    """TestClient with no router source configured."""
    with patch("routerwatch.main._create_source", return_value=None):
        with TestClient(app) as c:
            yield c
