"""Tests for the RouterOS REST source."""

import json

import httpx
import pytest

from routerwatch.router.base import TransportError
from routerwatch.router.routeros import (
    RouterOSSource,
    build_client_records,
    check_connection,
    extract_domain,
    parse_connection,
    parse_dns_query,
    parse_web_request,
)

HOTSPOT = [
    {
        ".id": "*1",
        "mac-address": "aa:bb:cc:11:22:33",
        "address": "10.5.50.11",
        "user": "guest1",
        "bytes-in": "1536",
        "bytes-out": "512",
        "uptime": "1h2m3s",
        "idle-timeout": "5m",
        "limit-bytes-total": "0",
        "login-by": "http-chap",
    },
    {
        ".id": "*2",
        "mac-address": "DD:EE:FF:11:22:33",
        "address": "10.5.50.21",
        "session-id": "8100000b",
        "limit-bytes-total": "1048576",
    },
    {".id": "*3", "address": "10.5.50.99"},
]

LEASES = [
    {
        "mac-address": "AA:BB:CC:11:22:33",
        "host-name": "Home-iPhone",
        "address": "10.5.50.11",
        "status": "bound",
        "expires-after": "8m",
    },
]

REGISTRATIONS = [
    {
        "mac-address": "FF:FF:FF:00:00:01",
        "last-ip": "10.5.50.21",
        "interface": "wlan1",
        "signal-strength": "-63@6Mbps",
        "tx-rate": "65Mbps",
        "uptime": "20m",
    },
]

INTERFACES = [
    {
        "name": "ether1",
        "type": "ether",
        "running": "true",
        "disabled": "false",
        "rx-byte": "100",
        "tx-byte": "200",
        "mtu": "1500",
    },
    {"name": "wlan1", "type": "wlan", "running": "false", "disabled": "true"},
]

LOGS = [
    {"time": f"10:00:0{i}", "topics": "system,info", "message": f"line {i}"} for i in range(5)
]

ROUTES = {
    "/rest/ip/hotspot/active": HOTSPOT,
    "/rest/ip/dhcp-server/lease": LEASES,
    "/rest/interface/wireless/registration-table": REGISTRATIONS,
    "/rest/interface": INTERFACES,
    "/rest/log": LOGS,
}


def _handler(request: httpx.Request) -> httpx.Response:
    if not request.headers.get("Authorization", "").startswith("Basic "):
        return httpx.Response(401)
    data = ROUTES.get(request.url.path)
    if data is None:
        return httpx.Response(404, json={"error": 404, "message": "Not Found"})
    return httpx.Response(200, json=data)


def _source(handler=_handler) -> RouterOSSource:
    return RouterOSSource(
        "https://192.168.88.1/", "api", "secret", transport=httpx.MockTransport(handler)
    )


class TestBuildClientRecords:
    def test_joins_hotspot_lease_and_registration(self):
        records = build_client_records(HOTSPOT, LEASES, REGISTRATIONS)

        assert [r.mac_address for r in records] == ["AA:BB:CC:11:22:33", "DD:EE:FF:11:22:33"]
        phone, guest = records

        assert phone.host_name == "Home-iPhone"
        assert phone.medium == "hotspot"
        assert phone.bytes_in == 1536
        assert phone.session_id == "*1"
        assert phone.limit_bytes_total is None
        assert phone.login_by == "http-chap"
        assert phone.raw["idle-timeout"] == "5m"

        # Matched to the registration by last-ip
        assert guest.medium == "wireless"
        assert guest.signal_strength == -63
        assert guest.session_id == "8100000b"
        assert guest.limit_bytes_total == 1048576
        assert guest.host_name is None

    def test_host_name_falls_back_to_hotspot_user(self):
        records = build_client_records(HOTSPOT[:1], [], [])
        assert records[0].host_name == "guest1"


@pytest.mark.asyncio
async def test_fetch_attached_clients():
    source = _source()
    clients = await source.fetch_attached_clients()
    await source.close()
    assert len(clients) == 2
    assert source.healthy


@pytest.mark.asyncio
async def test_fetch_interfaces():
    source = _source()
    interfaces = await source.fetch_interfaces()
    await source.close()

    ether, wlan = interfaces
    assert ether.running is True
    assert ether.disabled is False
    assert ether.rx_bytes == 100
    assert ether.mtu == "1500"
    assert wlan.running is False
    assert wlan.disabled is True


@pytest.mark.asyncio
async def test_fetch_recent_logs_returns_newest():
    source = _source()
    logs = await source.fetch_recent_logs(2)
    await source.close()
    assert [log.message for log in logs] == ["line 3", "line 4"]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -3])
async def test_fetch_recent_logs_non_positive_limit(limit):
    source = _source()
    logs = await source.fetch_recent_logs(limit)
    await source.close()
    assert logs == []


@pytest.mark.asyncio
async def test_fetch_wireless_and_leases():
    source = _source()
    registrations = await source.fetch_wireless_registrations()
    leases = await source.fetch_dhcp_leases()
    await source.close()

    assert registrations[0].mac_address == "FF:FF:FF:00:00:01"
    assert registrations[0].signal_strength == -63
    assert registrations[0].tx_rate == "65Mbps"
    assert leases[0].host_name == "Home-iPhone"
    assert leases[0].status == "bound"


@pytest.mark.asyncio
async def test_empty_list_is_not_an_error():
    source = _source(lambda request: httpx.Response(200, json=[]))
    assert await source.fetch_attached_clients() == []
    await source.close()


@pytest.mark.asyncio
async def test_http_error_raises_transport_error():
    source = _source(lambda request: httpx.Response(401))
    with pytest.raises(TransportError):
        await source.fetch_interfaces()
    assert source.healthy is False
    await source.close()


@pytest.mark.asyncio
async def test_network_error_raises_transport_error():
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = _source(_refuse)
    with pytest.raises(TransportError, match="connection refused"):
        await source.fetch_recent_logs()
    await source.close()


@pytest.mark.asyncio
async def test_malformed_payload_raises_transport_error():
    source = _source(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(TransportError):
        await source.fetch_dhcp_leases()
    await source.close()


@pytest.mark.asyncio
async def test_single_object_payload_wrapped():
    source = _source(lambda request: httpx.Response(200, json={"name": "ether1"}))
    interfaces = await source.fetch_interfaces()
    await source.close()
    assert [i.name for i in interfaces] == ["ether1"]


@pytest.mark.asyncio
async def test_reconnect_restores_health():
    source = _source(lambda request: httpx.Response(500))
    with pytest.raises(TransportError):
        await source.fetch_interfaces()
    await source.reconnect()
    assert source.healthy
    await source.close()


class TestCheckConnection:
    @pytest.mark.asyncio
    async def test_success(self):
        result = await check_connection(
            "https://192.168.88.1", "api", "secret", transport=httpx.MockTransport(_handler)
        )
        assert result.success is True
        assert result.device_count == 3
        assert result.message == "Connected, 3 active hotspot sessions"

    @pytest.mark.asyncio
    async def test_failure(self):
        result = await check_connection(
            "https://192.168.88.1",
            "api",
            "wrong",
            transport=httpx.MockTransport(lambda request: httpx.Response(401)),
        )
        assert result.success is False
        assert "401" in result.message
        assert result.device_count is None


ACTIVITY_LOGS = [
    {
        "time": "10:01:00",
        "topics": "web-proxy,account",
        "message": "10.5.50.11 GET http://example.com/page action=allow cache=MISS",
    },
    {
        "time": "10:01:05",
        "topics": "web-proxy,account",
        "message": (
            "web-proxy: 10.5.50.21:52144 POST https://news.example.org/login status=200 bytes=512"
        ),
    },
    {"time": "10:01:06", "topics": "web-proxy,debug", "message": "cache store full"},
    {
        "time": "10:01:07",
        "topics": "dns",
        "message": "dns: query[A] video.example.net from 10.5.50.11",
    },
    {
        "time": "10:01:08",
        "topics": "dns,packet",
        "message": "DNS query from 10.5.50.21 for mail.example.com. type aaaa",
    },
    {
        "time": "10:01:09",
        "topics": "system,info",
        "message": "query[A] ignored.example from 1.2.3.4",
    },
]

CONNECTIONS = [
    {
        ".id": "*A1",
        "protocol": "tcp",
        "src-address": "10.5.50.11:52144",
        "dst-address": "93.184.216.34:443",
        "tcp-state": "established",
        "timeout": "23h59m58s",
    },
    {
        "protocol": "udp",
        "src-address": "10.5.50.11",
        "src-port": "5353",
        "dst-address": "10.5.50.1",
        "dst-port": "53",
    },
]


def _activity_handler(request: httpx.Request) -> httpx.Response:
    routes = {"/rest/log": ACTIVITY_LOGS, "/rest/ip/firewall/connection": CONNECTIONS}
    return httpx.Response(200, json=routes.get(request.url.path, []))


class TestLogParsing:
    def test_web_request_with_status_and_bytes(self):
        request = parse_web_request(ACTIVITY_LOGS[1])
        assert request.src_address == "10.5.50.21"
        assert request.method == "POST"
        assert request.domain == "news.example.org"
        assert request.status == "200"
        assert request.bytes == 512

    def test_non_request_line_skipped(self):
        assert parse_web_request(ACTIVITY_LOGS[2]) is None

    def test_dns_query_formats(self):
        first = parse_dns_query(ACTIVITY_LOGS[3])
        second = parse_dns_query(ACTIVITY_LOGS[4])
        assert (first.src_address, first.domain, first.query_type) == (
            "10.5.50.11",
            "video.example.net",
            "A",
        )
        assert (second.src_address, second.domain, second.query_type) == (
            "10.5.50.21",
            "mail.example.com",
            "AAAA",
        )

    @pytest.mark.parametrize(
        "url,domain",
        [
            ("http://example.com/a?b=c", "example.com"),
            ("example.com:443", "example.com"),
            ("https://Sub.Example.org:8443/", "sub.example.org"),
        ],
    )
    def test_extract_domain(self, url, domain):
        assert extract_domain(url) == domain

    def test_connection_ports(self):
        https = parse_connection(CONNECTIONS[0])
        assert (https.src_address, https.src_port) == ("10.5.50.11", 52144)
        assert (https.dst_address, https.dst_port) == ("93.184.216.34", 443)
        assert https.is_web

        dns = parse_connection(CONNECTIONS[1])
        assert dns.src_port == 5353
        assert dns.dst_port == 53
        assert not dns.is_web


@pytest.mark.asyncio
async def test_fetch_web_requests_filters_topic():
    source = _source(_activity_handler)
    requests = await source.fetch_web_requests()
    await source.close()
    assert [r.url for r in requests] == [
        "http://example.com/page",
        "https://news.example.org/login",
    ]


@pytest.mark.asyncio
async def test_fetch_dns_queries_limit():
    source = _source(_activity_handler)
    queries = await source.fetch_dns_queries(limit=1)
    await source.close()
    assert [q.domain for q in queries] == ["mail.example.com"]


@pytest.mark.asyncio
async def test_fetch_connections():
    source = _source(_activity_handler)
    connections = await source.fetch_connections()
    await source.close()
    assert [c.protocol for c in connections] == ["tcp", "udp"]


@pytest.mark.asyncio
async def test_fetch_traffic_posts_single_sample():
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {
                    "name": "ether1",
                    "rx-bits-per-second": "8000",
                    "tx-bits-per-second": "1600",
                    "rx-packets-per-second": "12",
                    "tx-packets-per-second": "4",
                }
            ],
        )

    source = _source(_handler)
    sample = await source.fetch_traffic("ether1")
    await source.close()

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/rest/interface/monitor-traffic"
    assert json.loads(seen[0].content) == {"interface": "ether1", "once": ""}
    assert sample.rx_rate == 1000.0
    assert sample.tx_rate == 200.0
    assert sample.rx_packets == 12


@pytest.mark.asyncio
async def test_fetch_traffic_unknown_interface():
    source = _source(
        lambda request: httpx.Response(400, json={"error": 400, "detail": "no such item"})
    )
    with pytest.raises(TransportError):
        await source.fetch_traffic("ether9")
    await source.close()


@pytest.mark.asyncio
async def test_run_command_posts_to_command_path():
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"name": "ether1"}])

    source = _source(_handler)
    rows = await source.run_command("/interface/print", {".proplist": ["name"]})
    await source.run_command("/interface/monitor-traffic", {"interface": "ether1"})
    await source.close()

    assert rows == [{"name": "ether1"}]
    assert seen[0].url.path == "/rest/interface/print"
    assert json.loads(seen[0].content) == {".proplist": ["name"]}
    # Traffic monitoring is forced to a single reading
    assert json.loads(seen[1].content) == {"interface": "ether1", "once": ""}


@pytest.mark.asyncio
async def test_count_hotspot_sessions():
    source = _source()
    assert await source.count_hotspot_sessions() == 3
    await source.close()
