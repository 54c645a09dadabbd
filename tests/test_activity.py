"""Tests for web activity aggregation."""

from routerwatch.router.base import ConnectionEntry, DnsQuery, WebRequest
from routerwatch.tracking.activity import (
    RECENT_ACTIVITY_SIZE,
    USER_HISTORY_SIZE,
    activity_by_user,
    recent_activity,
    summarize,
)


def _request(address: str, domain: str, time: str = "10:00:00", size: int = 0) -> WebRequest:
    return WebRequest(time, address, "GET", f"http://{domain}/", domain, bytes=size)


def test_summarize_empty():
    assert summarize([], [], []) == {
        "total_web_visits": 0,
        "unique_visitors": 0,
        "unique_domains": 0,
        "total_bytes": 0,
        "top_domain": None,
        "dns_queries": 0,
        "web_connections": 0,
    }


def test_summarize_counts_domains_from_both_sources():
    requests = [
        _request("10.0.0.2", "a.example", size=10),
        _request("10.0.0.2", "b.example", size=5),
        _request("10.0.0.3", "b.example"),
    ]
    queries = [DnsQuery("10:00:00", "10.0.0.4", "c.example", "A")]
    connections = [
        ConnectionEntry("tcp", "10.0.0.2", "1.1.1.1", dst_port=8080),
        ConnectionEntry("tcp", "10.0.0.2", "1.1.1.1", dst_port=22),
    ]

    summary = summarize(requests, queries, connections)
    assert summary["unique_domains"] == 3
    assert summary["unique_visitors"] == 2
    assert summary["top_domain"] == "b.example"
    assert summary["total_bytes"] == 15
    assert summary["web_connections"] == 1


def test_recent_activity_newest_first_and_capped():
    requests = [_request("10.0.0.2", f"site{i}.example") for i in range(RECENT_ACTIVITY_SIZE + 5)]
    recent = recent_activity(requests)
    assert len(recent) == RECENT_ACTIVITY_SIZE
    assert recent[0]["domain"] == f"site{RECENT_ACTIVITY_SIZE + 4}.example"


def test_activity_by_user():
    requests = [
        _request("10.0.0.2", "a.example", "10:00:01", 100),
        _request("10.0.0.3", "b.example", "10:00:02"),
        _request("10.0.0.2", "a.example", "10:00:03", 50),
    ]
    queries = [
        DnsQuery("10:00:05", "10.0.0.2", "c.example", "AAAA"),
        DnsQuery("10:00:00", "10.0.0.9", "d.example", "A"),
    ]

    users = activity_by_user(requests, queries)

    assert [u["user"] for u in users] == ["10.0.0.2", "10.0.0.3", "10.0.0.9"]
    busiest = users[0]
    assert busiest["total_visits"] == 2
    assert busiest["total_bytes"] == 150
    assert busiest["unique_domains"] == 2
    assert busiest["top_domains"] == ["a.example", "c.example"]
    assert busiest["last_activity"] == "10:00:05"
    assert busiest["web_visits"][0]["time"] == "10:00:03"
    assert users[2]["total_visits"] == 0
    assert users[2]["dns_queries"] == [
        {"domain": "d.example", "query_type": "A", "time": "10:00:00"}
    ]


def test_user_history_is_capped():
    requests = [_request("10.0.0.2", "a.example", f"10:00:{i:02d}") for i in range(15)]
    user = activity_by_user(requests, [])[0]
    assert len(user["web_visits"]) == USER_HISTORY_SIZE
    assert user["web_visits"][0]["time"] == "10:00:14"
