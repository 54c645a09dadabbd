"""Per-user web activity built from proxy requests and DNS lookups."""

from collections import Counter
from typing import Any

from routerwatch.router.base import ConnectionEntry, DnsQuery, WebRequest

RECENT_ACTIVITY_SIZE = 20
TOP_DOMAINS = 5
USER_HISTORY_SIZE = 10


def summarize(
    requests: list[WebRequest],
    queries: list[DnsQuery],
    connections: list[ConnectionEntry],
) -> dict[str, Any]:
    domain_counts = Counter(r.domain for r in requests)
    top = domain_counts.most_common(1)
    return {
        "total_web_visits": len(requests),
        "unique_visitors": len({r.src_address for r in requests}),
        "unique_domains": len(set(domain_counts) | {q.domain for q in queries}),
        "total_bytes": sum(r.bytes for r in requests),
        "top_domain": top[0][0] if top else None,
        "dns_queries": len(queries),
        "web_connections": sum(1 for c in connections if c.is_web),
    }


def recent_activity(requests: list[WebRequest]) -> list[dict[str, Any]]:
    """Newest requests first."""
    return [
        {
            "user": r.src_address,
            "domain": r.domain,
            "method": r.method,
            "url": r.url,
            "status": r.status,
            "bytes": r.bytes,
            "time": r.time,
        }
        for r in reversed(requests[-RECENT_ACTIVITY_SIZE:])
    ]


def activity_by_user(requests: list[WebRequest], queries: list[DnsQuery]) -> list[dict[str, Any]]:
    """Group activity by client address, busiest user first.

    DNS lookups from addresses with no proxy requests still count, so
    clients that bypass the proxy (e.g. HTTPS) remain visible.
    """
    users: dict[str, dict[str, Any]] = {}

    def _entry(address: str) -> dict[str, Any]:
        if address not in users:
            users[address] = {
                "user": address,
                "total_visits": 0,
                "total_bytes": 0,
                "domains": Counter(),
                "last_activity": None,
                "web_visits": [],
                "dns_queries": [],
            }
        return users[address]

    for r in requests:
        user = _entry(r.src_address)
        user["total_visits"] += 1
        user["total_bytes"] += r.bytes
        user["domains"][r.domain] += 1
        user["last_activity"] = r.time
        user["web_visits"].append(
            {"domain": r.domain, "method": r.method, "url": r.url, "time": r.time}
        )

    for q in queries:
        user = _entry(q.src_address)
        user["domains"][q.domain] += 1
        if user["last_activity"] is None or q.time > user["last_activity"]:
            user["last_activity"] = q.time
        user["dns_queries"].append({"domain": q.domain, "query_type": q.query_type, "time": q.time})

    result = []
    for user in users.values():
        domains: Counter[str] = user.pop("domains")
        user["unique_domains"] = len(domains)
        user["top_domains"] = [d for d, _ in domains.most_common(TOP_DOMAINS)]
        user["web_visits"] = user["web_visits"][-USER_HISTORY_SIZE:][::-1]
        user["dns_queries"] = user["dns_queries"][-USER_HISTORY_SIZE:][::-1]
        result.append(user)
    result.sort(key=lambda u: (u["total_visits"], len(u["dns_queries"])), reverse=True)
    return result
