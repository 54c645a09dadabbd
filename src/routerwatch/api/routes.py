"""REST and WebSocket endpoints."""

import asyncio
import contextlib
import logging
import secrets
from collections.abc import Awaitable
from datetime import timedelta
from typing import Annotated, Any

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import BaseModel

from routerwatch.alerts.models import Alert, AlertCategory
from routerwatch.config import settings
from routerwatch.monitor.traffic import TrafficMonitor
from routerwatch.router.base import RouterSnapshotSource, TrafficSample, TransportError
from routerwatch.router.commands import CommandRejected, check_command
from routerwatch.router.routeros import ConnectionResult, check_connection
from routerwatch.services import Services
from routerwatch.tracking import activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

Limit = Annotated[int, Query(ge=0, le=1000)]


# Request models
class TestAlertRequest(BaseModel):
    message: str = "Test alert from routerwatch"


class ConnectionTestRequest(BaseModel):
    url: str
    username: str
    password: str
    verify_tls: bool = False


class CommandRequest(BaseModel):
    command: str = ""
    params: dict[str, Any] = {}


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_source(services: Services = Depends(get_services)) -> RouterSnapshotSource:
    if services.source is None:
        raise HTTPException(status_code=503, detail="No router configured")
    return services.source


def get_traffic(services: Services = Depends(get_services)) -> TrafficMonitor:
    if services.traffic is None:
        raise HTTPException(status_code=503, detail="No router configured")
    return services.traffic


async def _fetch(coro: Awaitable[Any]) -> Any:
    try:
        return await coro
    except TransportError as e:
        raise HTTPException(status_code=502, detail=str(e))


async def _require_interface(source: RouterSnapshotSource, name: str) -> None:
    interfaces = await _fetch(source.fetch_interfaces())
    if not any(i.name == name for i in interfaces):
        raise HTTPException(status_code=404, detail=f"Interface {name} not found")


# --- Monitoring ---


@router.get("/monitoring/status")
async def monitoring_status(services: Services = Depends(get_services)) -> dict[str, Any]:
    return services.monitoring_status()


@router.post("/monitoring/start")
async def start_monitoring(
    services: Services = Depends(get_services),
    _source: RouterSnapshotSource = Depends(get_source),
) -> dict[str, Any]:
    await services.start_monitoring()
    return services.monitoring_status()


@router.post("/monitoring/stop")
async def stop_monitoring(services: Services = Depends(get_services)) -> dict[str, Any]:
    await services.stop_monitoring()
    return services.monitoring_status()


@router.post("/monitoring/restart")
async def restart_monitoring(
    services: Services = Depends(get_services),
    _source: RouterSnapshotSource = Depends(get_source),
) -> dict[str, Any]:
    if services.presence is not None:
        await services.presence.restart()
    if services.events is not None and not services.events.loop.running:
        await services.events.start()
    return services.monitoring_status()


@router.post("/monitoring/scan")
async def manual_scan(
    services: Services = Depends(get_services),
    _source: RouterSnapshotSource = Depends(get_source),
) -> dict[str, Any]:
    if services.presence is None:
        raise HTTPException(status_code=503, detail="Presence monitoring unavailable")
    completed = await services.presence.loop.scan_now()
    return {"completed": completed, "status": services.presence.status()}


@router.post("/monitoring/interfaces/{name}")
async def watch_interface(
    name: str,
    source: RouterSnapshotSource = Depends(get_source),
    traffic: TrafficMonitor = Depends(get_traffic),
) -> dict[str, Any]:
    """Start sampling an interface's throughput on the traffic schedule."""
    await _require_interface(source, name)
    await traffic.watch(name)
    return traffic.status()


@router.get("/monitoring/interfaces/{name}")
async def interface_history(
    name: str,
    traffic: TrafficMonitor = Depends(get_traffic),
) -> list[TrafficSample]:
    if not traffic.is_watched(name):
        raise HTTPException(status_code=404, detail=f"Interface {name} is not watched")
    return traffic.history(name)


@router.delete("/monitoring/interfaces/{name}")
async def unwatch_interface(
    name: str,
    traffic: TrafficMonitor = Depends(get_traffic),
) -> dict[str, Any]:
    if not traffic.is_watched(name):
        raise HTTPException(status_code=404, detail=f"Interface {name} is not watched")
    await traffic.unwatch(name)
    return traffic.status()


# --- Sessions ---


@router.get("/sessions")
async def session_statistics(services: Services = Depends(get_services)) -> dict[str, Any]:
    return services.tracker.statistics()


@router.post("/sessions/cleanup")
async def cleanup_sessions(services: Services = Depends(get_services)) -> dict[str, int]:
    return {"removed": services.tracker.sweep_expired()}


# --- Alerts ---


@router.get("/alerts")
async def list_alerts(
    newest_first: bool = True,
    services: Services = Depends(get_services),
) -> list[Alert]:
    alerts = services.sink.get_alerts()
    return alerts[::-1] if newest_first else alerts


@router.get("/alerts/unread")
async def list_unread_alerts(services: Services = Depends(get_services)) -> list[Alert]:
    return services.sink.get_unread_alerts()[::-1]


# Literal paths must come before the {alert_id} parametric path
@router.post("/alerts/read-all")
async def mark_all_read(services: Services = Depends(get_services)) -> dict[str, int]:
    return {"marked": services.sink.mark_all_as_read()}


@router.post("/alerts/clear-old")
async def clear_old_alerts(
    days: int = 7,
    services: Services = Depends(get_services),
) -> dict[str, int]:
    return {"removed": services.sink.clear_older_than(timedelta(days=days))}


@router.post("/alerts/test", status_code=201)
async def create_test_alert(
    request: TestAlertRequest | None = None,
    services: Services = Depends(get_services),
) -> Alert:
    request = request or TestAlertRequest()
    return services.sink.create_alert(
        AlertCategory.system_warning,
        "Test Alert",
        request.message,
        {"test": True},
    )


@router.post("/alerts/{alert_id}/read")
async def mark_alert_read(
    alert_id: str,
    services: Services = Depends(get_services),
) -> dict[str, str]:
    if not services.sink.mark_as_read(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return {"status": "read"}


@router.websocket("/ws/alerts")
async def alert_feed(websocket: WebSocket) -> None:
    """Push each new alert to the client as JSON."""
    if settings.api_token:
        token = websocket.query_params.get("token", "")
        if not secrets.compare_digest(token, settings.api_token):
            await websocket.close(code=1008)
            return

    services: Services = websocket.app.state.services
    queue: asyncio.Queue[Alert] = asyncio.Queue(maxsize=100)

    def _enqueue(alert: Alert) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(alert)

    async def _pump() -> None:
        while True:
            alert = await queue.get()
            await websocket.send_json(alert.model_dump(mode="json"))

    unsubscribe = services.sink.subscribe(_enqueue)
    await websocket.accept()
    sender = asyncio.create_task(_pump())
    try:
        # Incoming messages are ignored; this only watches for disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Alert feed client disconnected")
    finally:
        unsubscribe()
        sender.cancel()
        # The pump may already have failed sending to the closed socket
        with contextlib.suppress(Exception, asyncio.CancelledError):
            await sender


# --- Router proxy ---


@router.get("/router/clients")
async def router_clients(source: RouterSnapshotSource = Depends(get_source)) -> list[dict]:
    clients = await _fetch(source.fetch_attached_clients())
    return [
        {
            "mac_address": c.mac_address,
            "ip_address": c.ip_address,
            "host_name": c.host_name,
            "medium": c.medium,
            "signal_strength": c.signal_strength,
            "bytes_in": c.bytes_in,
            "bytes_out": c.bytes_out,
            "uptime": c.uptime,
            "session_id": c.session_id,
        }
        for c in clients
    ]


@router.get("/router/interfaces")
async def router_interfaces(source: RouterSnapshotSource = Depends(get_source)) -> list[Any]:
    return await _fetch(source.fetch_interfaces())


@router.get("/router/logs")
async def router_logs(
    limit: Limit = 50,
    source: RouterSnapshotSource = Depends(get_source),
) -> list[Any]:
    return await _fetch(source.fetch_recent_logs(limit))


@router.get("/router/wireless")
async def router_wireless(source: RouterSnapshotSource = Depends(get_source)) -> list[Any]:
    return await _fetch(source.fetch_wireless_registrations())


@router.get("/router/dhcp-leases")
async def router_dhcp_leases(source: RouterSnapshotSource = Depends(get_source)) -> list[Any]:
    return await _fetch(source.fetch_dhcp_leases())


@router.get("/router/stats")
async def router_stats(
    source: RouterSnapshotSource = Depends(get_source),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Aggregated client, wireless, DHCP and interface counters."""
    clients = await _fetch(source.fetch_attached_clients())
    registrations = await _fetch(source.fetch_wireless_registrations())
    leases = await _fetch(source.fetch_dhcp_leases())
    interfaces = await _fetch(source.fetch_interfaces())

    by_medium: dict[str, int] = {}
    for c in clients:
        by_medium[c.medium] = by_medium.get(c.medium, 0) + 1
    signals = [r.signal_strength for r in registrations if r.signal_strength is not None]

    return {
        "clients": {
            "total": len(clients),
            "by_medium": by_medium,
            "bytes_in": sum(c.bytes_in for c in clients),
            "bytes_out": sum(c.bytes_out for c in clients),
        },
        "wireless": {
            "registrations": len(registrations),
            "average_signal": round(sum(signals) / len(signals), 1) if signals else None,
        },
        "dhcp": {
            "leases": len(leases),
            "bound": sum(1 for lease in leases if lease.status == "bound"),
        },
        "interfaces": {
            "total": len(interfaces),
            "running": sum(1 for i in interfaces if i.running),
            "rx_bytes": sum(i.rx_bytes for i in interfaces),
            "tx_bytes": sum(i.tx_bytes for i in interfaces),
        },
        "sessions": {
            "active": len(services.tracker.active),
            "recently_disconnected": len(services.tracker.recently_disconnected),
        },
    }


@router.post("/router/test")
async def test_router_connection(request: ConnectionTestRequest) -> ConnectionResult:
    return await check_connection(
        request.url, request.username, request.password, verify_tls=request.verify_tls
    )


# --- Web activity ---


@router.get("/router/web-requests")
async def router_web_requests(
    limit: Limit = 100,
    source: RouterSnapshotSource = Depends(get_source),
) -> list[Any]:
    return await _fetch(source.fetch_web_requests(limit))


@router.get("/router/dns-queries")
async def router_dns_queries(
    limit: Limit = 50,
    source: RouterSnapshotSource = Depends(get_source),
) -> list[Any]:
    return await _fetch(source.fetch_dns_queries(limit))


@router.get("/router/connections")
async def router_connections(
    web_only: bool = False,
    source: RouterSnapshotSource = Depends(get_source),
) -> list[Any]:
    connections = await _fetch(source.fetch_connections())
    return [c for c in connections if c.is_web] if web_only else connections


@router.get("/router/web-activity")
async def router_web_activity(
    source: RouterSnapshotSource = Depends(get_source),
) -> dict[str, Any]:
    """Summary, recent requests and per-user breakdown of browsing activity."""
    requests = await _fetch(source.fetch_web_requests(100))
    queries = await _fetch(source.fetch_dns_queries(50))
    connections = await _fetch(source.fetch_connections())
    return {
        "summary": activity.summarize(requests, queries, connections),
        "recent_activity": activity.recent_activity(requests),
        "user_activity": activity.activity_by_user(requests, queries),
    }


# --- Traffic ---


@router.get("/router/bandwidth")
async def router_bandwidth(
    source: RouterSnapshotSource = Depends(get_source),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Current rates on the configured uplink and bridge interfaces."""
    samples: list[dict[str, Any]] = []
    rx_total = tx_total = 0.0
    for name in services.bandwidth_interfaces:
        try:
            sample = await source.fetch_traffic(name)
        except TransportError as e:
            logger.warning("Bandwidth sample for %s failed: %s", name, e)
            samples.append({"interface": name, "error": str(e)})
            continue
        rx_total += sample.rx_rate
        tx_total += sample.tx_rate
        samples.append(
            {
                "interface": name,
                "rx_rate": sample.rx_rate,
                "tx_rate": sample.tx_rate,
                "rx_packets": sample.rx_packets,
                "tx_packets": sample.tx_packets,
                "timestamp": sample.timestamp,
            }
        )
    return {"interfaces": samples, "rx_rate": rx_total, "tx_rate": tx_total}


@router.get("/router/traffic/{interface}")
async def router_traffic(
    interface: str,
    source: RouterSnapshotSource = Depends(get_source),
) -> TrafficSample:
    await _require_interface(source, interface)
    return await _fetch(source.fetch_traffic(interface))


@router.post("/router/execute")
async def execute_command(
    request: CommandRequest,
    source: RouterSnapshotSource = Depends(get_source),
) -> list[dict[str, Any]]:
    """Forward an allowlisted read-only console command to the router."""
    try:
        command = check_command(request.command)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CommandRejected as e:
        logger.warning("Rejected router command %r", request.command)
        raise HTTPException(status_code=403, detail=str(e))
    return await _fetch(source.run_command(command, request.params))
