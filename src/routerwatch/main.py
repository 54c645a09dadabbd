"""routerwatch application entrypoint."""

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from routerwatch.config import Settings, load_config, settings
from routerwatch.router.base import RouterSnapshotSource
from routerwatch.services import build_services

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def _create_source(mode: str, cfg: Settings) -> RouterSnapshotSource | None:
    """Factory: instantiate the configured router backend."""
    if mode == "routeros":
        from routerwatch.router.routeros import RouterOSSource

        if not cfg.router_url or not cfg.router_username or not cfg.router_password:
            logger.warning("RouterOS mode selected but credentials not configured")
            return None
        return RouterOSSource(
            url=cfg.router_url,
            username=cfg.router_username,
            password=cfg.router_password,
            verify_tls=cfg.router_verify_tls,
            timeout=cfg.router_timeout,
        )
    if mode == "mock":
        from routerwatch.router.mock import MockRouterSource

        return MockRouterSource()
    if mode == "none":
        return None
    logger.warning("Unknown source mode '%s', skipping", mode)
    return None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    cfg = load_config()
    source = _create_source(cfg.source_mode, cfg)
    services = build_services(cfg, source)
    app.state.services = services

    if source is None:
        logger.info("No router source configured")
    elif cfg.autostart_monitoring:
        await services.start_monitoring()
        logger.info("Monitoring started for %s", cfg.router_name)

    yield

    await services.close()
    logger.info("Monitoring stopped, router connection closed")


app = FastAPI(
    title="routerwatch",
    description="Router client session tracking and alerting",
    version="0.1.0",
    lifespan=lifespan,
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Bearer token authentication middleware.

    Protects all HTTP routes except /health. WebSocket connections carry
    the token in a `token` query parameter and are checked by the endpoint.
    """

    def __init__(self, app, token: str):
        super().__init__(app)
        self.token = token

    async def dispatch(self, request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return self._unauthorized_response("No token provided")

        # Timing-safe comparison
        if not secrets.compare_digest(auth_header[7:], self.token):
            return self._unauthorized_response("Invalid token")

        return await call_next(request)

    def _unauthorized_response(self, detail: str) -> Response:
        return JSONResponse(
            {"detail": detail},
            status_code=401,
            headers={"WWW-Authenticate": 'Bearer realm="routerwatch"'},
        )


app.add_middleware(SecurityHeadersMiddleware)

# Conditionally add bearer auth if a token is configured
if settings.api_token:
    app.add_middleware(BearerTokenMiddleware, token=settings.api_token)
    logger.info("Bearer token auth enabled")


# Register routers
from routerwatch.api.routes import router as api_router  # noqa: E402

app.include_router(api_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def main() -> None:
    import uvicorn

    logger.info("Starting routerwatch on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
