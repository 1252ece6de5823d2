"""Starlette application wiring both HTTP transports to one session store."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from toolgate.server.dispatcher import Dispatcher
from toolgate.server.runner import ServerRunner
from toolgate.server.session import SessionStore
from toolgate.server.settings import Settings
from toolgate.server.transport.sse import SESSION_ID_HEADERS, SseHandler
from toolgate.server.transport.streamable_http import StreamableHTTPHandler
from toolgate.server.watchdog import ExitWatchdog
from toolgate.tools.browser import BrowserActions, DetachedBrowser
from toolgate.tools.catalog import default_tools
from toolgate.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def create_runner(
    settings: Settings,
    *,
    registry: ToolRegistry | None = None,
    actions_factory: Callable[[], BrowserActions] | None = None,
) -> ServerRunner:
    """Build the session store, dispatcher and runner for one process."""
    if registry is None:
        registry = ToolRegistry(default_tools(vision=settings.vision))
    sessions = SessionStore(
        registry,
        capabilities=settings.capabilities,
        actions_factory=actions_factory or DetachedBrowser,
    )
    return ServerRunner(sessions, Dispatcher(action_timeout=settings.action_timeout))


def create_app(
    settings: Settings | None = None,
    *,
    registry: ToolRegistry | None = None,
    actions_factory: Callable[[], BrowserActions] | None = None,
    hard_exit: Callable[[int], object] | None = None,
) -> Starlette:
    """Create the ASGI application.

    Usage:
        app = create_app(Settings(capabilities=["tabs"]))
        uvicorn.run(app, host="localhost", port=8000)
    """
    settings = settings or Settings()
    runner = create_runner(settings, registry=registry, actions_factory=actions_factory)
    watchdog = ExitWatchdog(runner.sessions, timeout=settings.shutdown_timeout, hard_exit=hard_exit)

    streamable_http = StreamableHTTPHandler(
        runner,
        json_response=settings.json_response,
        max_body_bytes=settings.max_body_bytes,
        ping_interval=settings.sse_ping_interval,
    )
    sse = SseHandler(
        runner,
        message_path=settings.message_path,
        queue_size=settings.sse_queue_size,
        send_timeout=settings.sse_send_timeout,
        ping_interval=settings.sse_ping_interval,
        max_body_bytes=settings.max_body_bytes,
    )

    async def health(request: Request) -> Response:
        if watchdog.shutting_down or not runner.running:
            return JSONResponse({"status": "unhealthy"}, status_code=503)
        return JSONResponse({"status": "healthy"})

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with runner.run(), streamable_http.run():
            logger.info("toolgate ready on %s and %s", settings.streamable_http_path, settings.sse_path)
            try:
                yield
            finally:
                await watchdog.shutdown()

    session_headers = list(SESSION_ID_HEADERS)
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", *session_headers],
            expose_headers=session_headers,
        )
    ]
    routes = [
        Route(settings.streamable_http_path, endpoint=streamable_http),
        Route(settings.sse_path, endpoint=sse.handle_stream, methods=["GET"]),
        Route(settings.sse_path, endpoint=sse.handle_post, methods=["POST"]),
        Route(settings.message_path, endpoint=sse.handle_post, methods=["POST"]),
        Route(settings.health_path, endpoint=health, methods=["GET"]),
    ]

    app = Starlette(debug=settings.debug, routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.settings = settings
    app.state.sessions = runner.sessions
    app.state.runner = runner
    app.state.watchdog = watchdog
    return app
