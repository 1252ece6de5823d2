"""Command line entry point."""

from __future__ import annotations

from typing import Any

import anyio
import click
import uvicorn
from pydantic import ValidationError

from toolgate.server.app import create_app, create_runner
from toolgate.server.settings import Settings
from toolgate.server.transport.stdio import run_stdio
from toolgate.server.watchdog import ExitWatchdog
from toolgate.tools.base import ToolCapability
from toolgate.utilities.logging import configure_logging, get_logger

logger = get_logger(__name__)


class WatchdogServer(uvicorn.Server):
    """uvicorn server that arms the exit watchdog when a signal arrives.

    uvicorn keeps its own graceful shutdown; the watchdog only guarantees
    the process dies if that shutdown hangs.
    """

    def __init__(self, config: uvicorn.Config, watchdog: ExitWatchdog) -> None:
        super().__init__(config)
        self.watchdog = watchdog

    def handle_exit(self, sig: int, frame: Any) -> None:
        self.watchdog.arm()
        super().handle_exit(sig, frame)


def build_server(settings: Settings) -> WatchdogServer:
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
        # uvicorn must give up on draining before the watchdog fires.
        timeout_graceful_shutdown=max(1, int(settings.shutdown_timeout / 2)),
    )
    return WatchdogServer(config, app.state.watchdog)


async def serve_http(settings: Settings) -> None:
    await build_server(settings).serve()


async def serve_stdio(settings: Settings) -> None:
    runner = create_runner(settings)
    watchdog = ExitWatchdog(runner.sessions, timeout=settings.shutdown_timeout)
    async with runner.run():
        await run_stdio(runner, watchdog)


@click.command()
@click.option("--host", default=None, help="Host to bind the HTTP server to")
@click.option("--port", type=int, default=None, help="Port to listen on for HTTP")
@click.option(
    "--transport",
    type=click.Choice(["http", "stdio"]),
    default="http",
    help="Serve over HTTP (streamable HTTP and event stream) or over stdin/stdout",
)
@click.option("--vision", is_flag=True, default=None, help="Offer the reduced vision-mode tool set")
@click.option(
    "--caps",
    default=None,
    help=f"Comma-separated capabilities to grant ({', '.join(c.value for c in ToolCapability)})",
)
@click.option("--json-response", is_flag=True, default=None, help="Always answer POST /mcp with plain JSON")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Logging level",
)
def main(
    host: str | None,
    port: int | None,
    transport: str,
    vision: bool | None,
    caps: str | None,
    json_response: bool | None,
    log_level: str | None,
) -> int:
    overrides = {
        "host": host,
        "port": port,
        "vision": vision,
        "capabilities": caps,
        "json_response": json_response,
        "log_level": log_level.upper() if log_level else None,
    }
    try:
        settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc
    configure_logging(settings.log_level)

    if transport == "stdio":
        anyio.run(serve_stdio, settings)
    else:
        logger.info("Starting toolgate on http://%s:%d", settings.host, settings.port)
        anyio.run(serve_http, settings)
    return 0
