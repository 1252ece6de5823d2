from collections.abc import AsyncIterator

import anyio
import httpx
import pytest
import sse_starlette
from packaging import version
from pydantic import Field
from starlette.applications import Starlette

from toolgate.server.app import create_app
from toolgate.server.settings import Settings
from toolgate.tools.base import (
    ToolCapability,
    ToolClassification,
    ToolContext,
    ToolInput,
    ToolOutput,
    define_tool,
)
from toolgate.tools.registry import ToolRegistry
from toolgate.types.content import TextContent


@pytest.fixture
def anyio_backend():
    return "asyncio"


SSE_STARLETTE_VERSION = version.parse(sse_starlette.__version__)
NEEDS_RESET = SSE_STARLETTE_VERSION < version.parse("3.0.0")


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Reset sse-starlette's global AppStatus singleton before each test.

    AppStatus.should_exit_event is a global asyncio.Event that gets bound to
    an event loop. Version 3.0+ uses context-local events instead and needs
    no cleanup.
    """
    if not NEEDS_RESET:
        yield
        return

    # lazy import to avoid import errors
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]
    yield
    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]


class NoInput(ToolInput):
    pass


class EchoInput(ToolInput):
    message: str


class ProgressInput(ToolInput):
    message: str
    steps: int = Field(default=2, ge=1)


@define_tool(
    name="toolA",
    title="Tool A",
    description="Always succeeds",
    capability=ToolCapability.CORE,
    input_model=NoInput,
    classification=ToolClassification.READ_ONLY,
)
async def tool_a(ctx: ToolContext, params: NoInput) -> ToolOutput:
    return None


@define_tool(
    name="toolB",
    title="Tool B",
    description="Needs the screenshot capability",
    capability=ToolCapability.SCREENSHOT,
    input_model=NoInput,
    classification=ToolClassification.READ_ONLY,
)
async def tool_b(ctx: ToolContext, params: NoInput) -> ToolOutput:
    return "captured"


@define_tool(
    name="echo",
    title="Echo",
    description="Echoes the input",
    capability=ToolCapability.CORE,
    input_model=EchoInput,
    classification=ToolClassification.READ_ONLY,
)
async def echo(ctx: ToolContext, params: EchoInput) -> ToolOutput:
    return [TextContent(text=params.message)]


@define_tool(
    name="echo_with_progress",
    title="Echo with progress",
    description="Reports progress, then echoes the input",
    capability=ToolCapability.CORE,
    input_model=ProgressInput,
    classification=ToolClassification.READ_ONLY,
)
async def echo_with_progress(ctx: ToolContext, params: ProgressInput) -> ToolOutput:
    for step in range(1, params.steps + 1):
        await ctx.report_progress(step, params.steps)
    return params.message


@define_tool(
    name="hang",
    title="Hang",
    description="Never finishes on its own",
    capability=ToolCapability.CORE,
    input_model=NoInput,
    classification=ToolClassification.READ_ONLY,
)
async def hang(ctx: ToolContext, params: NoInput) -> ToolOutput:
    await anyio.sleep_forever()


@define_tool(
    name="broken",
    title="Broken",
    description="Always fails",
    capability=ToolCapability.CORE,
    input_model=NoInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def broken(ctx: ToolContext, params: NoInput) -> ToolOutput:
    raise RuntimeError("back end exploded")


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([tool_a, tool_b, echo, echo_with_progress, hang, broken])


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def hard_exits() -> list[int]:
    return []


@pytest.fixture
def app(settings: Settings, registry: ToolRegistry, hard_exits: list[int]) -> Starlette:
    return create_app(settings, registry=registry, hard_exit=hard_exits.append)


@pytest.fixture
async def client(app: Starlette) -> AsyncIterator[httpx.AsyncClient]:
    """An httpx client bound to the app, with the lifespan entered by hand.

    httpx's ASGITransport doesn't trigger lifespan events.
    """
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as http_client:
            yield http_client
