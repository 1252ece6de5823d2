"""Browser tools offered to sessions.

Two variants exist: the full snapshot set and the reduced vision set, which
leaves out selector-driven input tools. The mode is picked once at startup.
"""

from __future__ import annotations

import base64
import json
from typing import Any

from pydantic import Field

from toolgate.tools.base import (
    ToolCapability,
    ToolClassification,
    ToolContext,
    ToolDescriptor,
    ToolInput,
    ToolOutput,
    define_tool,
)
from toolgate.types.content import ImageContent, TextContent

DEFAULT_WAIT_TIMEOUT_MS = 30_000


class NavigateInput(ToolInput):
    url: str = Field(description="The URL to navigate to")


class SelectorInput(ToolInput):
    selector: str = Field(description="CSS selector or text to target")


class TypeInput(ToolInput):
    selector: str = Field(description="CSS selector for input field")
    text: str = Field(description="Text to type")


class ScreenshotInput(ToolInput):
    full_page: bool | None = Field(default=None, alias="fullPage", description="Capture full page")


class WaitInput(ToolInput):
    selector: str = Field(description="CSS selector to wait for")
    timeout: int | None = Field(default=None, ge=0, description="Timeout in milliseconds")


class NoInput(ToolInput):
    pass


class NewTabInput(ToolInput):
    url: str | None = Field(default=None, description="URL to navigate to in new tab")


class CloseTabInput(ToolInput):
    tab_id: str = Field(alias="tabId", description="Tab ID to close")


class EvaluateInput(ToolInput):
    expression: str = Field(description="JavaScript expression to evaluate")


@define_tool(
    name="browser_navigate",
    title="Navigate to a URL",
    description="Navigate to a URL",
    capability=ToolCapability.CORE,
    input_model=NavigateInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def navigate(ctx: ToolContext, params: NavigateInput) -> ToolOutput:
    await ctx.run(lambda page: page.navigate(params.url))
    return f"Navigated to {params.url}"


@define_tool(
    name="browser_click",
    title="Click on element",
    description="Click on an element",
    capability=ToolCapability.CORE,
    input_model=SelectorInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def click(ctx: ToolContext, params: SelectorInput) -> ToolOutput:
    await ctx.run(lambda page: page.click(params.selector))
    return f"Clicked {params.selector}"


@define_tool(
    name="browser_type",
    title="Type text",
    description="Type text into an input field",
    capability=ToolCapability.CORE,
    input_model=TypeInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def type_text(ctx: ToolContext, params: TypeInput) -> ToolOutput:
    await ctx.run(lambda page: page.fill(params.selector, params.text))
    return f"Typed into {params.selector}"


@define_tool(
    name="browser_screenshot",
    title="Take screenshot",
    description="Take a screenshot of the current page",
    capability=ToolCapability.SCREENSHOT,
    input_model=ScreenshotInput,
    classification=ToolClassification.READ_ONLY,
)
async def screenshot(ctx: ToolContext, params: ScreenshotInput) -> ToolOutput:
    png = await ctx.run(lambda page: page.screenshot(full_page=bool(params.full_page)))
    return [ImageContent(data=base64.b64encode(png).decode("ascii"), mime_type="image/png")]


@define_tool(
    name="browser_wait",
    title="Wait for element",
    description="Wait for an element to appear on the page",
    capability=ToolCapability.WAIT,
    input_model=WaitInput,
    classification=ToolClassification.READ_ONLY,
)
async def wait(ctx: ToolContext, params: WaitInput) -> ToolOutput:
    timeout_ms = DEFAULT_WAIT_TIMEOUT_MS if params.timeout is None else params.timeout
    await ctx.run(lambda page: page.wait_for_selector(params.selector, timeout_ms=timeout_ms))
    return f"Element {params.selector} is present"


@define_tool(
    name="browser_navigate_back",
    title="Go back",
    description="Go back to the previous page",
    capability=ToolCapability.HISTORY,
    input_model=NoInput,
    classification=ToolClassification.READ_ONLY,
)
async def navigate_back(ctx: ToolContext, params: NoInput) -> ToolOutput:
    await ctx.run(lambda page: page.go_back())
    return None


@define_tool(
    name="browser_get_text",
    title="Get text content",
    description="Get text content of an element",
    capability=ToolCapability.CORE,
    input_model=SelectorInput,
    classification=ToolClassification.READ_ONLY,
)
async def get_text(ctx: ToolContext, params: SelectorInput) -> ToolOutput:
    text = await ctx.run(lambda page: page.text_content(params.selector))
    return [TextContent(text=text or "")]


@define_tool(
    name="browser_new_tab",
    title="Open new tab",
    description="Open a new browser tab",
    capability=ToolCapability.TABS,
    input_model=NewTabInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def new_tab(ctx: ToolContext, params: NewTabInput) -> ToolOutput:
    tab_id = await ctx.run(lambda page: page.new_tab(params.url))
    opened: dict[str, Any] = {"tabId": tab_id}
    if params.url:
        opened["url"] = params.url
    return opened


@define_tool(
    name="browser_close_tab",
    title="Close tab",
    description="Close a browser tab",
    capability=ToolCapability.TABS,
    input_model=CloseTabInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def close_tab(ctx: ToolContext, params: CloseTabInput) -> ToolOutput:
    await ctx.run(lambda page: page.close_tab(params.tab_id))
    return f"Closed tab {params.tab_id}"


@define_tool(
    name="browser_evaluate",
    title="Evaluate JavaScript",
    description="Execute JavaScript in the browser context",
    capability=ToolCapability.CONSOLE,
    input_model=EvaluateInput,
    classification=ToolClassification.DESTRUCTIVE,
)
async def evaluate(ctx: ToolContext, params: EvaluateInput) -> ToolOutput:
    result = await ctx.run(lambda page: page.evaluate(params.expression))
    return [TextContent(text=json.dumps(result, indent=2, default=str))]


def snapshot_tools() -> list[ToolDescriptor[Any]]:
    """Full tool set used in snapshot mode."""
    return [navigate, click, type_text, screenshot, wait, navigate_back, get_text, new_tab, close_tab, evaluate]


def vision_tools() -> list[ToolDescriptor[Any]]:
    """Reduced tool set used in vision mode."""
    return [navigate, screenshot, wait, navigate_back, get_text, new_tab, close_tab, evaluate]


def default_tools(*, vision: bool = False) -> list[ToolDescriptor[Any]]:
    return vision_tools() if vision else snapshot_tools()
