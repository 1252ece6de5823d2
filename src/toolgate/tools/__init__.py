from toolgate.tools.base import (
    ToolCapability,
    ToolClassification,
    ToolContext,
    ToolDescriptor,
    ToolInput,
    ToolOutput,
    define_tool,
)
from toolgate.tools.browser import BrowserActions, DetachedBrowser
from toolgate.tools.registry import ToolRegistry, filter_tools, is_visible

__all__ = [
    "BrowserActions",
    "DetachedBrowser",
    "ToolCapability",
    "ToolClassification",
    "ToolContext",
    "ToolDescriptor",
    "ToolInput",
    "ToolOutput",
    "ToolRegistry",
    "define_tool",
    "filter_tools",
    "is_visible",
]
