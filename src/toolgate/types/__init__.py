"""Protocol message and domain types."""

from toolgate.types.base import LATEST_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS, EmptyResult
from toolgate.types.common import ClientCapabilities, Implementation, ServerCapabilities, ToolsCapability
from toolgate.types.content import ContentBlock, ImageContent, TextContent
from toolgate.types.initialize import InitializeRequestParams, InitializeResult
from toolgate.types.json_rpc import (
    ErrorData,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCMessageAdapter,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCResultResponse,
    RequestId,
)
from toolgate.types.tools import CallToolRequestParams, CallToolResult, JsonSchema, ListToolsResult, Tool, ToolAnnotations

__all__ = [
    "CallToolRequestParams",
    "CallToolResult",
    "ClientCapabilities",
    "ContentBlock",
    "EmptyResult",
    "ErrorData",
    "ImageContent",
    "Implementation",
    "InitializeRequestParams",
    "InitializeResult",
    "JSONRPCErrorResponse",
    "JSONRPCMessage",
    "JSONRPCMessageAdapter",
    "JSONRPCNotification",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "JSONRPCResultResponse",
    "JsonSchema",
    "LATEST_PROTOCOL_VERSION",
    "ListToolsResult",
    "RequestId",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "ServerCapabilities",
    "TextContent",
    "Tool",
    "ToolAnnotations",
    "ToolsCapability",
]
