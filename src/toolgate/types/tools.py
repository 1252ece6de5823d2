"""Types for tools/list and tools/call."""

from typing import Annotated, Any, Literal

from pydantic import Field

from toolgate.types.base import MCPModel, Meta, RequestParams, Result
from toolgate.types.content import ContentBlock


class JsonSchema(MCPModel):
    """Input schema advertised for a tool. Always an object schema."""

    type: Literal["object"] = "object"
    properties: dict[str, Any] | None = None
    required: list[str] | None = None


class ToolAnnotations(MCPModel):
    """Behaviour hints shown to the client next to a tool."""

    title: str | None = None
    read_only_hint: Annotated[bool | None, Field(alias="readOnlyHint")] = None
    destructive_hint: Annotated[bool | None, Field(alias="destructiveHint")] = None


class Tool(MCPModel):
    """One entry of a tools/list result."""

    name: str
    title: str | None = None
    description: str | None = None
    input_schema: Annotated[JsonSchema, Field(alias="inputSchema")]
    annotations: ToolAnnotations | None = None


class ListToolsResult(Result[Meta]):
    tools: list[Tool]


class CallToolRequestParams(RequestParams):
    """The tool to run and its arguments, checked against the tool's schema later."""

    name: str
    arguments: dict[str, Any] | None = None


class CallToolResult(Result[Meta]):
    """Outcome of a tool call.

    Failures inside the tool are reported here with `is_error` set, not as
    JSON-RPC errors.
    """

    content: list[ContentBlock]
    structured_content: Annotated[dict[str, Any] | None, Field(alias="structuredContent")] = None
    is_error: Annotated[bool, Field(alias="isError")] = False
