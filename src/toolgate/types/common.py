"""Common types shared across the protocol."""

from typing import Annotated, Any, Literal

from pydantic import Field

from toolgate.types.base import MCPModel


class Annotations(MCPModel):
    """Optional annotations for the client."""

    audience: list[Literal["user", "assistant"]] | None = None
    priority: Annotated[float | None, Field(ge=0.0, le=1.0)] = None
    last_modified: Annotated[str | None, Field(alias="lastModified")] = None


class Implementation(MCPModel):
    """Describes the name and version of a protocol implementation."""

    name: str
    version: str
    title: str | None = None


class ClientCapabilities(MCPModel):
    """Capabilities that a client may support."""

    experimental: dict[str, Any] | None = None
    roots: dict[str, Any] | None = None
    sampling: dict[str, Any] | None = None
    elicitation: dict[str, Any] | None = None


class ToolsCapability(MCPModel):
    """Capability for tools operations."""

    list_changed: Annotated[bool | None, Field(alias="listChanged")] = None


class ServerCapabilities(MCPModel):
    """Capabilities that a server may support."""

    experimental: dict[str, Any] | None = None
    logging: dict[str, Any] | None = None
    tools: ToolsCapability | None = None
