"""Content block types used in tool results."""

from typing import Annotated, Literal

from pydantic import Field

from toolgate.types.base import MCPModel, Meta
from toolgate.types.common import Annotations


class TextContent(MCPModel):
    """Text provided to or from an LLM."""

    type: Literal["text"] = "text"
    text: str
    annotations: Annotations | None = None
    meta: Annotated[Meta | None, Field(alias="_meta")] = None


class ImageContent(MCPModel):
    """An image provided to or from an LLM."""

    type: Literal["image"] = "image"
    data: str  # base64 encoded
    mime_type: Annotated[str, Field(alias="mimeType")]
    annotations: Annotations | None = None
    meta: Annotated[Meta | None, Field(alias="_meta")] = None


ContentBlock = TextContent | ImageContent
