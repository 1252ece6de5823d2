"""Tool descriptors and the execution context handed to executors."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

import anyio
from pydantic import BaseModel, ConfigDict

from toolgate.shared.exceptions import ToolError
from toolgate.tools.browser import BrowserActions
from toolgate.types.content import ContentBlock
from toolgate.types.tools import CallToolResult, JsonSchema, Tool, ToolAnnotations

T = TypeVar("T")
InputT = TypeVar("InputT", bound=BaseModel)

ToolOutput = CallToolResult | Sequence[ContentBlock] | dict[str, Any] | str | None
"""What an executor may return; the dispatcher normalises it into a CallToolResult."""


class ToolCapability(str, Enum):
    """Capability tags controlling which sessions can see a tool."""

    CORE = "core"
    HISTORY = "history"
    CONSOLE = "console"
    DIALOGS = "dialogs"
    FILES = "files"
    KEYBOARD = "keyboard"
    NETWORK = "network"
    PDF = "pdf"
    SCREENSHOT = "screenshot"
    TABS = "tabs"
    TESTING = "testing"
    VISION = "vision"
    WAIT = "wait"


ALWAYS_ON_CAPABILITY = ToolCapability.CORE


class ToolClassification(str, Enum):
    READ_ONLY = "read_only"
    DESTRUCTIVE = "destructive"


class ToolInput(BaseModel):
    """Base class for per-tool input records."""

    model_config = ConfigDict(populate_by_name=True)


ProgressReporter = Callable[[float, float | None, str | None], Awaitable[None]]


@dataclass(frozen=True)
class ToolContext:
    """What an executor receives: the session's action surface and nothing else.

    Every call into the action surface goes through `run`, which bounds it by
    `action_timeout` so a hung back end cannot pin a request forever.
    """

    session_id: str
    actions: BrowserActions = field(repr=False)
    action_timeout: float | None = None
    progress: ProgressReporter | None = field(default=None, repr=False)

    async def run(self, action: Callable[[BrowserActions], Awaitable[T]]) -> T:
        """Perform one action against the page and return its outcome."""
        try:
            with anyio.fail_after(self.action_timeout):
                return await action(self.actions)
        except TimeoutError:
            raise ToolError(f"Action timed out after {self.action_timeout} seconds") from None

    async def report_progress(self, progress: float, total: float | None = None, message: str | None = None) -> None:
        """Tell the caller how far along the call is.

        Does nothing unless the request asked for progress with a progress token.
        """
        if self.progress is not None:
            await self.progress(progress, total, message)


Executor = Callable[[ToolContext, InputT], Awaitable[ToolOutput]]


@dataclass(frozen=True)
class ToolDescriptor(Generic[InputT]):
    """Immutable description of a tool together with the behaviour bound to it."""

    name: str
    title: str
    description: str
    capability: ToolCapability
    input_model: type[InputT]
    classification: ToolClassification
    executor: Executor[InputT] = field(repr=False, compare=False)
    input_schema: dict[str, Any] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        schema = self.input_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        object.__setattr__(self, "input_schema", schema)

    @property
    def read_only(self) -> bool:
        return self.classification is ToolClassification.READ_ONLY

    def to_tool(self) -> Tool:
        """Render the descriptor as advertised by tools/list."""
        return Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            input_schema=JsonSchema.model_validate(self.input_schema),
            annotations=ToolAnnotations(
                title=self.title,
                read_only_hint=self.read_only,
                destructive_hint=not self.read_only,
            ),
        )


def define_tool(
    *,
    name: str,
    title: str,
    description: str,
    capability: ToolCapability,
    input_model: type[InputT],
    classification: ToolClassification,
) -> Callable[[Executor[InputT]], ToolDescriptor[InputT]]:
    """Decorator turning an executor coroutine into a ToolDescriptor."""

    def decorator(fn: Executor[InputT]) -> ToolDescriptor[InputT]:
        return ToolDescriptor(
            name=name,
            title=title,
            description=description,
            capability=capability,
            input_model=input_model,
            classification=classification,
            executor=fn,
        )

    return decorator
