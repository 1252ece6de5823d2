"""Routes tool requests to the executors visible to a session.

Every failure inside a tool call becomes a tool-level error result
(``isError: true``) that the calling agent can read and act on. Only a
malformed `tools/call` envelope or an unknown method is a protocol error.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

import jsonschema
from pydantic import BaseModel, ValidationError

from toolgate.server.session import Session
from toolgate.shared.exceptions import ProtocolError, ToolError
from toolgate.tools.base import ProgressReporter, ToolContext, ToolOutput
from toolgate.types.content import TextContent
from toolgate.types.json_rpc import INVALID_PARAMS, METHOD_NOT_FOUND, JSONRPCNotification, JSONRPCRequest, RequestId
from toolgate.types.notifications import ProgressNotificationParams
from toolgate.types.tools import CallToolRequestParams, CallToolResult, ListToolsResult

logger = logging.getLogger(__name__)


def _error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=message)], is_error=True)


def _describe_validation_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {error['msg']}" if location else error["msg"]


def normalize_output(output: ToolOutput) -> CallToolResult:
    """Turn whatever an executor returned into a CallToolResult."""
    if isinstance(output, CallToolResult):
        return output
    if output is None:
        return CallToolResult(content=[TextContent(text="Tool executed successfully")])
    if isinstance(output, str):
        return CallToolResult(content=[TextContent(text=output)])
    if isinstance(output, dict):
        return CallToolResult(
            content=[TextContent(text=json.dumps(output, indent=2, default=str))],
            structured_content=output,
        )
    if isinstance(output, Sequence):
        return CallToolResult(content=list(output))
    raise ToolError(f"Unexpected return type from tool: {type(output).__name__}")


class Dispatcher:
    """Handles `tools/list` and `tools/call` for a session."""

    def __init__(self, *, action_timeout: float | None = None) -> None:
        self.action_timeout = action_timeout

    async def dispatch(self, session: Session, request: JSONRPCRequest) -> BaseModel:
        match request.method:
            case "tools/list":
                return self.list_tools(session)
            case "tools/call":
                try:
                    params = CallToolRequestParams.model_validate(request.params or {})
                except ValidationError as exc:
                    raise ProtocolError.from_code(
                        INVALID_PARAMS, f"Invalid params: {_describe_validation_error(exc)}"
                    ) from exc
                return await self.call_tool(session, params, request_id=request.id)
            case _:
                raise ProtocolError.from_code(METHOD_NOT_FOUND, f"Method not found: {request.method}")

    def list_tools(self, session: Session) -> ListToolsResult:
        return ListToolsResult(tools=[tool.to_tool() for tool in session.tools.values()])

    async def call_tool(
        self,
        session: Session,
        params: CallToolRequestParams,
        *,
        request_id: RequestId | None = None,
    ) -> CallToolResult:
        # Hidden and unknown tools are indistinguishable to the caller.
        tool = session.tools.get(params.name)
        if tool is None:
            return _error_result(f'Tool "{params.name}" not found')

        arguments = params.arguments or {}
        try:
            jsonschema.validate(instance=arguments, schema=tool.input_schema)
            tool_input = tool.input_model.model_validate(arguments)
        except jsonschema.ValidationError as exc:
            return _error_result(f"Input validation error: {exc.message}")
        except ValidationError as exc:
            return _error_result(f"Input validation error: {_describe_validation_error(exc)}")

        ctx = ToolContext(
            session_id=session.id,
            actions=session.actions,
            action_timeout=self.action_timeout,
            progress=self._progress_reporter(session, params, request_id),
        )
        try:
            return normalize_output(await tool.executor(ctx, tool_input))
        except ToolError as exc:
            return _error_result(str(exc))
        except Exception as exc:
            logger.exception("Tool %s failed on session %s", tool.name, session.id)
            return _error_result(str(exc) or type(exc).__name__)

    def _progress_reporter(
        self,
        session: Session,
        params: CallToolRequestParams,
        request_id: RequestId | None,
    ) -> ProgressReporter | None:
        token = params.meta.progress_token if params.meta else None
        transport = session.transport
        if token is None or transport is None:
            return None

        async def report(progress: float, total: float | None, message: str | None) -> None:
            notification_params = ProgressNotificationParams(
                progress_token=token, progress=progress, total=total, message=message
            )
            notification = JSONRPCNotification(
                method="notifications/progress",
                params=notification_params.model_dump(by_alias=True, exclude_none=True),
            )
            await transport.send(notification, related_request_id=request_id)

        return report
