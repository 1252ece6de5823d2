"""Event-stream transport.

A client opens one long-lived GET stream per session. The first event on it
names the endpoint the client POSTs its messages to; every later event is a
server message. The stream is the session: when it ends for any reason the
session is terminated.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from http import HTTPStatus
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectStreamStatistics
from sse_starlette import EventSourceResponse
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from toolgate.server.runner import ServerRunner
from toolgate.server.transport.base import SinkEvent, Transport, TransportKind, decode_message
from toolgate.shared.exceptions import ProtocolError, TransportClosedError
from toolgate.types.json_rpc import (
    INVALID_REQUEST,
    SESSION_NOT_FOUND,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCResultResponse,
    RequestId,
    dump_message,
    error_response,
)

logger = logging.getLogger(__name__)

SESSION_ID_QUERY_PARAM = "session_id"
SESSION_ID_HEADERS = ("x-session-id", "mcp-session-id")
DEFAULT_QUEUE_SIZE = 32
DEFAULT_SEND_TIMEOUT = 30.0


class SseTransport(Transport):
    """Feeds a session's outgoing messages into its event stream.

    The queue between the two is bounded. When it is full, `send` waits for
    the client to catch up; if that takes longer than `send_timeout` the
    consumer is considered lost.
    """

    kind = TransportKind.EVENT_STREAM

    def __init__(self, *, queue_size: int = DEFAULT_QUEUE_SIZE, send_timeout: float = DEFAULT_SEND_TIMEOUT) -> None:
        super().__init__()
        self.send_timeout = send_timeout
        self._send_stream, self._receive_stream = anyio.create_memory_object_stream[SinkEvent](queue_size)

    async def send(self, message: JSONRPCMessage, *, related_request_id: RequestId | None = None) -> None:
        if self.closed:
            raise TransportClosedError("Event stream is closed")
        event = SinkEvent(message=message, is_final=isinstance(message, JSONRPCResultResponse | JSONRPCErrorResponse))
        try:
            with anyio.fail_after(self.send_timeout):
                await self._send_stream.send(event)
        except TimeoutError:
            raise TransportClosedError(
                f"Event stream consumer did not keep up for {self.send_timeout} seconds"
            ) from None
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            raise TransportClosedError("Event stream is closed") from None

    async def events(self) -> AsyncIterator[SinkEvent]:
        """Yield queued events until the transport is closed."""
        async with self._receive_stream:
            async for event in self._receive_stream:
                yield event

    def statistics(self) -> MemoryObjectStreamStatistics:
        """Queue depth and waiting senders, for diagnostics."""
        return self._send_stream.statistics()

    async def _release(self) -> None:
        await self._send_stream.aclose()


class SseHandler:
    """Starlette endpoints for the event-stream transport.

    Usage:
        sse = SseHandler(runner, message_path="/sse/messages")
        routes = [
            Route("/sse", endpoint=sse.handle_stream, methods=["GET"]),
            Route("/sse/messages", endpoint=sse.handle_post, methods=["POST"]),
        ]
    """

    def __init__(
        self,
        runner: ServerRunner,
        *,
        message_path: str = "/sse/messages",
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        ping_interval: float | None = None,
        max_body_bytes: int = 4 * 1024 * 1024,
    ) -> None:
        self.runner = runner
        self.sessions = runner.sessions
        self.message_path = message_path
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        self.ping_interval = ping_interval
        self.max_body_bytes = max_body_bytes

    async def handle_stream(self, request: Request) -> Response:
        session = self.sessions.create(TransportKind.EVENT_STREAM)
        transport = SseTransport(queue_size=self.queue_size, send_timeout=self.send_timeout)
        self.sessions.attach(session.id, transport)

        root_path = request.scope.get("root_path", "")
        endpoint = f"{root_path}{self.message_path}?{SESSION_ID_QUERY_PARAM}={session.id}"
        logger.debug("Opened event stream for session %s", session.id)

        async def event_source() -> AsyncIterator[dict[str, Any]]:
            yield {"event": "endpoint", "data": endpoint}
            async for event in transport.events():
                yield event.to_sse()

        return EventSourceResponse(
            event_source(),
            ping=self.ping_interval,
            headers={SESSION_ID_HEADERS[0]: session.id},
            # However the stream ends, the session goes with it.
            background=BackgroundTask(self.sessions.terminate, session.id),
        )

    async def handle_post(self, request: Request) -> Response:
        session_id = request.query_params.get(SESSION_ID_QUERY_PARAM)
        for header in SESSION_ID_HEADERS:
            session_id = session_id or request.headers.get(header)
        if not session_id:
            return self._error(HTTPStatus.BAD_REQUEST, "session_id is required")

        session = self.sessions.get(session_id)
        if session is None or session.transport_kind is not TransportKind.EVENT_STREAM:
            logger.warning("Could not find session for ID: %s", session_id)
            return self._error(HTTPStatus.NOT_FOUND, "Could not find session", code=SESSION_NOT_FOUND)

        body = await request.body()
        if len(body) > self.max_body_bytes:
            return self._error(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, "Payload Too Large: Message exceeds maximum size")
        try:
            message = decode_message(body)
        except ProtocolError as exc:
            logger.debug("Rejected message for session %s: %s", session_id, exc)
            return self._error(HTTPStatus.BAD_REQUEST, exc.error.message, code=exc.error.code)

        self.runner.spawn(session, message)
        return Response("Accepted", status_code=HTTPStatus.ACCEPTED)

    @staticmethod
    def _error(status: HTTPStatus, message: str, *, code: int = INVALID_REQUEST) -> Response:
        return JSONResponse(dump_message(error_response(None, code, message)), status_code=status)
