"""Streamable HTTP transport.

Every client message arrives as its own POST. A request's POST stays open
until the request produces its first outgoing event: a final response is
returned as a plain JSON body, anything else upgrades the reply to an event
stream that carries the intermediate messages and then the response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from toolgate.server.runner import ServerRunner
from toolgate.server.transport.base import SinkEvent, Transport, TransportKind, decode_message
from toolgate.shared.exceptions import ProtocolError, TransportClosedError
from toolgate.types.json_rpc import (
    INVALID_REQUEST,
    SESSION_NOT_FOUND,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCRequest,
    JSONRPCResultResponse,
    RequestId,
    dump_message,
    error_response,
)

logger = logging.getLogger(__name__)

MCP_SESSION_ID_HEADER = "mcp-session-id"
CONTENT_TYPE_JSON = "application/json"
MAXIMUM_MESSAGE_SIZE = 4 * 1024 * 1024  # 4MB
REQUEST_STREAM_BUFFER = 16


class StreamableHTTPTransport(Transport):
    """Routes outgoing messages to the POST that carried the related request."""

    kind = TransportKind.STREAMABLE_HTTP

    def __init__(self) -> None:
        super().__init__()
        self._request_streams: dict[RequestId, MemoryObjectSendStream[SinkEvent]] = {}

    def open_request_stream(self, request_id: RequestId) -> MemoryObjectReceiveStream[SinkEvent]:
        """Start collecting the outgoing events of one request."""
        if self.closed:
            raise TransportClosedError("Transport is closed")
        if request_id in self._request_streams:
            raise ProtocolError.from_code(INVALID_REQUEST, f"Request {request_id} is already in flight")
        send_stream, receive_stream = anyio.create_memory_object_stream[SinkEvent](REQUEST_STREAM_BUFFER)
        self._request_streams[request_id] = send_stream
        return receive_stream

    async def send(self, message: JSONRPCMessage, *, related_request_id: RequestId | None = None) -> None:
        if self.closed:
            raise TransportClosedError("Transport is closed")

        stream = self._request_streams.get(related_request_id) if related_request_id is not None else None
        if stream is None:
            # No standalone stream exists; unsolicited messages have nowhere to go.
            logger.debug("Dropping %s with no open request stream", type(message).__name__)
            return

        is_final = isinstance(message, JSONRPCResultResponse | JSONRPCErrorResponse)
        try:
            await stream.send(SinkEvent(message=message, is_final=is_final))
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            # The client went away from this one POST; the session itself lives on.
            logger.debug("Client stopped listening for request %s", related_request_id)
            is_final = True
        if is_final:
            self.request_finished(related_request_id)

    def request_finished(self, request_id: RequestId) -> None:
        stream = self._request_streams.pop(request_id, None)
        if stream is not None:
            stream.close()

    async def _release(self) -> None:
        streams, self._request_streams = self._request_streams, {}
        for stream in streams.values():
            await stream.aclose()


class StreamableHTTPHandler:
    """ASGI application serving the streamable HTTP endpoint.

    POST carries client messages, DELETE ends a session. There is no
    standalone server-to-client stream, so GET is refused.
    """

    def __init__(
        self,
        runner: ServerRunner,
        *,
        json_response: bool = False,
        max_body_bytes: int = MAXIMUM_MESSAGE_SIZE,
        ping_interval: float | None = None,
    ) -> None:
        self.runner = runner
        self.sessions = runner.sessions
        self.json_response = json_response
        self.max_body_bytes = max_body_bytes
        self.ping_interval = ping_interval
        self._has_started = False
        self._running = False

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Accept requests for the lifetime of the context.

        Can only be entered once per instance.
        """
        if self._has_started:
            raise RuntimeError(
                "StreamableHTTPHandler .run() can only be called once per instance. "
                "Create a new instance if you need to run again."
            )
        self._has_started = True
        self._running = True
        logger.info("Streamable HTTP handler started")
        try:
            yield
        finally:
            self._running = False
            logger.info("Streamable HTTP handler shutting down")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self._running:
            raise RuntimeError("StreamableHTTPHandler is not running. Make sure to use run().")

        request = Request(scope, receive)
        if request.method == "POST":
            response = await self._handle_post(request)
        elif request.method == "DELETE":
            response = await self._handle_delete(request)
        else:
            response = self._error(
                HTTPStatus.METHOD_NOT_ALLOWED,
                "Method Not Allowed",
                headers={"Allow": "POST, DELETE"},
            )
        await response(scope, receive, send)

    async def _handle_post(self, request: Request) -> Response:
        content_type = request.headers.get("content-type", "")
        if content_type.split(";")[0].strip().lower() != CONTENT_TYPE_JSON:
            return self._error(
                HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
                "Unsupported Media Type: Content-Type must be application/json",
            )

        body = await request.body()
        if len(body) > self.max_body_bytes:
            return self._error(HTTPStatus.REQUEST_ENTITY_TOO_LARGE, "Payload Too Large: Message exceeds maximum size")

        try:
            message = decode_message(body)
        except ProtocolError as exc:
            return self._error(HTTPStatus.BAD_REQUEST, exc.error.message, code=exc.error.code)

        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        created = False
        if session_id is None:
            if not (isinstance(message, JSONRPCRequest) and message.method == "initialize"):
                return self._error(
                    HTTPStatus.BAD_REQUEST,
                    "Bad Request: Server not initialized / Mcp-Session-Id header is required",
                )
            session = self.sessions.create(TransportKind.STREAMABLE_HTTP)
            self.sessions.attach(session.id, StreamableHTTPTransport())
            created = True
        else:
            found = self.sessions.get(session_id)
            if found is None or found.transport_kind is not TransportKind.STREAMABLE_HTTP:
                return self._session_not_found()
            session = found

        headers = {MCP_SESSION_ID_HEADER: session.id}
        if not isinstance(message, JSONRPCRequest):
            self.runner.spawn(session, message)
            return Response(status_code=HTTPStatus.ACCEPTED, headers=headers)

        transport = session.transport
        if not isinstance(transport, StreamableHTTPTransport):
            return self._session_not_found()
        try:
            events = transport.open_request_stream(message.id)
        except ProtocolError as exc:
            return self._error(HTTPStatus.BAD_REQUEST, exc.error.message, code=exc.error.code, request_id=message.id)
        except TransportClosedError:
            return self._session_not_found()

        self.runner.spawn(session, message)
        first = await self._first_event(events)
        if first is None:
            await events.aclose()
            if created or not session.is_live:
                return self._session_not_found()
            # Cancelled by the client; there is no response to return.
            return Response(status_code=HTTPStatus.ACCEPTED, headers=headers)

        if first.is_final:
            await events.aclose()
            if created and isinstance(first.message, JSONRPCErrorResponse):
                # A failed handshake leaves nothing worth keeping.
                await self.sessions.terminate(session.id)
                headers = {}
            return JSONResponse(dump_message(first.message), headers=headers)

        return EventSourceResponse(
            self._event_stream(first, events),
            headers={**headers, "Cache-Control": "no-cache, no-transform"},
            ping=self.ping_interval,
        )

    async def _first_event(self, events: MemoryObjectReceiveStream[SinkEvent]) -> SinkEvent | None:
        """Wait for the first event worth replying with.

        With `json_response` set, intermediate messages are skipped and only
        the final response counts.
        """
        try:
            event = await events.receive()
            while self.json_response and not event.is_final:
                event = await events.receive()
        except anyio.EndOfStream:
            return None
        return event

    async def _event_stream(
        self,
        first: SinkEvent,
        events: MemoryObjectReceiveStream[SinkEvent],
    ) -> AsyncIterator[dict[str, Any]]:
        yield first.to_sse()
        async with events:
            async for event in events:
                yield event.to_sse()

    async def _handle_delete(self, request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER)
        if not session_id:
            return self._error(HTTPStatus.BAD_REQUEST, "Bad Request: Mcp-Session-Id header is required")
        session = self.sessions.get(session_id)
        if session is None or session.transport_kind is not TransportKind.STREAMABLE_HTTP:
            return self._session_not_found()
        await self.sessions.terminate(session_id)
        return Response(status_code=HTTPStatus.OK)

    def _session_not_found(self) -> Response:
        return self._error(HTTPStatus.NOT_FOUND, "Session not found", code=SESSION_NOT_FOUND)

    @staticmethod
    def _error(
        status: HTTPStatus,
        message: str,
        *,
        code: int = INVALID_REQUEST,
        request_id: RequestId | None = None,
        headers: dict[str, str] | None = None,
    ) -> Response:
        body = error_response(request_id, code, message)
        return JSONResponse(dump_message(body), status_code=status, headers=headers)
