"""ServerRunner - protocol lifecycle on top of the Dispatcher.

The runner owns the handshake and the lifecycle methods (`initialize`,
`ping`, the client notifications) and hands everything else to the
Dispatcher. Transports feed it decoded messages through `spawn`; replies go
back out through the session's bound transport.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
from anyio.abc import TaskGroup
from pydantic import BaseModel, ValidationError

from toolgate import __version__
from toolgate.server.dispatcher import Dispatcher
from toolgate.server.session import Session, SessionStatus, SessionStore
from toolgate.shared.exceptions import ProtocolError, TransportClosedError
from toolgate.types.base import LATEST_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS, EmptyResult
from toolgate.types.common import Implementation, ServerCapabilities, ToolsCapability
from toolgate.types.initialize import InitializeRequestParams, InitializeResult
from toolgate.types.json_rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    NOT_INITIALIZED,
    JSONRPCErrorResponse,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCResultResponse,
    RequestId,
    error_response,
)
from toolgate.types.notifications import CancelledNotificationParams

logger = logging.getLogger(__name__)


class ServerRunner:
    """Handles messages for every session and runs them concurrently.

    Usage:
        runner = ServerRunner(sessions, Dispatcher())
        async with runner.run():
            runner.spawn(session, message)
    """

    def __init__(
        self,
        sessions: SessionStore,
        dispatcher: Dispatcher,
        *,
        server_info: Implementation | None = None,
        instructions: str | None = None,
    ) -> None:
        self.sessions = sessions
        self.dispatcher = dispatcher
        self.server_info = server_info or Implementation(name="toolgate", version=__version__)
        self.instructions = instructions
        self._task_group: TaskGroup | None = None
        self._has_started = False

    @property
    def running(self) -> bool:
        return self._task_group is not None

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Provide the task group message handlers run in.

        Can only be entered once per instance.
        """
        if self._has_started:
            raise RuntimeError(
                "ServerRunner .run() can only be called once per instance. Create a new instance if you need to run again."
            )
        self._has_started = True

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.info("Server runner started")
            try:
                yield
            finally:
                logger.info("Server runner shutting down")
                tg.cancel_scope.cancel()
                self._task_group = None

    def spawn(self, session: Session, message: JSONRPCMessage) -> None:
        """Process a message in the background."""
        if self._task_group is None:
            raise RuntimeError("Task group is not initialized. Make sure to use run().")
        self._task_group.start_soon(self.process, session, message)

    async def process(self, session: Session, message: JSONRPCMessage) -> None:
        """Handle one message and deliver its response, if any."""
        if not isinstance(message, JSONRPCRequest):
            await self.handle_message(session, message)
            return

        response: JSONRPCResponse | None = None
        with session.request_scope(message.id):
            response = await self.handle_message(session, message)

        if response is None:
            logger.debug("Request %s on session %s was cancelled", message.id, session.id)
            if session.transport is not None:
                session.transport.request_finished(message.id)
            return
        await self._deliver(session, response, related_request_id=message.id)

    async def handle_message(self, session: Session, message: JSONRPCMessage) -> JSONRPCResponse | None:
        """Handle one message; returns the response to send, if there is one.

        Never raises for anything the peer sent. Unexpected failures become an
        INTERNAL_ERROR response.
        """
        match message:
            case JSONRPCRequest():
                return await self._handle_request(session, message)
            case JSONRPCNotification():
                try:
                    self._handle_notification(session, message)
                except Exception:
                    logger.exception("Notification handler error for %s", message.method)
                return None
            case _:
                # The server never sends requests, so there is nothing to correlate.
                logger.debug("Ignoring %s on session %s", type(message).__name__, session.id)
                return None

    async def _handle_request(self, session: Session, request: JSONRPCRequest) -> JSONRPCResponse:
        if not session.claim_request_id(request.id):
            return error_response(request.id, INVALID_REQUEST, f"Duplicate request id: {request.id}")

        result: BaseModel
        try:
            if request.method == "initialize":
                result = self._initialize(session, request)
            elif request.method == "ping":
                result = EmptyResult()
            elif session.status is not SessionStatus.ACTIVE:
                raise ProtocolError.from_code(NOT_INITIALIZED, "Session not initialized")
            else:
                result = await self.dispatcher.dispatch(session, request)
        except ProtocolError as exc:
            return JSONRPCErrorResponse(id=request.id, error=exc.error)
        except Exception:
            logger.exception("Handler error for %s", request.method)
            return error_response(request.id, INTERNAL_ERROR, "Internal error")

        return JSONRPCResultResponse(id=request.id, result=result.model_dump(by_alias=True, exclude_none=True))

    def _initialize(self, session: Session, request: JSONRPCRequest) -> InitializeResult:
        if session.status is not SessionStatus.INITIALIZING:
            raise ProtocolError.from_code(INVALID_REQUEST, "Session is already initialized")
        try:
            params = InitializeRequestParams.model_validate(request.params or {})
        except ValidationError as exc:
            raise ProtocolError.from_code(INVALID_PARAMS, f"Invalid initialize params: {exc.errors()[0]['msg']}") from exc

        if params.protocol_version in SUPPORTED_PROTOCOL_VERSIONS:
            protocol_version = params.protocol_version
        else:
            protocol_version = LATEST_PROTOCOL_VERSION

        session.client_info = params.client_info
        session.protocol_version = protocol_version
        session.activate()
        logger.info(
            "Session %s initialized by %s %s (protocol %s)",
            session.id,
            params.client_info.name,
            params.client_info.version,
            protocol_version,
        )

        return InitializeResult(
            protocol_version=protocol_version,
            capabilities=ServerCapabilities(tools=ToolsCapability(list_changed=False)),
            server_info=self.server_info,
            instructions=self.instructions,
        )

    def _handle_notification(self, session: Session, notification: JSONRPCNotification) -> None:
        match notification.method:
            case "notifications/initialized":
                logger.debug("Client confirmed initialization of session %s", session.id)
            case "notifications/cancelled":
                try:
                    params = CancelledNotificationParams.model_validate(notification.params or {})
                except ValidationError:
                    logger.warning("Malformed cancellation on session %s", session.id)
                    return
                if session.cancel_request(params.request_id):
                    logger.info("Cancelled request %s on session %s", params.request_id, session.id)
            case _:
                logger.debug("Ignoring notification %s", notification.method)

    async def _deliver(
        self,
        session: Session,
        message: JSONRPCMessage,
        *,
        related_request_id: RequestId | None = None,
    ) -> None:
        transport = session.transport
        if transport is None:
            logger.warning("Dropping response for session %s: no transport bound", session.id)
            return
        try:
            await transport.send(message, related_request_id=related_request_id)
        except TransportClosedError:
            logger.info("Transport for session %s is gone, terminating", session.id)
            await self.sessions.terminate(session.id)
