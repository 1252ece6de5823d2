"""Pieces every transport adapter shares: the handle contract and frame decoding."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

import anyio
from pydantic import ValidationError

from toolgate.shared.exceptions import ProtocolError
from toolgate.types.json_rpc import (
    INVALID_REQUEST,
    JSONRPC_VERSION,
    PARSE_ERROR,
    JSONRPCMessage,
    JSONRPCMessageAdapter,
    RequestId,
    dump_message,
)

logger = logging.getLogger(__name__)

CloseCallback = Callable[[], Awaitable[None]]


class TransportKind(str, Enum):
    STREAMABLE_HTTP = "streamable-http"
    EVENT_STREAM = "event-stream"
    STDIO = "stdio"


@dataclass
class SinkEvent:
    """A message on its way out, as handed to the wire-facing side of a transport."""

    message: JSONRPCMessage
    is_final: bool = False

    def to_sse(self) -> dict[str, Any]:
        """Render as an sse-starlette event dict."""
        return {"event": "message", "data": json.dumps(dump_message(self.message))}


class Transport(ABC):
    """A live connection handle owned by exactly one session.

    Closing is idempotent. Close callbacks run once, after the adapter has
    released its resources, whether the close was asked for by the session
    store or caused by the peer going away.
    """

    kind: ClassVar[TransportKind]
    close_timeout: ClassVar[float] = 5.0

    def __init__(self) -> None:
        self.session_id: str | None = None
        self._closed = False
        self._close_callbacks: list[CloseCallback] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def on_close(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    @abstractmethod
    async def send(self, message: JSONRPCMessage, *, related_request_id: RequestId | None = None) -> None:
        """Deliver a message to the peer.

        Raises:
            TransportClosedError: the message can no longer be delivered
        """

    def request_finished(self, request_id: RequestId) -> None:
        """Called when a request completes without a response being sent."""

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with anyio.move_on_after(self.close_timeout, shield=True) as scope:
            await self._release()
        if scope.cancelled_caught:
            logger.warning("Releasing transport for session %s timed out", self.session_id)

        callbacks, self._close_callbacks = self._close_callbacks, []
        with anyio.CancelScope(shield=True):
            for callback in callbacks:
                try:
                    await callback()
                except Exception:
                    logger.exception("Close callback failed for session %s", self.session_id)

    @abstractmethod
    async def _release(self) -> None:
        """Free the underlying connection resources."""


def decode_message(body: bytes | str) -> JSONRPCMessage:
    """Decode one JSON-RPC frame.

    Raises:
        ProtocolError: PARSE_ERROR for malformed JSON, INVALID_REQUEST for JSON
            that is not a single JSON-RPC 2.0 message
    """
    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise ProtocolError.from_code(PARSE_ERROR, f"Parse error: {exc}") from exc

    if isinstance(payload, list):
        raise ProtocolError.from_code(INVALID_REQUEST, "Invalid Request: batch messages are not supported")
    if not isinstance(payload, dict):
        raise ProtocolError.from_code(INVALID_REQUEST, "Invalid Request: expected a JSON object")
    if payload.get("jsonrpc") != JSONRPC_VERSION:
        raise ProtocolError.from_code(INVALID_REQUEST, 'Invalid Request: "jsonrpc" must be "2.0"')

    try:
        return JSONRPCMessageAdapter.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError.from_code(INVALID_REQUEST, f"Invalid Request: {exc.errors()[0]['msg']}") from exc
