"""Stdio transport: one session over stdin/stdout, newline-delimited JSON-RPC.

stdout carries protocol frames only; logging goes to stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import AsyncIterable
from io import TextIOWrapper
from typing import BinaryIO

import anyio

from toolgate.server.runner import ServerRunner
from toolgate.server.transport.base import Transport, TransportKind, decode_message
from toolgate.server.watchdog import ExitWatchdog
from toolgate.shared.exceptions import ProtocolError, TransportClosedError
from toolgate.types.json_rpc import JSONRPCErrorResponse, JSONRPCMessage, RequestId, dump_message

logger = logging.getLogger(__name__)


class _NonClosingTextIOWrapper(TextIOWrapper):
    """Text wrapper that never closes the underlying binary stream."""

    def close(self) -> None:
        if self.closed:
            return
        if self.writable():
            self.flush()


def _wrap_process_stdio(binary_stream: BinaryIO) -> anyio.AsyncFile[str]:
    return anyio.wrap_file(_NonClosingTextIOWrapper(binary_stream, encoding="utf-8"))


class StdioTransport(Transport):
    kind = TransportKind.STDIO

    def __init__(self, stdout: anyio.AsyncFile[str]) -> None:
        super().__init__()
        self._stdout = stdout
        self._write_lock = anyio.Lock()

    async def send(self, message: JSONRPCMessage, *, related_request_id: RequestId | None = None) -> None:
        if self.closed:
            raise TransportClosedError("stdout is closed")
        line = json.dumps(dump_message(message))
        async with self._write_lock:
            try:
                await self._stdout.write(line + "\n")
                await self._stdout.flush()
            except (OSError, ValueError) as exc:
                raise TransportClosedError(f"Could not write to stdout: {exc}") from exc

    async def _release(self) -> None:
        pass


async def run_stdio(
    runner: ServerRunner,
    watchdog: ExitWatchdog,
    *,
    stdin: AsyncIterable[str] | None = None,
    stdout: anyio.AsyncFile[str] | None = None,
    handle_signals: bool = True,
) -> None:
    """Serve a single session until stdin reaches EOF or a signal arrives.

    Must be called inside `runner.run()`.
    """
    if stdin is None:
        stdin = _wrap_process_stdio(sys.stdin.buffer)
    if stdout is None:
        stdout = _wrap_process_stdio(sys.stdout.buffer)

    sessions = runner.sessions
    session = sessions.create(TransportKind.STDIO)
    transport = StdioTransport(stdout)
    sessions.attach(session.id, transport)

    async with anyio.create_task_group() as tg:
        if handle_signals:
            tg.start_soon(watchdog.watch_signals)

        async for raw_line in stdin:
            line = raw_line.strip()
            if not line:
                continue
            try:
                message = decode_message(line)
            except ProtocolError as exc:
                logger.debug("Rejected frame: %s", exc)
                try:
                    await transport.send(JSONRPCErrorResponse(id=None, error=exc.error))
                except TransportClosedError:
                    break
                continue
            runner.spawn(session, message)

        logger.info("stdin closed, shutting down")
        tg.cancel_scope.cancel()

    await watchdog.shutdown()
