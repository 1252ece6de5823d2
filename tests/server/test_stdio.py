import io
import json
from collections.abc import AsyncIterator
from typing import Any

import anyio
import pytest

from toolgate.server.dispatcher import Dispatcher
from toolgate.server.runner import ServerRunner
from toolgate.server.session import SessionStore
from toolgate.server.transport.stdio import _NonClosingTextIOWrapper, run_stdio
from toolgate.server.watchdog import ExitWatchdog
from toolgate.tools.registry import ToolRegistry
from toolgate.types.base import LATEST_PROTOCOL_VERSION
from toolgate.types.json_rpc import PARSE_ERROR

pytestmark = pytest.mark.anyio


def _init_request(request_id: int = 1) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "initialize",
        "params": {
            "protocolVersion": LATEST_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0"},
        },
    }


async def _wait_for_lines(buffer: io.StringIO, count: int) -> None:
    with anyio.fail_after(5):
        while len(buffer.getvalue().splitlines()) < count:
            await anyio.sleep(0.01)


async def _serve(registry: ToolRegistry, lines: list[str], expected_replies: int) -> tuple[list[dict[str, Any]], ServerRunner]:
    buffer = io.StringIO()
    runner = ServerRunner(SessionStore(registry), Dispatcher())
    watchdog = ExitWatchdog(runner.sessions, hard_exit=lambda code: None)

    async def stdin() -> AsyncIterator[str]:
        for line in lines:
            yield line + "\n"
        # Hold stdin open until every reply is out, then hit EOF.
        await _wait_for_lines(buffer, expected_replies)

    async with runner.run():
        await run_stdio(runner, watchdog, stdin=stdin(), stdout=anyio.wrap_file(buffer), handle_signals=False)

    return [json.loads(line) for line in buffer.getvalue().splitlines()], runner


async def test_stdio_round_trip(registry: ToolRegistry):
    lines = [
        json.dumps(_init_request()),
        json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        json.dumps({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
    ]
    replies, _ = await _serve(registry, lines, expected_replies=2)

    by_id = {reply["id"]: reply for reply in replies}
    assert by_id[1]["result"]["protocolVersion"] == LATEST_PROTOCOL_VERSION
    assert by_id[2] == {"jsonrpc": "2.0", "id": 2, "result": {}}


async def test_invalid_lines_get_an_error(registry: ToolRegistry):
    replies, _ = await _serve(registry, ["", "{not json", "   "], expected_replies=1)

    [reply] = replies
    assert reply["id"] is None
    assert reply["error"]["code"] == PARSE_ERROR


async def test_eof_terminates_the_session(registry: ToolRegistry):
    replies, runner = await _serve(registry, [json.dumps(_init_request())], expected_replies=1)
    assert len(replies) == 1
    assert len(runner.sessions) == 0


def test_wrapper_leaves_the_stream_open():
    raw = io.BytesIO()
    wrapper = _NonClosingTextIOWrapper(raw, encoding="utf-8")
    wrapper.write("hello\n")
    wrapper.close()
    assert not raw.closed
    assert raw.getvalue() == b"hello\n"
