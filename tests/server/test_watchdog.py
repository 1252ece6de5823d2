import threading

import anyio
import pytest

from toolgate.server import session as session_module
from toolgate.server.session import SessionStatus, SessionStore
from toolgate.server.transport.base import Transport, TransportKind
from toolgate.server.watchdog import ExitWatchdog
from toolgate.tools.browser import DetachedBrowser
from toolgate.tools.registry import ToolRegistry
from toolgate.types.json_rpc import JSONRPCMessage, RequestId

pytestmark = pytest.mark.anyio


class QuietTransport(Transport):
    kind = TransportKind.STREAMABLE_HTTP

    async def send(self, message: JSONRPCMessage, *, related_request_id: RequestId | None = None) -> None:
        pass

    async def _release(self) -> None:
        pass


class HangingTransport(QuietTransport):
    close_timeout = 0.5

    async def _release(self) -> None:
        await anyio.sleep_forever()


class HangingBrowser(DetachedBrowser):
    async def aclose(self) -> None:
        await anyio.sleep_forever()


class ExitRecorder:
    """Stands in for os._exit; records the code and lets tests wait for it."""

    def __init__(self) -> None:
        self.codes: list[int] = []
        self.called = threading.Event()

    def __call__(self, code: int) -> None:
        self.codes.append(code)
        self.called.set()


async def test_shutdown_drains_every_session(registry: ToolRegistry):
    store = SessionStore(registry)
    sessions = [store.create(TransportKind.STREAMABLE_HTTP) for _ in range(3)]
    for session in sessions:
        store.attach(session.id, QuietTransport())
    exits = ExitRecorder()
    watchdog = ExitWatchdog(store, hard_exit=exits)

    await watchdog.shutdown()

    assert watchdog.shutting_down
    assert not watchdog.armed
    assert len(store) == 0
    assert all(session.status is SessionStatus.CLOSED for session in sessions)
    assert exits.codes == []


async def test_shutdown_runs_once(registry: ToolRegistry):
    store = SessionStore(registry)
    session = store.create(TransportKind.STREAMABLE_HTTP)
    store.attach(session.id, HangingTransport())
    watchdog = ExitWatchdog(store, hard_exit=ExitRecorder())

    async with anyio.create_task_group() as tg:
        tg.start_soon(watchdog.shutdown)
        tg.start_soon(watchdog.shutdown)

    assert session.status is SessionStatus.CLOSED
    await watchdog.shutdown()


async def test_hung_transport_close_is_bounded(registry: ToolRegistry):
    store = SessionStore(registry)
    session = store.create(TransportKind.STREAMABLE_HTTP)
    transport = HangingTransport()
    store.attach(session.id, transport)

    with anyio.fail_after(5):
        await store.terminate(session.id)

    assert transport.closed
    assert session.status is SessionStatus.CLOSED


async def test_hung_actions_close_is_bounded(registry: ToolRegistry, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(session_module, "ACTIONS_CLOSE_TIMEOUT", 0.05)
    store = SessionStore(registry, actions_factory=HangingBrowser)
    session = store.create(TransportKind.STDIO)

    with anyio.fail_after(5):
        await ExitWatchdog(store, hard_exit=ExitRecorder()).shutdown()

    assert session.status is SessionStatus.CLOSED


async def test_hard_exit_when_shutdown_hangs(registry: ToolRegistry):
    """If the drain outlives the timeout, the process is killed with status 1."""
    store = SessionStore(registry)
    session = store.create(TransportKind.STREAMABLE_HTTP)
    store.attach(session.id, HangingTransport())
    exits = ExitRecorder()
    watchdog = ExitWatchdog(store, timeout=0.05, hard_exit=exits)

    await watchdog.shutdown()

    assert exits.called.is_set()
    assert exits.codes == [1]


async def test_armed_timer_fires_without_shutdown(registry: ToolRegistry):
    exits = ExitRecorder()
    watchdog = ExitWatchdog(SessionStore(registry), timeout=0.01, hard_exit=exits)

    assert watchdog.arm()
    assert not watchdog.arm()
    assert watchdog.shutting_down
    assert await anyio.to_thread.run_sync(exits.called.wait, 5)
    assert exits.codes == [1]


async def test_disarm_stops_the_timer(registry: ToolRegistry):
    exits = ExitRecorder()
    watchdog = ExitWatchdog(SessionStore(registry), timeout=0.05, hard_exit=exits)
    watchdog.arm()
    watchdog.disarm()

    await anyio.sleep(0.2)
    assert exits.codes == []
    assert not watchdog.armed


async def test_timer_armed_by_signal_survives_shutdown(registry: ToolRegistry):
    exits = ExitRecorder()
    watchdog = ExitWatchdog(SessionStore(registry), timeout=60, hard_exit=exits)
    watchdog.arm()
    try:
        await watchdog.shutdown()
        assert watchdog.armed
    finally:
        watchdog.disarm()


async def test_app_lifespan_shuts_down_sessions(app, client):
    response = await client.post(
        "/mcp",
        json={
            "jsonrpc": "2.0",
            "id": 1,
            "method": "initialize",
            "params": {"protocolVersion": "2025-06-18", "capabilities": {}, "clientInfo": {"name": "t", "version": "1"}},
        },
    )
    session = app.state.sessions.get(response.headers["mcp-session-id"])
    assert session is not None

    await app.state.watchdog.shutdown()

    assert not session.is_live
    assert len(app.state.sessions) == 0
    assert (await client.get("/health")).status_code == 503
