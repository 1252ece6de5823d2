"""Session state and the store that owns it.

The store is the only structure shared between sessions. Everything else a
session touches (its tools, its action surface, its transport) belongs to it
alone.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Collection, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

import anyio

from toolgate.server.transport.base import Transport, TransportKind
from toolgate.shared.exceptions import SessionConflictError, SessionNotFoundError, SessionStateError
from toolgate.tools.base import ToolCapability, ToolDescriptor
from toolgate.tools.browser import BrowserActions, DetachedBrowser
from toolgate.tools.registry import ToolRegistry, filter_tools
from toolgate.types.common import Implementation
from toolgate.types.json_rpc import RequestId

logger = logging.getLogger(__name__)

ACTIONS_CLOSE_TIMEOUT = 5.0


def new_session_id() -> str:
    """128 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(16)


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Session:
    """One client's conversation with the server."""

    id: str
    transport_kind: TransportKind
    tools: Mapping[str, ToolDescriptor[Any]]
    actions: BrowserActions = field(repr=False)
    status: SessionStatus = SessionStatus.INITIALIZING
    transport: Transport | None = field(default=None, repr=False)
    client_info: Implementation | None = None
    protocol_version: str | None = None
    # Grows for the life of the session; an id stays claimed after its request ends.
    _seen_request_ids: set[RequestId] = field(default_factory=set, repr=False)
    _request_scopes: dict[RequestId, anyio.CancelScope] = field(default_factory=dict, repr=False)

    @property
    def is_live(self) -> bool:
        return self.status in (SessionStatus.INITIALIZING, SessionStatus.ACTIVE)

    def activate(self) -> None:
        if self.status is not SessionStatus.INITIALIZING:
            raise SessionStateError(f"Cannot activate session {self.id} in state {self.status.value}")
        self.status = SessionStatus.ACTIVE

    def claim_request_id(self, request_id: RequestId) -> bool:
        """Record a request id; returns False if the session has seen it before."""
        if request_id in self._seen_request_ids:
            return False
        self._seen_request_ids.add(request_id)
        return True

    @contextmanager
    def request_scope(self, request_id: RequestId) -> Iterator[anyio.CancelScope]:
        """Run the body under a cancel scope reachable through `cancel_request`.

        A second scope for an id that is still in flight is not registered, so
        it cannot shadow the first.
        """
        scope = anyio.CancelScope()
        registered = self._request_scopes.setdefault(request_id, scope) is scope
        try:
            with scope:
                yield scope
        finally:
            if registered:
                del self._request_scopes[request_id]

    def cancel_request(self, request_id: RequestId) -> bool:
        scope = self._request_scopes.get(request_id)
        if scope is None:
            return False
        scope.cancel()
        return True

    def cancel_requests(self) -> None:
        for scope in self._request_scopes.values():
            scope.cancel()

    @property
    def in_flight(self) -> int:
        return len(self._request_scopes)


class SessionStore:
    """Creates, finds and evicts sessions.

    Every mutation goes through `create`, `attach` and `terminate`; the
    underlying table is never handed out.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        capabilities: Collection[ToolCapability] | None = None,
        actions_factory: Callable[[], BrowserActions] = DetachedBrowser,
        id_generator: Callable[[], str] = new_session_id,
    ) -> None:
        self._registry = registry
        self._capabilities = None if capabilities is None else frozenset(capabilities)
        self._actions_factory = actions_factory
        self._id_generator = id_generator
        self._sessions: dict[str, Session] = {}

    def create(self, transport_kind: TransportKind) -> Session:
        session_id = self._id_generator()
        while session_id in self._sessions:
            session_id = self._id_generator()

        visible = filter_tools(self._registry, self._capabilities)
        session = Session(
            id=session_id,
            transport_kind=transport_kind,
            tools=MappingProxyType({tool.name: tool for tool in visible}),
            actions=self._actions_factory(),
        )
        self._sessions[session_id] = session
        logger.info("Created %s session %s with %d tools", transport_kind.value, session_id, len(visible))
        return session

    def attach(self, session_id: str, transport: Transport) -> Session:
        session = self.lookup(session_id)
        if session.transport is not None:
            raise SessionConflictError(f"Session {session_id} already has a transport")
        if transport.session_id is not None:
            raise SessionConflictError(f"Transport is already bound to session {transport.session_id}")

        transport.session_id = session_id
        session.transport = transport

        async def on_close() -> None:
            await self._release(session)

        transport.on_close(on_close)
        return session

    def lookup(self, session_id: str) -> Session:
        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def get(self, session_id: str) -> Session | None:
        """Return the live session with this id, or None."""
        session = self._sessions.get(session_id)
        if session is None or not session.is_live:
            return None
        return session

    async def terminate(self, session_id: str) -> None:
        """Close a session. Unknown and already closing sessions are left alone."""
        session = self._sessions.get(session_id)
        if session is None or not session.is_live:
            return

        logger.info("Terminating session %s", session_id)
        session.status = SessionStatus.CLOSING
        session.cancel_requests()
        if session.transport is not None:
            # The transport's close callback evicts the session.
            await session.transport.close()
        else:
            await self._release(session)

    async def terminate_all(self) -> None:
        session_ids = self.ids()
        if not session_ids:
            return
        logger.info("Terminating %d sessions", len(session_ids))
        async with anyio.create_task_group() as tg:
            for session_id in session_ids:
                tg.start_soon(self.terminate, session_id)

    def ids(self) -> list[str]:
        return [session.id for session in self._sessions.values() if session.is_live]

    async def _release(self, session: Session) -> None:
        if self._sessions.get(session.id) is not session:
            return
        if session.is_live:
            # The transport went away on its own.
            session.status = SessionStatus.CLOSING
            session.cancel_requests()
        del self._sessions[session.id]
        session.status = SessionStatus.CLOSED
        logger.info("Session %s closed", session.id)

        with anyio.move_on_after(ACTIONS_CLOSE_TIMEOUT, shield=True):
            try:
                await session.actions.aclose()
            except Exception:
                logger.exception("Failed to close actions for session %s", session.id)

    def __len__(self) -> int:
        return len(self.ids())

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and self.get(session_id) is not None
