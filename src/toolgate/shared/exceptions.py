from toolgate.types.json_rpc import ErrorData


class ToolgateError(Exception):
    """Base class for errors raised by toolgate."""


class ProtocolError(ToolgateError):
    """A failure that maps onto a JSON-RPC error object.

    Raised while decoding frames or handling protocol methods. It wraps the
    ErrorData that is sent back to the peer.

    Attributes:
        error: The ErrorData describing the failure
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error

    @classmethod
    def from_code(cls, code: int, message: str) -> "ProtocolError":
        return cls(ErrorData(code=code, message=message))


class SessionError(ToolgateError):
    """Base class for session store failures."""


class SessionNotFoundError(SessionError):
    """No live session carries the given identifier."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionConflictError(SessionError):
    """A transport is already bound to the session, or to another session."""


class SessionStateError(SessionError):
    """An illegal lifecycle transition was requested."""


class TransportClosedError(ToolgateError):
    """The transport can no longer deliver messages to its peer."""


class ToolError(ToolgateError):
    """Raised by tool executors for failures the calling agent should see."""
