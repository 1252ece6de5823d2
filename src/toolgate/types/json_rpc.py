"""Minimum amount of base models to represent the JSON-RPC messages used by toolgate."""

from typing import Annotated, Any, Final, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter

JSONRPC_VERSION: Final[str] = "2.0"

# Standard JSON-RPC error codes
PARSE_ERROR: Final[int] = -32700
INVALID_REQUEST: Final[int] = -32600
METHOD_NOT_FOUND: Final[int] = -32601
INVALID_PARAMS: Final[int] = -32602
INTERNAL_ERROR: Final[int] = -32603

# Server errors, from the implementation-defined range (-32000 to -32099)
SESSION_NOT_FOUND: Final[int] = -32001
NOT_INITIALIZED: Final[int] = -32002

RequestId = Annotated[int, Field(strict=True)] | str


class JSONRPCBase(BaseModel):
    """Base class for all JSON-RPC messages."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION


class JSONRPCRequest(JSONRPCBase):
    """A request that expects a response."""

    id: RequestId
    method: str
    params: dict[str, Any] | None = None


class JSONRPCNotification(JSONRPCBase):
    """A notification which does not expect a response."""

    method: str
    params: dict[str, Any] | None = None


class ErrorData(BaseModel):
    """Error information in a JSON-RPC error response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str
    data: Any | None = None


class JSONRPCResultResponse(JSONRPCBase):
    """A successful (non-error) response to a request."""

    id: RequestId
    result: dict[str, Any]


class JSONRPCErrorResponse(JSONRPCBase):
    """A response to a request that indicates an error occurred."""

    id: RequestId | None = None
    error: ErrorData


JSONRPCResponse = JSONRPCResultResponse | JSONRPCErrorResponse


def _message_kind(value: Any) -> str | None:
    """Tell the message variants apart by the members they carry."""
    if not isinstance(value, dict):
        for model, kind in _KIND_BY_MODEL:
            if isinstance(value, model):
                return kind
        return None
    members = [name for name in ("method", "result", "error") if name in value]
    if len(members) != 1:
        # A frame carries exactly one of method, result or error.
        return None
    if members[0] == "method":
        return "request" if "id" in value else "notification"
    return members[0]


_KIND_BY_MODEL: tuple[tuple[type[BaseModel], str], ...] = (
    (JSONRPCRequest, "request"),
    (JSONRPCNotification, "notification"),
    (JSONRPCErrorResponse, "error"),
    (JSONRPCResultResponse, "result"),
)

JSONRPCMessage = Annotated[
    Union[
        Annotated[JSONRPCRequest, Tag("request")],
        Annotated[JSONRPCNotification, Tag("notification")],
        Annotated[JSONRPCResultResponse, Tag("result")],
        Annotated[JSONRPCErrorResponse, Tag("error")],
    ],
    Discriminator(_message_kind),
]

JSONRPCMessageAdapter: TypeAdapter[JSONRPCMessage] = TypeAdapter(JSONRPCMessage)


def error_response(request_id: RequestId | None, code: int, message: str, data: Any | None = None) -> JSONRPCErrorResponse:
    """Build an error response for the given request id."""
    return JSONRPCErrorResponse(id=request_id, error=ErrorData(code=code, message=message, data=data))


def dump_message(message: JSONRPCMessage) -> dict[str, Any]:
    """Serialize a message for the wire.

    Unset optional members are left out, except the id of an error response,
    which JSON-RPC requires even when it is null.
    """
    payload = message.model_dump(by_alias=True, exclude_none=True)
    if isinstance(message, JSONRPCErrorResponse):
        payload["id"] = message.id
    return payload
