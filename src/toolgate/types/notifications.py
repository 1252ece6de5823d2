from typing import Annotated

from pydantic import Field

from toolgate.types.base import NotificationParams, ProgressToken
from toolgate.types.json_rpc import RequestId


class ProgressNotificationParams(NotificationParams):
    """Parameters for a notifications/progress notification."""

    progress_token: Annotated[ProgressToken, Field(alias="progressToken")]
    progress: float
    total: float | None = None
    message: str | None = None


class CancelledNotificationParams(NotificationParams):
    """Parameters for a notifications/cancelled notification."""

    request_id: Annotated[RequestId, Field(alias="requestId")]
    reason: str | None = None
