"""Assistant gateway core: run polling chat proxy and file ingestion pipeline."""

from .errors import (
    EmptyResultError,
    GatewayError,
    NoResponseFound,
    NotFoundError,
    RemoteServiceError,
    RemoteTerminalFailure,
    RunTimeoutError,
    TotalBatchFailure,
    ValidationError,
)
from .gateway import AssistantGateway, BatchUploadResult, SingleUploadResult
from .run_poller import ChatReply, RunPoller, RunStatus

__all__ = [
    "AssistantGateway",
    "BatchUploadResult",
    "ChatReply",
    "EmptyResultError",
    "GatewayError",
    "NoResponseFound",
    "NotFoundError",
    "RemoteServiceError",
    "RemoteTerminalFailure",
    "RunPoller",
    "RunStatus",
    "RunTimeoutError",
    "SingleUploadResult",
    "TotalBatchFailure",
    "ValidationError",
]
