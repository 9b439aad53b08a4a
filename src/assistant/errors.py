"""Error taxonomy for the gateway core.

Every failure leaving the core is a :class:`GatewayError` carrying a stable
``kind`` string and a human readable ``detail``. The HTTP layer renders them
as ``{"kind": ..., "detail": ...}`` with ``status_code``.
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    kind = "gateway_error"
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "detail": self.detail}


class ValidationError(GatewayError):
    kind = "validation_error"
    status_code = 400


class NotFoundError(GatewayError):
    kind = "not_found"
    status_code = 404


class EmptyResultError(GatewayError):
    kind = "no_compatible_files"
    status_code = 422


class NoResponseFound(NotFoundError):
    """Run completed but the thread holds no assistant message for it."""

    kind = "no_response_found"
    status_code = 502


class RemoteTerminalFailure(GatewayError):
    kind = "remote_run_failed"
    status_code = 502

    def __init__(self, status: str, last_error: Optional[str] = None) -> None:
        detail = f"Run ended with status '{status}'"
        if last_error:
            detail = f"{detail}: {last_error}"
        super().__init__(detail)
        self.status = status
        self.last_error = last_error

    def to_dict(self) -> dict[str, str]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class RunTimeoutError(GatewayError):
    kind = "run_timed_out"
    status_code = 504

    def __init__(self, attempts: int, interval: float) -> None:
        super().__init__(f"Run did not finish after {attempts} polls at {interval:g}s intervals")
        self.attempts = attempts


class TotalBatchFailure(GatewayError):
    kind = "all_uploads_failed"
    status_code = 502


class RemoteServiceError(GatewayError):
    """A call to the remote assistant service failed at the transport or API level."""

    kind = "remote_service_error"
    status_code = 502
