"""Error taxonomy for SwitchBot Link."""
from __future__ import annotations

from enum import Enum

# Device status codes reported by the cloud API and their meaning
STATUS_CODE_MESSAGES = {
    151: "Device type does not support this command",
    152: "Device not found",
    160: "Command is not supported",
    161: "Device is offline",
    171: "Hub device is offline",
    190: "Device internal error due to device states not synchronized with server, or command format is invalid",
}

OFFLINE_CODES = frozenset({161, 171})


def describe_status_code(code: int | None) -> str:
    """Return a readable description for a device or HTTP status code."""
    if code is None:
        return "Unknown error"
    if code in STATUS_CODE_MESSAGES:
        return STATUS_CODE_MESSAGES[code]
    if 400 <= code < 500:
        return f"Client error (HTTP {code})"
    if 500 <= code < 600:
        return f"Server error (HTTP {code})"
    return f"Unknown status code {code}"


def is_transient_code(code: int | None) -> bool:
    return code is not None and 500 <= code < 600


class SwitchBotError(Exception):
    """Base class for all SwitchBot Link errors."""


# Transport adapter errors. These never leave the retry controller.


class TransportError(SwitchBotError):
    """Raised by a transport adapter when a call fails."""

    transient = True


class TransportTimeout(TransportError):
    """Scan window or request timed out."""


class TransportUnreachable(TransportError):
    """Adapter could not reach the device (no advertisement, network error, radio busy)."""


class TransportRejected(TransportError):
    """The remote side answered with a failure status."""

    def __init__(self, code: int, message: str | None = None):
        self.code = code
        self.message = message or describe_status_code(code)
        super().__init__(f"{self.message} (code={code})")

    @property
    def transient(self) -> bool:  # type: ignore[override]
        return is_transient_code(self.code)


class TransportProtocolError(TransportError):
    """The adapter received something it could not interpret."""

    transient = False


# Reconciliation errors


class ReconcileError(SwitchBotError):
    """Raised by the reconciler; current state is left untouched."""


class Malformed(ReconcileError):
    """Payload did not parse."""


class DeviceFault(ReconcileError):
    """Device reported a failure status code."""

    def __init__(self, code: int, message: str | None = None):
        self.code = code
        self.message = message or describe_status_code(code)
        super().__init__(f"{self.message} (code={code})")

    @property
    def is_offline(self) -> bool:
        return self.code in OFFLINE_CODES


class FaultKind(Enum):
    MALFORMED = "malformed"
    DEVICE_FAULT = "device_fault"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    RETRY_EXHAUSTED = "retry_exhausted"


class FinalError(SwitchBotError):
    """Terminal, taxonomy-tagged failure handed to the dispatcher or scheduler."""

    def __init__(self, kind: FaultKind, cause: Exception | None = None, code: int | None = None):
        self.kind = kind
        self.cause = cause
        if code is None:
            code = getattr(cause, "code", None)
        self.code = code
        text = f"{kind.value}"
        if code is not None:
            text += f" (code={code})"
        if cause is not None:
            text += f": {cause}"
        super().__init__(text)

    @property
    def is_offline(self) -> bool:
        return self.kind is FaultKind.DEVICE_FAULT and self.code in OFFLINE_CODES

    @classmethod
    def from_reconcile_error(cls, err: ReconcileError) -> "FinalError":
        if isinstance(err, DeviceFault):
            return cls(FaultKind.DEVICE_FAULT, err, err.code)
        return cls(FaultKind.MALFORMED, err)
