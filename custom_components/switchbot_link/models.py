"""Models for SwitchBot Link."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

# Property names shared by the state model, reconciler, dispatcher and entities
PROP_POWER = "power"
PROP_BRIGHTNESS = "brightness"
PROP_HUE = "hue"
PROP_SATURATION = "saturation"
PROP_COLOR_TEMP = "colorTemperatureMired"
PROP_POSITION = "positionPercent"
PROP_MOTION = "motionState"
PROP_HOLD = "holdPosition"
PROP_MODE = "mode"
PROP_TARGET_HUMIDITY = "targetHumidityPercent"
PROP_HUMIDITY = "humidityPercent"
PROP_TEMPERATURE = "temperatureCelsius"
PROP_BATTERY = "batteryPercent"
PROP_LOW_BATTERY = "lowBattery"
PROP_LIGHT_LEVEL = "lightLevelLux"
PROP_MOTION_DETECTED = "motionDetected"
PROP_CONTACT_OPEN = "contactOpen"
PROP_ONLINE = "online"


class TransportCapability(Enum):
    LOCAL_ONLY = "local_only"
    REMOTE_ONLY = "remote_only"
    LOCAL_PREFERRED = "local_preferred_with_remote_fallback"


class TransportKind(Enum):
    LOCAL = "local"
    REMOTE = "remote"
    # Inbound webhook event; decoded like a remote status body
    PUSH = "push"


class MotionState(Enum):
    STOPPED = "stopped"
    INCREASING = "increasing"
    DECREASING = "decreasing"


class OperationKind(Enum):
    STATUS = "status"
    COMMAND = "command"


@dataclass(frozen=True)
class DeviceIdentity:
    device_id: str
    device_type: str
    hub_id: str = ""
    transport_capabilities: TransportCapability = TransportCapability.REMOTE_ONLY
    name: str = ""
    # BLE address; derived from the device id when not given
    address: Optional[str] = None

    @property
    def mac(self) -> str:
        raw = self.device_id.lower()
        return ":".join(raw[i:i + 2] for i in range(0, len(raw), 2))

    @property
    def ble_address(self) -> str:
        return (self.address or self.mac).lower()


@dataclass(frozen=True)
class DeviceCommand:
    """One outbound command with both its cloud and BLE encodings."""

    command: str
    parameter: str = "default"
    covers: Tuple[str, ...] = ()
    command_type: str = "command"
    local_payload: Optional[bytes] = None
    # Extra cloud requests needed where BLE carries more in one frame
    remote_followups: Tuple["DeviceCommand", ...] = ()

    def as_json(self) -> Dict[str, str]:
        return {
            "commandType": self.command_type,
            "command": self.command,
            "parameter": self.parameter,
        }


@dataclass(frozen=True)
class Operation:
    kind: OperationKind
    command: Optional[DeviceCommand] = None

    @classmethod
    def status(cls) -> "Operation":
        return cls(OperationKind.STATUS)

    @classmethod
    def send(cls, command: DeviceCommand) -> "Operation":
        return cls(OperationKind.COMMAND, command)

    def __str__(self) -> str:
        if self.command is not None:
            return f"{self.kind.value}:{self.command.command}"
        return self.kind.value


@dataclass
class RetryContext:
    operation: Operation
    max_attempts: int
    attempts_taken: int = 0
    last_error: Optional[Exception] = None


@dataclass(frozen=True)
class CommunicationFault:
    """Degraded-communication value delivered through notify for affected properties."""

    kind: str
    code: Optional[int] = None
    message: str = ""


@dataclass
class Advertisement:
    """One parsed BLE advertisement frame."""

    address: str
    model: str
    data: Dict[str, Any] = field(default_factory=dict)
    rssi: Optional[int] = None


@dataclass(frozen=True)
class StatusPayload:
    """Raw status as received, tagged with the transport it came from."""

    source: TransportKind
    raw: Any
