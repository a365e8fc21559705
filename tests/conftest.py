"""Shared fixtures for SwitchBot Link tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from custom_components.switchbot_link.capabilities import resolve_capability
from custom_components.switchbot_link.config import DeviceConfig
from custom_components.switchbot_link.models import (
    CommunicationFault,
    DeviceIdentity,
    StatusPayload,
    TransportCapability,
    TransportKind,
)
from custom_components.switchbot_link.reconciler import Reconciler
from custom_components.switchbot_link.state import DeviceState

DEVICE_ID = "AABBCCDDEEFF"

SUCCESS = {"statusCode": 100, "message": "success", "body": {}}


class NotifyRecorder:
    """Collects notify(device_id, prop, value) calls."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, device_id: str, prop: str, value: Any) -> None:
        self.calls.append((device_id, prop, value))

    def values(self, prop: str) -> list:
        return [value for _, p, value in self.calls if p == prop]

    def faults(self) -> list:
        return [(p, value) for _, p, value in self.calls if isinstance(value, CommunicationFault)]

    def clear(self) -> None:
        self.calls.clear()


class FakeTransport:
    """Transport adapter double.

    ``errors`` are raised one per call before calls start succeeding;
    ``always`` is raised on every call.
    """

    def __init__(
        self,
        kind: TransportKind = TransportKind.REMOTE,
        status: Any = None,
        errors: Optional[list] = None,
        always: Optional[Exception] = None,
        configured: bool = True,
    ) -> None:
        self.kind = kind
        self.status = status if status is not None else dict(SUCCESS)
        self.errors = list(errors or [])
        self.always = always
        self.configured = configured
        self.status_calls = 0
        self.commands: list = []
        self.closed = False

    def _maybe_fail(self) -> None:
        if self.always is not None:
            raise self.always
        if self.errors:
            raise self.errors.pop(0)

    async def fetch_status(self, identity, config) -> StatusPayload:
        self.status_calls += 1
        self._maybe_fail()
        return StatusPayload(self.kind, self.status)

    async def send_command(self, identity, command, config):
        self.commands.append(command)
        self._maybe_fail()
        return dict(SUCCESS)

    async def close(self) -> None:
        self.closed = True


def make_device_state(
    device_type: str = "Color Bulb",
    device_id: str = DEVICE_ID,
    transport: TransportCapability = TransportCapability.REMOTE_ONLY,
    cached: Optional[dict] = None,
    hub_id: str = "",
    **config: Any,
) -> DeviceState:
    capability = resolve_capability(device_type)
    identity = DeviceIdentity(device_id, capability.device_type, hub_id=hub_id, transport_capabilities=transport)
    return DeviceState(identity, capability, DeviceConfig(**config), cached)


def envelope(body: Any = None, code: int = 100, message: str = "success") -> dict:
    return {"statusCode": code, "message": message, "body": {} if body is None else body}


def ble_detection(address: str, service_data: dict, manufacturer_data: Optional[dict] = None, rssi: int = -60):
    """(device, advertisement_data) pair shaped like bleak's detection callback arguments."""
    device = SimpleNamespace(address=address)
    advertisement = SimpleNamespace(
        service_data=service_data, manufacturer_data=manufacturer_data or {}, rssi=rssi
    )
    return device, advertisement


@pytest.fixture
def notify() -> NotifyRecorder:
    return NotifyRecorder()


@pytest.fixture
def reconciler(notify: NotifyRecorder) -> Reconciler:
    return Reconciler(notify)


@pytest.fixture
def make_state():
    return make_device_state
