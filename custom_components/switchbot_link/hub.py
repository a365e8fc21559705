"""SwitchBot Link hub: owns the devices and wires the sync pipeline together."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .capabilities import resolve_capability
from .config import PlatformConfig, resolve_device_config, transport_capability
from .const import (
    CONF_ADDRESS,
    CONF_CONNECTION_TYPE,
    CONF_DEVICE_ID,
    CONF_DEVICE_TYPE,
    CONF_HUB_ID,
    CONF_MQTT_OPTIONS,
    CONF_MQTT_URL,
    CONF_NAME,
    CONF_WEBHOOK,
    CONF_WEBHOOK_HOST,
    CONF_WEBHOOK_PORT,
    CONF_WEBHOOK_URL,
)
from .controller import RetryFallbackController
from .dispatcher import CommandDispatcher
from .errors import DeviceFault, FinalError, Malformed, SwitchBotError
from .local import LocalTransport, RadioOwner
from .models import PROP_HOLD, DeviceIdentity, TransportCapability, TransportKind
from .mqtt import MqttPublisher
from .reconciler import Reconciler
from .remote import RemoteTransport
from .scheduler import PollScheduler
from .state import DeviceState
from .storage import StateStorage
from .webhook import WebhookServer

_LOGGER = logging.getLogger(__name__)

Listener = Callable[[str, str, Any], None]

# Seconds to wait before writing state after a change
SAVE_DELAY = 5.0


class SwitchBotHub:
    def __init__(
        self,
        config: PlatformConfig,
        *,
        remote: Optional[RemoteTransport] = None,
        local: Optional[LocalTransport] = None,
        storage: Optional[StateStorage] = None,
        mqtt: Optional[MqttPublisher] = None,
        controller: Optional[RetryFallbackController] = None,
    ):
        self.config = config
        self._remote = remote
        self._local = local
        self._storage = storage
        self._mqtt = mqtt
        self._devices: Dict[str, DeviceState] = {}
        self._listeners: List[Listener] = []
        self._cached: Dict[str, Dict[str, Any]] = {}
        self._save_handle: asyncio.TimerHandle | None = None
        self._save_task: asyncio.Task | None = None
        self._webhook: WebhookServer | None = None
        self._started = False

        self.reconciler = Reconciler(self._notify)
        self.controller = controller or RetryFallbackController(local, remote)
        self.scheduler = PollScheduler(self.controller, self.reconciler, self._devices.get)
        self.dispatcher = CommandDispatcher(self.controller, self.reconciler, self.scheduler.schedule_refresh)

    @classmethod
    async def create(cls, config: PlatformConfig, hass=None, config_dir: str = ".", radio: RadioOwner | None = None):
        """Async-safe constructor: opens the cloud session and loads cached state."""
        remote = None
        if config.has_credentials:
            remote = await RemoteTransport.create(config.token, config.secret, hass)
        else:
            _LOGGER.info("No OpenAPI token/secret configured; cloud access disabled")

        wants_ble = any(
            transport_capability(dev.get(CONF_CONNECTION_TYPE, "")) is not TransportCapability.REMOTE_ONLY
            for dev in config.devices
        )
        local = LocalTransport(radio or RadioOwner()) if wants_ble else None

        mqtt = None
        if config.options.get(CONF_MQTT_URL):
            mqtt = MqttPublisher(config.options[CONF_MQTT_URL], config.options.get(CONF_MQTT_OPTIONS))

        storage = StateStorage(config_dir, hass)
        self = cls(config, remote=remote, local=local, storage=storage, mqtt=mqtt)
        self._cached = await storage.read()
        return self

    # Devices

    @property
    def devices(self) -> Dict[str, DeviceState]:
        return self._devices

    def get_state(self, device_id: str) -> Optional[DeviceState]:
        return self._devices.get(device_id)

    def register_device(self, device: Dict[str, Any]) -> Optional[DeviceState]:
        """Create state for one validated device entry; None for unsupported types."""
        capability = resolve_capability(device[CONF_DEVICE_TYPE])
        if capability is None:
            _LOGGER.warning(
                "%s: device type %s is not supported", device[CONF_DEVICE_ID], device[CONF_DEVICE_TYPE]
            )
            return None
        device_id = str(device[CONF_DEVICE_ID]).replace(":", "").upper()
        requested = transport_capability(device.get(CONF_CONNECTION_TYPE, ""))
        transport = capability.effective_transport(requested)
        if transport is not requested:
            _LOGGER.debug("%s (%s) has no BLE path; using OpenAPI", device_id, capability.device_type)
        identity = DeviceIdentity(
            device_id=device_id,
            device_type=capability.device_type,
            hub_id=device.get(CONF_HUB_ID, ""),
            transport_capabilities=transport,
            name=device.get(CONF_NAME, ""),
            address=device.get(CONF_ADDRESS),
        )
        count = max(len(self.config.devices), len(self._devices) + 1)
        config = resolve_device_config(self.config.options, device, count)
        state = DeviceState(identity, capability, config, self._cached.get(device_id))
        self._devices[device_id] = state
        self.scheduler.device_count = max(count, len(self._devices))
        _LOGGER.debug("Registered %s (%s) via %s", device_id, capability.device_type, transport.value)
        if self._started:
            self.scheduler.start(device_id)
        return state

    def unregister_device(self, device_id: str) -> None:
        state = self._devices.pop(device_id, None)
        if state is None:
            return
        self.scheduler.stop(device_id)
        self.dispatcher.cancel(device_id)
        state.cancel_assume_stopped()

    # Listeners

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register notify(device_id, prop, value); returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, device_id: str, prop: str, value: Any) -> None:
        for listener in list(self._listeners):
            listener(device_id, prop, value)
        state = self._devices.get(device_id)
        if state is None:
            return
        if self._mqtt is not None:
            self._mqtt.publish(state.identity, prop, value)
        self._schedule_save()

    # Operations

    def request_change(self, device_id: str, prop: str, value: Any) -> asyncio.Future:
        state = self._require(device_id)
        return self.dispatcher.request_change(state, prop, value)

    def hold_position(self, device_id: str) -> asyncio.Future:
        state = self._require(device_id)
        return self.dispatcher.request_change(state, PROP_HOLD, True, trigger=True)

    async def refresh(self, device_id: str) -> bool:
        return await self.scheduler.refresh(self._require(device_id))

    async def handle_push(self, device_id: str, context: Dict[str, Any]) -> bool:
        """Reconcile a webhook context exactly like a polled status body."""
        state = self._devices.get(device_id.replace(":", "").upper())
        if state is None:
            _LOGGER.debug("Push for unknown device %s", device_id)
            return False
        try:
            async with state.lock:
                changed = self.reconciler.reconcile(state, context, TransportKind.PUSH)
        except Malformed as err:
            _LOGGER.warning("Ignoring push for %s: %s", state.device_id, err)
            return False
        except DeviceFault as err:
            self.reconciler.report_fault(state, FinalError.from_reconcile_error(err))
            return False
        self.reconciler.emit(state, changed)
        return True

    async def discover_devices(self) -> List[Dict[str, Any]]:
        if self._remote is None:
            raise SwitchBotError("OpenAPI token and secret are required for discovery")
        devices = await self._remote.get_devices()
        _LOGGER.debug("Cloud reports %d devices", len(devices))
        return devices

    def _require(self, device_id: str) -> DeviceState:
        state = self._devices.get(device_id)
        if state is None:
            raise KeyError(f"Unknown device {device_id}")
        return state

    # Lifecycle

    async def start(self) -> None:
        self._started = True
        if self._mqtt is not None:
            self._mqtt.start()
        for device_id in self._devices:
            self.scheduler.start(device_id)
            self.scheduler.schedule_refresh(device_id, 0)
        if self.config.options.get(CONF_WEBHOOK):
            await self._start_webhook()
        _LOGGER.info("SwitchBot Link started with %d devices", len(self._devices))

    async def _start_webhook(self) -> None:
        options = self.config.options
        url = options.get(CONF_WEBHOOK_URL) or ""
        self._webhook = WebhookServer(
            self.handle_push, options.get(CONF_WEBHOOK_HOST, "0.0.0.0"), options.get(CONF_WEBHOOK_PORT, 8090)
        )
        try:
            await self._webhook.start()
        except OSError:
            self._webhook = None
            return
        if url and self._remote is not None:
            try:
                if url not in await self._remote.query_webhook():
                    await self._remote.setup_webhook(url)
            except SwitchBotError as ex:
                _LOGGER.warning("Could not register webhook %s: %s", url, ex)

    async def stop(self) -> None:
        self._started = False
        await self.scheduler.stop_all()
        self.dispatcher.cancel()
        for state in self._devices.values():
            state.cancel_assume_stopped()
        if self._webhook is not None:
            await self._webhook.stop()
            self._webhook = None
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        await self.save()
        if self._mqtt is not None:
            self._mqtt.stop()
        if self._remote is not None:
            await self._remote.close()
        if self._local is not None:
            await self._local.close()
        _LOGGER.info("SwitchBot Link stopped")

    # Persistence

    def _schedule_save(self) -> None:
        if self._storage is None or self._save_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._save_handle = loop.call_later(SAVE_DELAY, self._fire_save)

    def _fire_save(self) -> None:
        self._save_handle = None
        self._save_task = asyncio.get_running_loop().create_task(self.save())

    async def save(self) -> None:
        if self._storage is None:
            return
        snapshot = dict(self._cached)
        snapshot.update({device_id: state.persistable() for device_id, state in self._devices.items()})
        await self._storage.write(snapshot)
