"""Local (BLE) transport.

A single RadioOwner wraps the Bluetooth adapter. Scan requests for any
number of addresses share one physical scan session, and command writes
wait for the radio to be free.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .advertisement import parse_advertisement
from .errors import TransportProtocolError, TransportTimeout, TransportUnreachable
from .models import Advertisement, DeviceCommand, DeviceIdentity, StatusPayload, TransportKind

_LOGGER = logging.getLogger(__name__)

WRITE_CHARACTERISTIC_UUID = "cba20002-224d-11e6-9fb8-0002a5d5c51b"


class RadioOwner:
    """Multiplex scan and command requests onto one BLE adapter."""

    def __init__(self, scanner_factory=BleakScanner, client_factory=BleakClient):
        self._scanner_factory = scanner_factory
        self._client_factory = client_factory
        self._waiters: Dict[str, List[asyncio.Future]] = {}
        self._listeners: List[Callable[[Advertisement], None]] = []
        self._deadline = 0.0
        self._session: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._radio_lock: Optional[asyncio.Lock] = None
        # Set once a session has left its wait loop and is tearing down
        self._stopping = False
        # Physical scan sessions started so far
        self.sessions_started = 0

    def _lock(self) -> asyncio.Lock:
        if self._radio_lock is None:
            self._radio_lock = asyncio.Lock()
        return self._radio_lock

    def _wake_session(self) -> None:
        if self._wake is not None:
            self._wake.set()

    def _on_detection(self, device, advertisement_data) -> None:
        ad = parse_advertisement(
            device.address,
            advertisement_data.service_data,
            advertisement_data.manufacturer_data,
            getattr(advertisement_data, "rssi", None),
        )
        if ad is None:
            return
        for listener in list(self._listeners):
            listener(ad)
        waiters = self._waiters.pop(ad.address, None)
        if waiters:
            for fut in waiters:
                if not fut.done():
                    fut.set_result(ad)
            self._wake_session()

    def _ensure_session(self, duration: float) -> None:
        loop = asyncio.get_running_loop()
        self._deadline = max(self._deadline, loop.time() + duration)
        if self._session is None or self._session.done() or self._stopping:
            self._session = loop.create_task(self._run_session())
            self._stopping = False
        else:
            _LOGGER.debug("Joining active scan session (deadline in %.2fs)", self._deadline - loop.time())
            self._wake_session()

    async def _run_session(self) -> None:
        loop = asyncio.get_running_loop()
        async with self._lock():
            scanner = self._scanner_factory(detection_callback=self._on_detection)
            try:
                await scanner.start()
            except (BleakError, OSError) as ex:
                _LOGGER.debug("BLE scan could not start: %s", ex)
                self._fail_waiters(TransportUnreachable(f"BLE scan could not start: {ex}"))
                return
            self.sessions_started += 1
            self._stopping = False
            self._wake = asyncio.Event()
            _LOGGER.debug("BLE scan started for %s", sorted(self._waiters) or "discovery")
            try:
                while True:
                    remaining = self._deadline - loop.time()
                    if remaining <= 0 or not (self._waiters or self._listeners):
                        break
                    self._wake.clear()
                    try:
                        await asyncio.wait_for(self._wake.wait(), remaining)
                    except asyncio.TimeoutError:
                        pass
            finally:
                self._stopping = True
                self._wake = None
                try:
                    await scanner.stop()
                except (BleakError, OSError) as ex:
                    _LOGGER.debug("BLE scan stop failed: %s", ex)
                _LOGGER.debug("BLE scan stopped")

    def _fail_waiters(self, err: Exception) -> None:
        waiters, self._waiters = self._waiters, {}
        for futures in waiters.values():
            for fut in futures:
                if not fut.done():
                    fut.set_exception(err)

    async def wait_for(self, address: str, duration: float) -> Advertisement:
        """Return the first advertisement from address seen within duration."""
        address = address.lower()
        fut = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(address, []).append(fut)
        self._ensure_session(duration)
        try:
            return await asyncio.wait_for(fut, duration)
        except asyncio.TimeoutError as ex:
            raise TransportTimeout(f"No advertisement from {address} within {duration}s") from ex
        finally:
            pending = self._waiters.get(address)
            if pending and fut in pending:
                pending.remove(fut)
                if not pending:
                    self._waiters.pop(address, None)
                self._wake_session()

    async def discover(self, duration: float) -> Dict[str, Advertisement]:
        """Collect every SwitchBot advertisement seen within duration."""
        seen: Dict[str, Advertisement] = {}

        def _collect(ad: Advertisement) -> None:
            seen[ad.address] = ad

        self._listeners.append(_collect)
        try:
            self._ensure_session(duration)
            await asyncio.sleep(duration)
        finally:
            self._listeners.remove(_collect)
            self._wake_session()
        return seen

    async def write(self, address: str, payload: bytes, timeout: float) -> None:
        async with self._lock():
            _LOGGER.debug("BLE write → %s: %s", address, payload.hex())
            try:
                async with self._client_factory(address, timeout=timeout) as client:
                    await client.write_gatt_char(WRITE_CHARACTERISTIC_UUID, payload, response=True)
            except asyncio.TimeoutError as ex:
                raise TransportTimeout(f"BLE connection to {address} timed out") from ex
            except (BleakError, OSError) as ex:
                raise TransportUnreachable(f"BLE write to {address} failed: {ex}") from ex

    async def close(self) -> None:
        task = self._session
        self._session = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


class LocalTransport:
    """Status via advertisements, commands via GATT writes."""

    kind = TransportKind.LOCAL

    def __init__(self, radio: RadioOwner):
        self._radio = radio

    @property
    def radio(self) -> RadioOwner:
        return self._radio

    async def fetch_status(self, identity: DeviceIdentity, config) -> StatusPayload:
        ad = await self._radio.wait_for(identity.ble_address, config.scan_duration)
        return StatusPayload(TransportKind.LOCAL, ad)

    async def send_command(self, identity: DeviceIdentity, command: DeviceCommand, config) -> None:
        if command.local_payload is None:
            raise TransportProtocolError(f"{command.command} has no BLE encoding for {identity.device_type}")
        await self._radio.write(identity.ble_address, command.local_payload, config.request_timeout)

    async def close(self) -> None:
        await self._radio.close()
