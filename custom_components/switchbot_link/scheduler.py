"""Periodic and one-shot status refreshes per device."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional

from .config import auto_refresh_rate
from .controller import RetryFallbackController
from .errors import DeviceFault, FinalError, Malformed
from .models import MotionState, Operation, StatusPayload
from .reconciler import Reconciler
from .state import DeviceState

_LOGGER = logging.getLogger(__name__)


class PollScheduler:
    """Keep each device's current state fresh.

    Devices poll at their refresh rate, or at the faster update rate while a
    curtain is moving. A tick is skipped, not queued, while the device is
    busy with a push or another transport call.
    """

    def __init__(
        self,
        controller: RetryFallbackController,
        reconciler: Reconciler,
        get_state: Callable[[str], Optional[DeviceState]],
    ):
        self._controller = controller
        self._reconciler = reconciler
        self._get_state = get_state
        self._tasks: Dict[str, asyncio.Task] = {}
        self._refresh_handles: Dict[str, asyncio.TimerHandle] = {}
        self._refresh_tasks: Dict[str, asyncio.Task] = {}
        self.skipped_ticks = 0
        # Devices sharing the cloud quota, for the automatic refresh rate
        self.device_count = 1

    def interval(self, state: DeviceState) -> float:
        if state.motion is not MotionState.STOPPED:
            return float(state.config.update_rate)
        rate = state.config.refresh_rate
        if not rate:
            rate = auto_refresh_rate(self.device_count)
        return float(rate)

    def start(self, device_id: str) -> None:
        if device_id in self._tasks and not self._tasks[device_id].done():
            return
        self._tasks[device_id] = asyncio.get_running_loop().create_task(self._run(device_id))

    def stop(self, device_id: str) -> None:
        task = self._tasks.pop(device_id, None)
        if task is not None:
            task.cancel()
        handle = self._refresh_handles.pop(device_id, None)
        if handle is not None:
            handle.cancel()
        refresh = self._refresh_tasks.pop(device_id, None)
        if refresh is not None:
            refresh.cancel()

    async def stop_all(self) -> None:
        tasks = list(self._tasks.values()) + list(self._refresh_tasks.values())
        for device_id in list(self._tasks) + list(self._refresh_handles):
            self.stop(device_id)
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, device_id: str) -> None:
        while True:
            state = self._get_state(device_id)
            if state is None:
                return
            await asyncio.sleep(self.interval(state))
            if state.busy:
                self.skipped_ticks += 1
                _LOGGER.debug("%s busy; skipping poll", device_id)
                continue
            await self.refresh(state)

    async def refresh(self, state: DeviceState) -> bool:
        """Fetch and reconcile status once; False when the cycle failed."""
        try:
            async with state.lock:
                preference = state.capability.effective_transport(state.identity.transport_capabilities)
                payload: StatusPayload = await self._controller.execute(
                    state.identity, Operation.status(), preference, state.config
                )
                changed = self._reconciler.reconcile(state, payload.raw, payload.source)
        except FinalError as err:
            self._reconciler.report_fault(state, err)
            return False
        except Malformed as err:
            _LOGGER.warning("Ignoring status for %s: %s", state.device_id, err)
            return False
        except DeviceFault as err:
            self._reconciler.report_fault(state, FinalError.from_reconcile_error(err))
            return False
        self._reconciler.emit(state, changed)
        return True

    def schedule_refresh(self, device_id: str, delay: float) -> None:
        """One-shot refresh after delay, replacing any refresh already scheduled."""
        handle = self._refresh_handles.pop(device_id, None)
        if handle is not None:
            handle.cancel()
        loop = asyncio.get_running_loop()
        self._refresh_handles[device_id] = loop.call_later(delay, self._fire_refresh, device_id)
        _LOGGER.debug("%s refresh scheduled in %ss", device_id, delay)

    def refresh_handle(self, device_id: str) -> Optional[asyncio.TimerHandle]:
        return self._refresh_handles.get(device_id)

    def _fire_refresh(self, device_id: str) -> None:
        self._refresh_handles.pop(device_id, None)
        state = self._get_state(device_id)
        if state is None:
            return
        task = asyncio.get_running_loop().create_task(self.refresh(state))
        self._refresh_tasks[device_id] = task
        task.add_done_callback(lambda t: self._forget_refresh(device_id, t))

    def _forget_refresh(self, device_id: str, task: asyncio.Task) -> None:
        if self._refresh_tasks.get(device_id) is task:
            del self._refresh_tasks[device_id]
