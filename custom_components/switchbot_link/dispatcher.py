"""Debounce property sets and push them to the device as ordered commands."""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Callable, Dict, Optional, Tuple

from .commands import build_commands, covered_values
from .controller import RetryFallbackController
from .errors import FinalError
from .models import PROP_HOLD, PROP_POSITION, PROP_POWER, Operation
from .reconciler import Reconciler
from .state import DeviceState

_LOGGER = logging.getLogger(__name__)

PushResult = Tuple[bool, Optional[str]]


def _chain(superseded: asyncio.Future, successor: asyncio.Future | None) -> None:
    """Resolve a superseded runner's future with whatever the newer push yields."""
    if superseded.done() or superseded is successor:
        return
    if successor is None:
        superseded.cancel()
        return

    def _copy(done: asyncio.Future) -> None:
        if superseded.done():
            return
        if done.cancelled():
            superseded.cancel()
        else:
            superseded.set_result(done.result())

    successor.add_done_callback(_copy)


class _Coalescer:
    """Run one push after requests for a device have been quiet for delay seconds."""

    def __init__(self, delay: float = 0.1):
        self.delay = delay
        self._task: asyncio.Task | None = None
        self._future: asyncio.Future | None = None
        # Sequence number to invalidate older runners that weren't canceled in time
        self._seq: int = 0
        # Runner currently inside send_func and the future it will resolve; never cancelled
        self._sending_task: asyncio.Task | None = None
        self._sending_future: asyncio.Future | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, send_func) -> asyncio.Future:
        """Schedule send_func() after delay; return a Future of (ok, err).

        Every call before the timer fires restarts it and shares the same future.
        Calls made while a push is sending share one future for the next push.
        """
        loop = asyncio.get_running_loop()
        if self._future is None or self._future.done() or self._future is self._sending_future:
            self._future = loop.create_future()
        local_future = self._future

        self._seq += 1
        my_seq = self._seq
        if self._task and not self._task.done() and self._task is not self._sending_task:
            self._task.cancel()

        async def runner():
            try:
                await asyncio.sleep(self.delay)
                if my_seq != self._seq:
                    _chain(local_future, self._future)
                    return
                self._sending_task, self._sending_future = asyncio.current_task(), local_future
                try:
                    result = await send_func()
                finally:
                    if self._sending_future is local_future:
                        self._sending_task, self._sending_future = None, None
                if not local_future.done():
                    local_future.set_result(result)
            except asyncio.CancelledError:
                _chain(local_future, self._future)
                return
            except Exception as ex:  # pylint: disable=broad-except
                _LOGGER.exception("Push cycle failed")
                if not local_future.done():
                    local_future.set_result((False, f"Exception: {ex}"))
            finally:
                if my_seq == self._seq:
                    self._task = None

        self._task = loop.create_task(runner())
        return local_future

    def cancel(self) -> None:
        self._seq += 1
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
        if self._future is not None and not self._future.done():
            self._future.cancel()


class CommandDispatcher:
    """Per-device change debouncer feeding the retry/fallback controller."""

    def __init__(
        self,
        controller: RetryFallbackController,
        reconciler: Reconciler,
        schedule_refresh: Callable[[str, float], None] | None = None,
    ):
        self._controller = controller
        self._reconciler = reconciler
        self._schedule_refresh = schedule_refresh
        self._coalesce: Dict[str, _Coalescer] = {}
        # Push cycles that actually sent commands, per device
        self.push_cycles: Counter = Counter()

    def request_change(self, state: DeviceState, prop: str, value: Any, *, trigger: bool = False) -> asyncio.Future:
        """Record the requested value and (re)start the device's debounce timer."""
        if prop not in state.capability.settable:
            raise ValueError(f"{state.identity.device_type} does not support setting {prop}")
        _LOGGER.debug("%s request %s=%s", state.device_id, prop, value)
        state.request(prop, value, trigger=trigger)
        coalescer = self._coalesce.get(state.device_id)
        if coalescer is None:
            coalescer = self._coalesce[state.device_id] = _Coalescer(state.config.push_rate)
        return coalescer.schedule(lambda: self.push(state))

    def pending(self, device_id: str) -> bool:
        coalescer = self._coalesce.get(device_id)
        return coalescer is not None and coalescer.pending

    async def push(self, state: DeviceState) -> PushResult:
        """One push cycle: send every outstanding delta in priority order."""
        if not state.deltas():
            _LOGGER.debug("%s nothing to push", state.device_id)
            return True, None

        failure: FinalError | None = None
        failed_props: Tuple[str, ...] = ()
        state.push_in_progress = True
        try:
            async with state.lock:
                deltas = state.deltas()
                commands = build_commands(state, deltas)
                if commands:
                    self.push_cycles[state.device_id] += 1
                preference = state.capability.effective_transport(state.identity.transport_capabilities)
                for command in commands:
                    try:
                        await self._controller.execute(state.identity, Operation.send(command), preference, state.config)
                    except FinalError as err:
                        failure, failed_props = err, command.covers
                        break
                    state.mark_pushed(covered_values(command, deltas))
                    if PROP_HOLD in command.covers and PROP_POSITION in state.pending_target:
                        # Stop chasing the old target once the device has been told to hold
                        state.collapse_target(PROP_POSITION)
                        state.mark_pushed({PROP_POSITION: state.pending_target[PROP_POSITION]})
                    elif command.command == "press":
                        # A press has no lasting on state; show what the Bot reports
                        state.confirm(PROP_POWER)
        finally:
            state.push_in_progress = False
            if self._schedule_refresh is not None:
                self._schedule_refresh(state.device_id, state.config.refresh_delay)

        if failure is not None:
            self._reconciler.report_fault(state, failure, failed_props)
            return False, str(failure)
        return True, None

    def cancel(self, device_id: str | None = None) -> None:
        if device_id is not None:
            coalescer = self._coalesce.pop(device_id, None)
            if coalescer is not None:
                coalescer.cancel()
            return
        for coalescer in self._coalesce.values():
            coalescer.cancel()
        self._coalesce.clear()
