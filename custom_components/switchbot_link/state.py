"""Canonical in-memory state for one device."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, Optional, Set, Tuple

from .capabilities import Capability
from .models import (
    PROP_BRIGHTNESS,
    PROP_MODE,
    PROP_MOTION,
    PROP_ONLINE,
    PROP_POSITION,
    PROP_POWER,
    PROP_TARGET_HUMIDITY,
    CommunicationFault,
    DeviceIdentity,
    MotionState,
)

# Properties that are never persisted or restored
_VOLATILE = frozenset({PROP_MOTION, PROP_ONLINE})

_MISSING = object()

# Discrete properties compared against the reconciled value when computing deltas
_DRIFT_CHECKED = frozenset({PROP_POWER, PROP_BRIGHTNESS, PROP_POSITION, PROP_MODE, PROP_TARGET_HUMIDITY})


class DeviceState:
    """Current / pending target / last pushed values for one device.

    Ownership: only the reconciler replaces ``current``; only set requests
    write ``pending_target``; only the dispatcher writes ``last_pushed`` after
    a confirmed push. All transport work for the device runs under ``lock``.
    """

    def __init__(
        self,
        identity: DeviceIdentity,
        capability: Capability,
        config,
        cached: Optional[Dict[str, Any]] = None,
    ):
        self.identity = identity
        self.capability = capability
        self.config = config
        self.current: Dict[str, Any] = {PROP_ONLINE: True}
        if capability.supports(PROP_MOTION):
            self.current[PROP_MOTION] = MotionState.STOPPED
        for key, value in (cached or {}).items():
            if key in capability.properties and key not in _VOLATILE:
                self.current[key] = value
        self.pending_target: Dict[str, Any] = {}
        self.last_pushed: Dict[str, Any] = {}
        # Pushed targets the device has since reported back; projections follow current again
        self.confirmed: Set[str] = set()
        # Momentary actions (e.g. hold position) requested since the last push cycle
        self.triggered: Set[str] = set()
        self.push_in_progress = False
        self.lock = asyncio.Lock()
        self.fault: Optional[CommunicationFault] = None
        self.fault_properties: Tuple[str, ...] = ()
        self.assume_stopped_handle: Optional[asyncio.TimerHandle] = None

    def __repr__(self) -> str:
        return f"<DeviceState {self.identity.device_type} {self.device_id} current={self.current}>"

    @property
    def device_id(self) -> str:
        return self.identity.device_id

    @property
    def busy(self) -> bool:
        """True while a push is outstanding or any transport call holds the device."""
        return self.push_in_progress or self.lock.locked()

    @property
    def motion(self) -> MotionState:
        return self.current.get(PROP_MOTION, MotionState.STOPPED)

    @property
    def online(self) -> bool:
        return bool(self.current.get(PROP_ONLINE, True))

    def get(self, prop: str, default: Any = None) -> Any:
        return self.current.get(prop, default)

    def target(self, prop: str, default: Any = None) -> Any:
        """Requested value while it is unconfirmed, otherwise the reconciled one."""
        if prop in self.pending_target and prop not in self.confirmed:
            return self.pending_target[prop]
        return self.current.get(prop, default)

    def target_pending(self, prop: str = PROP_POSITION) -> bool:
        if prop not in self.pending_target or prop in self.confirmed:
            return False
        return self.pending_target[prop] != self.current.get(prop)

    def kelvin_range(self) -> Tuple[int, int]:
        """Configured colour temperature range narrowed to what the model supports."""
        low, high = self.config.min_kelvin, self.config.max_kelvin
        if self.capability.color_temp_range:
            cap_low, cap_high = self.capability.color_temp_range
            low, high = max(low, cap_low), min(high, cap_high)
        return low, high

    # Set requests

    def request(self, prop: str, value: Any, *, trigger: bool = False) -> None:
        self.pending_target[prop] = value
        self.confirmed.discard(prop)
        if trigger:
            self.triggered.add(prop)

    def deltas(self) -> Dict[str, Any]:
        """Properties whose requested value still needs pushing."""
        out: Dict[str, Any] = {}
        for prop, value in self.pending_target.items():
            if prop in self.confirmed:
                continue
            if prop in self.triggered:
                out[prop] = value
            elif self.last_pushed.get(prop, _MISSING) != value:
                out[prop] = value
            elif prop in _DRIFT_CHECKED and prop in self.current and self.current[prop] != value:
                # Device drifted away from what we last pushed
                out[prop] = value
        return out

    # Dispatcher

    def mark_pushed(self, values: Dict[str, Any]) -> None:
        self.last_pushed.update(values)
        self.triggered.difference_update(values)

    def confirm(self, prop: str) -> None:
        """Stop projecting a pushed target; used for momentary actions with no lasting state."""
        if prop in self.pending_target:
            self.confirmed.add(prop)

    # Reconciler

    def swap_current(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Atomically replace current with updates applied; return what changed."""
        changed = {
            key: value for key, value in updates.items() if self.current.get(key, _MISSING) != value
        }
        if changed:
            new_current = dict(self.current)
            new_current.update(changed)
            self.current = new_current
        for key, value in updates.items():
            requested = self.pending_target.get(key, _MISSING)
            if requested is _MISSING or key in self.triggered or self.last_pushed.get(key, _MISSING) != requested:
                continue
            # Continuous values come back rounded; any report after their push lands confirms them
            if value == requested or (key not in _DRIFT_CHECKED and not self.push_in_progress):
                self.confirmed.add(key)
        return changed

    def collapse_target(self, prop: str = PROP_POSITION) -> None:
        """Drop a pending target that the device will not reach."""
        if prop in self.current:
            self.pending_target[prop] = self.current[prop]

    def cancel_assume_stopped(self) -> None:
        if self.assume_stopped_handle is not None:
            self.assume_stopped_handle.cancel()
            self.assume_stopped_handle = None

    def persistable(self) -> Dict[str, Any]:
        return {key: value for key, value in self.current.items() if key not in _VOLATILE}

    def affected_properties(self, props: Optional[Iterable[str]] = None) -> Tuple[str, ...]:
        if props is None:
            props = self.capability.properties
        return tuple(sorted(p for p in props if p not in _VOLATILE))
