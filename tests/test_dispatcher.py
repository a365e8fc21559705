"""Tests for debounced command dispatch."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from custom_components.switchbot_link.controller import RetryFallbackController
from custom_components.switchbot_link.dispatcher import CommandDispatcher
from custom_components.switchbot_link.errors import TransportRejected
from custom_components.switchbot_link.models import (
    PROP_BRIGHTNESS,
    PROP_HOLD,
    PROP_MODE,
    PROP_POSITION,
    PROP_POWER,
    CommunicationFault,
    TransportKind,
)

from .conftest import DEVICE_ID, FakeTransport, envelope


def _dispatcher(reconciler, remote=None, schedule_refresh=None):
    remote = remote or FakeTransport()
    controller = RetryFallbackController(None, remote, sleep=AsyncMock())
    return CommandDispatcher(controller, reconciler, schedule_refresh), remote


class TestDebounce:
    @pytest.mark.asyncio
    async def test_rapid_requests_share_one_push(self, make_state, reconciler) -> None:
        dispatcher, remote = _dispatcher(reconciler)
        state = make_state(push_rate=0.05)

        futures = [dispatcher.request_change(state, PROP_BRIGHTNESS, value) for value in (10, 20, 30, 40, 50)]

        assert all(f is futures[0] for f in futures)
        assert dispatcher.pending(DEVICE_ID)
        assert await futures[0] == (True, None)
        assert dispatcher.push_cycles[DEVICE_ID] == 1
        assert [(c.command, c.parameter) for c in remote.commands] == [("setBrightness", "50")]

    @pytest.mark.asyncio
    async def test_spaced_requests_push_each_time(self, make_state, reconciler) -> None:
        dispatcher, remote = _dispatcher(reconciler)
        state = make_state(push_rate=0.01)

        for value in (10, 20, 30):
            assert await dispatcher.request_change(state, PROP_BRIGHTNESS, value) == (True, None)

        assert dispatcher.push_cycles[DEVICE_ID] == 3
        assert [c.parameter for c in remote.commands] == ["10", "20", "30"]

    @pytest.mark.asyncio
    async def test_cancel_drops_pending_push(self, make_state, reconciler) -> None:
        dispatcher, remote = _dispatcher(reconciler)
        state = make_state(push_rate=10)

        future = dispatcher.request_change(state, PROP_BRIGHTNESS, 10)
        dispatcher.cancel(DEVICE_ID)
        await asyncio.sleep(0)

        assert future.cancelled()
        assert remote.commands == []

    def test_unsettable_property_is_rejected(self, make_state, reconciler) -> None:
        dispatcher, _ = _dispatcher(reconciler)

        with pytest.raises(ValueError):
            dispatcher.request_change(make_state(), PROP_POSITION, 10)


class TestPush:
    @pytest.mark.asyncio
    async def test_single_brightness_change(self, make_state, reconciler) -> None:
        schedule_refresh = MagicMock()
        dispatcher, remote = _dispatcher(reconciler, schedule_refresh=schedule_refresh)
        state = make_state(cached={PROP_POWER: True, PROP_BRIGHTNESS: 40}, push_rate=0.01)
        state.mark_pushed({PROP_BRIGHTNESS: 40})

        result = await dispatcher.request_change(state, PROP_BRIGHTNESS, 55)

        assert result == (True, None)
        assert len(remote.commands) == 1
        assert remote.commands[0].command == "setBrightness"
        assert remote.commands[0].parameter == "55"
        assert state.last_pushed[PROP_BRIGHTNESS] == 55
        assert not state.push_in_progress
        schedule_refresh.assert_called_once_with(DEVICE_ID, 15.0)

    @pytest.mark.asyncio
    async def test_nothing_to_push(self, make_state, reconciler) -> None:
        schedule_refresh = MagicMock()
        dispatcher, remote = _dispatcher(reconciler, schedule_refresh=schedule_refresh)

        assert await dispatcher.push(make_state()) == (True, None)
        assert remote.commands == []
        assert dispatcher.push_cycles[DEVICE_ID] == 0
        schedule_refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_reports_fault_and_keeps_delta(self, make_state, reconciler, notify) -> None:
        schedule_refresh = MagicMock()
        remote = FakeTransport(always=TransportRejected(161))
        dispatcher, _ = _dispatcher(reconciler, remote, schedule_refresh)
        state = make_state(cached={PROP_BRIGHTNESS: 40}, push_rate=0.01)

        ok, err = await dispatcher.request_change(state, PROP_BRIGHTNESS, 55)

        assert ok is False
        assert "161" in err
        assert PROP_BRIGHTNESS not in state.last_pushed
        assert state.deltas() == {PROP_BRIGHTNESS: 55}
        faults = notify.faults()
        assert [prop for prop, _ in faults] == [PROP_BRIGHTNESS]
        assert isinstance(faults[0][1], CommunicationFault)
        assert faults[0][1].code == 161
        schedule_refresh.assert_called_once_with(DEVICE_ID, 15.0)

    @pytest.mark.asyncio
    async def test_turning_off_sends_only_power(self, make_state, reconciler) -> None:
        dispatcher, remote = _dispatcher(reconciler)
        state = make_state(cached={PROP_POWER: True}, push_rate=0.01)

        dispatcher.request_change(state, PROP_BRIGHTNESS, 70)
        await dispatcher.request_change(state, PROP_POWER, False)

        assert [c.command for c in remote.commands] == ["turnOff"]
        assert state.last_pushed == {PROP_POWER: False}

    @pytest.mark.asyncio
    async def test_hold_stops_chasing_position(self, make_state, reconciler) -> None:
        dispatcher, remote = _dispatcher(reconciler)
        state = make_state("Curtain", cached={PROP_POSITION: 30}, push_rate=0.01)

        await dispatcher.request_change(state, PROP_POSITION, 70)
        await dispatcher.request_change(state, PROP_HOLD, True, trigger=True)

        assert [c.command for c in remote.commands] == ["setPosition", "pause"]
        assert state.pending_target[PROP_POSITION] == 30
        assert state.deltas() == {}


class GatedTransport(FakeTransport):
    """Holds every command until the test opens the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.sending = asyncio.Event()
        self.gate = asyncio.Event()

    async def send_command(self, identity, command, config):
        self.sending.set()
        await self.gate.wait()
        return await super().send_command(identity, command, config)


class TestRequestsDuringPush:
    @pytest.mark.asyncio
    async def test_requests_during_push_share_the_next_push(self, make_state, reconciler) -> None:
        remote = GatedTransport()
        dispatcher, _ = _dispatcher(reconciler, remote)
        state = make_state(push_rate=0.01)

        first = dispatcher.request_change(state, PROP_BRIGHTNESS, 10)
        await remote.sending.wait()
        second = dispatcher.request_change(state, PROP_BRIGHTNESS, 20)
        await asyncio.sleep(0)
        third = dispatcher.request_change(state, PROP_BRIGHTNESS, 30)

        assert second is third
        assert second is not first
        remote.gate.set()
        assert await asyncio.wait_for(first, 1) == (True, None)
        assert await asyncio.wait_for(second, 1) == (True, None)
        assert [c.parameter for c in remote.commands] == ["10", "30"]
        assert dispatcher.push_cycles[DEVICE_ID] == 2

    @pytest.mark.asyncio
    async def test_request_after_timer_fired_resolves(self, make_state, reconciler) -> None:
        remote = GatedTransport()
        dispatcher, _ = _dispatcher(reconciler, remote)
        state = make_state(push_rate=0.01)

        first = dispatcher.request_change(state, PROP_BRIGHTNESS, 10)
        await remote.sending.wait()
        second = dispatcher.request_change(state, PROP_BRIGHTNESS, 20)
        await asyncio.sleep(0.05)
        third = dispatcher.request_change(state, PROP_BRIGHTNESS, 30)
        remote.gate.set()

        results = await asyncio.wait_for(asyncio.gather(first, second, third), 1)

        assert results == [(True, None)] * 3
        assert remote.commands[-1].parameter == "30"


class TestProjectionAfterPush:
    @pytest.mark.asyncio
    async def test_external_change_shows_after_confirmation(self, make_state, reconciler) -> None:
        dispatcher, _ = _dispatcher(reconciler)
        state = make_state(cached={PROP_POWER: False}, push_rate=0.01)

        assert await dispatcher.request_change(state, PROP_POWER, True) == (True, None)
        reconciler.reconcile(state, envelope({"power": "on"}), TransportKind.REMOTE)
        reconciler.reconcile(state, envelope({"power": "off"}), TransportKind.REMOTE)

        assert state.get(PROP_POWER) is False
        assert state.target(PROP_POWER) is False

    @pytest.mark.asyncio
    async def test_bot_press_is_not_shown_as_on(self, make_state, reconciler) -> None:
        dispatcher, remote = _dispatcher(reconciler)
        state = make_state("Bot", cached={PROP_POWER: False, PROP_MODE: "pressMode"}, push_rate=0.01)

        assert await dispatcher.request_change(state, PROP_POWER, True) == (True, None)

        assert [c.command for c in remote.commands] == ["press"]
        assert state.target(PROP_POWER) is False
        assert state.deltas() == {}

        assert await dispatcher.request_change(state, PROP_POWER, True) == (True, None)
        assert [c.command for c in remote.commands] == ["press", "press"]
