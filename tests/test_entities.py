"""Projection tests for the Home Assistant entities; skipped without Home Assistant."""

from __future__ import annotations

import pytest

pytest.importorskip("homeassistant")

from custom_components.switchbot_link.config import PlatformConfig  # noqa: E402
from custom_components.switchbot_link.cover import SwitchBotCoverEntity  # noqa: E402
from custom_components.switchbot_link.hub import SwitchBotHub  # noqa: E402
from custom_components.switchbot_link.light import SwitchBotLightEntity  # noqa: E402
from custom_components.switchbot_link.models import (  # noqa: E402
    PROP_BRIGHTNESS,
    PROP_MOTION,
    PROP_POSITION,
    PROP_POWER,
    PROP_TEMPERATURE,
    CommunicationFault,
    MotionState,
)
from custom_components.switchbot_link.sensor import SwitchBotSensorEntity  # noqa: E402

from .conftest import FakeTransport  # noqa: E402


@pytest.fixture
def hub() -> SwitchBotHub:
    return SwitchBotHub(PlatformConfig(), remote=FakeTransport())


class TestCover:
    def test_position_and_motion(self, hub) -> None:
        state = hub.register_device({"device_id": "AABBCCDDEEFF", "device_type": "Curtain"})
        state.swap_current({PROP_POSITION: 40, PROP_MOTION: MotionState.INCREASING})
        entity = SwitchBotCoverEntity(hub, state)

        assert entity.unique_id == "switchbot_link_AABBCCDDEEFF"
        assert entity.current_cover_position == 40
        assert entity.is_closed is False
        assert entity.is_opening is True
        assert entity.is_closing is False

    def test_fault_makes_entity_unavailable(self, hub) -> None:
        state = hub.register_device({"device_id": "AABBCCDDEEFF", "device_type": "Curtain"})
        entity = SwitchBotCoverEntity(hub, state)
        assert entity.available

        state.fault = CommunicationFault("device_fault", 161)

        assert not entity.available


class TestLight:
    def test_reads_requested_values_first(self, hub) -> None:
        state = hub.register_device({"device_id": "AABBCCDDEEFF", "device_type": "Color Bulb"})
        state.swap_current({PROP_POWER: False, PROP_BRIGHTNESS: 10})
        state.request(PROP_POWER, True)
        state.request(PROP_BRIGHTNESS, 100)
        entity = SwitchBotLightEntity(hub, state)

        assert entity.is_on is True
        assert entity.brightness == 255

    def test_kelvin_range_is_intersection(self, hub) -> None:
        state = hub.register_device({"device_id": "AABBCCDDEEFF", "device_type": "Color Bulb"})
        entity = SwitchBotLightEntity(hub, state)

        assert entity.min_color_temp_kelvin == 2700
        assert entity.max_color_temp_kelvin == 6500


class TestSensor:
    def test_temperature(self, hub) -> None:
        state = hub.register_device({"device_id": "AABBCCDDEEFF", "device_type": "Meter"})
        state.swap_current({PROP_TEMPERATURE: 21.5})
        entity = SwitchBotSensorEntity(hub, state, PROP_TEMPERATURE)

        assert entity.unique_id == "switchbot_link_AABBCCDDEEFF_temperature"
        assert entity.native_value == 21.5
