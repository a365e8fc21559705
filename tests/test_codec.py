"""Tests for colour and unit conversions."""

from __future__ import annotations

import itertools

import pytest

from custom_components.switchbot_link.codec import (
    byte_to_percent,
    clamp_mired,
    format_rgb,
    hue_sat_to_rgb,
    kelvin_for_device,
    kelvin_to_mired,
    light_level_to_lux,
    mired_to_hue_sat_approx,
    mired_to_kelvin,
    parse_rgb,
    percent_to_byte,
    rgb_to_hsv,
    rgb_to_hue_sat,
)


class TestColorTemperature:
    """Mired and kelvin conversions."""

    def test_mired_round_trip_within_one(self) -> None:
        """Every mired value in the supported range survives a kelvin round trip."""
        for mired in range(140, 501):
            assert abs(kelvin_to_mired(mired_to_kelvin(mired)) - mired) <= 1

    def test_known_values(self) -> None:
        assert mired_to_kelvin(250) == 4000
        assert kelvin_to_mired(2700) == 370

    def test_kelvin_for_device_rounds_to_hundreds(self) -> None:
        assert kelvin_for_device(2649) == 2600
        assert kelvin_for_device(2651) == 2700

    def test_kelvin_for_device_clamps_to_range(self) -> None:
        assert kelvin_for_device(9500) == 9000
        assert kelvin_for_device(1500) == 2000
        assert kelvin_for_device(2000, 2700, 6500) == 2700

    def test_clamp_mired(self) -> None:
        assert clamp_mired(100) == 140
        assert clamp_mired(700) == 500
        assert clamp_mired(300.4) == 300

    def test_approximate_hue_sat_follows_warmth(self) -> None:
        """Warm temperatures map to a saturated orange, cool ones to near white."""
        warm_hue, warm_sat = mired_to_hue_sat_approx(500)
        cool_hue, cool_sat = mired_to_hue_sat_approx(154)

        assert 20 <= warm_hue <= 40
        assert warm_sat > 80
        assert cool_sat < 10
        assert 0 <= cool_hue < 360


class TestRgb:
    """RGB <-> hue/saturation."""

    def test_primary_colours(self) -> None:
        assert rgb_to_hue_sat(255, 0, 0) == (0.0, 100.0)
        hue, sat = rgb_to_hue_sat(0, 0, 255)
        assert hue == pytest.approx(240.0)
        assert sat == pytest.approx(100.0)

    def test_hue_sat_to_rgb_full_brightness(self) -> None:
        assert hue_sat_to_rgb(120.0, 100.0) == (0, 255, 0)
        assert hue_sat_to_rgb(0.0, 0.0) == (255, 255, 255)

    def test_round_trip_with_value(self) -> None:
        """Channels come back within tolerance when the value travels alongside hue/sat."""
        for r, g, b in itertools.product(range(0, 256, 51), repeat=3):
            hue, sat, value = rgb_to_hsv(r, g, b)
            back = hue_sat_to_rgb(hue, sat, value)
            assert all(abs(x - y) <= 2 for x, y in zip(back, (r, g, b))), (r, g, b, back)

    def test_parse_and_format(self) -> None:
        assert parse_rgb("12:34:56") == (12, 34, 56)
        assert format_rgb((12, 34, 56)) == "12:34:56"

    @pytest.mark.parametrize("text", ["", "1:2", "a:b:c", "1:2:300"])
    def test_parse_rejects_bad_strings(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_rgb(text)


class TestLightLevel:
    """Light level buckets -> lux."""

    def test_bucket_one_is_min(self) -> None:
        assert light_level_to_lux(1, 1.0, 6001.0) == 1.0

    @pytest.mark.parametrize("bucket", [20, 21, 99])
    def test_top_buckets_are_max(self, bucket: int) -> None:
        assert light_level_to_lux(bucket, 1.0, 6001.0) == 6001.0

    def test_bucket_ten_interpolates(self) -> None:
        assert light_level_to_lux(10, 1.0, 6001.0) == pytest.approx(1.0 + 9 * 6000.0 / 19)

    def test_custom_anchors(self) -> None:
        assert light_level_to_lux(11, 0.0, 1900.0) == pytest.approx(1000.0)


class TestBrightness:
    def test_percent_byte_scale(self) -> None:
        assert percent_to_byte(100) == 255
        assert percent_to_byte(0) == 0
        assert byte_to_percent(255) == 100
        assert byte_to_percent(1) == 1
        assert byte_to_percent(0) == 0
