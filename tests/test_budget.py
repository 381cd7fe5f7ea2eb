"""
Unit tests for platform classification and safe export scale.
"""

import math

import pytest

from onepic.budget import PixelBudget, PlatformClass, classify, extrapolation_factor

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
)
IPAD_DESKTOP_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15"
)
ANDROID_UA = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Mobile Safari/537.36"
)
DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


class TestClassify:

    def test_iphone_is_constrained(self):
        assert classify(IPHONE_UA) is PlatformClass.CONSTRAINED

    def test_ipad_in_desktop_mode_is_constrained(self):
        assert classify(IPAD_DESKTOP_UA, max_touch_points=5) is PlatformClass.CONSTRAINED

    def test_mac_without_touch_is_desktop(self):
        assert classify(IPAD_DESKTOP_UA) is PlatformClass.DESKTOP

    def test_android_is_mobile(self):
        assert classify(ANDROID_UA) is PlatformClass.MOBILE

    def test_desktop_and_missing_agent(self):
        assert classify(DESKTOP_UA) is PlatformClass.DESKTOP
        assert classify(None) is PlatformClass.DESKTOP
        assert classify("") is PlatformClass.DESKTOP

    def test_ceilings_increase_with_tier(self):
        ceilings = [PixelBudget(p).ceiling for p in PlatformClass]
        assert ceilings == sorted(ceilings)
        assert PixelBudget(PlatformClass.CONSTRAINED).ceiling == 4096 * 4096


class TestSafeScale:

    def test_fits_returns_exactly_one(self):
        budget = PixelBudget(ceilings={"desktop": 1_000_000})

        assert budget.safe_scale(1000, 1000) == 1
        assert budget.safe_scale(500, 400) == 1

    def test_concrete_scenario(self):
        budget = PixelBudget(ceilings={"desktop": 1_000_000})

        # sqrt(1e6 / 8.64e6) ~= 0.3402, rounded down to 0.30
        assert budget.safe_scale(3600, 2400) == pytest.approx(0.30)

    @pytest.mark.parametrize("width,height", [
        (3696, 2000),
        (3696, 9000),
        (3696, 40000),
        (5000, 5000),
        (1001, 1000),
    ])
    def test_rounds_down_to_step_and_fits(self, width, height):
        ceiling = 1_000_000
        budget = PixelBudget(ceilings={"desktop": ceiling})

        scale = budget.safe_scale(width, height)

        assert scale < 1
        assert math.isclose(math.floor(scale * 20 + 1e-9) / 20, scale)
        assert (scale * width) * (scale * height) <= ceiling

    def test_never_rounds_up(self):
        budget = PixelBudget(ceilings={"desktop": 1_000_000})

        # Raw scale ~0.3499 must not become 0.35
        width = height = 1_000_000 ** 0.5 / 0.3499
        assert budget.safe_scale(width, height) == pytest.approx(0.30)

    def test_platform_changes_scale(self):
        frame = (3696, 30000)

        constrained = PixelBudget(PlatformClass.CONSTRAINED).safe_scale(*frame)
        desktop = PixelBudget(PlatformClass.DESKTOP).safe_scale(*frame)

        assert constrained < desktop == 1

    def test_for_client(self):
        budget = PixelBudget.for_client(ANDROID_UA)

        assert budget.platform is PlatformClass.MOBILE
        assert budget.ceiling == 33_554_432


def test_extrapolation_factor():
    assert extrapolation_factor(1) == 1
    assert extrapolation_factor(0.5) == pytest.approx(4)
    assert extrapolation_factor(0) == 1
