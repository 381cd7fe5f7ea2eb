"""
Pixel budget.

Maps the client platform to the largest raster (in total pixels) it can
reliably allocate, and derives the largest export scale that stays under
that ceiling.
"""

import enum
import math
from typing import Dict, Mapping, Optional

SCALE_STEP = 20  # scales are multiples of 1/20 = 0.05

CONSTRAINED_MARKERS = ("iPhone", "iPad", "iPod")
MOBILE_MARKERS = ("Android", "Mobile")


class PlatformClass(str, enum.Enum):
    """Platform tiers, most restrictive first."""
    CONSTRAINED = "constrained"
    MOBILE = "mobile"
    DESKTOP = "desktop"


DEFAULT_CEILINGS: Dict[PlatformClass, int] = {
    # iOS / iPadOS WebKit refuses canvases above 4096 x 4096
    PlatformClass.CONSTRAINED: 4096 * 4096,
    PlatformClass.MOBILE: 33_554_432,
    PlatformClass.DESKTOP: 268_435_456,
}


def classify(user_agent: Optional[str], max_touch_points: int = 0) -> PlatformClass:
    """
    Classify a client from its user agent string.

    iPadOS in desktop mode reports a Macintosh user agent, so a Mac with
    more than one touch point is treated as an iPad.
    """
    if not user_agent:
        return PlatformClass.DESKTOP
    if any(marker in user_agent for marker in CONSTRAINED_MARKERS):
        return PlatformClass.CONSTRAINED
    if "Macintosh" in user_agent and max_touch_points > 1:
        return PlatformClass.CONSTRAINED
    if any(marker in user_agent for marker in MOBILE_MARKERS):
        return PlatformClass.MOBILE
    return PlatformClass.DESKTOP


def extrapolation_factor(scale: float) -> float:
    """
    Factor turning a byte count measured at ``scale`` into a full-size estimate.

    Encoded size grows roughly with pixel count, i.e. with scale squared.
    """
    if scale <= 0:
        return 1.0
    return 1 / (scale * scale)


class PixelBudget:
    """
    Pixel ceiling for one platform class.

    Args:
        platform: Platform class the budget applies to
        ceilings: Optional per-class overrides, keyed by PlatformClass or its value
    """

    def __init__(
        self,
        platform: PlatformClass = PlatformClass.DESKTOP,
        ceilings: Optional[Mapping] = None,
    ):
        self.platform = PlatformClass(platform)
        self.ceilings = dict(DEFAULT_CEILINGS)
        for key, value in (ceilings or {}).items():
            self.ceilings[PlatformClass(key)] = int(value)

    @classmethod
    def for_client(
        cls,
        user_agent: Optional[str],
        max_touch_points: int = 0,
        ceilings: Optional[Mapping] = None,
    ) -> "PixelBudget":
        """Build a budget for the platform described by a user agent."""
        return cls(classify(user_agent, max_touch_points), ceilings)

    @property
    def ceiling(self) -> int:
        return self.ceilings[self.platform]

    def fits(self, width: float, height: float) -> bool:
        return width * height <= self.ceiling

    def safe_scale(self, width: float, height: float) -> float:
        """
        Largest scale (<= 1) at which a width x height frame fits the ceiling.

        The result is rounded down to a multiple of 0.05; rounding up could
        land above the ceiling again.
        """
        area = width * height
        if area <= self.ceiling:
            return 1.0
        raw = math.sqrt(self.ceiling / area)
        return math.floor(raw * SCALE_STEP) / SCALE_STEP

    def __repr__(self) -> str:
        return f"PixelBudget(platform={self.platform.value}, ceiling={self.ceiling})"
