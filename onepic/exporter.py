"""
Adaptive exporter.

Rasterizes and encodes a frame at the largest scale the platform can
handle. Starting from the pixel budget's safe scale, it walks a ladder of
decreasing scales one attempt at a time until an encode succeeds.

Attempts are strictly sequential: they all resize the one shared surface.

Main entry points:
    exporter = AdaptiveExporter(budget)
    result = await exporter.export_and_restore(surface, width, height, quality)
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, List, Optional, Sequence, Tuple

from .budget import PixelBudget
from .config import OnePicError
from .surface import RenderSurface, SurfaceError, round_half_up

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, float, Optional[BaseException]], None]
CancelCheck = Callable[[], bool]


class ExportError(OnePicError):
    """Base exception for export errors."""
    pass


class ExportExhausted(ExportError):
    """Raised when every scale on the ladder failed."""

    def __init__(self, scales: Sequence[float], cause: Optional[BaseException]):
        self.scales = list(scales)
        self.cause = cause
        attempted = ", ".join(f"{s:.2f}" for s in self.scales) or "none"
        super().__init__(f"Export failed at every scale ({attempted}): {cause}")


class ExportCancelled(ExportError):
    """Raised when an export is cancelled between attempts."""
    pass


@dataclass
class ExportAttempt:
    """One successful rasterize + encode at a given scale."""
    scale: float
    blob: bytes
    achieved_width: int
    achieved_height: int


@dataclass
class ExportResult:
    """Encoded export and the scale it was produced at."""
    blob: bytes
    scale: float
    width: int
    height: int

    @property
    def byte_size(self) -> int:
        return len(self.blob)


class AdaptiveExporter:
    """
    Scale-ladder exporter.

    Args:
        budget: Pixel budget providing the starting safe scale
        factors: Multiples of the safe scale to try, in order
        floor_scale: Fixed last-resort scale appended after the factors
        min_scale: Scales at or below this are never attempted
        stabilize_delay: Pause after redrawing, before encoding (seconds)
        cooldown_delay: Pause after a failed attempt (seconds)
        mime_type: Encoded output type
    """

    def __init__(
        self,
        budget: PixelBudget,
        factors: Sequence[float] = (1.0, 0.7, 0.5),
        floor_scale: float = 0.25,
        min_scale: float = 0.1,
        stabilize_delay: float = 0.05,
        cooldown_delay: float = 0.25,
        mime_type: str = "image/jpeg",
    ):
        self.budget = budget
        self.factors = tuple(factors)
        self.floor_scale = floor_scale
        self.min_scale = min_scale
        self.stabilize_delay = stabilize_delay
        self.cooldown_delay = cooldown_delay
        self.mime_type = mime_type

    @classmethod
    def from_config(cls, budget: PixelBudget, config) -> "AdaptiveExporter":
        """Build an exporter using the ladder and timing values of a Config."""
        return cls(
            budget,
            factors=config.LADDER_FACTORS,
            floor_scale=config.LADDER_FLOOR,
            min_scale=config.LADDER_MIN_SCALE,
            stabilize_delay=config.STABILIZE_DELAY,
            cooldown_delay=config.COOLDOWN_DELAY,
            mime_type=config.EXPORT_MIME_TYPE,
        )

    def scale_ladder(self, width: float, height: float) -> List[float]:
        """
        Scales to attempt for a width x height frame, in order.

        e.g. a safe scale of 0.30 gives [0.30, 0.21, 0.15, 0.25].
        """
        safe = self.budget.safe_scale(width, height)
        candidates = [safe * factor for factor in self.factors] + [self.floor_scale]
        return [scale for scale in candidates if scale > self.min_scale]

    def iter_attempts(
        self,
        surface: RenderSurface,
        width: float,
        height: float,
        quality: float,
    ) -> Iterator[Tuple[float, Callable[[], Awaitable[ExportAttempt]]]]:
        """Yield one awaitable-producing step per ladder scale."""
        for scale in self.scale_ladder(width, height):
            yield scale, (lambda s=scale: self._attempt(surface, width, height, quality, s))

    async def _attempt(
        self,
        surface: RenderSurface,
        width: float,
        height: float,
        quality: float,
        scale: float,
    ) -> ExportAttempt:
        target_w = round_half_up(scale * width)
        target_h = round_half_up(scale * height)

        surface.resize(target_w, target_h)
        surface.set_scale(scale, scale)
        await asyncio.to_thread(surface.force_redraw)

        # Let the rendering backend settle before reading the raster back
        await asyncio.sleep(self.stabilize_delay)

        blob = await asyncio.to_thread(surface.encode, self.mime_type, quality)
        return ExportAttempt(
            scale=scale,
            blob=blob,
            achieved_width=target_w,
            achieved_height=target_h,
        )

    async def export(
        self,
        surface: RenderSurface,
        width: float,
        height: float,
        quality: float,
        on_progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> ExportResult:
        """
        Export a width x height frame from ``surface``.

        The surface is left at whatever size the last attempt set; restoring
        it is the caller's job (see ``export_and_restore``).

        Args:
            surface: Surface drawing the full frame
            width: Full frame width in pixels
            height: Full frame height in pixels
            quality: Encode quality in (0, 1]
            on_progress: Called after each attempt with
                (attempt index, attempt count, scale, error or None)
            is_cancelled: Checked before each attempt

        Returns:
            ExportResult at the first scale that succeeded

        Raises:
            ExportExhausted: If every scale failed
            ExportCancelled: If ``is_cancelled`` returned True
        """
        if not 0 < quality <= 1:
            raise ValueError(f"Quality must be in (0, 1], got {quality}")

        steps = list(self.iter_attempts(surface, width, height, quality))
        total = len(steps)
        attempted = []
        last_error: Optional[BaseException] = None

        logger.info(
            f"Exporting {round_half_up(width)}x{round_half_up(height)} frame "
            f"({self.budget!r}), ladder={[round(s, 4) for s, _ in steps]}"
        )

        for index, (scale, step) in enumerate(steps):
            if is_cancelled is not None and is_cancelled():
                raise ExportCancelled(f"Export cancelled before attempt {index + 1}/{total}")

            attempted.append(scale)
            try:
                attempt = await step()
            except (SurfaceError, MemoryError) as e:
                last_error = e
                logger.warning(
                    f"Export attempt {index + 1}/{total} at scale {scale:.2f} failed: {e}"
                )
                if on_progress is not None:
                    on_progress(index, total, scale, e)
                if index < total - 1:
                    await asyncio.sleep(self.cooldown_delay)
                continue

            logger.info(
                f"Export succeeded at scale {scale:.2f}: "
                f"{attempt.achieved_width}x{attempt.achieved_height}, {len(attempt.blob)} bytes"
            )
            if on_progress is not None:
                on_progress(index, total, scale, None)
            return ExportResult(
                blob=attempt.blob,
                scale=attempt.scale,
                width=attempt.achieved_width,
                height=attempt.achieved_height,
            )

        raise ExportExhausted(attempted, last_error) from last_error

    async def export_and_restore(
        self,
        surface: RenderSurface,
        width: float,
        height: float,
        quality: float,
        on_progress: Optional[ProgressCallback] = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> ExportResult:
        """
        Run ``export`` with exclusive use of the surface.

        The surface's size and scale are restored and redrawn afterwards,
        whether the export succeeded, was exhausted or was cancelled.
        """
        async with surface.lock:
            previous_size = surface.size
            previous_scale = surface.scale
            try:
                return await self.export(
                    surface, width, height, quality,
                    on_progress=on_progress,
                    is_cancelled=is_cancelled,
                )
            finally:
                surface.resize(*previous_size)
                surface.set_scale(*previous_scale)
                try:
                    await asyncio.to_thread(surface.force_redraw)
                except SurfaceError as e:
                    logger.warning(f"Unable to redraw surface after export: {e}")
