"""
Export size estimator.

Approximates the byte size of a full-resolution export without encoding
at full resolution: the preview surface (already drawn at a reduced
scale) is encoded at the target quality and the byte count is scaled up
by the pixel ratio.

Estimates are debounced. Every ``schedule`` call supersedes the previous
one; a timer that fires for a superseded request never publishes its
result.
"""

import asyncio
import logging
import re
from typing import Callable, Optional

from .budget import extrapolation_factor
from .surface import RenderSurface, SurfaceError

logger = logging.getLogger(__name__)

_PADDING_RE = re.compile(r"=*$")


def data_url_byte_length(data_url: str) -> int:
    """Decoded byte length of a base64 ``data:`` URL payload."""
    _, _, payload = data_url.partition(",")
    if not payload:
        return 0
    padding = len(_PADDING_RE.search(payload).group(0))
    return round(len(payload) * 3 / 4 - padding)


def format_bytes(size: Optional[float]) -> str:
    """Human readable size, e.g. "1.2 MB" or "340.0 KB"."""
    if size is None or size <= 0 or size != size or size == float("inf"):
        return "—"
    mb = size / (1024 * 1024)
    if mb >= 1:
        return f"{mb:.1f} MB"
    return f"{size / 1024:.1f} KB"


class SizeEstimator:
    """
    Debounced export size estimator over a preview surface.

    Args:
        surface: The interactive preview surface
        debounce: Delay before sampling, in seconds
        mime_type: Type to encode the sample as
        on_change: Called with each published estimate (None for unknown)
    """

    def __init__(
        self,
        surface: RenderSurface,
        debounce: float = 0.6,
        mime_type: str = "image/jpeg",
        on_change: Optional[Callable[[Optional[float]], None]] = None,
    ):
        self.surface = surface
        self.debounce = debounce
        self.mime_type = mime_type
        self.on_change = on_change

        self.estimate: Optional[float] = None
        self.is_estimating = False

        self._token = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def latest_token(self) -> int:
        return self._token

    def sample(self, quality: float, preview_scale: float) -> Optional[float]:
        """
        Encode the preview once and extrapolate to full resolution.

        Returns None when the preview cannot be encoded.
        """
        try:
            data_url = self.surface.to_data_url(self.mime_type, quality)
        except (SurfaceError, OSError, ValueError, MemoryError) as e:
            logger.warning(f"Unable to estimate export size: {e}")
            return None
        preview_bytes = data_url_byte_length(data_url)
        return preview_bytes * extrapolation_factor(preview_scale)

    def schedule(
        self,
        asset_count: int,
        quality: float,
        frame_width: float,
        frame_height: float,
        preview_scale: float,
    ) -> int:
        """
        Request a new estimate for changed inputs.

        Must be called from a running event loop. Any pending estimate is
        cancelled. Returns the token issued for this request.
        """
        self.cancel()
        self._token += 1
        token = self._token

        if asset_count <= 0 or frame_width <= 0 or frame_height <= 0:
            self._publish(token, None)
            return token

        self.is_estimating = True
        self._settled.clear()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(
            self.debounce, self._fire, token, quality, preview_scale
        )
        return token

    def cancel(self) -> None:
        """
        Drop the pending timer, if any.

        The previous estimate is kept and waiters are released. A sample
        already running is left to finish; ``schedule`` supersedes it.
        """
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self.is_estimating = False
        self._settled.set()

    async def wait(self) -> Optional[float]:
        """Wait until the latest request has published, then return the estimate."""
        await self._settled.wait()
        return self.estimate

    def _fire(self, token: int, quality: float, preview_scale: float) -> None:
        self._timer = None
        if token != self._token:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(token, quality, preview_scale)
        )

    async def _run(self, token: int, quality: float, preview_scale: float) -> None:
        async with self.surface.lock:
            if token != self._token:
                return
            result = await asyncio.to_thread(self.sample, quality, preview_scale)
        self._publish(token, result)

    def _publish(self, token: int, result: Optional[float]) -> None:
        if token != self._token:
            logger.debug(f"Discarding stale estimate (token {token}, latest {self._token})")
            return
        self.estimate = result
        self.is_estimating = False
        self._settled.set()
        if self.on_change is not None:
            self.on_change(result)
