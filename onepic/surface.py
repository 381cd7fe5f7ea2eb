"""
Render surface abstraction.

Provides:
- RenderSurface: the narrow interface the exporter and estimator drive
- Scene / PlacedPhoto: what a surface draws, in full-frame coordinates
- PillowSurface: Pillow-backed surface with a hard raster ceiling

A surface has an output size in pixels and a drawing scale. The scene is
always described at full resolution; the scale maps it onto the output,
so the same scene can back a small preview or a full export.

Usage:
    surface = PillowSurface(scene, max_pixels=config.max_pixels)
    surface.resize(width, height)
    surface.set_scale(scale, scale)
    surface.force_redraw()
    jpeg = surface.encode("image/jpeg", 0.85)
"""

import abc
import asyncio
import base64
import io
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from .config import OnePicError

logger = logging.getLogger(__name__)

MIME_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}

FRAME_BACKGROUND = "white"
FOOTER_BACKGROUND = "white"
FOOTER_TEXT_COLOR = "#05060a"


class SurfaceError(OnePicError):
    """Raised when a surface cannot allocate, draw or encode its raster."""
    pass


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def quality_to_pillow(quality: float) -> int:
    """Map a (0, 1] quality to Pillow's 1-100 JPEG quality scale."""
    return max(1, min(100, round_half_up(quality * 100)))


class RenderSurface(abc.ABC):
    """
    Interface of a drawable, encodable raster surface.

    Each surface carries an asyncio lock; whoever resizes or reads the
    surface across await points must hold it.
    """

    def __init__(self):
        self.lock = asyncio.Lock()

    @property
    @abc.abstractmethod
    def size(self) -> Tuple[int, int]:
        """Current output size (width, height) in pixels."""
        pass

    @property
    @abc.abstractmethod
    def scale(self) -> Tuple[float, float]:
        """Current drawing scale (sx, sy)."""
        pass

    @abc.abstractmethod
    def resize(self, width: int, height: int) -> None:
        """Set the output size in pixels."""
        pass

    @abc.abstractmethod
    def set_scale(self, sx: float, sy: float) -> None:
        """Set the scale applied to full-frame scene coordinates."""
        pass

    @abc.abstractmethod
    def force_redraw(self) -> None:
        """Redraw the scene at the current size and scale."""
        pass

    @abc.abstractmethod
    def encode(self, mime_type: str, quality: float) -> bytes:
        """
        Encode the current raster.

        Raises:
            SurfaceError: If the raster cannot be produced or encoded
        """
        pass

    def to_data_url(self, mime_type: str, quality: float) -> str:
        """Encode the current raster as a base64 ``data:`` URL."""
        payload = base64.b64encode(self.encode(mime_type, quality)).decode("ascii")
        return f"data:{mime_type};base64,{payload}"


@dataclass
class PlacedPhoto:
    """A decoded image placed at full-frame coordinates."""
    image: Image.Image
    x: float
    y: float
    width: float
    height: float


@dataclass
class Scene:
    """Everything a surface draws, described at full resolution."""
    width: int
    height: int
    photos: List[PlacedPhoto] = field(default_factory=list)
    footer_text: Optional[str] = None
    footer_y: float = 0
    footer_x: float = 0
    footer_width: float = 0
    footer_height: float = 0
    footer_font_size: int = 72
    font_path: Optional[Path] = None


class PillowSurface(RenderSurface):
    """
    Render surface drawing a Scene with Pillow.

    ``max_pixels`` emulates a platform raster limit: drawing or encoding an
    output larger than that raises SurfaceError instead of allocating.
    """

    def __init__(
        self,
        scene: Scene,
        width: Optional[int] = None,
        height: Optional[int] = None,
        max_pixels: Optional[int] = None,
    ):
        super().__init__()
        self.scene = scene
        self.max_pixels = max_pixels
        self._width = int(width if width is not None else scene.width)
        self._height = int(height if height is not None else scene.height)
        self._scale = (1.0, 1.0)
        self._canvas: Optional[Image.Image] = None
        self._font_cache = {}

    @property
    def size(self) -> Tuple[int, int]:
        return (self._width, self._height)

    @property
    def scale(self) -> Tuple[float, float]:
        return self._scale

    @property
    def canvas(self) -> Optional[Image.Image]:
        """Last drawn raster, if any."""
        return self._canvas

    def resize(self, width: int, height: int) -> None:
        self._width = max(1, int(width))
        self._height = max(1, int(height))
        self._canvas = None

    def set_scale(self, sx: float, sy: float) -> None:
        self._scale = (float(sx), float(sy))
        self._canvas = None

    def _check_ceiling(self) -> None:
        pixels = self._width * self._height
        if self.max_pixels is not None and pixels > self.max_pixels:
            raise SurfaceError(
                f"Raster {self._width}x{self._height} ({pixels} px) exceeds "
                f"the {self.max_pixels} px limit"
            )

    def _load_font(self, size: int) -> ImageFont.ImageFont:
        if size in self._font_cache:
            return self._font_cache[size]
        font = None
        if self.scene.font_path is not None:
            try:
                font = ImageFont.truetype(str(self.scene.font_path), size)
            except OSError:
                logger.debug(f"Font {self.scene.font_path} unavailable, using default")
        if font is None:
            font = ImageFont.load_default(size=size)
        self._font_cache[size] = font
        return font

    def _draw(self) -> Image.Image:
        self._check_ceiling()
        sx, sy = self._scale

        try:
            canvas = Image.new("RGB", (self._width, self._height), FRAME_BACKGROUND)
        except MemoryError as e:
            raise SurfaceError(f"Unable to allocate {self._width}x{self._height} raster") from e

        for placed in self.scene.photos:
            target_w = max(1, round_half_up(placed.width * sx))
            target_h = max(1, round_half_up(placed.height * sy))
            resized = placed.image.resize((target_w, target_h), Image.LANCZOS)
            canvas.paste(resized, (round_half_up(placed.x * sx), round_half_up(placed.y * sy)))

        if self.scene.footer_text is not None and self.scene.footer_height > 0:
            # Footer is drawn after the photos so it covers any overhang
            draw = ImageDraw.Draw(canvas)
            left = round_half_up(self.scene.footer_x * sx)
            top = round_half_up(self.scene.footer_y * sy)
            right = round_half_up((self.scene.footer_x + self.scene.footer_width) * sx)
            bottom = round_half_up((self.scene.footer_y + self.scene.footer_height) * sy)
            draw.rectangle((left, top, right, bottom), fill=FOOTER_BACKGROUND)

            font = self._load_font(max(1, round_half_up(self.scene.footer_font_size * sy)))
            bbox = draw.textbbox((0, 0), self.scene.footer_text, font=font)
            text_w = bbox[2] - bbox[0]
            text_h = bbox[3] - bbox[1]
            x = left + (right - left - text_w) / 2
            y = top + (bottom - top - text_h) / 2
            draw.text((x, y), self.scene.footer_text, font=font, fill=FOOTER_TEXT_COLOR)

        return canvas

    def force_redraw(self) -> None:
        self._canvas = self._draw()

    def encode(self, mime_type: str, quality: float) -> bytes:
        if mime_type not in MIME_FORMATS:
            raise SurfaceError(f"Unsupported MIME type '{mime_type}'")

        if self._canvas is None:
            self.force_redraw()

        buffer = io.BytesIO()
        try:
            self._canvas.save(
                buffer,
                format=MIME_FORMATS[mime_type],
                quality=quality_to_pillow(quality),
            )
        except (OSError, ValueError, MemoryError) as e:
            raise SurfaceError(f"Encoding {mime_type} failed: {e}") from e
        return buffer.getvalue()
