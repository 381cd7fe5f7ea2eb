"""
Collage pipeline.

Functions for:
- Computing the frame around a layout (padding, footer band, preview scale)
- Building the scene a render surface draws
- Exporting a collage through the adaptive exporter
- Estimating the export size from the preview

Main entry points:
    generate_collage(assets, options, budget) -> CollageExport
    estimate_collage(assets, options) -> Optional[float]
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from .assets import AssetCollection, NoPhotosError, PhotoAsset
from .budget import PixelBudget
from .config import Config, get_config
from .estimator import SizeEstimator
from .exporter import AdaptiveExporter, CancelCheck, ExportResult, ProgressCallback
from .layouts import LayoutResult, compute_layout
from .storage import CollageStore, LocalCollageStore, StoredCollage, new_batch_id
from .surface import PillowSurface, PlacedPhoto, Scene, round_half_up

logger = logging.getLogger(__name__)


def footer_date(day: Optional[date] = None) -> str:
    """Default footer caption, e.g. "May 1, 2024"."""
    day = day or date.today()
    return f"{day:%B} {day.day}, {day.year}"


@dataclass
class CollageOptions:
    """User-facing collage settings."""
    mode: str = "masonry"
    columns: int = 4
    row_height: float = 340
    footer_enabled: bool = True
    footer_text: str = field(default_factory=footer_date)
    preset: str = "balanced"

    @classmethod
    def from_config(cls, config: Config, **overrides) -> "CollageOptions":
        options = cls(
            columns=config.DEFAULT_COLUMNS,
            row_height=config.DEFAULT_ROW_HEIGHT,
            preset=config.DEFAULT_PRESET,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options


@dataclass
class FrameGeometry:
    """Full exportable frame: padded layout plus the optional footer band."""
    width: int
    height: float
    padding: int
    footer_height: int
    footer_y: float
    preview_width: float
    preview_height: float

    @property
    def preview_scale(self) -> float:
        return self.preview_width / self.width


@dataclass
class CollageExport:
    """A finished export plus the layout it was drawn from."""
    result: ExportResult
    layout: LayoutResult
    frame: FrameGeometry
    filename: str
    day: date
    platform: str


def export_filename(config: Optional[Config] = None, today: Optional[date] = None) -> str:
    """Suggested download name, e.g. ``onepic-2024-05-01.jpg``."""
    config = config or get_config()
    today = today or date.today()
    return f"{config.FILENAME_PREFIX}-{today.isoformat()}.jpg"


def compute_collage_layout(
    photos: Sequence[PhotoAsset],
    options: CollageOptions,
    config: Optional[Config] = None,
) -> LayoutResult:
    """Lay out photos at the full export width."""
    config = config or get_config()
    if not photos:
        return LayoutResult(width=config.EXPORT_WIDTH, height=0, items=[])
    return compute_layout(
        photos,
        mode=options.mode,
        width=config.EXPORT_WIDTH,
        gutter=config.DEFAULT_GUTTER,
        columns=options.columns,
        row_height=options.row_height,
    )


def compute_frame(
    layout: LayoutResult,
    footer_enabled: bool,
    config: Optional[Config] = None,
    viewport_width: Optional[float] = None,
) -> FrameGeometry:
    """
    Frame geometry for a layout.

    Args:
        layout: Layout at export width
        footer_enabled: Whether the footer band is drawn under the photos
        config: Configuration instance
        viewport_width: Available preview width; defaults to PREVIEW_MAX_WIDTH
    """
    config = config or get_config()
    padding = config.FRAME_PADDING
    footer_height = config.FOOTER_HEIGHT if footer_enabled else 0

    width = round_half_up(layout.width) + padding * 2
    height = layout.height + footer_height + padding * 2

    available = viewport_width if viewport_width and viewport_width > 0 else config.PREVIEW_MAX_WIDTH
    preview_width = min(config.PREVIEW_MAX_WIDTH, available, width)
    preview_height = max(height * preview_width / width, 1)

    return FrameGeometry(
        width=width,
        height=height,
        padding=padding,
        footer_height=footer_height,
        footer_y=padding + layout.height,
        preview_width=preview_width,
        preview_height=preview_height,
    )


def build_scene(
    photos: Sequence[PhotoAsset],
    layout: LayoutResult,
    frame: FrameGeometry,
    options: CollageOptions,
    config: Optional[Config] = None,
) -> Scene:
    """Place each laid-out photo inside the frame padding."""
    config = config or get_config()
    by_id = {photo.id: photo for photo in photos}

    placed = []
    for item in layout.items:
        photo = by_id.get(item.id)
        if photo is None:
            continue
        placed.append(PlacedPhoto(
            image=photo.image,
            x=item.x + frame.padding,
            y=item.y + frame.padding,
            width=item.width,
            height=item.height,
        ))

    footer_text = None
    if options.footer_enabled:
        footer_text = options.footer_text or config.DEFAULT_FOOTER_TEXT

    return Scene(
        width=frame.width,
        height=round_half_up(frame.height),
        photos=placed,
        footer_text=footer_text,
        footer_x=frame.padding,
        footer_y=frame.footer_y,
        footer_width=round_half_up(layout.width),
        footer_height=frame.footer_height,
        footer_font_size=config.FOOTER_FONT_SIZE,
        font_path=config.font_path,
    )


def build_preview_surface(
    photos: Sequence[PhotoAsset],
    options: CollageOptions,
    config: Optional[Config] = None,
    viewport_width: Optional[float] = None,
):
    """
    Lay out photos and return (layout, frame, surface) with the surface at preview scale.
    """
    config = config or get_config()
    layout = compute_collage_layout(photos, options, config)
    frame = compute_frame(layout, options.footer_enabled, config, viewport_width)
    scene = build_scene(photos, layout, frame, options, config)

    surface = PillowSurface(
        scene,
        width=round_half_up(frame.preview_width),
        height=round_half_up(frame.preview_height),
        max_pixels=config.max_pixels,
    )
    surface.set_scale(frame.preview_scale, frame.preview_scale)
    return layout, frame, surface


async def generate_collage(
    collection: AssetCollection,
    options: CollageOptions,
    budget: PixelBudget,
    config: Optional[Config] = None,
    on_progress: Optional[ProgressCallback] = None,
    is_cancelled: Optional[CancelCheck] = None,
) -> CollageExport:
    """
    Export the collection's photos as one JPEG collage.

    Photos are leased for the duration of the export, so replacing the
    collection meanwhile does not close images still being drawn.

    Raises:
        NoPhotosError: If the collection is empty
        ConfigError: If options.preset is unknown
        ValueError: If options.mode is invalid
        ExportExhausted: If every export scale failed
    """
    config = config or get_config()
    quality = config.get_quality(options.preset)
    today = date.today()

    with collection.lease() as photos:
        if not photos:
            raise NoPhotosError()

        layout, frame, surface = build_preview_surface(photos, options, config)
        exporter = AdaptiveExporter.from_config(budget, config)

        logger.debug(
            f"Generating collage: mode={options.mode}, photos={len(photos)}, "
            f"frame={frame.width}x{round_half_up(frame.height)}, preset={options.preset}"
        )

        result = await exporter.export_and_restore(
            surface,
            frame.width,
            frame.height,
            quality,
            on_progress=on_progress,
            is_cancelled=is_cancelled,
        )

    return CollageExport(
        result=result,
        layout=layout,
        frame=frame,
        filename=export_filename(config, today),
        day=today,
        platform=budget.platform.value,
    )


async def estimate_collage(
    collection: AssetCollection,
    options: CollageOptions,
    config: Optional[Config] = None,
    debounce: float = 0,
) -> Optional[float]:
    """
    One-shot export size estimate for the collection's photos.

    Returns None ("unknown") for an empty collection or a failed sample.
    """
    config = config or get_config()
    quality = config.get_quality(options.preset)

    with collection.lease() as photos:
        layout, frame, surface = build_preview_surface(photos, options, config)
        estimator = SizeEstimator(
            surface,
            debounce=debounce,
            mime_type=config.EXPORT_MIME_TYPE,
        )
        estimator.schedule(
            asset_count=len(photos),
            quality=quality,
            frame_width=frame.width,
            frame_height=frame.height if layout.items else 0,
            preview_scale=frame.preview_scale,
        )
        return await estimator.wait()


def save_collage(
    export: CollageExport,
    batch_id: Optional[str] = None,
    config: Optional[Config] = None,
    store: Optional[CollageStore] = None,
) -> StoredCollage:
    """Write an export into the folder for the day it was made."""
    config = config or get_config()
    store = store or LocalCollageStore(config)

    if batch_id is None:
        batch_id = new_batch_id()

    result = store.put(export.result.blob, batch_id, export.filename, export.day)
    logger.info(f"Saved: {result.filename} -> {result.url}")
    return result
