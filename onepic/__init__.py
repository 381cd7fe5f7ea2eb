"""
OnePic - turn up to 100 photos into a single collage.

Package structure:
    onepic/
        __init__.py         - Package exports
        config.py           - Configuration, paths, presets, export tuning
        layouts.py          - Masonry and justified layout engines
        budget.py           - Platform pixel ceilings and safe export scale
        surface.py          - Render surface interface and Pillow surface
        assets.py           - Photo decoding and decoded image ownership
        exporter.py         - Scale-ladder adaptive exporter
        estimator.py        - Debounced export size estimator
        collage.py          - Frame geometry and the end-to-end pipeline
        storage.py          - Dated output folders for finished collages
    api/
        __init__.py
        main.py             - FastAPI application
"""

from .assets import AssetCollection, DecodeError, NoPhotosError, PhotoAsset, decode_asset, decode_assets
from .budget import PixelBudget, PlatformClass, classify
from .collage import CollageOptions, estimate_collage, generate_collage, save_collage
from .config import Config, ConfigError, OnePicError, get_config, init_config
from .estimator import SizeEstimator, format_bytes
from .exporter import AdaptiveExporter, ExportCancelled, ExportExhausted, ExportResult
from .layouts import LayoutItem, LayoutResult, Photo, compute_justified, compute_layout, compute_masonry
from .storage import CollageStore, LocalCollageStore, StoredCollage
from .surface import PillowSurface, RenderSurface, SurfaceError

__all__ = [
    "AdaptiveExporter",
    "AssetCollection",
    "CollageOptions",
    "CollageStore",
    "Config",
    "ConfigError",
    "DecodeError",
    "ExportCancelled",
    "ExportExhausted",
    "ExportResult",
    "LayoutItem",
    "LayoutResult",
    "LocalCollageStore",
    "NoPhotosError",
    "OnePicError",
    "Photo",
    "PhotoAsset",
    "PillowSurface",
    "PixelBudget",
    "PlatformClass",
    "RenderSurface",
    "SizeEstimator",
    "StoredCollage",
    "SurfaceError",
    "classify",
    "compute_justified",
    "compute_layout",
    "compute_masonry",
    "decode_asset",
    "decode_assets",
    "estimate_collage",
    "format_bytes",
    "generate_collage",
    "get_config",
    "init_config",
    "save_collage",
]
