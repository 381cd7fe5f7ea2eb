"""
OnePic API - FastAPI application for single-image photo collages.

=============================================================================
HOW TO RUN
=============================================================================

Local Development:
    uvicorn api.main:app --reload --host 0.0.0.0 --port 8000

Production:
    uvicorn api.main:app --host 0.0.0.0 --port 8000 --workers 4

Local CLI Test (without server):
    python -m api.main --local-test photo1.jpg photo2.jpg ...
    python -m api.main --local-test ./holiday-photos/

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

PUBLIC_BASE_URL     - Base URL for exported image URLs (default: http://localhost:8000)
OUTPUT_DIR          - Path to output folder (default: ./output)
FONT_PATH           - Path to footer font file (default: ./fonts/SpaceGrotesk-Medium.ttf)
ONEPIC_MAX_PIXELS   - Hard raster limit for the renderer (default: unlimited)

=============================================================================
API ENDPOINTS
=============================================================================

GET  /health    - Health check
GET  /presets   - Compression presets
POST /layout    - Compute a layout from photo dimensions
POST /collage   - Upload photos, export and save a collage
POST /estimate  - Upload photos, estimate the export size

=============================================================================
EXAMPLE REQUESTS
=============================================================================

Layout:
    curl -X POST http://localhost:8000/layout \\
      -H "Content-Type: application/json" \\
      -d '{
        "photos": [
          {"id": "a", "width": 4000, "height": 3000},
          {"id": "b", "width": 3000, "height": 4000}
        ],
        "mode": "justified",
        "row_height": 340
      }'

Collage:
    curl -X POST http://localhost:8000/collage \\
      -F "photos=@beach.jpg" -F "photos=@dinner.jpg" \\
      -F "mode=masonry" -F "columns=3" -F "preset=crisp" \\
      -F "footer_text=Summer 2024"

=============================================================================
"""

import argparse
import asyncio
import logging
import sys
import traceback
from dataclasses import asdict
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Literal, Optional

from fastapi import FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field, field_validator

# Add parent directory to path for imports when running directly
sys.path.insert(0, str(Path(__file__).parent.parent))

from onepic.assets import AssetCollection, DecodeError, NoPhotosError, decode_assets
from onepic.budget import PixelBudget, classify
from onepic.collage import (
    CollageOptions,
    compute_collage_layout,
    compute_frame,
    estimate_collage,
    generate_collage,
    save_collage,
)
from onepic.config import Config, ConfigError, get_config, init_config
from onepic.estimator import format_bytes
from onepic.exporter import ExportExhausted
from onepic.layouts import LAYOUT_MODES, Photo, compute_layout

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("onepic.api")


# =============================================================================
# Pydantic Models
# =============================================================================

class PhotoIn(BaseModel):
    """Dimensions of one photo."""
    id: str = Field(..., min_length=1, description="Unique photo identifier")
    width: float = Field(..., gt=0, description="Photo width in pixels")
    height: float = Field(..., gt=0, description="Photo height in pixels")


class LayoutRequest(BaseModel):
    """Request body for /layout endpoint."""
    photos: List[PhotoIn] = Field(
        default_factory=list,
        max_length=Config.MAX_IMAGES,
        description="Photos in placement order"
    )
    mode: Literal["masonry", "justified"] = Field(
        default="masonry", description="Packing algorithm"
    )
    width: float = Field(default=Config.EXPORT_WIDTH, gt=0, description="Layout width")
    gutter: float = Field(default=Config.DEFAULT_GUTTER, description="Spacing between photos")
    columns: int = Field(default=Config.DEFAULT_COLUMNS, description="Masonry column count")
    row_height: float = Field(
        default=Config.DEFAULT_ROW_HEIGHT, gt=0, description="Justified target row height"
    )

    @field_validator("photos")
    @classmethod
    def validate_unique_ids(cls, v: List[PhotoIn]) -> List[PhotoIn]:
        ids = [p.id for p in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Photo ids must be unique")
        return v


class LayoutItemOut(BaseModel):
    """Placement of one photo."""
    id: str
    x: float
    y: float
    width: float
    height: float


class LayoutResponse(BaseModel):
    """Response body for /layout endpoint."""
    width: float
    height: float
    items: List[LayoutItemOut]


class PresetOut(BaseModel):
    """A compression preset."""
    name: str
    label: str
    helper: str
    quality: float


class SkippedPhoto(BaseModel):
    """An upload that could not be decoded."""
    name: str
    reason: str


class CollageResponse(BaseModel):
    """Response body for /collage endpoint."""
    batch_id: str
    filename: str
    url: str
    scale: float
    width: int
    height: int
    byte_size: int
    platform: str
    photo_count: int
    truncated: bool
    skipped: List[SkippedPhoto]


class EstimateResponse(BaseModel):
    """Response body for /estimate endpoint."""
    byte_size: Optional[int]
    label: str
    quality: float
    frame_width: int
    frame_height: int


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""
    status: str


class ErrorResponse(BaseModel):
    """Error response body."""
    error: str
    detail: str


# =============================================================================
# Lifespan - Startup/Shutdown Events
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and mount the output directory on startup."""
    config = get_config()

    try:
        config.validate()
        logger.info("Configuration validated successfully")
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        # Don't fail startup - allow /health to report issues

    config.ensure_output_dir()

    # Exported collages are accessible at /output/...
    mounted = any(getattr(route, "name", None) == "output" for route in app.routes)
    if config.output_dir.is_dir() and not mounted:
        app.mount(
            "/output",
            StaticFiles(directory=str(config.output_dir)),
            name="output"
        )
        logger.info(f"Mounted static files at /output -> {config.output_dir}")

    yield

    logger.info("Shutting down OnePic API")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="OnePic API",
    description="Turn up to 100 photos into a single collage",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(NoPhotosError)
async def no_photos_error_handler(request: Request, exc: NoPhotosError):
    """Handle requests without any decodable photo."""
    logger.error(f"No photos: {exc}")
    return JSONResponse(
        status_code=422,
        content={
            "error": "NO_PHOTOS",
            "detail": str(exc),
        }
    )


@app.exception_handler(DecodeError)
async def decode_error_handler(request: Request, exc: DecodeError):
    """Handle an undecodable upload."""
    logger.error(f"Decode error: {exc}")
    return JSONResponse(
        status_code=422,
        content={
            "error": "DECODE_ERROR",
            "detail": str(exc),
        }
    )


@app.exception_handler(ExportExhausted)
async def export_exhausted_handler(request: Request, exc: ExportExhausted):
    """Handle an export that failed at every scale."""
    logger.error(f"Export exhausted: {exc}")
    return JSONResponse(
        status_code=503,
        content={
            "error": "EXPORT_EXHAUSTED",
            "detail": f"{exc}. Try fewer photos or a smaller compression preset.",
        }
    )


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    """Handle configuration errors."""
    logger.error(f"Configuration error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "CONFIG_ERROR",
            "detail": str(exc),
        }
    )


# =============================================================================
# Helpers
# =============================================================================

def _build_options(
    config: Config,
    mode: str,
    columns: Optional[int],
    row_height: Optional[float],
    footer_enabled: bool,
    footer_text: Optional[str],
    preset: str,
) -> CollageOptions:
    if mode not in LAYOUT_MODES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid mode '{mode}'. Must be one of: {', '.join(LAYOUT_MODES)}",
        )
    if preset not in config.available_presets():
        raise HTTPException(
            status_code=400,
            detail=f"Unknown preset '{preset}'. Available: {', '.join(config.available_presets())}",
        )
    return CollageOptions.from_config(
        config,
        mode=mode,
        columns=columns,
        row_height=row_height,
        footer_enabled=footer_enabled,
        footer_text=footer_text,
        preset=preset,
    )


async def _load_collection(photos: List[UploadFile], config: Config):
    sources = []
    for index, upload in enumerate(photos[: config.MAX_IMAGES]):
        sources.append((upload.filename or f"photo-{index + 1}", await upload.read()))

    assets, errors, _ = await decode_assets(
        sources,
        max_width=config.EXPORT_WIDTH,
        max_images=config.MAX_IMAGES,
    )
    if not assets:
        if errors:
            raise NoPhotosError(f"None of the uploaded images could be decoded: {errors[0]}")
        raise NoPhotosError()

    truncated = len(photos) > config.MAX_IMAGES
    return AssetCollection(assets), errors, truncated


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns {"status": "ok"} when the service is running.
    """
    return {"status": "ok"}


@app.get("/presets", response_model=List[PresetOut], tags=["Configuration"])
async def list_presets():
    """List compression presets and their JPEG quality."""
    return [
        PresetOut(name=name, **preset)
        for name, preset in Config.COMPRESSION_PRESETS.items()
    ]


@app.post("/layout", response_model=LayoutResponse, tags=["Layout"])
async def layout_photos(request: LayoutRequest):
    """
    Compute a masonry or justified layout from photo dimensions.

    Column count and gutter are clamped rather than rejected.
    """
    photos = [Photo(id=p.id, width=p.width, height=p.height) for p in request.photos]
    result = compute_layout(
        photos,
        mode=request.mode,
        width=request.width,
        gutter=request.gutter,
        columns=request.columns,
        row_height=request.row_height,
    )
    return LayoutResponse(
        width=result.width,
        height=result.height,
        items=[LayoutItemOut(**asdict(item)) for item in result.items],
    )


@app.post(
    "/collage",
    response_model=CollageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        422: {"model": ErrorResponse, "description": "No decodable photos"},
        503: {"model": ErrorResponse, "description": "Export failed at every scale"},
    },
    tags=["Export"],
)
async def create_collage(
    photos: List[UploadFile] = File(..., description="Photos in display order"),
    mode: str = Form("masonry"),
    columns: Optional[int] = Form(None),
    row_height: Optional[float] = Form(None, gt=0),
    footer_enabled: bool = Form(True),
    footer_text: Optional[str] = Form(None),
    preset: str = Form("balanced"),
    batch_id: Optional[str] = Form(None),
    max_touch_points: int = Form(0),
    user_agent: Optional[str] = Header(None),
):
    """
    Export the uploaded photos as one JPEG collage.

    The export scale adapts to the pixel ceiling of the client platform
    (derived from its User-Agent), stepping down until encoding succeeds.
    """
    config = get_config()
    options = _build_options(
        config, mode, columns, row_height, footer_enabled, footer_text, preset
    )
    platform = classify(user_agent, max_touch_points)
    budget = PixelBudget(platform, config.PIXEL_CEILINGS)

    logger.info(
        f"Collage request: count={len(photos)}, mode={mode}, "
        f"preset={preset}, platform={platform.value}"
    )

    collection, errors, truncated = await _load_collection(photos, config)
    try:
        export = await generate_collage(collection, options, budget, config)
        saved = save_collage(export, batch_id, config)
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except (NoPhotosError, ExportExhausted, ConfigError):
        raise
    except Exception as e:
        logger.error(f"Unexpected error: {e}\n{traceback.format_exc()}")
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error: {str(e)}"
        )
    finally:
        photo_count = len(collection)
        collection.clear()

    logger.info(
        f"Exported {saved.filename} at scale {export.result.scale:.2f} "
        f"({format_bytes(saved.byte_size)})"
    )

    return CollageResponse(
        batch_id=saved.batch_id,
        filename=saved.filename,
        url=saved.url,
        scale=export.result.scale,
        width=export.result.width,
        height=export.result.height,
        byte_size=saved.byte_size,
        platform=export.platform,
        photo_count=photo_count,
        truncated=truncated,
        skipped=[SkippedPhoto(name=e.name, reason=e.reason) for e in errors],
    )


@app.post(
    "/estimate",
    response_model=EstimateResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        422: {"model": ErrorResponse, "description": "No decodable photos"},
    },
    tags=["Export"],
)
async def estimate_size(
    photos: List[UploadFile] = File(..., description="Photos in display order"),
    mode: str = Form("masonry"),
    columns: Optional[int] = Form(None),
    row_height: Optional[float] = Form(None, gt=0),
    footer_enabled: bool = Form(True),
    footer_text: Optional[str] = Form(None),
    preset: str = Form("balanced"),
):
    """
    Approximate the full-resolution export size from a preview-scale encode.
    """
    config = get_config()
    options = _build_options(
        config, mode, columns, row_height, footer_enabled, footer_text, preset
    )

    collection, _, _ = await _load_collection(photos, config)
    try:
        layout = compute_collage_layout(collection.assets, options, config)
        frame = compute_frame(layout, options.footer_enabled, config)
        estimate = await estimate_collage(collection, options, config)
    finally:
        collection.clear()

    return EstimateResponse(
        byte_size=round(estimate) if estimate is not None else None,
        label=format_bytes(estimate),
        quality=config.get_quality(options.preset),
        frame_width=frame.width,
        frame_height=round(frame.height),
    )


# =============================================================================
# CLI Entry Point
# =============================================================================

def collect_photo_paths(paths: List[str], config: Config) -> List[Path]:
    """
    Expand CLI arguments into photo files.

    Files are used as given. Folders contribute their image files
    (by extension, sorted by name); other entries are skipped.
    """
    collected = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            collected.extend(sorted(
                p for p in path.iterdir()
                if p.is_file() and p.suffix.lower() in config.IMAGE_EXTENSIONS
            ))
        else:
            collected.append(path)
    return collected


def run_local_test(photo_paths: List[str], mode: str = "masonry", preset: str = "balanced"):
    """Build a collage from local files without starting the server."""
    print("=" * 60)
    print("OnePic - Local Test Mode")
    print("=" * 60)

    config = init_config(
        base_dir=Path(__file__).parent.parent,
    )

    print(f"OUTPUT_DIR: {config.output_dir}")
    print(f"FONT_PATH: {config.font_path}")
    print()

    try:
        config.validate()
        print("Configuration: OK")
    except ConfigError as e:
        print(f"Configuration Error: {e}")
        sys.exit(1)

    sources = []
    for path in collect_photo_paths(photo_paths, config):
        try:
            sources.append((Path(path).name, Path(path).read_bytes()))
        except OSError as e:
            print(f"Skipping {path}: {e}")

    async def _run():
        assets, errors, truncated = await decode_assets(
            sources, max_width=config.EXPORT_WIDTH, max_images=config.MAX_IMAGES
        )
        for error in errors:
            print(f"Skipped: {error}")
        if truncated:
            print(f"Only the first {config.MAX_IMAGES} images were queued.")

        collection = AssetCollection(assets)
        options = CollageOptions.from_config(config, mode=mode, preset=preset)
        budget = PixelBudget(classify(None), config.PIXEL_CEILINGS)

        def on_progress(index, total, scale, error):
            status = "ok" if error is None else f"failed ({error})"
            print(f"  attempt {index + 1}/{total} at scale {scale:.2f}: {status}")

        try:
            estimate = await estimate_collage(collection, options, config)
            print(f"Estimated size: {format_bytes(estimate)}")
            export = await generate_collage(
                collection, options, budget, config, on_progress=on_progress
            )
            return save_collage(export, config=config), export
        finally:
            collection.clear()

    print()
    print(f"Building collage from {len(sources)} photos...")
    print()

    try:
        saved, export = asyncio.run(_run())
    except (NoPhotosError, ExportExhausted) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print()
    print("=" * 60)
    print("Generated file:")
    print("=" * 60)
    print(f"  {saved.local_path}")
    print(f"  {export.result.width}x{export.result.height} at scale {export.result.scale:.2f}, "
          f"{format_bytes(saved.byte_size)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="OnePic API")
    parser.add_argument(
        "--local-test",
        action="store_true",
        help="Build a collage from local files without starting the server"
    )
    parser.add_argument("photos", nargs="*", help="Photo files or folders for --local-test")
    parser.add_argument("--mode", choices=LAYOUT_MODES, default="masonry")
    parser.add_argument("--preset", choices=Config.available_presets(), default="balanced")

    args = parser.parse_args()

    if args.local_test:
        if not args.photos:
            parser.error("--local-test needs at least one photo")
        run_local_test(args.photos, mode=args.mode, preset=args.preset)
    else:
        # Print usage hint
        print("Usage:")
        print("  Start server: uvicorn api.main:app --reload")
        print("  Local test:   python -m api.main --local-test photo1.jpg photo2.jpg")
