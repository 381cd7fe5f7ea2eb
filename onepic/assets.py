"""
Photo assets.

Decodes uploaded image bytes into bounded-resolution Pillow images and
owns their lifetime:

- decode_asset: one source -> PhotoAsset, downscaled to the import width
- decode_assets: many sources concurrently; failures are collected per item
- AssetCollection: the active photo set; defers closing decoded images
  until no reader holds a lease on them

Main entry points:
    assets, errors, truncated = await decode_assets(sources)
    collection.replace(assets)
    with collection.lease() as active: ...
"""

import asyncio
import io
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .config import OnePicError

logger = logging.getLogger(__name__)


class DecodeError(OnePicError):
    """Raised when a single source cannot be decoded."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Unable to load {name}: {reason}")


class NoPhotosError(OnePicError):
    """Raised when a collage is requested without any decodable photo."""

    def __init__(self, message: str = "Add photos before exporting your recap."):
        super().__init__(message)


@dataclass
class PhotoAsset:
    """A decoded photo. ``width``/``height`` describe ``image`` after downscaling."""
    id: str
    name: str
    width: int
    height: int
    image: Image.Image
    released: bool = field(default=False, compare=False)

    def release(self) -> None:
        """Close the decoded image. Safe to call more than once."""
        if self.released:
            return
        self.released = True
        self.image.close()


def decode_asset(
    data: bytes,
    name: str,
    index: int,
    max_width: int,
) -> PhotoAsset:
    """
    Decode one image.

    EXIF orientation is applied before measuring, so ``width``/``height``
    are the dimensions as displayed. Images wider than ``max_width`` are
    downscaled, preserving aspect ratio.

    Raises:
        DecodeError: If the bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            image = ImageOps.exif_transpose(opened)
            image = image.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(name, str(e) or type(e).__name__) from e

    scale = min(1, max_width / image.width)
    target_width = round(image.width * scale)
    target_height = round(image.height * scale)

    if scale < 1:
        resized = image.resize((target_width, target_height), Image.LANCZOS)
        image.close()
        image = resized

    asset_id = f"{name}-{index}-{time.time_ns()}"
    return PhotoAsset(
        id=asset_id,
        name=name,
        width=image.width,
        height=image.height,
        image=image,
    )


async def decode_assets(
    sources: Sequence[Tuple[str, bytes]],
    max_width: int,
    max_images: int = 100,
) -> Tuple[List[PhotoAsset], List[DecodeError], bool]:
    """
    Decode sources concurrently in worker threads.

    Only the first ``max_images`` sources are decoded. A source that fails
    does not abort its siblings.

    Args:
        sources: (name, bytes) pairs in display order
        max_width: Maximum decoded width
        max_images: Maximum number of sources to decode

    Returns:
        (assets in source order, per-item errors, whether sources were truncated)
    """
    selected = list(sources)[:max_images]
    truncated = len(sources) > max_images
    if truncated:
        logger.info(f"Only the first {max_images} of {len(sources)} images were queued")

    results = await asyncio.gather(
        *[
            asyncio.to_thread(decode_asset, data, name, index, max_width)
            for index, (name, data) in enumerate(selected)
        ],
        return_exceptions=True,
    )

    assets = []
    errors = []
    for result in results:
        if isinstance(result, DecodeError):
            logger.warning(str(result))
            errors.append(result)
        elif isinstance(result, BaseException):
            raise result
        else:
            assets.append(result)

    return assets, errors, truncated


class AssetCollection:
    """
    The active photo set and sole owner of its decoded images.

    Removing assets (``replace``/``clear``) takes them out of the active set
    immediately, but closes their images only once every outstanding lease
    has ended, so an in-flight export or estimate never reads a closed image.
    """

    def __init__(self, assets: Optional[Sequence[PhotoAsset]] = None):
        self._lock = threading.Lock()
        self._assets: List[PhotoAsset] = list(assets or [])
        self._retired: List[PhotoAsset] = []
        self._leases = 0

    def __len__(self) -> int:
        return len(self._assets)

    def __iter__(self) -> Iterator[PhotoAsset]:
        return iter(list(self._assets))

    @property
    def assets(self) -> List[PhotoAsset]:
        return list(self._assets)

    @property
    def active_leases(self) -> int:
        return self._leases

    def get(self, asset_id: str) -> Optional[PhotoAsset]:
        for asset in self._assets:
            if asset.id == asset_id:
                return asset
        return None

    def replace(self, assets: Sequence[PhotoAsset]) -> None:
        """Swap in a new photo set, retiring the previous one."""
        kept = {id(asset) for asset in assets}
        with self._lock:
            self._retired.extend(a for a in self._assets if id(a) not in kept)
            self._assets = list(assets)
            to_release = self._drain_locked()
        self._release(to_release)

    def clear(self) -> None:
        self.replace([])

    @contextmanager
    def lease(self) -> Iterator[List[PhotoAsset]]:
        """Hold the current photo set open for reading."""
        with self._lock:
            self._leases += 1
            snapshot = list(self._assets)
        try:
            yield snapshot
        finally:
            with self._lock:
                self._leases -= 1
                to_release = self._drain_locked()
            self._release(to_release)

    def _drain_locked(self) -> List[PhotoAsset]:
        if self._leases > 0:
            return []
        drained = self._retired
        self._retired = []
        return drained

    @staticmethod
    def _release(assets: List[PhotoAsset]) -> None:
        for asset in assets:
            asset.release()
        if assets:
            logger.debug(f"Released {len(assets)} decoded images")
