import io

import pytest
from PIL import Image

from onepic.assets import AssetCollection, PhotoAsset
from onepic.config import Config
from onepic.layouts import Photo


def make_jpeg_bytes(width: int, height: int, color=(200, 120, 40)) -> bytes:
    """Encode a solid-color JPEG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


def make_asset(asset_id: str, width: int, height: int, noisy: bool = False) -> PhotoAsset:
    """Build a decoded asset without going through the decoder."""
    if noisy:
        image = Image.effect_noise((width, height), 64).convert("RGB")
    else:
        image = Image.new("RGB", (width, height), (90, 140, 200))
    return PhotoAsset(id=asset_id, name=f"{asset_id}.jpg", width=width, height=height, image=image)


@pytest.fixture
def config(tmp_path):
    """Config writing into a temporary output folder."""
    return Config(
        base_dir=tmp_path,
        output_dir=tmp_path / "output",
        font_path=tmp_path / "missing-font.ttf",
        public_base_url="http://testserver/",
    )


@pytest.fixture
def mixed_photos():
    """Landscape, portrait and square photos in a fixed order."""
    return [
        Photo("landscape", 4000, 3000),
        Photo("portrait", 3000, 4000),
        Photo("square", 2000, 2000),
        Photo("panorama", 6000, 1500),
        Photo("tall", 1000, 3000),
        Photo("wide", 3000, 2000),
        Photo("small", 640, 480),
    ]


@pytest.fixture
def asset_factory():
    return make_asset


@pytest.fixture
def small_collection():
    """Three small decoded assets."""
    return AssetCollection([
        make_asset("a", 120, 80, noisy=True),
        make_asset("b", 80, 120, noisy=True),
        make_asset("c", 100, 100, noisy=True),
    ])


@pytest.fixture
def jpeg_bytes():
    return make_jpeg_bytes
