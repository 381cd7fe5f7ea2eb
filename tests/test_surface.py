"""
Tests for the Pillow render surface.
"""

import base64
import io

import pytest
from PIL import Image

from onepic.surface import (
    PillowSurface,
    PlacedPhoto,
    Scene,
    SurfaceError,
    quality_to_pillow,
    round_half_up,
)


@pytest.fixture
def red_scene():
    """A 400x300 white frame with a red 200x100 photo at (50, 50)."""
    photo = Image.new("RGB", (20, 10), (255, 0, 0))
    return Scene(
        width=400,
        height=300,
        photos=[PlacedPhoto(image=photo, x=50, y=50, width=200, height=100)],
    )


def _decode(blob: bytes) -> Image.Image:
    return Image.open(io.BytesIO(blob))


def test_round_half_up():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4999) == 2


def test_quality_mapping():
    assert quality_to_pillow(0.85) == 85
    assert quality_to_pillow(1) == 100
    assert quality_to_pillow(0.001) == 1


def test_encode_full_size(red_scene):
    surface = PillowSurface(red_scene)

    image = _decode(surface.encode("image/jpeg", 0.9))

    assert image.format == "JPEG"
    assert image.size == (400, 300)
    r, g, b = image.convert("RGB").getpixel((150, 100))
    assert r > 200 and g < 60 and b < 60
    assert image.convert("RGB").getpixel((10, 10))[1] > 200


def test_scale_maps_scene_coordinates(red_scene):
    surface = PillowSurface(red_scene)
    surface.resize(200, 150)
    surface.set_scale(0.5, 0.5)
    surface.force_redraw()

    canvas = surface.canvas

    assert canvas.size == (200, 150)
    r, g, b = canvas.getpixel((75, 50))
    assert r > 250 and g < 5 and b < 5
    # Photo ends at x = (50 + 200) * 0.5 = 125
    assert canvas.getpixel((130, 50)) == (255, 255, 255)


def test_size_and_scale_are_reported(red_scene):
    surface = PillowSurface(red_scene, width=100, height=75)
    surface.set_scale(0.25, 0.25)

    assert surface.size == (100, 75)
    assert surface.scale == (0.25, 0.25)


def test_ceiling_raises_surface_error(red_scene):
    surface = PillowSurface(red_scene, max_pixels=10_000)

    with pytest.raises(SurfaceError, match="exceeds"):
        surface.force_redraw()

    surface.resize(100, 75)
    surface.force_redraw()
    assert surface.canvas.size == (100, 75)


def test_unsupported_mime_type(red_scene):
    surface = PillowSurface(red_scene)

    with pytest.raises(SurfaceError, match="Unsupported"):
        surface.encode("image/tiff", 0.9)


def test_data_url_round_trips_bytes(red_scene):
    surface = PillowSurface(red_scene)
    surface.force_redraw()

    data_url = surface.to_data_url("image/jpeg", 0.8)

    assert data_url.startswith("data:image/jpeg;base64,")
    payload = base64.b64decode(data_url.split(",", 1)[1])
    assert payload == surface.encode("image/jpeg", 0.8)


def test_footer_is_drawn_with_default_font(tmp_path):
    scene = Scene(
        width=400,
        height=300,
        footer_text="Summer",
        footer_x=0,
        footer_y=200,
        footer_width=400,
        footer_height=100,
        footer_font_size=40,
        font_path=tmp_path / "missing.ttf",
    )
    surface = PillowSurface(scene)
    surface.force_redraw()

    footer = surface.canvas.crop((0, 200, 400, 300)).convert("L")

    # Some dark text pixels inside an otherwise white band
    assert footer.getextrema()[0] < 100
    assert footer.getpixel((2, 2)) == 255
