"""
Tests for photo decoding and decoded image ownership.
"""

import asyncio
import io

import pytest
from PIL import Image

from onepic.assets import AssetCollection, DecodeError, decode_asset, decode_assets


class TestDecodeAsset:

    def test_small_image_keeps_size(self, jpeg_bytes):
        asset = decode_asset(jpeg_bytes(640, 480), "beach.jpg", 0, max_width=3600)

        assert (asset.width, asset.height) == (640, 480)
        assert asset.image.size == (640, 480)
        assert asset.image.mode == "RGB"
        assert asset.name == "beach.jpg"
        assert asset.id.startswith("beach.jpg-0-")

    def test_wide_image_is_downscaled(self, jpeg_bytes):
        asset = decode_asset(jpeg_bytes(800, 200), "pano.jpg", 3, max_width=400)

        assert (asset.width, asset.height) == (400, 100)
        assert asset.image.size == (400, 100)

    def test_exif_orientation_is_applied(self):
        image = Image.new("RGB", (300, 100), "blue")
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 CW on display
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", exif=exif)

        asset = decode_asset(buffer.getvalue(), "rotated.jpg", 0, max_width=3600)

        assert (asset.width, asset.height) == (100, 300)

    def test_png_with_alpha_becomes_rgb(self):
        buffer = io.BytesIO()
        Image.new("RGBA", (50, 40), (10, 20, 30, 128)).save(buffer, format="PNG")

        asset = decode_asset(buffer.getvalue(), "icon.png", 0, max_width=3600)

        assert asset.image.mode == "RGB"

    def test_garbage_raises_decode_error(self):
        with pytest.raises(DecodeError) as excinfo:
            decode_asset(b"not an image", "notes.txt", 0, max_width=3600)

        assert excinfo.value.name == "notes.txt"
        assert "notes.txt" in str(excinfo.value)


class TestDecodeAssets:

    def test_bad_file_does_not_abort_siblings(self, jpeg_bytes):
        sources = [
            ("a.jpg", jpeg_bytes(100, 50)),
            ("broken.jpg", b"\xff\xd8 truncated"),
            ("b.jpg", jpeg_bytes(50, 100)),
        ]

        assets, errors, truncated = asyncio.run(decode_assets(sources, max_width=3600))

        assert [a.name for a in assets] == ["a.jpg", "b.jpg"]
        assert [e.name for e in errors] == ["broken.jpg"]
        assert truncated is False

    def test_sources_beyond_limit_are_dropped(self, jpeg_bytes):
        data = jpeg_bytes(20, 20)
        sources = [(f"{i}.jpg", data) for i in range(5)]

        assets, errors, truncated = asyncio.run(
            decode_assets(sources, max_width=3600, max_images=3)
        )

        assert [a.name for a in assets] == ["0.jpg", "1.jpg", "2.jpg"]
        assert errors == []
        assert truncated is True

    def test_ids_are_unique(self, jpeg_bytes):
        data = jpeg_bytes(20, 20)
        sources = [("same.jpg", data)] * 4

        assets, _, _ = asyncio.run(decode_assets(sources, max_width=3600))

        assert len({a.id for a in assets}) == 4


class TestAssetCollection:

    def test_replace_releases_previous_set(self, asset_factory):
        old = [asset_factory("old1", 10, 10), asset_factory("old2", 10, 10)]
        new = [asset_factory("new", 10, 10)]
        collection = AssetCollection(old)

        collection.replace(new)

        assert collection.assets == new
        assert all(a.released for a in old)
        assert not new[0].released

    def test_release_waits_for_last_lease(self, asset_factory):
        old = asset_factory("old", 10, 10)
        collection = AssetCollection([old])

        with collection.lease() as photos:
            with collection.lease():
                collection.clear()
                assert len(collection) == 0
                assert not old.released
            assert not old.released
            # Still readable inside the outer lease
            assert photos[0].image.size == (10, 10)

        assert old.released
        assert collection.active_leases == 0

    def test_release_happens_exactly_once(self, asset_factory, monkeypatch):
        asset = asset_factory("once", 10, 10)
        closes = []
        monkeypatch.setattr(asset.image, "close", lambda: closes.append(1))
        collection = AssetCollection([asset])

        with collection.lease():
            collection.clear()
        collection.clear()
        with collection.lease():
            pass

        assert closes == [1]

    def test_kept_assets_are_not_released(self, asset_factory):
        keep = asset_factory("keep", 10, 10)
        drop = asset_factory("drop", 10, 10)
        collection = AssetCollection([keep, drop])

        collection.replace([keep])

        assert not keep.released
        assert drop.released

    def test_get_by_id(self, asset_factory):
        asset = asset_factory("x", 10, 10)
        collection = AssetCollection([asset])

        assert collection.get("x") is asset
        assert collection.get("missing") is None
