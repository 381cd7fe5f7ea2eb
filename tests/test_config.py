"""
Tests for configuration resolution.
"""

import pytest

from onepic import config as config_module
from onepic.config import Config, ConfigError, get_config, init_config


def test_explicit_values_win_over_env(tmp_path, monkeypatch):
    monkeypatch.setenv("OUTPUT_DIR", str(tmp_path / "from-env"))
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://env.example.com/")

    config = Config(base_dir=tmp_path, output_dir=tmp_path / "explicit")

    assert config.output_dir == tmp_path / "explicit"
    assert config.public_base_url == "https://env.example.com"


def test_defaults_are_relative_to_base_dir(tmp_path, monkeypatch):
    for name in ("OUTPUT_DIR", "FONT_PATH", "PUBLIC_BASE_URL", "ONEPIC_MAX_PIXELS"):
        monkeypatch.delenv(name, raising=False)

    config = Config(base_dir=tmp_path)

    assert config.output_dir == tmp_path / "output"
    assert config.font_path.parent == tmp_path / "fonts"
    assert config.public_base_url == "http://localhost:8000"
    assert config.max_pixels is None


def test_max_pixels_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("ONEPIC_MAX_PIXELS", "16777216")

    assert Config(base_dir=tmp_path).max_pixels == 16_777_216


@pytest.mark.parametrize("value", ["lots", "0", "-5"])
def test_invalid_max_pixels(tmp_path, monkeypatch, value):
    monkeypatch.setenv("ONEPIC_MAX_PIXELS", value)

    with pytest.raises(ConfigError, match="ONEPIC_MAX_PIXELS"):
        Config(base_dir=tmp_path)


def test_presets(config):
    assert config.available_presets() == ["crisp", "balanced", "compact"]
    assert config.get_quality("crisp") == 0.95
    assert config.get_quality(config.DEFAULT_PRESET) == 0.85

    with pytest.raises(ConfigError, match="Available: crisp, balanced, compact"):
        config.get_preset("lossless")


def test_validate_rejects_file_as_output_dir(tmp_path):
    (tmp_path / "output").write_text("not a folder")
    config = Config(base_dir=tmp_path, output_dir=tmp_path / "output")

    with pytest.raises(ConfigError, match="not a directory"):
        config.validate()


def test_validate_accepts_missing_font(config):
    config.validate()


def test_global_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, "_config", None)

    first = get_config()
    assert get_config() is first

    replaced = init_config(base_dir=tmp_path)
    assert get_config() is replaced
    assert replaced.base_dir == tmp_path
