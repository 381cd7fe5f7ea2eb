"""
Configuration module for OnePic.

Handles:
- Environment variable loading
- Path configuration (OUTPUT_DIR, FONT_PATH)
- Frame and layout constants
- Compression presets
- Pixel ceilings and export ladder steps
- Public URL configuration for API responses
"""

import os
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


class OnePicError(Exception):
    """Base exception for all OnePic errors."""
    pass


class ConfigError(OnePicError):
    """Raised when configuration is invalid."""
    pass


class Config:
    """
    Centralized configuration for the collage engine.

    Frame geometry, presets and export tuning live here as class constants
    so the pure modules can receive them explicitly. Paths and URLs are
    configurable via environment variables with defaults for local development.
    """

    # Photo set limits
    MAX_IMAGES: int = 100

    # Frame geometry (full-resolution pixels)
    EXPORT_WIDTH: int = 3600
    DEFAULT_ROW_HEIGHT: int = 340
    DEFAULT_COLUMNS: int = 4
    DEFAULT_GUTTER: int = 32
    FOOTER_HEIGHT: int = 240
    FRAME_PADDING: int = 48
    PREVIEW_MAX_WIDTH: int = 1400
    FOOTER_FONT_SIZE: int = 72
    # Footer caption when the text is left empty (the default is today's date)
    DEFAULT_FOOTER_TEXT: str = "OnePic"

    # JPEG compression presets - quality is in (0, 1]
    COMPRESSION_PRESETS: Dict[str, Dict[str, Any]] = {
        "crisp": {"label": "Crisp", "helper": "Best detail", "quality": 0.95},
        "balanced": {"label": "Balanced", "helper": "Everyday", "quality": 0.85},
        "compact": {"label": "Compact", "helper": "Smallest file", "quality": 0.72},
    }
    DEFAULT_PRESET: str = "balanced"

    # Maximum raster pixel count per platform class
    PIXEL_CEILINGS: Dict[str, int] = {
        "constrained": 4096 * 4096,
        "mobile": 33_554_432,
        "desktop": 268_435_456,
    }

    # Export scale ladder: multiples of the safe scale, then a fixed floor
    LADDER_FACTORS: Tuple[float, ...] = (1.0, 0.7, 0.5)
    LADDER_FLOOR: float = 0.25
    LADDER_MIN_SCALE: float = 0.1

    # Timing (seconds)
    STABILIZE_DELAY: float = 0.05
    COOLDOWN_DELAY: float = 0.25
    ESTIMATE_DEBOUNCE: float = 0.6

    EXPORT_MIME_TYPE: str = "image/jpeg"
    FILENAME_PREFIX: str = "onepic"

    # Files picked up from folders by the local CLI
    IMAGE_EXTENSIONS: tuple = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp")

    def __init__(
        self,
        base_dir: Optional[Path] = None,
        output_dir: Optional[Path] = None,
        font_path: Optional[Path] = None,
        public_base_url: Optional[str] = None,
        max_pixels: Optional[int] = None,
    ):
        """
        Initialize configuration.

        Args:
            base_dir: Base directory for relative paths. Defaults to current working directory.
            output_dir: Path to output folder. Overrides OUTPUT_DIR env var.
            font_path: Path to footer font file. Overrides FONT_PATH env var.
            public_base_url: Public URL base for exported image URLs. Overrides PUBLIC_BASE_URL env var.
            max_pixels: Hard raster limit for the render surface. Overrides ONEPIC_MAX_PIXELS env var.
        """
        self.base_dir = base_dir or Path(os.getcwd())

        self.output_dir = self._resolve_path(
            output_dir,
            os.environ.get("OUTPUT_DIR"),
            self.base_dir / "output"
        )

        self.font_path = self._resolve_path(
            font_path,
            os.environ.get("FONT_PATH"),
            self.base_dir / "fonts" / "SpaceGrotesk-Medium.ttf"
        )

        # Public URL for API responses
        self.public_base_url = (
            public_base_url
            or os.environ.get("PUBLIC_BASE_URL")
            or "http://localhost:8000"
        )
        # Ensure no trailing slash
        self.public_base_url = self.public_base_url.rstrip("/")

        self.max_pixels = self._resolve_int(
            max_pixels,
            os.environ.get("ONEPIC_MAX_PIXELS"),
            "ONEPIC_MAX_PIXELS",
        )

    def _resolve_path(
        self,
        explicit: Optional[Path],
        env_value: Optional[str],
        default: Path
    ) -> Path:
        """Resolve a path from explicit value, env var, or default."""
        if explicit is not None:
            return Path(explicit)
        if env_value is not None:
            return Path(env_value)
        return default

    @staticmethod
    def _resolve_int(
        explicit: Optional[int],
        env_value: Optional[str],
        name: str,
    ) -> Optional[int]:
        """Resolve an optional positive integer from explicit value or env var."""
        if explicit is not None:
            return int(explicit)
        if not env_value:
            return None
        try:
            value = int(env_value)
        except ValueError:
            raise ConfigError(f"{name} must be an integer, got '{env_value}'")
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value}")
        return value

    def get_preset(self, preset_name: str) -> Dict[str, Any]:
        """
        Get a compression preset.

        Args:
            preset_name: Name of the preset (e.g., "crisp", "balanced")

        Returns:
            Preset dict with label, helper and quality

        Raises:
            ConfigError: If preset name is not found
        """
        if preset_name not in self.COMPRESSION_PRESETS:
            available = ", ".join(self.COMPRESSION_PRESETS.keys())
            raise ConfigError(
                f"Unknown preset '{preset_name}'. Available: {available}"
            )
        return self.COMPRESSION_PRESETS[preset_name]

    def get_quality(self, preset_name: str) -> float:
        """Return the JPEG quality for a compression preset."""
        return float(self.get_preset(preset_name)["quality"])

    def validate(self) -> None:
        """
        Validate that configured paths are usable.

        A missing font is not an error (the renderer falls back to Pillow's
        default font), but a file standing where the output folder should be is.

        Raises:
            ConfigError: If any path is unusable
        """
        errors = []

        if self.output_dir.exists() and not self.output_dir.is_dir():
            errors.append(f"Output path is not a directory: {self.output_dir}")

        if self.font_path.exists() and not self.font_path.is_file():
            errors.append(f"Font path is not a file: {self.font_path}")

        if errors:
            raise ConfigError("\n".join(errors))

    def ensure_output_dir(self) -> None:
        """Create output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def available_presets(cls) -> List[str]:
        """Return list of available compression preset names."""
        return list(cls.COMPRESSION_PRESETS.keys())


# Global config instance (lazy-loaded)
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global Config instance.

    Creates a new instance on first call, reuses it thereafter.
    For testing, you can set _config directly or use init_config().
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def init_config(**kwargs) -> Config:
    """
    Initialize and return a new global Config instance.

    Use this to override the default configuration.
    """
    global _config
    _config = Config(**kwargs)
    return _config
