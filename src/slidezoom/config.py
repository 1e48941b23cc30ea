"""Centralized configuration for slidezoom.

All tunable parameters are defined here with sensible defaults.
Values can be overridden via environment variables.

Environment Variables:
    SLIDEZOOM_TILE_SIZE: Default Deep Zoom tile size in pixels (default: 254)
    SLIDEZOOM_OVERLAP: Default tile overlap in pixels (default: 1)
    SLIDEZOOM_LIMIT_BOUNDS: Crop to the slide's non-empty bounds (default: false)
    SLIDEZOOM_MAX_TILE_PIXELS: Largest region a single tile may sample (default: 2**26)
    SLIDEZOOM_EXPORT_WORKERS: Encoder threads used by the exporter (default: 4)
    SLIDEZOOM_JPEG_QUALITY: JPEG quality for exported tiles (default: 75)
    SLIDEZOOM_OPENSLIDE_PATH: OpenSlide installation directory on Windows (default: C:/openslide)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _get_env_int(name: str, default: int) -> int:
    """Get an integer from environment variable with fallback."""
    value = os.environ.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid integer for %s: %r, using default %d", name, value, default
            )
    return default


def _get_env_bool(name: str, default: bool) -> bool:
    """Get a boolean from environment variable with fallback."""
    value = os.environ.get(name)
    if value is None:
        return default
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    logger.warning("Invalid boolean for %s: %r, using default %s", name, value, default)
    return default


def _get_env_path(name: str, default: str) -> Path:
    """Get a Path from environment variable with fallback."""
    return Path(os.environ.get(name, default))


# =============================================================================
# Deep Zoom Defaults
# =============================================================================

#: Default tile size in pixels (254 + 2px overlap = 256px tiles on the wire)
DEFAULT_TILE_SIZE: int = _get_env_int("SLIDEZOOM_TILE_SIZE", 254)

#: Default overlap added to interior tile edges
DEFAULT_OVERLAP: int = _get_env_int("SLIDEZOOM_OVERLAP", 1)

#: Whether to crop every level to the slide's declared bounds
DEFAULT_LIMIT_BOUNDS: bool = _get_env_bool("SLIDEZOOM_LIMIT_BOUNDS", False)

#: Deep Zoom manifest namespace
DZI_NAMESPACE: str = "http://schemas.microsoft.com/deepzoom/2008"

#: Default tile image format named in the manifest
DEFAULT_FORMAT: str = "jpeg"

#: Tile formats the exporter can encode
TILE_FORMATS: frozenset[str] = frozenset({"jpeg", "png"})

#: Bytes emitted per pixel by the sampler (one packed 32-bit word)
BYTES_PER_PIXEL: int = 4


# =============================================================================
# Safety Limits
# =============================================================================

#: Largest pixel count a single tile or source region may have
MAX_TILE_PIXELS: int = _get_env_int("SLIDEZOOM_MAX_TILE_PIXELS", 1 << 26)


# =============================================================================
# Slide Metadata (OpenSlide standard property names)
# =============================================================================

PROPERTY_NAME_MPP_X: str = "openslide.mpp-x"
PROPERTY_NAME_MPP_Y: str = "openslide.mpp-y"
PROPERTY_NAME_BOUNDS_X: str = "openslide.bounds-x"
PROPERTY_NAME_BOUNDS_Y: str = "openslide.bounds-y"
PROPERTY_NAME_BOUNDS_WIDTH: str = "openslide.bounds-width"
PROPERTY_NAME_BOUNDS_HEIGHT: str = "openslide.bounds-height"
PROPERTY_NAME_BACKGROUND_COLOR: str = "openslide.background-color"

#: Background used when compositing transparent pixels (white)
DEFAULT_BACKGROUND_COLOR: str = "#ffffff"


# =============================================================================
# OpenSlide / DLL Configuration (Windows)
# =============================================================================

#: Base path for an OpenSlide installation on Windows
OPENSLIDE_DLL_PATH: Path = _get_env_path("SLIDEZOOM_OPENSLIDE_PATH", "C:/openslide")

#: DLL to preload for OpenSlide support
OPENSLIDE_REQUIRED_DLL: str = "libopenslide-1.dll"


# =============================================================================
# Export Configuration
# =============================================================================

#: Encoder threads used when exporting a whole pyramid
DEFAULT_EXPORT_WORKERS: int = _get_env_int("SLIDEZOOM_EXPORT_WORKERS", 4)

#: JPEG quality for exported tiles
JPEG_QUALITY: int = _get_env_int("SLIDEZOOM_JPEG_QUALITY", 75)

#: Supported slide file extensions
SLIDE_EXTENSIONS: frozenset[str] = frozenset({
    ".svs", ".ndpi", ".tif", ".tiff", ".mrxs", ".vms", ".vmu", ".scn", ".svslide", ".bif"
})


# =============================================================================
# Validation
# =============================================================================


def _validate_config() -> None:
    """Validate configuration values and log warnings for out-of-range settings."""
    global DEFAULT_TILE_SIZE, DEFAULT_OVERLAP, MAX_TILE_PIXELS
    global DEFAULT_EXPORT_WORKERS, JPEG_QUALITY

    if DEFAULT_TILE_SIZE < 1:
        logger.warning(
            "DEFAULT_TILE_SIZE=%d is too low, clamping to 1", DEFAULT_TILE_SIZE
        )
        DEFAULT_TILE_SIZE = 1

    if DEFAULT_OVERLAP < 0:
        logger.warning(
            "DEFAULT_OVERLAP=%d is negative, clamping to 0", DEFAULT_OVERLAP
        )
        DEFAULT_OVERLAP = 0

    if MAX_TILE_PIXELS < 1:
        logger.warning(
            "MAX_TILE_PIXELS=%d is too low, clamping to 1", MAX_TILE_PIXELS
        )
        MAX_TILE_PIXELS = 1

    if DEFAULT_EXPORT_WORKERS < 1:
        logger.warning(
            "DEFAULT_EXPORT_WORKERS=%d is too low, clamping to 1",
            DEFAULT_EXPORT_WORKERS,
        )
        DEFAULT_EXPORT_WORKERS = 1

    if not 1 <= JPEG_QUALITY <= 100:
        clamped = min(max(JPEG_QUALITY, 1), 100)
        logger.warning(
            "JPEG_QUALITY=%d is out of range, clamping to %d", JPEG_QUALITY, clamped
        )
        JPEG_QUALITY = clamped


_validate_config()
