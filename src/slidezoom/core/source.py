"""Read-only access to the source image pyramid.

The core only talks to a :class:`SourcePyramidView`. :class:`OpenSlideView`
adapts an ``openslide.OpenSlide`` handle to it; anything else that offers the
same handful of attributes (tests use an in-memory slide) works as well.
"""

from __future__ import annotations

import ctypes
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Protocol, Sequence, runtime_checkable

import numpy as np

from slidezoom.config import (
    DEFAULT_BACKGROUND_COLOR,
    OPENSLIDE_DLL_PATH,
    OPENSLIDE_REQUIRED_DLL,
    PROPERTY_NAME_BACKGROUND_COLOR,
    PROPERTY_NAME_BOUNDS_HEIGHT,
    PROPERTY_NAME_BOUNDS_WIDTH,
    PROPERTY_NAME_BOUNDS_X,
    PROPERTY_NAME_BOUNDS_Y,
    PROPERTY_NAME_MPP_X,
    PROPERTY_NAME_MPP_Y,
)

from .errors import SlideOpenError, TileReadError
from .types import Point, Size

logger = logging.getLogger(__name__)


def _setup_openslide_dll_paths() -> None:
    """Set up DLL search paths for OpenSlide on Windows.

    Checks for libopenslide in the configured OpenSlide installation.
    Must be called BEFORE importing openslide.
    """
    if sys.platform != "win32":
        return

    if not OPENSLIDE_DLL_PATH.exists():
        return

    # Accept both the installation root and its bin/ directory
    candidates = [OPENSLIDE_DLL_PATH / "bin", OPENSLIDE_DLL_PATH]
    candidates.extend(sorted(OPENSLIDE_DLL_PATH.glob("openslide-*/bin"), reverse=True))
    openslide_bin = next((d for d in candidates if (d / OPENSLIDE_REQUIRED_DLL).exists()), None)
    if openslide_bin is None:
        return

    if hasattr(os, "add_dll_directory"):
        os.add_dll_directory(str(openslide_bin))

    try:
        ctypes.CDLL(str(openslide_bin / OPENSLIDE_REQUIRED_DLL))
    except OSError as e:
        logger.debug("Failed to pre-load DLL %s: %s", OPENSLIDE_REQUIRED_DLL, e)


# Set up DLL paths before importing openslide
_setup_openslide_dll_paths()

try:
    import openslide
except (ImportError, OSError):
    openslide = None


def is_openslide_available() -> bool:
    """Check if openslide-python and the OpenSlide library are importable."""
    return openslide is not None


@runtime_checkable
class SourcePyramidView(Protocol):
    """What the Deep Zoom core needs from an image library.

    Level 0 is the highest resolution. ``read_region`` takes its location in
    level-0 coordinates and its size in the requested level's coordinates,
    and returns a ``(height, width)`` array of premultiplied ARGB ``uint32``
    words.
    """

    @property
    def level_count(self) -> int: ...

    @property
    def level_dimensions(self) -> Sequence[tuple[int, int]]: ...

    @property
    def level_downsamples(self) -> Sequence[float]: ...

    @property
    def properties(self) -> Mapping[str, str]: ...

    def get_best_level_for_downsample(self, downsample: float) -> int: ...

    def read_region(self, location: Point, level: int, size: Size) -> np.ndarray: ...


def best_level_for_downsample(downsamples: Sequence[float], downsample: float) -> int:
    """Pick the coarsest level whose downsample does not exceed ``downsample``.

    Same rule OpenSlide applies; targets finer than level 0 map to level 0.
    """
    if downsample < downsamples[0]:
        return 0
    for i in range(1, len(downsamples)):
        if downsample < downsamples[i]:
            return i - 1
    return len(downsamples) - 1


class SlideProperties:
    """Typed accessors for the optional metadata a slide may declare.

    Every accessor returns ``None`` (or a documented default) when the
    property is absent or unparseable; nothing here raises.
    """

    def __init__(self, properties: Mapping[str, str]) -> None:
        self._properties = properties

    def _get_float(self, name: str) -> float | None:
        value = self._properties.get(name)
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring unparseable %s: %r", name, value)
            return None

    def _get_int(self, name: str) -> int | None:
        value = self._properties.get(name)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring unparseable %s: %r", name, value)
            return None

    def mpp(self) -> float | None:
        """Mean microns per pixel, if both axes are declared."""
        mpp_x = self._get_float(PROPERTY_NAME_MPP_X)
        mpp_y = self._get_float(PROPERTY_NAME_MPP_Y)
        if mpp_x is None or mpp_y is None:
            return None
        return (mpp_x + mpp_y) / 2

    def bounds_offset(self) -> Point:
        """Crop origin in level-0 pixels; missing axes default to 0."""
        return Point(
            self._get_int(PROPERTY_NAME_BOUNDS_X) or 0,
            self._get_int(PROPERTY_NAME_BOUNDS_Y) or 0,
        )

    def bounds_size(self) -> tuple[int | None, int | None]:
        """Declared crop width and height, ``None`` where absent."""
        width = self._get_int(PROPERTY_NAME_BOUNDS_WIDTH)
        height = self._get_int(PROPERTY_NAME_BOUNDS_HEIGHT)
        if width is not None and width <= 0:
            logger.warning("Ignoring non-positive %s: %d", PROPERTY_NAME_BOUNDS_WIDTH, width)
            width = None
        if height is not None and height <= 0:
            logger.warning("Ignoring non-positive %s: %d", PROPERTY_NAME_BOUNDS_HEIGHT, height)
            height = None
        return width, height

    def background_color(self) -> str | None:
        """Declared background colour as ``#rrggbb``."""
        value = self._properties.get(PROPERTY_NAME_BACKGROUND_COLOR)
        if not value:
            return None
        return "#" + value

    def background_rgb(self) -> tuple[int, int, int]:
        """Background colour as an RGB tuple, white when undeclared."""
        color = self.background_color() or DEFAULT_BACKGROUND_COLOR
        try:
            return tuple(int(color[i : i + 2], 16) for i in (1, 3, 5))  # type: ignore[return-value]
        except ValueError:
            logger.warning("Ignoring unparseable background colour %r", color)
            return (255, 255, 255)


def rgba_to_argb(rgba: np.ndarray) -> np.ndarray:
    """Pack straight-alpha RGBA pixels into premultiplied ARGB words.

    Args:
        rgba: ``(height, width, 4)`` uint8 array

    Returns:
        ``(height, width)`` uint32 array
    """
    pixels = rgba.astype(np.uint32)
    alpha = pixels[..., 3]
    rgb = (pixels[..., :3] * alpha[..., None] + 127) // 255
    return (
        (alpha << 24) | (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]
    ).astype(np.uint32)


def _read_errors() -> tuple[type[BaseException], ...]:
    if openslide is None:
        return (OSError,)
    return (OSError, openslide.OpenSlideError)


class OpenSlideView:
    """Adapts an ``openslide.OpenSlide`` handle to :class:`SourcePyramidView`.

    The handle is borrowed unless ``owns_handle`` is set, in which case
    :meth:`close` (or leaving the ``with`` block) closes it.

    Args:
        slide: An open ``openslide.OpenSlide`` (or compatible) object
        owns_handle: Close the handle when this view is closed
    """

    def __init__(self, slide, owns_handle: bool = False) -> None:
        self._slide = slide
        self._owns_handle = owns_handle

    @property
    def level_count(self) -> int:
        return self._slide.level_count

    @property
    def level_dimensions(self) -> tuple[Size, ...]:
        return tuple(Size(int(w), int(h)) for w, h in self._slide.level_dimensions)

    @property
    def level_downsamples(self) -> tuple[float, ...]:
        return tuple(float(d) for d in self._slide.level_downsamples)

    @property
    def properties(self) -> Mapping[str, str]:
        return self._slide.properties

    def get_best_level_for_downsample(self, downsample: float) -> int:
        return self._slide.get_best_level_for_downsample(downsample)

    def read_region(self, location: Point, level: int, size: Size) -> np.ndarray:
        """Read a region as premultiplied ARGB words.

        OpenSlide's Python binding hands back straight-alpha RGBA, so the
        pixels are repacked into the library's native word layout here.

        Raises:
            TileReadError: If OpenSlide fails to read the region
        """
        try:
            region = self._slide.read_region(
                (int(location.x), int(location.y)), level, (int(size.width), int(size.height))
            )
        except _read_errors() as e:
            raise TileReadError(
                f"OpenSlide failed to read {size.width}x{size.height} at "
                f"({location.x}, {location.y}) level {level}: {e}"
            ) from e
        rgba = np.asarray(region.convert("RGBA") if region.mode != "RGBA" else region)
        return rgba_to_argb(rgba)

    def close(self) -> None:
        """Close the slide handle if this view owns it."""
        if self._owns_handle:
            self._slide.close()

    def __enter__(self) -> OpenSlideView:
        return self

    def __exit__(self, *args) -> None:
        self.close()


def open_slide(path: str | Path) -> OpenSlideView:
    """Open a slide file with OpenSlide.

    Args:
        path: Path to the slide (SVS, NDPI, MRXS, ...)

    Returns:
        An :class:`OpenSlideView` that owns its handle

    Raises:
        SlideOpenError: If OpenSlide is unavailable or cannot open the file
    """
    if openslide is None:
        raise SlideOpenError(
            "openslide-python is required to open slides. "
            "Install with: pip install 'slidezoom[openslide]'"
        )

    path = Path(path)
    if not path.exists():
        raise SlideOpenError(f"Slide does not exist: {path}")

    try:
        slide = openslide.OpenSlide(str(path))
    except (OSError, openslide.OpenSlideError) as e:
        raise SlideOpenError(f"Cannot open {path.name}: {e}") from e

    logger.debug("Opened %s with %d levels", path.name, slide.level_count)
    return OpenSlideView(slide, owns_handle=True)
