"""Read tile pixels from the source pyramid and normalize their byte order."""

from __future__ import annotations

import logging
import threading

import numpy as np

from slidezoom.config import BYTES_PER_PIXEL, MAX_TILE_PIXELS

from .errors import TileReadError, TileSizeError
from .source import SourcePyramidView
from .types import Tile, TileAddress

logger = logging.getLogger(__name__)


def unpack_argb(words: np.ndarray) -> bytes:
    """Split packed 32-bit pixels into bytes, least significant byte first.

    For premultiplied ARGB words this yields B, G, R, A per pixel. Shifts and
    masks keep the output identical on little- and big-endian hosts.

    Args:
        words: Array of packed pixel words, any shape (row-major)

    Returns:
        ``words.size * 4`` bytes
    """
    flat = np.asarray(words).astype(np.uint32, copy=False).reshape(-1)
    out = np.empty((flat.size, BYTES_PER_PIXEL), dtype=np.uint8)
    for i in range(BYTES_PER_PIXEL):
        out[:, i] = (flat >> (8 * i)) & 0xFF
    return out.tobytes()


class TileSampler:
    """Fills resolved regions from a :class:`SourcePyramidView`.

    Args:
        view: Source pyramid (borrowed)
        lock: Optional lock held around every ``read_region`` call, for
            image libraries that are not re-entrant
        max_pixels: Largest region that may be requested
    """

    def __init__(
        self,
        view: SourcePyramidView,
        lock: threading.Lock | None = None,
        max_pixels: int = MAX_TILE_PIXELS,
    ) -> None:
        self._view = view
        self._lock = lock
        self._max_pixels = max_pixels

    def _read(self, address: TileAddress) -> np.ndarray:
        if self._lock is None:
            return self._view.read_region(address.location, address.source_level, address.size)
        with self._lock:
            return self._view.read_region(address.location, address.source_level, address.size)

    def sample(self, address: TileAddress) -> Tile:
        """Read a region and return its pixels in canonical byte order.

        Args:
            address: Region resolved by the TileAddressResolver

        Returns:
            Tile with the region's width, height and BGRA bytes

        Raises:
            TileSizeError: If the region exceeds the pixel limit
            TileReadError: If the image library fails or returns a short buffer
        """
        width, height = address.size
        if width <= 0 or height <= 0:
            logger.debug(
                "Empty %dx%d region at (%d, %d) level %d, skipping read",
                width, height, address.location.x, address.location.y, address.source_level,
            )
            return Tile(max(width, 0), max(height, 0), b"")
        if width * height > self._max_pixels:
            raise TileSizeError(
                f"Region {width}x{height} exceeds the {self._max_pixels} pixel limit"
            )

        try:
            words = self._read(address)
        except TileReadError:
            raise
        except Exception as e:
            raise TileReadError(
                f"Failed to read {width}x{height} region at "
                f"({address.location.x}, {address.location.y}) "
                f"level {address.source_level}: {e}"
            ) from e

        if words is None or np.size(words) != width * height:
            got = 0 if words is None else np.size(words)
            raise TileReadError(
                f"Image library returned {got} pixels for a {width}x{height} region"
            )

        logger.debug(
            "Sampled %dx%d at (%d, %d) level %d",
            width, height, address.location.x, address.location.y, address.source_level,
        )
        return Tile(width, height, unpack_argb(words))
