"""Deep Zoom view of a whole-slide image.

Usage:
    from slidezoom import DeepZoomGenerator, open_slide

    with open_slide("slide.svs") as view:
        dz = DeepZoomGenerator(view, tile_size=254, overlap=1)
        manifest = dz.get_dzi("jpeg")
        width, height, data = dz.get_tile(dz.level_count - 1, 0, 0)
"""

from __future__ import annotations

import logging
import threading

from slidezoom.config import (
    DEFAULT_FORMAT,
    DEFAULT_LIMIT_BOUNDS,
    DEFAULT_OVERLAP,
    DEFAULT_TILE_SIZE,
    MAX_TILE_PIXELS,
)
from slidezoom.core.descriptor import PyramidDescriptor
from slidezoom.core.dzi import DescriptorWriter
from slidezoom.core.resolver import TileAddressResolver
from slidezoom.core.sampler import TileSampler
from slidezoom.core.source import SlideProperties, SourcePyramidView
from slidezoom.core.types import Bounds, LevelInfo, Size, Tile, TileAddress

logger = logging.getLogger(__name__)


class DeepZoomGenerator:
    """Exposes a source pyramid as Deep Zoom levels and tiles.

    All geometry is computed once here; tile lookups afterwards are pure and
    safe to call from several threads. Pixel reads go through the source
    view, so pass a ``lock`` if that library is not re-entrant.

    Args:
        view: Source pyramid (borrowed; the caller keeps it open)
        tile_size: Tile edge in pixels, before overlap
        overlap: Pixels added to each interior tile edge
        limit_bounds: Render only the slide's declared non-empty region
        lock: Optional lock serializing reads from ``view``
    """

    def __init__(
        self,
        view: SourcePyramidView,
        tile_size: int = DEFAULT_TILE_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        limit_bounds: bool = DEFAULT_LIMIT_BOUNDS,
        lock: threading.Lock | None = None,
    ) -> None:
        self._descriptor = PyramidDescriptor.from_view(view, tile_size, overlap, limit_bounds)
        self._resolver = TileAddressResolver(self._descriptor)
        self._sampler = TileSampler(view, lock=lock, max_pixels=MAX_TILE_PIXELS)
        self._writer = DescriptorWriter(self._descriptor)

        props = SlideProperties(view.properties)
        self._mpp = props.mpp()
        self._background_color = props.background_color()

    def __repr__(self) -> str:
        d = self._descriptor
        return (
            f"{type(self).__name__}(tile_size={d.tile_size}, overlap={d.overlap}, "
            f"limit_bounds={d.limit_bounds}, levels={d.level_count})"
        )

    @property
    def descriptor(self) -> PyramidDescriptor:
        return self._descriptor

    @property
    def tile_size(self) -> int:
        return self._descriptor.tile_size

    @property
    def overlap(self) -> int:
        return self._descriptor.overlap

    @property
    def level_count(self) -> int:
        """Number of Deep Zoom levels."""
        return self._descriptor.level_count

    @property
    def level_tiles(self) -> tuple[Size, ...]:
        """(columns, rows) of the tile grid for each level."""
        return self._descriptor.level_tiles

    @property
    def level_dimensions(self) -> tuple[Size, ...]:
        """(width, height) in pixels for each level."""
        return self._descriptor.level_dimensions

    @property
    def tile_count(self) -> int:
        """Total number of tiles across all levels."""
        return self._descriptor.tile_count

    @property
    def mpp(self) -> float | None:
        """Mean microns per pixel at full resolution, if the slide declares it."""
        return self._mpp

    @property
    def background_color(self) -> str | None:
        """Slide background colour as ``#rrggbb``, if declared."""
        return self._background_color

    @property
    def bounds(self) -> Bounds:
        """Crop rectangle applied to the slide, in level-0 pixels."""
        return self._descriptor.bounds

    def levels(self) -> list[LevelInfo]:
        return self._descriptor.levels()

    def get_tile(self, level: int, col: int, row: int) -> Tile:
        """Read a tile's source region.

        The region is returned at the source level's resolution; scaling it
        to :meth:`get_tile_dimensions` is left to the caller.

        Returns:
            Tile(width, height, data) with 4 bytes per pixel (B, G, R, A,
            premultiplied)

        Raises:
            InvalidTileError: If the address is outside the pyramid
            TileSizeError: If the region is too large
            TileReadError: If the image library fails
        """
        info = self._resolver.resolve(level, col, row)
        return self._sampler.sample(info.address)

    def get_tile_coordinates(self, level: int, col: int, row: int) -> TileAddress:
        """Region to read for a tile: (level-0 location, source level, size)."""
        return self._resolver.resolve(level, col, row).address

    def get_tile_dimensions(self, level: int, col: int, row: int) -> Size:
        """Final tile size in Deep Zoom pixels, overlap included."""
        return self._resolver.resolve(level, col, row).dimensions

    def get_dzi(self, format_name: str = DEFAULT_FORMAT) -> str:
        """Deep Zoom manifest for this pyramid."""
        return self._writer.describe(format_name)
