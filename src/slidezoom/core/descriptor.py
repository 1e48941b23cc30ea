"""Geometry of the synthetic Deep Zoom pyramid.

The Deep Zoom pyramid halves the (optionally bounds-limited) level-0 image
until it reaches 1x1, independently of how many levels the source slide
actually stores. For every Deep Zoom level we record which source level to
read from and how much further it must be scaled down.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from slidezoom.config import MAX_TILE_PIXELS

from .errors import InvalidParameterError, TileSizeError
from .source import SlideProperties, SourcePyramidView
from .types import Bounds, LevelInfo, Point, Size

logger = logging.getLogger(__name__)


def _check_parameters(tile_size: int, overlap: int) -> None:
    for name, value in (("tile_size", tile_size), ("overlap", overlap)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidParameterError(f"{name} must be an integer, got {value!r}")
    if tile_size <= 0:
        raise InvalidParameterError(f"tile_size must be positive, got {tile_size}")
    if overlap < 0:
        raise InvalidParameterError(f"overlap must not be negative, got {overlap}")
    edge = tile_size + 2 * overlap
    if edge * edge > MAX_TILE_PIXELS:
        raise TileSizeError(
            f"tile_size={tile_size} with overlap={overlap} exceeds "
            f"the {MAX_TILE_PIXELS} pixel tile limit"
        )


def _halve_to_one(dimensions: Size) -> tuple[Size, ...]:
    """Level sizes from 1x1 up to ``dimensions``, halving (ceil) each step."""
    sizes = [dimensions]
    w, h = dimensions
    while w > 1 or h > 1:
        w = max(1, (w + 1) // 2)
        h = max(1, (h + 1) // 2)
        sizes.append(Size(w, h))
    sizes.reverse()  # level 0 = 1x1
    return tuple(sizes)


@dataclass(frozen=True)
class PyramidDescriptor:
    """Immutable tables describing every Deep Zoom level.

    Build with :meth:`from_view`; every table is indexed by Deep Zoom level
    except ``source_dimensions``/``source_downsamples`` (by source level).
    """

    tile_size: int
    overlap: int
    limit_bounds: bool
    l0_offset: Point
    source_dimensions: tuple[Size, ...]
    source_downsamples: tuple[float, ...]
    level_dimensions: tuple[Size, ...]
    level_tiles: tuple[Size, ...]
    preferred_levels: tuple[int, ...]
    residual_downsamples: tuple[float, ...]

    @classmethod
    def from_view(
        cls,
        view: SourcePyramidView,
        tile_size: int,
        overlap: int,
        limit_bounds: bool = False,
    ) -> PyramidDescriptor:
        """Derive the Deep Zoom pyramid for a source view.

        Args:
            view: Source pyramid to describe (borrowed, not retained)
            tile_size: Tile edge in pixels, before overlap
            overlap: Pixels added to each interior tile edge
            limit_bounds: Crop every level to the slide's declared bounds

        Raises:
            InvalidParameterError: If tile_size or overlap is out of range
            TileSizeError: If a tile of this size would exceed MAX_TILE_PIXELS
        """
        _check_parameters(tile_size, overlap)

        level_count = view.level_count
        if level_count < 1:
            raise InvalidParameterError("Source pyramid has no levels")

        source_dimensions = tuple(Size(int(w), int(h)) for w, h in view.level_dimensions)
        source_downsamples = tuple(float(d) for d in view.level_downsamples)

        l0_offset = Point(0, 0)
        if limit_bounds:
            props = SlideProperties(view.properties)
            l0_offset = props.bounds_offset()
            l0_width, l0_height = source_dimensions[0]
            bounds_width, bounds_height = props.bounds_size()
            # Missing axes and empty levels keep scale 1
            scale_x = bounds_width / l0_width if bounds_width and l0_width else 1.0
            scale_y = bounds_height / l0_height if bounds_height and l0_height else 1.0
            source_dimensions = tuple(
                Size(int(math.ceil(w * scale_x)), int(math.ceil(h * scale_y)))
                for w, h in source_dimensions
            )

        level_dimensions = _halve_to_one(source_dimensions[0])
        level_tiles = tuple(
            Size(
                int(math.ceil(w / tile_size)),
                int(math.ceil(h / tile_size)),
            )
            for w, h in level_dimensions
        )

        dz_levels = len(level_dimensions)
        l0_downsamples = [2 ** (dz_levels - level - 1) for level in range(dz_levels)]
        preferred_levels = tuple(
            int(view.get_best_level_for_downsample(d)) for d in l0_downsamples
        )
        residual_downsamples = tuple(
            d / source_downsamples[source_level]
            for d, source_level in zip(l0_downsamples, preferred_levels)
        )

        logger.info(
            "Deep Zoom pyramid: %d levels over %d source levels, top %dx%d, tile %d+%d",
            dz_levels,
            level_count,
            level_dimensions[-1].width,
            level_dimensions[-1].height,
            tile_size,
            overlap,
        )

        return cls(
            tile_size=tile_size,
            overlap=overlap,
            limit_bounds=bool(limit_bounds),
            l0_offset=l0_offset,
            source_dimensions=source_dimensions,
            source_downsamples=source_downsamples,
            level_dimensions=level_dimensions,
            level_tiles=level_tiles,
            preferred_levels=preferred_levels,
            residual_downsamples=residual_downsamples,
        )

    @property
    def level_count(self) -> int:
        """Number of Deep Zoom levels."""
        return len(self.level_dimensions)

    @property
    def tile_count(self) -> int:
        """Total number of tiles across all levels."""
        return sum(cols * rows for cols, rows in self.level_tiles)

    @property
    def dimensions(self) -> Size:
        """Full-resolution (bounds-limited) size of the top level."""
        return self.level_dimensions[-1]

    @property
    def bounds(self) -> Bounds:
        """Effective crop rectangle in level-0 pixels."""
        return Bounds(offset=self.l0_offset, size=self.source_dimensions[0])

    def downsample(self, level: int) -> int:
        """Downsample of a Deep Zoom level relative to full resolution."""
        return 2 ** (self.level_count - level - 1)

    def levels(self) -> list[LevelInfo]:
        """One :class:`LevelInfo` per Deep Zoom level, 1x1 level first."""
        return [
            LevelInfo(
                level=level,
                dimensions=self.level_dimensions[level],
                tiles=self.level_tiles[level],
                downsample=self.downsample(level),
                source_level=self.preferred_levels[level],
                residual_downsample=self.residual_downsamples[level],
            )
            for level in range(self.level_count)
        ]
