"""Map Deep Zoom tile addresses to source-image regions."""

from __future__ import annotations

import math

from .descriptor import PyramidDescriptor
from .errors import InvalidTileError
from .types import Point, Size, TileAddress, TileInfo


class TileAddressResolver:
    """Resolves ``(level, col, row)`` against a :class:`PyramidDescriptor`.

    Stateless apart from the descriptor it reads, so one instance can be
    shared across threads.
    """

    def __init__(self, descriptor: PyramidDescriptor) -> None:
        self._descriptor = descriptor

    @property
    def descriptor(self) -> PyramidDescriptor:
        return self._descriptor

    def check(self, level: int, col: int, row: int) -> None:
        """Validate a tile address.

        Raises:
            InvalidTileError: If the level, column or row is out of range
        """
        d = self._descriptor
        for name, value in (("level", level), ("col", col), ("row", row)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidTileError(f"Tile {name} must be an integer, got {value!r}")
        if not 0 <= level < d.level_count:
            raise InvalidTileError(
                f"Invalid level {level}: pyramid has levels 0..{d.level_count - 1}"
            )
        cols, rows = d.level_tiles[level]
        if not 0 <= col < cols:
            raise InvalidTileError(
                f"Invalid column {col} at level {level}: valid range 0..{cols - 1}"
            )
        if not 0 <= row < rows:
            raise InvalidTileError(
                f"Invalid row {row} at level {level}: valid range 0..{rows - 1}"
            )

    def resolve(self, level: int, col: int, row: int) -> TileInfo:
        """Compute the source region and output size of a tile.

        Args:
            level: Deep Zoom level
            col: Tile column
            row: Tile row

        Returns:
            TileInfo with the region to read (level-0 origin, source level,
            size in source-level pixels) and the tile's final dimensions

        Raises:
            InvalidTileError: If the address is outside the pyramid
        """
        self.check(level, col, row)
        d = self._descriptor
        tile_size = d.tile_size
        cols, rows = d.level_tiles[level]
        z_width, z_height = d.level_dimensions[level]
        source_level = d.preferred_levels[level]

        # Overlap only on interior edges
        overlap_left = d.overlap if col != 0 else 0
        overlap_top = d.overlap if row != 0 else 0
        overlap_right = d.overlap if col != cols - 1 else 0
        overlap_bottom = d.overlap if row != rows - 1 else 0

        z_x = tile_size * col
        z_y = tile_size * row
        z_size = Size(
            min(tile_size, z_width - z_x) + overlap_left + overlap_right,
            min(tile_size, z_height - z_y) + overlap_top + overlap_bottom,
        )

        residual = d.residual_downsamples[level]
        l_x = residual * (z_x - overlap_left)
        l_y = residual * (z_y - overlap_top)

        l_downsample = d.source_downsamples[source_level]
        location = Point(
            int(l_downsample * l_x) + d.l0_offset.x,
            int(l_downsample * l_y) + d.l0_offset.y,
        )

        # Round the location down and the size up, but never past the level edge
        l_width, l_height = d.source_dimensions[source_level]
        region = Size(
            min(int(math.ceil(residual * z_size.width)), l_width - int(math.ceil(l_x))),
            min(int(math.ceil(residual * z_size.height)), l_height - int(math.ceil(l_y))),
        )

        return TileInfo(TileAddress(location, source_level, region), z_size)
