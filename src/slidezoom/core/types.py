"""Shared type definitions for slidezoom core module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from PIL import Image


class Point(NamedTuple):
    """A pixel location (x, y)."""

    x: int
    y: int


class Size(NamedTuple):
    """A pixel extent (width, height)."""

    width: int
    height: int


class TileCoord(NamedTuple):
    """Coordinate of a tile in the Deep Zoom pyramid.

    Attributes:
        level: Deep Zoom level (0 = the 1x1 level)
        col: Column index (0-based)
        row: Row index (0-based)
    """

    level: int
    col: int
    row: int


class TileAddress(NamedTuple):
    """Source region that has to be sampled to render one tile.

    Attributes:
        location: Origin in level-0 pixel coordinates, bounds offset included
        source_level: Source pyramid level to read from
        size: Region size in that source level's pixel coordinates
    """

    location: Point
    source_level: int
    size: Size


class TileInfo(NamedTuple):
    """A resolved tile: where to read from and how big the result is."""

    address: TileAddress
    dimensions: Size


class Tile(NamedTuple):
    """Sampled tile pixels.

    ``data`` holds four bytes per pixel, row-major, in the little-endian
    decomposition of each premultiplied ARGB word (B, G, R, A).
    """

    width: int
    height: int
    data: bytes

    def to_image(self) -> Image.Image:
        """Wrap the pixel bytes in a Pillow RGBA image (still premultiplied)."""
        from PIL import Image

        return Image.frombuffer(
            "RGBA", (self.width, self.height), self.data, "raw", "BGRA", 0, 1
        )


@dataclass(frozen=True)
class Bounds:
    """Crop rectangle in level-0 pixels."""

    offset: Point
    size: Size


@dataclass(frozen=True)
class LevelInfo:
    """Information about a Deep Zoom level.

    Attributes:
        level: Level index (0 = 1x1, last = full resolution)
        dimensions: Level size in pixels
        tiles: Tile grid size (columns, rows)
        downsample: Downsample factor relative to full resolution (1 = full res)
        source_level: Source pyramid level sampled for this level
        residual_downsample: Scaling still needed on top of the source level
    """

    level: int
    dimensions: Size
    tiles: Size
    downsample: int
    source_level: int
    residual_downsample: float

    @property
    def cols(self) -> int:
        return self.tiles.width

    @property
    def rows(self) -> int:
        return self.tiles.height

    @property
    def tile_count(self) -> int:
        return self.tiles.width * self.tiles.height
