"""Deep Zoom geometry and sampling core."""

from .descriptor import PyramidDescriptor
from .dzi import DescriptorWriter, render_dzi
from .errors import (
    InvalidParameterError,
    InvalidTileError,
    SlideOpenError,
    SlideZoomError,
    TileReadError,
    TileSizeError,
)
from .resolver import TileAddressResolver
from .sampler import TileSampler, unpack_argb
from .source import OpenSlideView, SlideProperties, SourcePyramidView, open_slide
from .types import Bounds, LevelInfo, Point, Size, Tile, TileAddress, TileCoord, TileInfo

__all__ = [
    "PyramidDescriptor",
    "TileAddressResolver",
    "TileSampler",
    "unpack_argb",
    "DescriptorWriter",
    "render_dzi",
    "SourcePyramidView",
    "SlideProperties",
    "OpenSlideView",
    "open_slide",
    "Bounds",
    "LevelInfo",
    "Point",
    "Size",
    "Tile",
    "TileAddress",
    "TileCoord",
    "TileInfo",
    "SlideZoomError",
    "InvalidParameterError",
    "InvalidTileError",
    "TileSizeError",
    "TileReadError",
    "SlideOpenError",
]
