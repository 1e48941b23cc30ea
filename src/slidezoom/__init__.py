"""slidezoom - Deep Zoom tiles from pyramidal whole-slide images."""

__version__ = "0.1.0"

from slidezoom.core import (
    InvalidParameterError,
    InvalidTileError,
    OpenSlideView,
    SlideOpenError,
    SlideZoomError,
    SourcePyramidView,
    TileReadError,
    TileSizeError,
    open_slide,
)
from slidezoom.deepzoom import DeepZoomGenerator

__all__ = [
    "DeepZoomGenerator",
    "SourcePyramidView",
    "OpenSlideView",
    "open_slide",
    "SlideZoomError",
    "InvalidParameterError",
    "InvalidTileError",
    "TileSizeError",
    "TileReadError",
    "SlideOpenError",
]
