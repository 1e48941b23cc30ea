"""Exception types raised by slidezoom.

Every failure aborts a single request; generator state is never touched.
"""

from __future__ import annotations


class SlideZoomError(Exception):
    """Base class for slidezoom errors."""


class InvalidParameterError(SlideZoomError, ValueError):
    """A construction parameter is out of range (tile size, overlap)."""


class InvalidTileError(SlideZoomError, ValueError):
    """A tile address (level, column, row) is outside the pyramid."""


class TileSizeError(SlideZoomError, ValueError):
    """A tile or source region is too large to allocate."""


class TileReadError(SlideZoomError, OSError):
    """The source image library failed to produce pixels for a region."""


class SlideOpenError(SlideZoomError, OSError):
    """A slide could not be opened."""
