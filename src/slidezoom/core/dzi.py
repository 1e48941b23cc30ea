"""Deep Zoom (.dzi) manifest output."""

from __future__ import annotations

from xml.sax.saxutils import quoteattr

from slidezoom.config import DZI_NAMESPACE

from .descriptor import PyramidDescriptor

_DZI_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<Image xmlns="{namespace}"\n'
    "  Format={format} Overlap=\"{overlap}\" TileSize=\"{tile_size}\">\n"
    '  <Size Height="{height}" Width="{width}"/>\n'
    "</Image>"
)


def render_dzi(format_name: str, tile_size: int, overlap: int, width: int, height: int) -> str:
    """Fill in the Deep Zoom manifest template."""
    return _DZI_TEMPLATE.format(
        namespace=DZI_NAMESPACE,
        format=quoteattr(format_name),
        overlap=overlap,
        tile_size=tile_size,
        height=height,
        width=width,
    )


class DescriptorWriter:
    """Writes the manifest for a pyramid."""

    def __init__(self, descriptor: PyramidDescriptor) -> None:
        self._descriptor = descriptor

    def describe(self, format_name: str) -> str:
        d = self._descriptor
        width, height = d.dimensions
        return render_dzi(format_name, d.tile_size, d.overlap, width, height)
