"""Static Deep Zoom export: .dzi manifest plus encoded tile files."""

from .exporter import (
    DziExporter,
    encode_tile,
    export_dzi,
    render_tile,
    tile_to_rgb,
)
from .metadata import (
    ExportMetadata,
    ExportStatus,
    check_export_status,
    export_paths,
)

__all__ = [
    "DziExporter",
    "export_dzi",
    "encode_tile",
    "render_tile",
    "tile_to_rgb",
    "ExportMetadata",
    "ExportStatus",
    "check_export_status",
    "export_paths",
]
