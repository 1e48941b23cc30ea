"""Metadata types and validation for exported Deep Zoom trees."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from slidezoom.core.types import LevelInfo, Size

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"


class ExportStatus(Enum):
    """Status of an existing export."""

    NOT_EXISTS = "not_exists"  # Neither manifest nor tile directory
    COMPLETE = "complete"  # Valid and complete
    INCOMPLETE = "incomplete"  # Missing required files
    CORRUPTED = "corrupted"  # Invalid metadata or structure


def export_paths(slide_path: Path, output_dir: Path) -> tuple[Path, Path]:
    """Manifest path and tile directory for a slide's export.

    ``slide.svs`` exports to ``slide.dzi`` plus ``slide_files/``.
    """
    stem = Path(slide_path).stem
    output_dir = Path(output_dir)
    return output_dir / f"{stem}.dzi", output_dir / f"{stem}_files"


def check_export_status(
    dzi_path: Path, tiles_dir: Path, settings: dict | None = None
) -> ExportStatus:
    """Check the status of an existing export.

    The metadata sidecar is written last, so its presence marks a finished
    run; every level directory must also hold its full tile grid. An export
    whose recorded settings differ from ``settings`` is stale and reported
    as INCOMPLETE.

    Args:
        dzi_path: Path to the ``.dzi`` manifest
        tiles_dir: Path to the ``_files`` tile directory
        settings: Expected metadata values, e.g. ``{"tile_size": 254}``

    Returns:
        ExportStatus indicating the state
    """
    if not dzi_path.exists() and not tiles_dir.exists():
        return ExportStatus.NOT_EXISTS

    metadata_path = tiles_dir / METADATA_FILENAME
    if not metadata_path.exists() or not dzi_path.exists():
        return ExportStatus.INCOMPLETE

    try:
        with open(metadata_path) as f:
            data = json.load(f)
        metadata = ExportMetadata.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
        return ExportStatus.CORRUPTED

    for key, expected in (settings or {}).items():
        recorded = getattr(metadata, key)
        if recorded != expected:
            logger.info(
                "Export at %s was built with %s=%r, expected %r",
                tiles_dir, key, recorded, expected,
            )
            return ExportStatus.INCOMPLETE

    suffix = f".{metadata.tile_format}"
    for info in metadata.levels:
        level_dir = tiles_dir / str(info.level)
        if not level_dir.is_dir():
            return ExportStatus.INCOMPLETE
        tiles = sum(1 for _ in level_dir.glob(f"*{suffix}"))
        if tiles < info.tile_count:
            return ExportStatus.INCOMPLETE

    return ExportStatus.COMPLETE


@dataclass
class ExportMetadata:
    """Metadata written next to an exported tile tree."""

    version: str
    source_file: str
    tile_size: int
    overlap: int
    limit_bounds: bool
    tile_format: str
    dimensions: tuple[int, int]
    levels: list[LevelInfo]
    mpp: float | None
    background_color: str | None
    exported_at: str

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "source_file": self.source_file,
            "tile_size": self.tile_size,
            "overlap": self.overlap,
            "limit_bounds": self.limit_bounds,
            "tile_format": self.tile_format,
            "dimensions": list(self.dimensions),
            "levels": [
                {
                    "level": l.level,
                    "dimensions": list(l.dimensions),
                    "tiles": list(l.tiles),
                    "downsample": l.downsample,
                    "source_level": l.source_level,
                    "residual_downsample": l.residual_downsample,
                }
                for l in self.levels
            ],
            "mpp": self.mpp,
            "background_color": self.background_color,
            "exported_at": self.exported_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExportMetadata:
        return cls(
            version=data["version"],
            source_file=data["source_file"],
            tile_size=data["tile_size"],
            overlap=data["overlap"],
            limit_bounds=data.get("limit_bounds", False),
            tile_format=data["tile_format"],
            dimensions=tuple(data["dimensions"]),
            levels=[
                LevelInfo(
                    level=l["level"],
                    dimensions=Size(*l["dimensions"]),
                    tiles=Size(*l["tiles"]),
                    downsample=l["downsample"],
                    source_level=l["source_level"],
                    residual_downsample=l["residual_downsample"],
                )
                for l in data["levels"]
            ],
            mpp=data.get("mpp"),
            background_color=data.get("background_color"),
            exported_at=data["exported_at"],
        )
