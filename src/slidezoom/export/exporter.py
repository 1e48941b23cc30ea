"""Write a static Deep Zoom tree (.dzi + tile files) for a slide."""

from __future__ import annotations

import io
import json
import logging
import shutil
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import numpy as np
from PIL import Image

from slidezoom.config import (
    DEFAULT_EXPORT_WORKERS,
    DEFAULT_FORMAT,
    DEFAULT_LIMIT_BOUNDS,
    DEFAULT_OVERLAP,
    DEFAULT_TILE_SIZE,
    JPEG_QUALITY,
    TILE_FORMATS,
)
from slidezoom.core.errors import InvalidParameterError
from slidezoom.core.source import SlideProperties, SourcePyramidView, open_slide
from slidezoom.core.types import Size, Tile, TileCoord
from slidezoom.deepzoom import DeepZoomGenerator

from .metadata import (
    METADATA_FILENAME,
    ExportMetadata,
    ExportStatus,
    check_export_status,
    export_paths,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


def tile_to_rgb(tile: Tile, background: tuple[int, int, int]) -> np.ndarray:
    """Composite premultiplied BGRA tile bytes onto a solid background.

    Args:
        tile: Sampled tile
        background: RGB colour shown through transparent pixels

    Returns:
        ``(height, width, 3)`` uint8 RGB array
    """
    bgra = np.frombuffer(tile.data, dtype=np.uint8).reshape(tile.height, tile.width, 4)
    rgb = bgra[..., 2::-1].astype(np.uint32)
    alpha = bgra[..., 3:4].astype(np.uint32)
    bg = np.asarray(background, dtype=np.uint32)
    # Premultiplied: out = c + bg * (1 - a)
    out = rgb + (bg * (255 - alpha) + 127) // 255
    return np.minimum(out, 255).astype(np.uint8)


def render_tile(tile: Tile, dimensions: Size, background: tuple[int, int, int]) -> Image.Image:
    """Turn a sampled region into the final tile image.

    The region is read at the source level's resolution, so it is scaled
    down to the Deep Zoom tile dimensions when they differ.
    """
    if tile.width == 0 or tile.height == 0:
        return Image.new("RGB", tuple(dimensions), background)
    image = Image.fromarray(tile_to_rgb(tile, background), "RGB")
    if image.size != tuple(dimensions):
        image = image.resize(tuple(dimensions), Image.Resampling.LANCZOS)
    return image


def encode_tile(image: Image.Image, tile_format: str, quality: int = JPEG_QUALITY) -> bytes:
    """Encode a tile image as JPEG or PNG bytes."""
    buf = io.BytesIO()
    if tile_format == "jpeg":
        image.save(buf, format="JPEG", quality=quality)
    elif tile_format == "png":
        image.save(buf, format="PNG")
    else:
        raise InvalidParameterError(f"Unsupported tile format: {tile_format!r}")
    return buf.getvalue()


class DziExporter:
    """Exports every tile of a Deep Zoom pyramid to disk.

    Reads from the slide are serialized through one lock; encoding and
    writing run on a thread pool.

    Output layout:
        - ``<stem>.dzi`` manifest
        - ``<stem>_files/<level>/<col>_<row>.<format>`` tiles
        - ``<stem>_files/metadata.json``, written last
    """

    def __init__(
        self,
        tile_size: int = DEFAULT_TILE_SIZE,
        overlap: int = DEFAULT_OVERLAP,
        limit_bounds: bool = DEFAULT_LIMIT_BOUNDS,
        tile_format: str = DEFAULT_FORMAT,
        workers: int = DEFAULT_EXPORT_WORKERS,
        quality: int = JPEG_QUALITY,
    ) -> None:
        if tile_format not in TILE_FORMATS:
            raise InvalidParameterError(
                f"Unsupported tile format {tile_format!r}, expected one of {sorted(TILE_FORMATS)}"
            )
        if workers < 1:
            raise InvalidParameterError(f"workers must be at least 1, got {workers}")
        self.tile_size = tile_size
        self.overlap = overlap
        self.limit_bounds = limit_bounds
        self.tile_format = tile_format
        self.workers = workers
        self.quality = quality

    @property
    def settings(self) -> dict:
        """Pyramid settings recorded in, and checked against, export metadata."""
        return {
            "tile_size": self.tile_size,
            "overlap": self.overlap,
            "limit_bounds": self.limit_bounds,
            "tile_format": self.tile_format,
        }

    def build(
        self,
        slide_path: Path,
        output_dir: Path,
        progress_callback: ProgressCallback | None = None,
        force: bool = False,
    ) -> Path | None:
        """Export a slide file.

        Args:
            slide_path: Path to the source slide
            output_dir: Directory receiving the .dzi and _files tree
            progress_callback: Optional callback(stage, current, total)
            force: If True, rebuild even if a complete export exists

        Returns:
            Path to the written .dzi, or None if skipped
        """
        slide_path = Path(slide_path)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        dzi_path, tiles_dir = export_paths(slide_path, output_dir)

        if self._handle_existing_export(dzi_path, tiles_dir, slide_path.name, force):
            return None

        with open_slide(slide_path) as view:
            self.export_view(view, dzi_path, tiles_dir, slide_path.name, progress_callback)

        logger.info("Exported %s to %s", slide_path.name, dzi_path)
        return dzi_path

    def _handle_existing_export(
        self, dzi_path: Path, tiles_dir: Path, slide_name: str, force: bool
    ) -> bool:
        """Check existing export status and clean up if needed.

        Returns:
            True if the export should be skipped (already complete and not forced)
        """
        status = check_export_status(dzi_path, tiles_dir, self.settings)

        if status == ExportStatus.COMPLETE and not force:
            logger.info("Skipping %s: already exported (use --force to rebuild)", slide_name)
            return True

        if status != ExportStatus.NOT_EXISTS:
            if status == ExportStatus.INCOMPLETE:
                logger.info("Found incomplete or stale export for %s, cleaning up...", slide_name)
            elif status == ExportStatus.CORRUPTED:
                logger.warning("Found corrupted export for %s, cleaning up...", slide_name)
            elif force:
                logger.info("Force rebuild for %s, removing existing...", slide_name)
            if tiles_dir.exists():
                shutil.rmtree(tiles_dir)
            if dzi_path.exists():
                dzi_path.unlink()

        return False

    def export_view(
        self,
        view: SourcePyramidView,
        dzi_path: Path,
        tiles_dir: Path,
        source_name: str,
        progress_callback: ProgressCallback | None = None,
    ) -> DeepZoomGenerator:
        """Write all tiles of an already-open source pyramid.

        Args:
            view: Source pyramid to export
            dzi_path: Manifest path to write
            tiles_dir: Tile directory to create
            source_name: Source file name recorded in the metadata
            progress_callback: Optional callback(stage, current, total)

        Returns:
            The generator used, for inspection
        """
        lock = threading.Lock()
        generator = DeepZoomGenerator(
            view,
            tile_size=self.tile_size,
            overlap=self.overlap,
            limit_bounds=self.limit_bounds,
            lock=lock,
        )
        background = SlideProperties(view.properties).background_rgb()

        tiles_dir.mkdir(parents=True, exist_ok=True)
        for level in range(generator.level_count):
            (tiles_dir / str(level)).mkdir(exist_ok=True)

        total = generator.tile_count
        logger.info(
            "Exporting %d tiles over %d levels from %s", total, generator.level_count, source_name
        )
        if progress_callback:
            progress_callback("tiles", 0, total)

        done = 0
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            for level, (cols, rows) in enumerate(generator.level_tiles):
                futures = {
                    executor.submit(
                        self._write_tile, generator, TileCoord(level, col, row), tiles_dir, background
                    ): (col, row)
                    for row in range(rows)
                    for col in range(cols)
                }
                for future in as_completed(futures):
                    try:
                        future.result()
                    except Exception as e:
                        col, row = futures[future]
                        logger.error(
                            "Failed to export tile (%d, %d, %d) of %s: %s",
                            level, col, row, source_name, e,
                        )
                        for pending in futures:
                            pending.cancel()
                        raise
                    done += 1
                    if progress_callback:
                        progress_callback("tiles", done, total)

        dzi_path.write_text(generator.get_dzi(self.tile_format), encoding="utf-8")
        self._write_metadata(generator, tiles_dir, source_name)
        return generator

    def _write_tile(
        self,
        generator: DeepZoomGenerator,
        coord: TileCoord,
        tiles_dir: Path,
        background: tuple[int, int, int],
    ) -> None:
        tile = generator.get_tile(*coord)
        dimensions = generator.get_tile_dimensions(*coord)
        image = render_tile(tile, dimensions, background)
        data = encode_tile(image, self.tile_format, self.quality)
        path = tiles_dir / str(coord.level) / f"{coord.col}_{coord.row}.{self.tile_format}"
        path.write_bytes(data)

    def _write_metadata(
        self, generator: DeepZoomGenerator, tiles_dir: Path, source_name: str
    ) -> None:
        metadata = ExportMetadata(
            version="1.0",
            source_file=source_name,
            tile_size=generator.tile_size,
            overlap=generator.overlap,
            limit_bounds=self.limit_bounds,
            tile_format=self.tile_format,
            dimensions=tuple(generator.level_dimensions[-1]),
            levels=generator.levels(),
            mpp=generator.mpp,
            background_color=generator.background_color,
            exported_at=datetime.now(timezone.utc).isoformat(),
        )
        with open(tiles_dir / METADATA_FILENAME, "w") as f:
            json.dump(metadata.to_dict(), f, indent=2)


def export_dzi(
    slide_path: Path,
    output_dir: Path,
    tile_size: int = DEFAULT_TILE_SIZE,
    overlap: int = DEFAULT_OVERLAP,
    limit_bounds: bool = DEFAULT_LIMIT_BOUNDS,
    tile_format: str = DEFAULT_FORMAT,
    progress_callback: ProgressCallback | None = None,
    force: bool = False,
) -> Path | None:
    """Export a slide as a Deep Zoom tree using DziExporter.

    Returns:
        Path to the written .dzi, or None if skipped

    Raises:
        SlideOpenError: If the slide cannot be opened
    """
    exporter = DziExporter(
        tile_size=tile_size,
        overlap=overlap,
        limit_bounds=limit_bounds,
        tile_format=tile_format,
    )
    return exporter.build(slide_path, output_dir, progress_callback, force=force)
