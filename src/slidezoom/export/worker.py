"""Per-slide export job used by the CLI batch loop."""

from __future__ import annotations

import logging
from pathlib import Path

from .exporter import DziExporter, ProgressCallback

logger = logging.getLogger(__name__)


def export_single_slide(
    exporter: DziExporter,
    slide_path: Path,
    output_dir: Path,
    force: bool = False,
    progress_callback: ProgressCallback | None = None,
) -> tuple[Path | None, str | None, bool]:
    """Export a single slide.

    Args:
        exporter: Configured exporter
        slide_path: Path to the slide file
        output_dir: Output directory
        force: Force rebuild
        progress_callback: Optional callback(stage, current, total)

    Returns:
        Tuple of (dzi_path, error_message, was_skipped)
        - dzi_path: Path to the written .dzi, or None if skipped/error
        - error_message: Error string if failed, None otherwise
        - was_skipped: True if slide was skipped (already complete)
    """
    logger.info("Exporting %s", slide_path.name)
    try:
        result = exporter.build(slide_path, output_dir, progress_callback, force=force)
        if result is None:
            return None, None, True
        return result, None, False
    except Exception as e:
        logger.error("Failed to export %s: %s", slide_path.name, e)
        return None, str(e), False
