"""CLI entry point for slidezoom."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from tqdm import tqdm

from slidezoom.config import (
    DEFAULT_EXPORT_WORKERS,
    DEFAULT_FORMAT,
    DEFAULT_LIMIT_BOUNDS,
    DEFAULT_OVERLAP,
    DEFAULT_TILE_SIZE,
    JPEG_QUALITY,
    SLIDE_EXTENSIONS,
    TILE_FORMATS,
)
from slidezoom.core.errors import (
    InvalidParameterError,
    InvalidTileError,
    SlideOpenError,
    TileSizeError,
)
from slidezoom.core.source import SlideProperties, open_slide
from slidezoom.deepzoom import DeepZoomGenerator

from .exporter import DziExporter, encode_tile, render_tile
from .worker import export_single_slide

logger = logging.getLogger(__name__)


def is_slide_file(path: Path) -> bool:
    """Check if a file has a supported slide extension."""
    return path.suffix.lower() in SLIDE_EXTENSIONS


def find_slide_files(path: Path) -> list[Path]:
    """Find all slide files in a path (file or directory)."""
    path = Path(path)
    if path.is_file():
        if is_slide_file(path):
            return [path]
        return []
    elif path.is_dir():
        # Use set to avoid duplicates on case-insensitive filesystems (Windows)
        files = set()
        for ext in SLIDE_EXTENSIONS:
            files.update(path.glob(f"*{ext}"))
            files.update(path.glob(f"*{ext.upper()}"))
        return sorted(files)
    return []


def _pyramid_options(func):
    """Options shared by every command that builds a pyramid."""
    func = click.option(
        "--limit-bounds/--no-limit-bounds",
        default=DEFAULT_LIMIT_BOUNDS,
        help="Render only the slide's declared non-empty region",
    )(func)
    func = click.option(
        "--overlap",
        type=click.IntRange(min=0),
        default=DEFAULT_OVERLAP,
        help=f"Overlap added to interior tile edges (default: {DEFAULT_OVERLAP})",
    )(func)
    func = click.option(
        "--tile-size",
        "-t",
        type=click.IntRange(min=1),
        default=DEFAULT_TILE_SIZE,
        help=f"Tile size in pixels before overlap (default: {DEFAULT_TILE_SIZE})",
    )(func)
    return func


def _open_generator(slide: str, tile_size: int, overlap: int, limit_bounds: bool):
    """Open a slide and build its generator, turning failures into CLI errors."""
    try:
        view = open_slide(slide)
    except SlideOpenError as e:
        raise click.ClickException(str(e)) from e
    try:
        generator = DeepZoomGenerator(
            view, tile_size=tile_size, overlap=overlap, limit_bounds=limit_bounds
        )
    except (InvalidParameterError, TileSizeError) as e:
        view.close()
        raise click.UsageError(str(e)) from e
    return view, generator


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity (default: WARNING)",
)
def cli(log_level: str) -> None:
    """Deep Zoom tiles from pyramidal whole-slide images."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("slide", type=click.Path(exists=True, dir_okay=False))
@_pyramid_options
def info(slide: str, tile_size: int, overlap: int, limit_bounds: bool) -> None:
    """Print the Deep Zoom level table of SLIDE."""
    view, generator = _open_generator(slide, tile_size, overlap, limit_bounds)
    with view:
        click.echo(click.style(Path(slide).name, fg="cyan", bold=True))
        click.echo(click.style("=" * 40, fg="cyan"))
        width, height = generator.level_dimensions[-1]
        click.echo(f"Dimensions: {width} x {height} px")
        click.echo(f"Levels: {generator.level_count} | Tiles: {generator.tile_count}")
        mpp = generator.mpp
        click.echo(f"MPP: {mpp:.4f}" if mpp is not None else "MPP: unknown")
        bounds = generator.bounds
        click.echo(
            f"Bounds: offset ({bounds.offset.x}, {bounds.offset.y}) "
            f"size {bounds.size.width} x {bounds.size.height}"
        )
        click.echo(f"Background: {generator.background_color or 'unknown'}")
        click.echo()
        click.echo(f"{'level':>5} {'width':>8} {'height':>8} {'cols':>5} {'rows':>5} {'source':>6} {'residual':>9}")
        for level in generator.levels():
            click.echo(
                f"{level.level:>5} {level.dimensions.width:>8} {level.dimensions.height:>8} "
                f"{level.cols:>5} {level.rows:>5} {level.source_level:>6} "
                f"{level.residual_downsample:>9.3f}"
            )


@cli.command()
@click.argument("slide", type=click.Path(exists=True, dir_okay=False))
@_pyramid_options
@click.option(
    "--format",
    "format_name",
    type=click.Choice(sorted(TILE_FORMATS)),
    default=DEFAULT_FORMAT,
    help=f"Tile format named in the manifest (default: {DEFAULT_FORMAT})",
)
def dzi(slide: str, tile_size: int, overlap: int, limit_bounds: bool, format_name: str) -> None:
    """Print the Deep Zoom manifest of SLIDE."""
    view, generator = _open_generator(slide, tile_size, overlap, limit_bounds)
    with view:
        click.echo(generator.get_dzi(format_name))


@cli.command()
@click.argument("slide", type=click.Path(exists=True, dir_okay=False))
@click.argument("level", type=int)
@click.argument("col", type=int)
@click.argument("row", type=int)
@_pyramid_options
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the encoded tile here (.jpeg/.jpg or .png)",
)
def tile(
    slide: str,
    level: int,
    col: int,
    row: int,
    tile_size: int,
    overlap: int,
    limit_bounds: bool,
    output: str | None,
) -> None:
    """Resolve one tile of SLIDE, optionally writing it to a file."""
    view, generator = _open_generator(slide, tile_size, overlap, limit_bounds)
    with view:
        try:
            address = generator.get_tile_coordinates(level, col, row)
            dimensions = generator.get_tile_dimensions(level, col, row)
        except InvalidTileError as e:
            raise click.BadParameter(str(e), param_hint="LEVEL/COL/ROW") from e

        click.echo(
            f"Location: ({address.location.x}, {address.location.y}) | "
            f"Source level: {address.source_level} | "
            f"Region: {address.size.width} x {address.size.height}"
        )
        click.echo(f"Tile: {dimensions.width} x {dimensions.height}")

        if output:
            output_path = Path(output)
            tile_format = "png" if output_path.suffix.lower() == ".png" else "jpeg"
            background = SlideProperties(view.properties).background_rgb()
            image = render_tile(generator.get_tile(level, col, row), dimensions, background)
            output_path.write_bytes(encode_tile(image, tile_format))
            click.echo(f"Wrote {output_path}")


def _print_summary(
    success_count: int,
    skipped_count: int,
    errors: list[tuple[Path, str]],
    force: bool,
) -> None:
    """Print the colored export summary and exit with error if any failures."""
    click.echo()
    click.echo(click.style("=" * 40, fg="cyan"))

    parts = []
    if success_count > 0:
        parts.append(click.style(f"{success_count} exported", fg="green"))
    if skipped_count > 0:
        parts.append(click.style(f"{skipped_count} skipped", fg="cyan"))
    if errors:
        parts.append(click.style(f"{len(errors)} failed", fg="red"))

    summary = ", ".join(parts) if parts else "Nothing to export"
    click.echo(click.style("Completed: ", bold=True) + summary)

    if skipped_count > 0 and not force:
        click.echo(click.style("  (use --force to rebuild skipped slides)", fg="cyan"))

    if errors:
        click.echo()
        click.echo(click.style("Failed slides:", fg="red"))
        for path, error in errors:
            click.echo(f"  {path.name}: {error}")
        sys.exit(1)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True))
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False),
    default="./output",
    help="Output directory for .dzi files and tile folders",
)
@_pyramid_options
@click.option(
    "--format",
    "format_name",
    type=click.Choice(sorted(TILE_FORMATS)),
    default=DEFAULT_FORMAT,
    help=f"Tile image format (default: {DEFAULT_FORMAT})",
)
@click.option(
    "--quality",
    "-q",
    type=click.IntRange(1, 100),
    default=JPEG_QUALITY,
    help=f"JPEG quality (default: {JPEG_QUALITY})",
)
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=DEFAULT_EXPORT_WORKERS,
    help=f"Encoder threads (default: {DEFAULT_EXPORT_WORKERS})",
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force rebuild even if the slide is already exported",
)
def export(
    input_path: str,
    output: str,
    tile_size: int,
    overlap: int,
    limit_bounds: bool,
    format_name: str,
    quality: int,
    workers: int,
    force: bool,
) -> None:
    """Export slides as static Deep Zoom trees.

    INPUT_PATH can be a single slide file or a directory containing slides.

    Examples:

        # Export a single slide
        python -m slidezoom export slide.svs -o ./output/

        # Export a directory of slides as PNG tiles
        python -m slidezoom export ./slides/ -o ./output/ --format png
    """
    input_path = Path(input_path)
    output_dir = Path(output)

    slide_files = find_slide_files(input_path)
    if not slide_files:
        click.echo(f"No slide files found in {input_path}", err=True)
        sys.exit(1)
    logger.debug("Found %d slide files under %s", len(slide_files), input_path)

    exporter = DziExporter(
        tile_size=tile_size,
        overlap=overlap,
        limit_bounds=limit_bounds,
        tile_format=format_name,
        workers=workers,
        quality=quality,
    )

    click.echo(click.style("slidezoom export", fg="cyan", bold=True))
    click.echo(click.style("=" * 40, fg="cyan"))
    click.echo(f"Found {len(slide_files)} slide file(s)")
    click.echo(f"Output directory: {output_dir}")
    click.echo(f"Tile size: {tile_size}px | Overlap: {overlap}px | Format: {format_name}")
    if force:
        click.echo(click.style("Force mode: will rebuild existing exports", fg="yellow"))
    click.echo()

    success_count = 0
    skipped_count = 0
    errors: list[tuple[Path, str]] = []

    for slide_path in slide_files:
        with tqdm(desc=slide_path.name, unit="tile") as pbar:

            def _on_progress(_stage: str, current: int, total: int) -> None:
                pbar.total = total
                pbar.n = current
                pbar.refresh()

            result, error, was_skipped = export_single_slide(
                exporter, slide_path, output_dir, force=force, progress_callback=_on_progress
            )

        if error:
            errors.append((slide_path, error))
            click.echo(f"\nError exporting {slide_path.name}: {error}", err=True)
        elif was_skipped:
            skipped_count += 1
        else:
            success_count += 1

    _print_summary(success_count, skipped_count, errors, force)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
