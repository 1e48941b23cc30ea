"""Tests for static Deep Zoom export."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

import slidezoom.export.exporter as exporter_module
from slidezoom.core.errors import InvalidParameterError, TileReadError
from slidezoom.core.types import Size, Tile
from slidezoom.export import (
    DziExporter,
    ExportMetadata,
    ExportStatus,
    check_export_status,
    encode_tile,
    export_paths,
    render_tile,
    tile_to_rgb,
)
from slidezoom.export.worker import export_single_slide

from conftest import FakeSlide


@pytest.fixture
def wide_slide() -> FakeSlide:
    """A 600x400 single-level slide: 11 levels, 17 tiles at 254px."""
    return FakeSlide([(600, 400)], properties={"openslide.mpp-x": "0.5", "openslide.mpp-y": "0.5"})


def _export(slide: FakeSlide, temp_dir: Path, **kwargs):
    exporter = DziExporter(tile_size=254, overlap=1, workers=2, **kwargs)
    dzi_path, tiles_dir = export_paths(Path("wide.svs"), temp_dir)
    generator = exporter.export_view(slide, dzi_path, tiles_dir, "wide.svs")
    return generator, dzi_path, tiles_dir


class TestTileRendering:
    """Tests for compositing and encoding sampled tiles."""

    def test_opaque_pixels_unchanged(self) -> None:
        tile = Tile(1, 1, bytes([0x10, 0x20, 0x30, 0xFF]))
        assert tile_to_rgb(tile, (255, 255, 255)).tolist() == [[[0x30, 0x20, 0x10]]]

    def test_transparent_pixels_show_background(self) -> None:
        tile = Tile(2, 1, bytes([0, 0, 0, 0]) * 2)
        rgb = tile_to_rgb(tile, (240, 224, 208))
        np.testing.assert_array_equal(rgb, np.array([[[240, 224, 208]] * 2], dtype=np.uint8))

    def test_render_scales_to_tile_dimensions(self) -> None:
        tile = Tile(8, 6, bytes([0, 0, 0, 255]) * 48)
        image = render_tile(tile, Size(4, 3), (255, 255, 255))
        assert image.mode == "RGB"
        assert image.size == (4, 3)

    def test_render_empty_region(self) -> None:
        image = render_tile(Tile(0, 0, b""), Size(2, 2), (1, 2, 3))
        assert image.getpixel((0, 0)) == (1, 2, 3)

    def test_encode_formats(self) -> None:
        image = Image.new("RGB", (4, 4), (10, 20, 30))
        assert encode_tile(image, "jpeg")[:2] == b"\xff\xd8"
        assert encode_tile(image, "png")[:8] == b"\x89PNG\r\n\x1a\n"
        with pytest.raises(InvalidParameterError):
            encode_tile(image, "gif")


class TestExportView:
    """Tests for writing a full tile tree."""

    def test_writes_every_tile(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)

        assert generator.level_count == 11
        assert generator.tile_count == 17
        written = sorted(p.relative_to(tiles_dir).as_posix() for p in tiles_dir.rglob("*.jpeg"))
        assert len(written) == 17
        assert "10/2_1.jpeg" in written
        assert "0/0_0.jpeg" in written

    def test_tile_sizes_match_dimensions(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        generator, _dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        for level, col, row in [(10, 0, 0), (10, 2, 1), (9, 1, 0), (0, 0, 0)]:
            with Image.open(tiles_dir / str(level) / f"{col}_{row}.jpeg") as image:
                assert image.size == tuple(generator.get_tile_dimensions(level, col, row))

    def test_png_pixels(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, _dzi_path, tiles_dir = _export(wide_slide, temp_dir, tile_format="png")
        with Image.open(tiles_dir / "10" / "0_0.png") as image:
            assert image.getpixel((0, 0)) == (0x33, 0x66, 0x99)

    def test_manifest_and_metadata(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        assert dzi_path.read_text(encoding="utf-8") == generator.get_dzi("jpeg")

        with open(tiles_dir / "metadata.json") as f:
            metadata = ExportMetadata.from_dict(json.load(f))
        assert metadata.source_file == "wide.svs"
        assert metadata.tile_size == 254
        assert metadata.overlap == 1
        assert metadata.dimensions == (600, 400)
        assert metadata.mpp == 0.5
        assert metadata.levels == generator.levels()

    def test_progress_callback(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        calls = []
        exporter = DziExporter(tile_size=254, overlap=1, workers=3)
        dzi_path, tiles_dir = export_paths(Path("wide.svs"), temp_dir)
        exporter.export_view(
            wide_slide, dzi_path, tiles_dir, "wide.svs",
            progress_callback=lambda stage, current, total: calls.append((stage, current, total)),
        )
        assert calls[0] == ("tiles", 0, 17)
        assert calls[-1] == ("tiles", 17, 17)
        assert [c[1] for c in calls] == list(range(18))

    def test_read_failure_aborts(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        def fail(location, level, size):
            raise OSError("bad block")

        wide_slide.read_region = fail
        with pytest.raises(TileReadError):
            _export(wide_slide, temp_dir)
        dzi_path, tiles_dir = export_paths(Path("wide.svs"), temp_dir)
        assert not (tiles_dir / "metadata.json").exists()
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.INCOMPLETE

    @pytest.mark.parametrize(
        "kwargs",
        [{"tile_format": "gif"}, {"workers": 0}],
        ids=["format", "workers"],
    )
    def test_invalid_exporter(self, kwargs) -> None:
        with pytest.raises(InvalidParameterError):
            DziExporter(**kwargs)


class TestExportStatus:
    """Tests for classifying existing exports."""

    def test_not_exists(self, temp_dir: Path) -> None:
        dzi_path, tiles_dir = export_paths(Path("wide.svs"), temp_dir)
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.NOT_EXISTS

    def test_complete(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.COMPLETE

    def test_missing_tile(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        (tiles_dir / "10" / "1_1.jpeg").unlink()
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.INCOMPLETE

    def test_missing_manifest(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        dzi_path.unlink()
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.INCOMPLETE

    def test_corrupted_metadata(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        (tiles_dir / "metadata.json").write_text("{invalid json")
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.CORRUPTED

    def test_metadata_missing_keys(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        (tiles_dir / "metadata.json").write_text('{"version": "1.0"}')
        assert check_export_status(dzi_path, tiles_dir) == ExportStatus.CORRUPTED

    def test_settings_mismatch_is_stale(self, wide_slide: FakeSlide, temp_dir: Path) -> None:
        _generator, dzi_path, tiles_dir = _export(wide_slide, temp_dir)
        matching = {"tile_size": 254, "overlap": 1, "limit_bounds": False, "tile_format": "jpeg"}
        assert check_export_status(dzi_path, tiles_dir, matching) == ExportStatus.COMPLETE
        stale = dict(matching, tile_format="png")
        assert check_export_status(dzi_path, tiles_dir, stale) == ExportStatus.INCOMPLETE

    def test_export_paths(self, temp_dir: Path) -> None:
        assert export_paths(Path("/slides/case 1.svs"), temp_dir) == (
            temp_dir / "case 1.dzi",
            temp_dir / "case 1_files",
        )


class TestBuild:
    """Tests for DziExporter.build() skip/force handling."""

    @pytest.fixture
    def patched_open(self, monkeypatch, wide_slide: FakeSlide) -> FakeSlide:
        monkeypatch.setattr(exporter_module, "open_slide", lambda path: wide_slide)
        return wide_slide

    def test_build_then_skip(self, patched_open: FakeSlide, temp_dir: Path) -> None:
        exporter = DziExporter(workers=2)
        out = temp_dir / "out"
        result = exporter.build(Path("wide.svs"), out)
        assert result == out / "wide.dzi"
        assert patched_open.closed

        reads = len(patched_open.reads)
        assert exporter.build(Path("wide.svs"), out) is None
        assert len(patched_open.reads) == reads

    def test_force_rebuilds(self, patched_open: FakeSlide, temp_dir: Path) -> None:
        exporter = DziExporter(workers=2)
        exporter.build(Path("wide.svs"), temp_dir)
        stale = temp_dir / "wide_files" / "10" / "stale.jpeg"
        stale.write_bytes(b"")
        assert exporter.build(Path("wide.svs"), temp_dir, force=True) == temp_dir / "wide.dzi"
        assert not stale.exists()

    def test_incomplete_export_is_rebuilt(self, patched_open: FakeSlide, temp_dir: Path) -> None:
        exporter = DziExporter(workers=2)
        exporter.build(Path("wide.svs"), temp_dir)
        (temp_dir / "wide_files" / "metadata.json").unlink()
        assert exporter.build(Path("wide.svs"), temp_dir) == temp_dir / "wide.dzi"
        assert (temp_dir / "wide_files" / "metadata.json").exists()

    def test_worker_reports_errors(self, monkeypatch, wide_slide: FakeSlide, temp_dir: Path) -> None:
        def fail(location, level, size):
            raise OSError("bad block")

        wide_slide.read_region = fail
        monkeypatch.setattr(exporter_module, "open_slide", lambda path: wide_slide)
        result, error, skipped = export_single_slide(DziExporter(workers=1), Path("wide.svs"), temp_dir)
        assert result is None
        assert "bad block" in error
        assert skipped is False

    def test_worker_reports_skip(self, patched_open: FakeSlide, temp_dir: Path) -> None:
        exporter = DziExporter(workers=1)
        export_single_slide(exporter, Path("wide.svs"), temp_dir)
        assert export_single_slide(exporter, Path("wide.svs"), temp_dir) == (None, None, True)

    @pytest.mark.parametrize(
        "kwargs",
        [{"tile_size": 128}, {"overlap": 0}, {"tile_format": "png"}, {"limit_bounds": True}],
        ids=["tile_size", "overlap", "format", "limit_bounds"],
    )
    def test_changed_settings_rebuild(self, patched_open: FakeSlide, temp_dir: Path, kwargs) -> None:
        DziExporter(workers=2).build(Path("wide.svs"), temp_dir)
        exporter = DziExporter(workers=2, **kwargs)
        assert exporter.build(Path("wide.svs"), temp_dir) == temp_dir / "wide.dzi"

        dzi_path, tiles_dir = export_paths(Path("wide.svs"), temp_dir)
        with open(tiles_dir / "metadata.json") as f:
            metadata = ExportMetadata.from_dict(json.load(f))
        for key, value in exporter.settings.items():
            assert getattr(metadata, key) == value
        assert check_export_status(dzi_path, tiles_dir, exporter.settings) == ExportStatus.COMPLETE

    def test_png_rebuild_replaces_jpeg_tree(self, patched_open: FakeSlide, temp_dir: Path) -> None:
        DziExporter(workers=2).build(Path("wide.svs"), temp_dir)
        DziExporter(tile_size=128, tile_format="png", workers=2).build(Path("wide.svs"), temp_dir)

        manifest = (temp_dir / "wide.dzi").read_text(encoding="utf-8")
        assert 'Format="png" Overlap="1" TileSize="128"' in manifest
        tiles_dir = temp_dir / "wide_files"
        assert list(tiles_dir.rglob("*.jpeg")) == []
        assert (tiles_dir / "10" / "4_3.png").exists()

    def test_worker_reports_unexpected_errors(self, monkeypatch, temp_dir: Path) -> None:
        def fail(path):
            raise ZeroDivisionError("division by zero")

        monkeypatch.setattr(exporter_module, "open_slide", fail)
        result, error, skipped = export_single_slide(DziExporter(workers=1), Path("wide.svs"), temp_dir)
        assert (result, skipped) == (None, False)
        assert "division by zero" in error
