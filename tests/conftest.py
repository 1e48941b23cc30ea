"""Test fixtures for slidezoom tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import numpy as np
import pytest

from slidezoom.core.source import best_level_for_downsample
from slidezoom.core.types import Point, Size

#: Opaque premultiplied ARGB word used to fill fake regions
FILL_WORD = 0xFF336699


class FakeSlide:
    """In-memory source pyramid that records every region it is asked for."""

    def __init__(
        self,
        level_dimensions: list[tuple[int, int]],
        level_downsamples: list[float] | None = None,
        properties: dict[str, str] | None = None,
        word: int = FILL_WORD,
    ) -> None:
        self._level_dimensions = tuple(Size(*d) for d in level_dimensions)
        if level_downsamples is None:
            level_downsamples = [1.0]
        self._level_downsamples = tuple(float(d) for d in level_downsamples)
        self._properties = dict(properties or {})
        self.word = word
        self.reads: list[tuple[Point, int, Size]] = []
        self.closed = False

    @property
    def level_count(self) -> int:
        return len(self._level_dimensions)

    @property
    def level_dimensions(self) -> tuple[Size, ...]:
        return self._level_dimensions

    @property
    def level_downsamples(self) -> tuple[float, ...]:
        return self._level_downsamples

    @property
    def properties(self) -> dict[str, str]:
        return self._properties

    def get_best_level_for_downsample(self, downsample: float) -> int:
        return best_level_for_downsample(self._level_downsamples, downsample)

    def read_region(self, location: Point, level: int, size: Size) -> np.ndarray:
        self.reads.append((location, level, size))
        return np.full((size.height, size.width), self.word, dtype=np.uint32)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeSlide:
        return self

    def __exit__(self, *args) -> None:
        self.close()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def square_slide() -> FakeSlide:
    """A 300x300 single-level slide."""
    return FakeSlide([(300, 300)])


@pytest.fixture
def multi_level_slide() -> FakeSlide:
    """A 1000x800 slide with three native levels (downsamples 1, 4, 16)."""
    return FakeSlide(
        [(1000, 800), (250, 200), (62, 50)],
        [1.0, 4.0, 16.0],
    )


@pytest.fixture
def bounded_slide() -> FakeSlide:
    """The multi-level slide with bounds, resolution and background metadata."""
    return FakeSlide(
        [(1000, 800), (250, 200), (62, 50)],
        [1.0, 4.0, 16.0],
        properties={
            "openslide.bounds-x": "100",
            "openslide.bounds-y": "50",
            "openslide.bounds-width": "500",
            "openslide.bounds-height": "400",
            "openslide.mpp-x": "0.25",
            "openslide.mpp-y": "0.27",
            "openslide.background-color": "F0E0D0",
        },
    )


@pytest.fixture
def slide_file(temp_dir: Path) -> Path:
    """An empty file with a slide extension, for CLI path checks."""
    path = temp_dir / "sample.svs"
    path.write_bytes(b"")
    return path
