from __future__ import annotations

from pathlib import Path

import pytest


class FakeEncoder:
    """
    Stands in for ffmpeg: writes a sparse file whose size follows a byte-rate
    model of the source (a base rate plus optional dense regions).
    """

    def __init__(self, base_bytes_per_sec: float, dense: list[tuple[float, float, float]] | None = None):
        self.base = base_bytes_per_sec
        self.dense = dense or []
        self.calls: list[tuple[str, float, float]] = []
        self.before_encode = None

    def size_for(self, start: float, end: float) -> int:
        size = self.base * (end - start)
        for d_start, d_end, extra in self.dense:
            overlap = min(end, d_end) - max(start, d_start)
            if overlap > 0:
                size += extra * overlap
        return int(size)

    def __call__(self, source: str, output: str, start: float, duration: float) -> None:
        if self.before_encode is not None:
            self.before_encode(len(self.calls))
        self.calls.append((Path(output).name, start, duration))
        with open(output, "wb") as f:
            f.truncate(self.size_for(start, start + duration))


@pytest.fixture
def source_video(tmp_path: Path) -> Path:
    src_dir = tmp_path / "source"
    src_dir.mkdir()
    path = src_dir / "lecture.mp4"
    path.write_bytes(b"fake-video")
    return path


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    return tmp_path / "session"
