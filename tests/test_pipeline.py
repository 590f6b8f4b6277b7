from __future__ import annotations

import re
import threading
from pathlib import Path

import pytest

from conftest import FakeEncoder
from lecture_chunker.config import ChunkerConfig
from lecture_chunker.errors import (
    ChunkingCancelled,
    EncodeError,
    NonConvergentSplitError,
    ProbeError,
)
from lecture_chunker.pipeline import chunk_many, chunk_video

MB = 1_000_000


def _config(**kwargs) -> ChunkerConfig:
    kwargs.setdefault("max_segment_bytes", 10 * MB)
    return ChunkerConfig(work_root="/tmp/lecture-chunker-tests", **kwargs)


def _run(source: Path, out: Path, encoder: FakeEncoder, config: ChunkerConfig | None = None, **kwargs):
    return chunk_video(
        str(source),
        str(out),
        config or _config(),
        source_size_bytes=kwargs.pop("source_size_bytes", 100 * MB),
        probe_duration=kwargs.pop("probe_duration", lambda _p: 400.0),
        probe_bitrate=kwargs.pop("probe_bitrate", lambda _p: 2_000_000.0),
        encode=encoder,
        **kwargs,
    )


def _bounds(result) -> list[tuple[float, float]]:
    return [(s.start_time, s.end_time) for s in result.segments]


def _assert_tiles(result, total: float) -> None:
    segs = result.segments
    assert segs[0].start_time == 0
    assert segs[-1].end_time == total
    for prev, nxt in zip(segs, segs[1:]):
        assert prev.end_time == nxt.start_time
    assert [s.index for s in segs] == list(range(len(segs)))
    assert [s.id for s in segs] == [f"chunk-{i}" for i in range(len(segs))]


def test_small_source_is_borrowed_without_encoding(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(250_000)
    result = _run(source_video, out_dir, encoder, source_size_bytes=8 * MB, probe_duration=lambda _p: 95.5)

    assert encoder.calls == []
    assert len(result.segments) == 1
    seg = result.segments[0]
    assert seg.borrowed
    assert seg.path == str(source_video.resolve())
    assert (seg.start_time, seg.end_time) == (0.0, 95.5)
    assert result.total_duration == 95.5
    assert result.to_dict() == {"duration": 95.5, "chunks": [{"id": "chunk-0", "startTime": 0.0, "endTime": 95.5}]}


def test_mean_bitrate_plan_produces_ten_forty_second_segments(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(230_000)
    result = _run(source_video, out_dir, encoder)

    assert len(result.segments) == 10
    assert _bounds(result) == [(40.0 * i, 40.0 * (i + 1)) for i in range(10)]
    assert result.split_count == 0
    _assert_tiles(result, 400.0)


def test_dense_chunk_is_bisected_and_renumbered(source_video: Path, out_dir: Path):
    # [120, 160) encodes to 14 MB, each half to 7 MB.
    encoder = FakeEncoder(230_000, dense=[(120.0, 160.0, 120_000)])
    result = _run(source_video, out_dir, encoder)

    assert len(result.segments) == 11
    assert result.split_count == 1
    assert _bounds(result)[3:5] == [(120.0, 140.0), (140.0, 160.0)]
    _assert_tiles(result, 400.0)
    for seg in result.segments:
        assert Path(seg.path).name == f"{seg.id}.mp4"
        assert Path(seg.path).stat().st_size <= 10 * MB


def test_nested_bisection_renames_without_collisions(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(200_000, dense=[(120.0, 125.0, 1_500_000)])
    result = _run(source_video, out_dir, encoder)

    assert result.split_count == 2
    assert _bounds(result)[3:6] == [(120.0, 130.0), (130.0, 140.0), (140.0, 160.0)]
    assert len(result.segments) == 12
    _assert_tiles(result, 400.0)

    names = sorted(p.name for p in out_dir.iterdir())
    assert names == sorted(f"chunk-{i}.mp4" for i in range(12))
    # chunk-4 now holds [130, 140); its size follows that range, not the planned chunk-4.
    assert (out_dir / "chunk-4.mp4").stat().st_size == encoder.size_for(130.0, 140.0)
    assert (out_dir / "chunk-6.mp4").stat().st_size == encoder.size_for(160.0, 200.0)


def test_every_owned_segment_fits_budget_and_no_temp_files_remain(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(240_000, dense=[(10.0, 12.0, 3_000_000), (333.0, 350.0, 200_000)])
    result = _run(source_video, out_dir, encoder)

    _assert_tiles(result, 400.0)
    for seg in result.segments:
        assert Path(seg.path).stat().st_size <= 10 * MB
    assert all(re.fullmatch(r"chunk-\d+\.mp4", p.name) for p in out_dir.iterdir())
    assert len(list(out_dir.iterdir())) == len(result.segments)


def test_last_segment_is_clipped_to_duration(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(230_000)
    result = _run(source_video, out_dir, encoder, probe_duration=lambda _p: 410.5)

    assert len(result.segments) == 11
    assert _bounds(result)[-1] == (400.0, 410.5)
    _assert_tiles(result, 410.5)


def test_rerun_yields_same_boundaries(source_video: Path, tmp_path: Path):
    first = _run(source_video, tmp_path / "a", FakeEncoder(230_000, dense=[(50.0, 70.0, 300_000)]))
    second = _run(source_video, tmp_path / "b", FakeEncoder(230_000, dense=[(50.0, 70.0, 300_000)]))

    assert _bounds(first) == _bounds(second)
    assert [s.id for s in first.segments] == [s.id for s in second.segments]


def test_missing_bitrate_falls_back_to_default(source_video: Path, out_dir: Path):
    def no_bitrate(_path):
        raise ProbeError("No bit_rate reported")

    encoder = FakeEncoder(230_000)
    result = _run(source_video, out_dir, encoder, probe_bitrate=no_bitrate)

    # Default 2 Mbps against a 10 MB budget plans 40 s segments.
    assert len(result.segments) == 10
    assert encoder.calls[0][2] == 40.0


def test_missing_duration_is_fatal(source_video: Path, out_dir: Path):
    def no_duration(_path):
        raise ProbeError("No duration reported")

    encoder = FakeEncoder(230_000)
    with pytest.raises(ProbeError):
        _run(source_video, out_dir, encoder, probe_duration=no_duration)
    assert encoder.calls == []


def test_uniformly_dense_region_fails_loudly_and_cleans_up(source_video: Path, out_dir: Path):
    # One second of this region alone is larger than the budget.
    encoder = FakeEncoder(200_000, dense=[(200.0, 240.0, 20 * MB)])
    with pytest.raises(NonConvergentSplitError) as excinfo:
        _run(source_video, out_dir, encoder, config=_config(max_split_depth=3))

    assert excinfo.value.depth == 3
    assert excinfo.value.start_sec >= 200.0
    assert list(out_dir.iterdir()) == []
    assert source_video.exists()


def test_min_segment_seconds_stops_bisection(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(200_000, dense=[(200.0, 240.0, 20 * MB)])
    with pytest.raises(NonConvergentSplitError) as excinfo:
        _run(source_video, out_dir, encoder, config=_config(max_split_depth=50, min_segment_seconds=5.0))

    assert excinfo.value.end_sec - excinfo.value.start_sec == 5.0
    assert list(out_dir.iterdir()) == []


def test_encode_failure_aborts_and_removes_files(source_video: Path, out_dir: Path):
    encoder = FakeEncoder(230_000)

    def fail_on_fifth(call_number: int) -> None:
        if call_number == 4:
            raise EncodeError("ffmpeg failed (exit 1) encoding chunk-4.mp4", stderr="boom")

    encoder.before_encode = fail_on_fifth
    with pytest.raises(EncodeError):
        _run(source_video, out_dir, encoder)

    assert len(encoder.calls) == 4
    assert list(out_dir.iterdir()) == []


def test_cancel_event_stops_run_and_removes_files(source_video: Path, out_dir: Path):
    cancel = threading.Event()
    encoder = FakeEncoder(230_000)

    def cancel_after_three(call_number: int) -> None:
        if call_number == 2:
            cancel.set()

    encoder.before_encode = cancel_after_three
    with pytest.raises(ChunkingCancelled):
        _run(source_video, out_dir, encoder, cancel_event=cancel)

    assert len(encoder.calls) == 3
    assert list(out_dir.iterdir()) == []
    assert source_video.exists()


def test_chunk_many_runs_independent_jobs(source_video: Path, tmp_path: Path):
    jobs = {"s1": (str(source_video), str(tmp_path / "s1")), "s2": (str(source_video), str(tmp_path / "s2"))}
    results = chunk_many(
        jobs,
        _config(),
        max_workers=2,
        source_size_bytes=100 * MB,
        probe_duration=lambda _p: 400.0,
        probe_bitrate=lambda _p: 2_000_000.0,
        encode=FakeEncoder(230_000),
    )

    assert set(results) == {"s1", "s2"}
    for key, result in results.items():
        assert len(result.segments) == 10
        assert all(Path(s.path).parent == tmp_path / key for s in result.segments)


def test_missing_source_is_a_probe_error_and_creates_nothing(tmp_path: Path, out_dir: Path):
    encoder = FakeEncoder(230_000)
    with pytest.raises(ProbeError):
        chunk_video(
            str(tmp_path / "missing.mp4"),
            str(out_dir),
            _config(),
            probe_duration=lambda _p: 400.0,
            probe_bitrate=lambda _p: 2_000_000.0,
            encode=encoder,
        )

    assert encoder.calls == []
    assert not out_dir.exists()


def test_chunk_many_reports_missing_source_after_other_jobs(source_video: Path, tmp_path: Path):
    jobs = {
        "ok": (str(source_video), str(tmp_path / "ok")),
        "gone": (str(tmp_path / "missing.mp4"), str(tmp_path / "gone")),
    }
    with pytest.raises(ProbeError):
        chunk_many(
            jobs,
            _config(),
            source_size_bytes=100 * MB,
            probe_duration=lambda _p: 400.0,
            probe_bitrate=lambda _p: 2_000_000.0,
            encode=FakeEncoder(230_000),
        )

    assert len(list((tmp_path / "ok").iterdir())) == 10
    assert not (tmp_path / "gone").exists()


def test_borrowed_source_does_not_create_output_dir(source_video: Path, out_dir: Path):
    result = _run(source_video, out_dir, FakeEncoder(1), source_size_bytes=1 * MB)

    assert result.segments[0].borrowed
    assert not out_dir.exists()
