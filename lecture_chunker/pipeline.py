"""End-to-end chunking: source video -> validated, re-indexed segment files."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from .config import ChunkerConfig
from .encoder import encode_segment
from .errors import ChunkingCancelled, ChunkingError, ProbeError
from .planner import Segment, plan_segments, target_chunk_seconds
from .probe import probe_bitrate_bps, probe_duration_seconds
from .reindex import check_tiling, reindex_segments
from .validator import EncodeFn, SegmentValidator

logger = logging.getLogger(__name__)

ProbeFn = Callable[[str], float]


def sec_to_mmss(sec: float) -> str:
    return str(timedelta(seconds=int(sec)))


@dataclass
class ChunkResult:
    """Ordered segments of one run plus the probed source duration."""

    segments: list[Segment]
    total_duration: float
    split_count: int = 0

    def to_dict(self) -> dict:
        return {
            "duration": self.total_duration,
            "chunks": [s.to_dict() for s in self.segments],
        }


def _resolve_bitrate(source: str, probe_bitrate: ProbeFn, default_bps: float) -> float:
    try:
        return probe_bitrate(source)
    except ProbeError as exc:
        logger.warning("Bitrate unavailable (%s); assuming %.0f bits/s", exc, default_bps)
        return default_bps


def chunk_video(
    source_video_path: str,
    output_dir: str,
    config: Optional[ChunkerConfig] = None,
    *,
    source_size_bytes: Optional[int] = None,
    probe_duration: Optional[ProbeFn] = None,
    probe_bitrate: Optional[ProbeFn] = None,
    encode: Optional[EncodeFn] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ChunkResult:
    """
    Split source_video_path into segments that each fit config.max_segment_bytes.

    Segment files are written to output_dir as chunk-0.mp4 .. chunk-<n-1>.mp4.
    A source already within budget is returned as a single segment pointing at
    the source itself. Any failure (or cancellation) deletes every file this run
    created before the exception propagates.
    """
    config = config or ChunkerConfig()
    probe_duration = probe_duration or partial(probe_duration_seconds, ffprobe_bin=config.ffprobe_bin)
    probe_bitrate = probe_bitrate or partial(probe_bitrate_bps, ffprobe_bin=config.ffprobe_bin)
    encode = encode or partial(encode_segment, ffmpeg_bin=config.ffmpeg_bin, cancel_event=cancel_event)

    source = str(Path(source_video_path).resolve())
    out_dir = Path(output_dir)

    if not Path(source).is_file():
        raise ProbeError(f"Source file not found: {source}")
    if source_size_bytes is None:
        try:
            source_size_bytes = Path(source).stat().st_size
        except OSError as exc:
            raise ProbeError(f"Source file not readable: {source}") from exc
    duration = probe_duration(source)
    bitrate = _resolve_bitrate(source, probe_bitrate, config.default_bitrate_bps)
    budget = config.max_segment_bytes
    logger.info(
        "Source %s: %.1f MB, %s (%.1fs), %.0f kbit/s; budget %.1f MB",
        Path(source).name,
        source_size_bytes / (1024 * 1024),
        sec_to_mmss(duration),
        duration,
        bitrate / 1000,
        budget / (1024 * 1024),
    )

    planned = plan_segments(source_size_bytes, duration, bitrate, budget, source_path=source)
    if len(planned) == 1 and planned[0].borrowed:
        logger.info("Source fits the budget; using it as the only segment")
        check_tiling(planned, duration)
        return ChunkResult(segments=planned, total_duration=duration)

    logger.info(
        "Planned %d segments of %ds each",
        len(planned),
        target_chunk_seconds(bitrate, budget),
    )
    out_dir.mkdir(parents=True, exist_ok=True)

    owned: set[str] = set()

    def check_cancelled() -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ChunkingCancelled(f"Chunking of {Path(source).name} was cancelled")

    validator = SegmentValidator(
        source,
        str(out_dir),
        budget,
        encode,
        max_split_depth=config.max_split_depth,
        min_segment_seconds=config.min_segment_seconds,
        on_created=owned.add,
        on_removed=owned.discard,
        check_cancelled=check_cancelled,
    )

    accepted: list[Segment] = []
    try:
        for segment in planned:
            validator.materialize(segment)
        accepted = validator.validate(planned)
        segments = reindex_segments(accepted, str(out_dir))
        check_tiling(segments, duration)
    except BaseException:
        _remove_owned(owned, accepted, source)
        raise

    if validator.split_count:
        logger.info(
            "Bisected %d oversized segment(s); %d segments after validation",
            validator.split_count,
            len(segments),
        )
    for s in segments:
        logger.debug(
            "  %s: %s - %s -> %s",
            s.id,
            sec_to_mmss(s.start_time),
            sec_to_mmss(s.end_time),
            Path(s.path).name,
        )
    return ChunkResult(segments=segments, total_duration=duration, split_count=validator.split_count)


def _remove_owned(owned: set[str], accepted: list[Segment], source: str) -> None:
    paths = set(owned)
    paths.update(s.path for s in accepted if s.path and not s.borrowed)
    paths.discard(source)
    for path in paths:
        Path(path).unlink(missing_ok=True)
    if paths:
        logger.info("Removed %d segment file(s) left by the failed run", len(paths))


def chunk_many(
    jobs: dict[str, tuple[str, str]],
    config: Optional[ChunkerConfig] = None,
    max_workers: int = 2,
    **kwargs,
) -> dict[str, ChunkResult]:
    """
    Run independent chunking jobs concurrently.
    jobs maps a key (e.g. session id) to (source_video_path, output_dir).
    The first ChunkingError is re-raised once every job has finished.
    """
    results: dict[str, ChunkResult] = {}
    failures: list[ChunkingError] = []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(chunk_video, source, output_dir, config, **kwargs): key
            for key, (source, output_dir) in jobs.items()
        }
        for future in as_completed(futures):
            key = futures[future]
            try:
                results[key] = future.result()
            except ChunkingError as exc:
                logger.error("Chunking job %s failed: %s", key, exc)
                failures.append(exc)
    if failures:
        raise failures[0]
    return results


def print_summary(result: ChunkResult, source: str) -> None:
    """Print segment boundaries and sizes of a finished run."""
    print("=" * 60)
    print("CHUNKING COMPLETE")
    print("=" * 60)
    print(f"Source:    {source}")
    print(f"Duration:  {sec_to_mmss(result.total_duration)} ({result.total_duration:.1f}s)")
    print(f"Segments:  {len(result.segments)} ({result.split_count} bisection(s))")
    print()
    for s in result.segments:
        size_mb = Path(s.path).stat().st_size / (1024 * 1024) if s.path else 0.0
        label = "original" if s.borrowed else Path(s.path).name
        print(f"  {s.id:>10}  {sec_to_mmss(s.start_time)} - {sec_to_mmss(s.end_time)}  {size_mb:6.1f} MB  {label}")
    print()
