"""Collapse validated segments into a dense, time-ordered chunk-<n> sequence."""

import logging
import os
from pathlib import Path

from .encoder import SEGMENT_SUFFIX, segment_file_name
from .errors import ChunkingError
from .planner import Segment, chunk_id

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".reindex-"
TEMP_SUFFIX = ".tmp" + SEGMENT_SUFFIX


def reindex_segments(segments: list[Segment], output_dir: str) -> list[Segment]:
    """
    Sort by start time and rename files to chunk-0.mp4 .. chunk-<n-1>.mp4.
    Files go through ordinal-keyed temporary names first: a split child such
    as chunk-1b would otherwise overwrite an untouched chunk-2 when renamed.
    Borrowed segments keep their path.
    """
    out_dir = Path(output_dir)
    ordered = sorted(segments, key=lambda s: s.start_time)

    for i, segment in enumerate(ordered):
        if segment.borrowed:
            continue
        temp_path = out_dir / f"{TEMP_PREFIX}{i}{TEMP_SUFFIX}"
        os.replace(segment.path, temp_path)
        segment.path = str(temp_path)

    for i, segment in enumerate(ordered):
        segment.index = i
        segment.id = chunk_id(i)
        if segment.borrowed:
            continue
        final_path = out_dir / segment_file_name(segment.id)
        os.replace(segment.path, final_path)
        segment.path = str(final_path)

    logger.debug("Re-indexed %d segments in %s", len(ordered), out_dir)
    return ordered


def check_tiling(segments: list[Segment], total_duration: float) -> None:
    """Raise ChunkingError unless segments tile [0, total_duration) exactly."""
    if not segments:
        raise ChunkingError("No segments produced")
    if segments[0].start_time != 0:
        raise ChunkingError(f"First segment starts at {segments[0].start_time}, not 0")
    if segments[-1].end_time != total_duration:
        raise ChunkingError(
            f"Last segment ends at {segments[-1].end_time}, not {total_duration}"
        )
    for i, segment in enumerate(segments):
        if segment.index != i:
            raise ChunkingError(f"Segment at position {i} has index {segment.index}")
        if segment.duration <= 0:
            raise ChunkingError(f"Segment {segment.id} has non-positive duration")
        if i and segments[i - 1].end_time != segment.start_time:
            raise ChunkingError(
                f"Gap or overlap between {segments[i - 1].id} and {segment.id}"
            )
