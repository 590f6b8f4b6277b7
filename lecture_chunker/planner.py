"""Bitrate-based partition of a source video into candidate time ranges."""

import math
from dataclasses import dataclass
from typing import Optional

from .errors import PlanError

CHUNK_ID_PREFIX = "chunk-"


def chunk_id(index: int) -> str:
    return f"{CHUNK_ID_PREFIX}{index}"


@dataclass
class Segment:
    """One contiguous time range of the source video and the file holding it."""

    id: str
    start_time: float  # seconds in source video
    end_time: float
    index: int = -1  # assigned by the re-indexer
    path: Optional[str] = None  # unset until encoded
    borrowed: bool = False  # path is the untouched source file, never deleted

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        return {"id": self.id, "startTime": self.start_time, "endTime": self.end_time}


def target_chunk_seconds(bitrate_bps: float, max_segment_bytes: int) -> int:
    """Whole seconds of mean-bitrate video that fit in one segment budget."""
    if bitrate_bps <= 0:
        raise PlanError(f"Bitrate must be positive, got {bitrate_bps}")
    bytes_per_second = bitrate_bps / 8
    target = math.floor(max_segment_bytes / bytes_per_second)
    if target < 1:
        raise PlanError(
            f"Budget of {max_segment_bytes} bytes holds less than one second at "
            f"{bitrate_bps:.0f} bits/s"
        )
    return target


def plan_segments(
    source_size_bytes: int,
    duration_sec: float,
    bitrate_bps: float,
    max_segment_bytes: int,
    source_path: Optional[str] = None,
) -> list[Segment]:
    """
    Partition [0, duration_sec) into contiguous ranges expected to fit the budget.
    A source already within budget comes back as one borrowed segment.
    """
    if max_segment_bytes <= 0:
        raise PlanError("max_segment_bytes must be positive")
    if duration_sec <= 0:
        raise PlanError(f"Duration must be positive, got {duration_sec}")

    if source_size_bytes <= max_segment_bytes:
        return [
            Segment(
                id=chunk_id(0),
                start_time=0.0,
                end_time=duration_sec,
                index=0,
                path=source_path,
                borrowed=True,
            )
        ]

    target = target_chunk_seconds(bitrate_bps, max_segment_bytes)
    num_chunks = math.ceil(duration_sec / target)
    segments: list[Segment] = []
    for i in range(num_chunks):
        start = float(i * target)
        end = min(float((i + 1) * target), duration_sec)
        if end <= start:
            break
        segments.append(Segment(id=chunk_id(i), start_time=start, end_time=end, index=i))
    return segments
