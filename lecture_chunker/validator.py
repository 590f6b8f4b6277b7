"""
Size validation of encoded segments with recursive bisection.

Time-proportional planning assumes the mean bitrate holds everywhere; a window
that lands on a denser stretch of the stream overflows the budget anyway. Such
a segment is deleted and re-encoded as two half-duration segments, each
validated again, until every file fits or the split limits are reached.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from .encoder import segment_file_name
from .errors import NonConvergentSplitError
from .planner import Segment

logger = logging.getLogger(__name__)

# encode(source_path, output_path, start_sec, duration_sec)
EncodeFn = Callable[[str, str, float, float], None]

BRANCH_TAGS = ("a", "b")


class SegmentValidator:
    """Encodes segments into output_dir and bisects any file over the byte budget."""

    def __init__(
        self,
        source_path: str,
        output_dir: str,
        max_segment_bytes: int,
        encode: EncodeFn,
        max_split_depth: int = 8,
        min_segment_seconds: float = 1.0,
        on_created: Optional[Callable[[str], None]] = None,
        on_removed: Optional[Callable[[str], None]] = None,
        check_cancelled: Optional[Callable[[], None]] = None,
    ) -> None:
        self.source_path = source_path
        self.output_dir = Path(output_dir)
        self.max_segment_bytes = max_segment_bytes
        self.encode = encode
        self.max_split_depth = max_split_depth
        self.min_segment_seconds = min_segment_seconds
        self._on_created = on_created
        self._on_removed = on_removed
        self._check_cancelled = check_cancelled
        self.split_count = 0

    def materialize(self, segment: Segment) -> Segment:
        """Encode the segment's range to <output_dir>/<id>.mp4 and record the path."""
        if self._check_cancelled is not None:
            self._check_cancelled()
        out_path = str(self.output_dir / segment_file_name(segment.id))
        if self._on_created is not None:
            # Registered before encoding so a half-written file is still cleaned up.
            self._on_created(out_path)
        self.encode(self.source_path, out_path, segment.start_time, segment.duration)
        segment.path = out_path
        return segment

    def validate(self, segments: list[Segment]) -> list[Segment]:
        """Return the flat list of accepted segments, unordered and not yet re-indexed."""
        accepted: list[Segment] = []
        for segment in segments:
            accepted.extend(self._validate_one(segment, depth=0))
        return accepted

    def _validate_one(self, segment: Segment, depth: int) -> list[Segment]:
        if segment.borrowed:
            return [segment]
        size = os.stat(segment.path).st_size
        if size <= self.max_segment_bytes:
            return [segment]

        half = segment.duration / 2
        if depth >= self.max_split_depth or half < self.min_segment_seconds:
            raise NonConvergentSplitError(
                segment.id,
                segment.start_time,
                segment.end_time,
                size,
                self.max_segment_bytes,
                depth,
            )

        mid = segment.start_time + half
        logger.info(
            "Segment %s [%.2fs - %.2fs] is %.1f MB (budget %.1f MB); splitting at %.2fs",
            segment.id,
            segment.start_time,
            segment.end_time,
            size / (1024 * 1024),
            self.max_segment_bytes / (1024 * 1024),
            mid,
        )
        self._discard(segment)
        self.split_count += 1

        bounds = ((segment.start_time, mid), (mid, segment.end_time))
        children = [
            Segment(id=segment.id + tag, start_time=start, end_time=end)
            for tag, (start, end) in zip(BRANCH_TAGS, bounds)
        ]
        for child in children:
            self.materialize(child)

        accepted: list[Segment] = []
        for child in children:
            accepted.extend(self._validate_one(child, depth + 1))
        return accepted

    def _discard(self, segment: Segment) -> None:
        Path(segment.path).unlink()
        if self._on_removed is not None:
            self._on_removed(segment.path)
        segment.path = None
