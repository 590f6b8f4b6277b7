#!/usr/bin/env python3
"""
Lecture Video Chunker

Split a lecture video into self-contained MP4 segments that each stay under a
byte budget, ready for upload to a multimodal model:
  - Planning segment lengths from the average bitrate
  - Re-encoding each time range with fast-start settings
  - Bisecting any segment that still comes out over budget
  - Renumbering the survivors chunk-0 .. chunk-<n-1>

Usage:
  lecture-chunk /path/to/lecture.mp4 [--output-dir DIR] [--max-segment-mb MB] [--upload]
"""

import argparse
import json
import logging
import os
import shutil
import sys
from pathlib import Path

from .config import MIB, ChunkerConfig
from .errors import ChunkingError
from .pipeline import chunk_video, print_summary
from .planner import CHUNK_ID_PREFIX
from .sessions import SessionStore

logger = logging.getLogger(__name__)


def _stage_source(video_path: str, session_dir: str) -> str:
    """Place the source inside the session directory, as an upload would land there."""
    name = Path(video_path).name
    if name.startswith((CHUNK_ID_PREFIX, ".")):
        name = f"source_{name}"
    target = Path(session_dir) / name
    try:
        os.link(video_path, target)
    except OSError:
        shutil.copy2(video_path, target)
    return str(target)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Split a lecture video into segments that fit a per-file size budget."
    )
    parser.add_argument(
        "video_path",
        type=str,
        help="Absolute or relative path to the source video.",
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        type=str,
        default=None,
        help="Directory for the segment files (default: a new session directory under LECTURE_CHUNKER_WORK_ROOT).",
    )
    parser.add_argument(
        "--max-segment-mb",
        type=float,
        default=None,
        help="Maximum size of one segment in MiB (default: 18, or LECTURE_CHUNKER_MAX_SEGMENT_MB).",
    )
    parser.add_argument(
        "--max-split-depth",
        type=int,
        default=8,
        help="How many times a segment may be bisected before giving up (default: 8).",
    )
    parser.add_argument(
        "--min-segment-seconds",
        type=float,
        default=1.0,
        help="Shortest segment bisection may produce (default: 1.0).",
    )
    parser.add_argument(
        "--upload",
        action="store_true",
        help="Upload the segments to the Gemini Files API afterwards.",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default="",
        help="Gemini API key (or set GEMINI_API_KEY).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the segment list as JSON instead of a summary.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print segment summary.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every encode.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Reduce noise from third-party loggers
    logging.getLogger("google").setLevel(logging.WARNING)

    video_path = str(Path(args.video_path).resolve())
    if not Path(video_path).is_file():
        raise SystemExit(f"Video file not found: {video_path}")

    overrides = {}
    if args.max_segment_mb is not None:
        overrides["max_segment_bytes"] = int(args.max_segment_mb * MIB)
    try:
        config = ChunkerConfig(
            max_split_depth=args.max_split_depth,
            min_segment_seconds=args.min_segment_seconds,
            gemini_api_key=args.api_key or os.environ.get("GEMINI_API_KEY", ""),
            **overrides,
        )
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    store = None
    record = None
    output_dir = args.output_dir
    if output_dir is None:
        store = SessionStore.from_config(config)
        record = store.create()
        output_dir = record.directory
        video_path = _stage_source(video_path, output_dir)

    try:
        result = chunk_video(video_path, output_dir, config)
    except ChunkingError as exc:
        logger.error("Chunking failed: %s", exc)
        if store is not None:
            store.remove(record.session_id)
        return 1

    payload = result.to_dict()
    if store is not None:
        store.register(record.session_id, Path(video_path).stem, result)
        payload["sessionId"] = record.session_id
        payload["sessionDir"] = record.directory
        logger.info("Session %s: chunk-0 resolves to %s", record.session_id, store.segment_path(record.session_id, "chunk-0"))
    if args.upload:
        if not config.gemini_api_key:
            raise SystemExit("Set GEMINI_API_KEY in environment or pass --api-key")
        from .gemini_upload import upload_segments

        payload["uploads"] = upload_segments(result, config.gemini_api_key)

    if args.json:
        json.dump(payload, sys.stdout, indent=2)
        print()
    elif not args.quiet:
        print_summary(result, video_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
