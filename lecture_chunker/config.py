"""Configuration for splitting lecture videos into upload-sized segments."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

MIB = 1024 * 1024


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else default


@dataclass
class ChunkerConfig:
    """Configuration for one chunking run (and the sessions that hold its output)."""

    # Size budget per segment file
    max_segment_bytes: int = field(
        default_factory=lambda: int(_env_float("LECTURE_CHUNKER_MAX_SEGMENT_MB", 18.0) * MIB)
    )
    # Used when the container reports no bitrate
    default_bitrate_bps: float = 2_000_000.0

    # Bisection limits
    max_split_depth: int = 8
    min_segment_seconds: float = 1.0

    # External tools
    ffmpeg_bin: str = field(default_factory=lambda: os.environ.get("FFMPEG_BIN", "ffmpeg"))
    ffprobe_bin: str = field(default_factory=lambda: os.environ.get("FFPROBE_BIN", "ffprobe"))

    # Sessions
    work_root: str = field(
        default_factory=lambda: os.environ.get(
            "LECTURE_CHUNKER_WORK_ROOT",
            str(Path(tempfile.gettempdir()) / "videotonotion"),
        )
    )
    session_ttl_sec: float = 3600.0  # 1 hour

    # Gemini
    gemini_api_key: str = field(default_factory=lambda: os.environ.get("GEMINI_API_KEY", ""))

    def __post_init__(self) -> None:
        if self.max_segment_bytes <= 0:
            raise ValueError("max_segment_bytes must be positive")
        if self.default_bitrate_bps <= 0:
            raise ValueError("default_bitrate_bps must be positive")
        if self.max_split_depth < 0:
            raise ValueError("max_split_depth must not be negative")
        if self.min_segment_seconds <= 0:
            raise ValueError("min_segment_seconds must be positive")
        self.work_root = str(Path(self.work_root).expanduser().resolve())
