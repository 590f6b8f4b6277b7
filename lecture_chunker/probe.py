"""Duration and bitrate probing through ffprobe."""

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ProbeError


@dataclass
class MediaInfo:
    """Container-level metadata for a source video."""

    duration_sec: float
    bitrate_bps: float  # average over the whole file


def _read_format(path: str, ffprobe_bin: Optional[str]) -> dict:
    """Run ffprobe once and return its `format` section."""
    if not Path(path).is_file():
        raise ProbeError(f"Source file not found: {path}")
    try:
        out = subprocess.run(
            [
                ffprobe_bin or "ffprobe",
                "-v",
                "error",
                "-show_entries",
                "format=duration,bit_rate",
                "-of",
                "json",
                path,
            ],
            capture_output=True,
            text=True,
            check=True,
        )
    except FileNotFoundError as exc:
        raise ProbeError(f"ffprobe not available: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit code {exc.returncode}"
        raise ProbeError(f"ffprobe failed for {path}: {detail}") from exc
    try:
        payload = json.loads(out.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise ProbeError(f"Unparseable ffprobe output for {path}") from exc
    return payload.get("format", {}) or {}


def _positive(fmt: dict, key: str, path: str) -> float:
    raw = fmt.get(key)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ProbeError(f"No {key} reported for {path}") from None
    if value <= 0:
        raise ProbeError(f"Non-positive {key} ({value}) reported for {path}")
    return value


def probe_media(path: str, ffprobe_bin: Optional[str] = None) -> MediaInfo:
    """Return duration (seconds) and average bitrate (bits/s) of a media file."""
    fmt = _read_format(path, ffprobe_bin)
    return MediaInfo(
        duration_sec=_positive(fmt, "duration", path),
        bitrate_bps=_positive(fmt, "bit_rate", path),
    )


def probe_duration_seconds(path: str, ffprobe_bin: Optional[str] = None) -> float:
    return _positive(_read_format(path, ffprobe_bin), "duration", path)


def probe_bitrate_bps(path: str, ffprobe_bin: Optional[str] = None) -> float:
    return _positive(_read_format(path, ffprobe_bin), "bit_rate", path)
