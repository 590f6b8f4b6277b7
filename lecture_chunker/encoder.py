"""Materialize one time range of the source as a standalone MP4."""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Optional

from .errors import ChunkingCancelled, EncodeError

logger = logging.getLogger(__name__)

SEGMENT_SUFFIX = ".mp4"
STDERR_TAIL_CHARS = 2000
CANCEL_POLL_SEC = 0.5


def segment_file_name(segment_id: str) -> str:
    return f"{segment_id}{SEGMENT_SUFFIX}"


def _run_cancellable(cmd: list[str], output_path: str, cancel_event: threading.Event) -> None:
    """Run ffmpeg, killing it and removing its partial output once cancel_event is set."""
    proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    while True:
        try:
            _, stderr = proc.communicate(timeout=CANCEL_POLL_SEC)
            break
        except subprocess.TimeoutExpired:
            if cancel_event.is_set():
                proc.kill()
                proc.communicate()
                Path(output_path).unlink(missing_ok=True)
                raise ChunkingCancelled(f"Encoding {Path(output_path).name} was cancelled") from None
    if proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, cmd, stderr=stderr)


def encode_segment(
    source_video_path: str,
    output_path: str,
    start_sec: float,
    duration_sec: float,
    ffmpeg_bin: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """
    Re-encode [start, start + duration) to output_path (fast-start MP4, clean cuts).
    With cancel_event, the ffmpeg process is polled and killed as soon as the event is set.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    cmd = [
        ffmpeg_bin or "ffmpeg",
        "-y",
        "-ss",
        f"{start_sec:.3f}",
        "-i",
        source_video_path,
        "-t",
        f"{duration_sec:.3f}",
        "-c:v",
        "libx264",
        "-c:a",
        "aac",
        "-movflags",
        "+faststart",
        "-avoid_negative_ts",
        "1",
        output_path,
    ]
    logger.debug("Encoding %.3fs from %.3fs -> %s", duration_sec, start_sec, Path(output_path).name)
    try:
        if cancel_event is None:
            subprocess.run(cmd, capture_output=True, text=True, check=True)
        else:
            _run_cancellable(cmd, output_path, cancel_event)
    except FileNotFoundError as exc:
        raise EncodeError(f"ffmpeg not available: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "")[-STDERR_TAIL_CHARS:]
        raise EncodeError(
            f"ffmpeg failed (exit {exc.returncode}) encoding {Path(output_path).name}",
            stderr=stderr,
        ) from exc
