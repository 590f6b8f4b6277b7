"""Upload finished segments to the Gemini Files API."""

import logging
import time
from pathlib import Path

from .pipeline import ChunkResult

logger = logging.getLogger(__name__)

ACTIVE_TIMEOUT_SEC = 300  # per segment
POLL_INTERVAL_SEC = 5


def _state_name(resource) -> str:
    state = getattr(resource, "state", None)
    return str(getattr(state, "value", state) or "").rsplit(".", 1)[-1]


def _client(api_key: str):
    from google import genai

    return genai.Client(api_key=api_key or None)  # None => use env GEMINI_API_KEY


def upload_segment(path: str, api_key: str = "", client=None) -> dict:
    """
    Upload one segment file and return its Gemini file name and URI once the
    service reports it ACTIVE. A FAILED state raises RuntimeError; a segment
    still processing after ACTIVE_TIMEOUT_SEC raises TimeoutError.
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(f"Segment file not found: {path}")
    client = client or _client(api_key)

    logger.info("Uploading %s (%.1f MB)", file_path.name, file_path.stat().st_size / (1024 * 1024))
    resource = client.files.upload(file=str(file_path))
    file_name = getattr(resource, "name", None)
    if not file_name:
        raise RuntimeError(f"Upload of {file_path.name} did not return a file name")

    deadline = time.monotonic() + ACTIVE_TIMEOUT_SEC
    state = _state_name(resource)
    while state != "ACTIVE":
        if state == "FAILED":
            detail = getattr(resource, "error", None) or "no detail"
            raise RuntimeError(f"Gemini processing of {file_path.name} failed: {detail}")
        if time.monotonic() >= deadline:
            raise TimeoutError(f"{file_name} still {state or 'unknown'} after {ACTIVE_TIMEOUT_SEC}s")
        time.sleep(POLL_INTERVAL_SEC)
        resource = client.files.get(name=file_name)
        state = _state_name(resource)
    logger.debug("%s is ACTIVE as %s", file_path.name, file_name)
    return {"fileName": file_name, "uri": getattr(resource, "uri", None)}


def upload_segments(result: ChunkResult, api_key: str = "") -> list[dict]:
    """Upload every segment of a run in time order; one client for the whole run."""
    client = _client(api_key)
    uploads: list[dict] = []
    for segment in result.segments:
        entry = segment.to_dict()
        entry.update(upload_segment(segment.path, client=client))
        uploads.append(entry)
    return uploads
