"""Per-session work directories, segment lookup by id, and TTL cleanup."""

import logging
import shutil
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config import ChunkerConfig
from .encoder import segment_file_name
from .pipeline import ChunkResult
from .planner import CHUNK_ID_PREFIX, chunk_id
from .reindex import TEMP_PREFIX

logger = logging.getLogger(__name__)

MEDIA_SUFFIXES = (".mp4", ".mkv", ".mov", ".webm", ".m4v", ".avi")


def resolve_segment_path(session_dir: str, segment_id: str) -> Optional[str]:
    """
    Path of the file for segment_id inside session_dir, or None.
    chunk-0 may also be the borrowed original, which keeps its own name; it is
    found by scanning for the one media file that is not chunk-derived.
    """
    directory = Path(session_dir)
    candidate = directory / segment_file_name(segment_id)
    if candidate.is_file():
        return str(candidate)
    if segment_id != chunk_id(0) or not directory.is_dir():
        return None
    originals = [
        p
        for p in sorted(directory.iterdir())
        if p.is_file()
        and p.suffix.lower() in MEDIA_SUFFIXES
        and not p.name.startswith((CHUNK_ID_PREFIX, TEMP_PREFIX))
    ]
    if len(originals) != 1:
        if originals:
            logger.warning("Ambiguous original in %s: %s", directory, [p.name for p in originals])
        return None
    return str(originals[0])


@dataclass
class SessionRecord:
    """Chunking output tracked for one session."""

    session_id: str
    directory: str
    created_at: float
    title: str = ""
    duration: float = 0.0
    chunks: list[dict] = field(default_factory=list)


class SessionStore:
    """Explicit store of sessions keyed by id, each owning one work directory."""

    def __init__(self, root: str, ttl_sec: float = 3600.0) -> None:
        self.root = Path(root)
        self.ttl_sec = ttl_sec
        self._sessions: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: ChunkerConfig) -> "SessionStore":
        return cls(config.work_root, ttl_sec=config.session_ttl_sec)

    def create(self, now: Optional[float] = None) -> SessionRecord:
        session_id = uuid.uuid4().hex
        directory = self.root / session_id
        directory.mkdir(parents=True, exist_ok=True)
        record = SessionRecord(
            session_id=session_id,
            directory=str(directory),
            created_at=time.time() if now is None else now,
        )
        with self._lock:
            self._sessions[session_id] = record
        return record

    def register(self, session_id: str, title: str, result: ChunkResult) -> SessionRecord:
        """Attach a finished chunking run to an existing session."""
        with self._lock:
            record = self._sessions[session_id]
            record.title = title
            record.duration = result.total_duration
            record.chunks = [s.to_dict() for s in result.segments]
        logger.info("Session %s: %d chunks registered", session_id, len(record.chunks))
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            return self._sessions.get(session_id)

    def segment_path(self, session_id: str, segment_id: str) -> Optional[str]:
        record = self.get(session_id)
        if record is None:
            return None
        return resolve_segment_path(record.directory, segment_id)

    def remove(self, session_id: str) -> bool:
        """Delete a session and its directory; unknown ids only touch a uuid-named child of root."""
        with self._lock:
            record = self._sessions.pop(session_id, None)
        if record is not None:
            directory = Path(record.directory)
        else:
            directory = self._orphan_dir(session_id)
            if directory is None:
                logger.warning("Refusing to remove unknown session %r", session_id)
                return False
        if directory.exists():
            shutil.rmtree(directory, ignore_errors=True)
        return record is not None

    def _orphan_dir(self, session_id: str) -> Optional[Path]:
        try:
            if uuid.UUID(hex=session_id).hex != session_id:
                return None
        except ValueError:
            return None
        directory = self.root / session_id
        if directory.resolve().parent != self.root.resolve():
            return None
        return directory

    def sweep_expired(self, now: Optional[float] = None) -> list[str]:
        """Remove every session older than ttl_sec; return the removed ids."""
        now = time.time() if now is None else now
        cutoff = now - self.ttl_sec
        with self._lock:
            expired = [sid for sid, rec in self._sessions.items() if rec.created_at < cutoff]
        for session_id in expired:
            self.remove(session_id)
        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return expired
