"""Error kinds raised by the chunking engine."""


class ChunkingError(RuntimeError):
    """Base class for every failure of a chunking run."""


class ProbeError(ChunkingError):
    """Source metadata could not be read or parsed."""


class PlanError(ChunkingError, ValueError):
    """Planner inputs describe a configuration that cannot be partitioned."""


class EncodeError(ChunkingError):
    """The external encoder failed to materialize a time range."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class NonConvergentSplitError(ChunkingError):
    """Bisection hit its depth or duration floor while still over budget."""

    def __init__(
        self,
        segment_id: str,
        start_sec: float,
        end_sec: float,
        size_bytes: int,
        max_bytes: int,
        depth: int,
    ) -> None:
        super().__init__(
            f"Segment {segment_id} [{start_sec:.3f}s, {end_sec:.3f}s) is still "
            f"{size_bytes} bytes (budget {max_bytes}) after {depth} bisections"
        )
        self.segment_id = segment_id
        self.start_sec = start_sec
        self.end_sec = end_sec
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        self.depth = depth


class ChunkingCancelled(ChunkingError):
    """The caller cancelled the run before it finished."""
