"""Flush timing for one fixture."""


class BatchCommitScheduler:
    """Decides when the loader flushes the store.

    ``batch_size`` 0 means a single flush once the fixture's records are
    exhausted. Otherwise a flush follows every persisted record whose
    1-based position is a multiple of ``batch_size``, and a final flush
    picks up whatever was persisted after the last boundary.
    """

    def __init__(self, batch_size: int, clear_on_flush: bool) -> None:
        if batch_size < 0:
            raise ValueError(f"batch_size must be >= 0, got {batch_size}")
        self.batch_size = batch_size
        self.clear_on_flush = clear_on_flush
        self.iteration_count = 0
        self.pending = 0
        self.flush_count = 0

    def record_processed(self, *, persisted: bool) -> bool:
        """Count one record; True when the store must be flushed now."""
        self.iteration_count += 1
        if not persisted:
            return False
        self.pending += 1
        return self.batch_size > 0 and self.iteration_count % self.batch_size == 0

    def mark_flushed(self) -> None:
        self.pending = 0
        self.flush_count += 1

    def needs_final_flush(self) -> bool:
        return self.batch_size == 0 or self.pending > 0
