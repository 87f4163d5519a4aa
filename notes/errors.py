# notes/errors.py


class TimelineError(Exception):
    """Base class for every error raised by the timeline core."""


class ValidationError(TimelineError, ValueError):
    """Out-of-range key/duration/velocity/bpm or a malformed import record."""


class NotFoundError(TimelineError, LookupError):
    """A note or song id that is not present."""


class StorageError(TimelineError):
    """The song library could not read or write."""


class ScheduleToleranceMiss(TimelineError):
    """A tick gap wider than the playback window; handled inside the scheduler."""

    def __init__(self, gap_beats: float):
        super().__init__(f"tick gap {gap_beats:.3f} beats exceeds tolerance")
        self.gap_beats = gap_beats
