"""Error kinds raised inside the pipeline.

None of these ever reach the ingesting client: the track endpoint turns
rejections into skipped counts, and worker failures are retried then recorded
on the job.
"""


class TracklineError(Exception):
    """Base class for pipeline errors."""


class EventRejected(TracklineError):
    """A raw record failed validation and is dropped without retry."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TenantRejected(EventRejected):
    """The tracking id is unknown or inactive, or the tenant excludes the client."""


class QueueUnavailable(TracklineError):
    """The durable queue could not accept a job."""


class ProcessingError(TracklineError):
    """Persisting or aggregating an event failed inside a worker."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause
