# Poller error taxonomy

from typing import List, Optional


class PollerError(Exception):
    pass


class ConfigurationError(PollerError):
    """Invalid selector or polling configuration. Raised at build time, never retried."""


class CheckpointError(PollerError):
    """Checkpoint file unreadable or not writable."""

    def __init__(self, message: str, group: Optional[str] = None, stream: Optional[str] = None):
        super().__init__(message)
        self.group = group
        self.stream = stream


class AuthorizationError(PollerError):
    """Credentials missing, expired or denied. Fatal for the whole poller."""

    def __init__(self, message: str, group: Optional[str] = None, stream: Optional[str] = None):
        super().__init__(message)
        self.group = group
        self.stream = stream


class TransientRetrievalError(PollerError):
    """
    Failure reading one (group, stream) pair during one cycle.

    The pair's checkpoint is left unchanged so the next cycle retries the
    same window.
    """

    def __init__(self, message: str, group: Optional[str] = None, stream: Optional[str] = None):
        super().__init__(message)
        self.group = group
        self.stream = stream

    def __str__(self) -> str:
        message = super().__str__()
        if self.group is None:
            return message
        if self.stream is None:
            return f"{message} (group={self.group})"
        return f"{message} (group={self.group}, stream={self.stream})"


class RetrievalTimeoutError(TransientRetrievalError):
    pass


class SourceNotFoundError(TransientRetrievalError):
    # Group or stream does not exist (yet); treated as an empty window
    pass


class SinkError(PollerError):
    """The record sink rejected part of a batch. The pair's checkpoint is not advanced."""

    def __init__(self, message: str, group: Optional[str] = None, stream: Optional[str] = None):
        super().__init__(message)
        self.group = group
        self.stream = stream


class PartialCycleFailure(PollerError):
    """
    Some pairs failed while others succeeded. The cycle is degraded, not aborted.

    Not raised when every pair failed; the poller logs that case as an error.
    """

    def __init__(self, failures: List[PollerError], succeeded: int):
        self.failures = list(failures)
        self.succeeded = succeeded
        super().__init__(
            f"{len(self.failures)} source(s) failed, {succeeded} succeeded"
        )
