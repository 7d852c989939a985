from __future__ import annotations


class HarvestError(Exception):
    """Base class for recoverable failures inside a harvest cycle."""


class TransportError(HarvestError):
    """An external collaborator could not be reached or refused the request."""


class ResponseParseError(TransportError):
    """A collaborator answered, but not in the shape we expected."""


class ReasoningServiceError(TransportError):
    pass


class DocumentCompileError(TransportError):
    pass


class UploadError(TransportError):
    pass


class StorageBackendError(TransportError):
    pass


class CycleCancelled(Exception):
    """Raised out of a pacing delay when the stop signal fires.

    Not a failure: callers end the current batch and keep the counters
    gathered so far.
    """
