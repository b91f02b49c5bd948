"""Relay exceptions. Each carries the HTTP status it maps to."""
from typing import Optional


class RelayError(Exception):
    """Base exception for all relay errors."""
    status_code = 500


class MissingParameter(RelayError):
    """Raised when a required query parameter is absent."""
    status_code = 400


class SourceFetchError(RelayError):
    """Raised when the storage provider cannot be reached or rejects the request."""
    status_code = 502


class ConfirmationTokenNotFound(SourceFetchError):
    """Raised when a Drive confirmation page carries no confirm token."""


class UploadTimeout(RelayError):
    """Raised when the source or destination does not answer in time."""
    status_code = 504


class SourceTimeout(UploadTimeout):
    """Raised when the source stops answering within the source timeout."""


class ConnectionReset(RelayError):
    """Raised when a connection drops mid-transfer."""
    status_code = 503


class UploadError(RelayError):
    """Raised when the destination answers with a non-success status."""
    status_code = 500

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False,
                 retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.retryable = retryable
        self.retry_after = retry_after


class TaskNotFound(RelayError):
    """Raised when a task id was never issued or has been evicted."""
    status_code = 404
