"""Error taxonomy for extraction and storage."""


class LedgerScanError(Exception):
    """Base class for errors surfaced by the extraction pipeline."""

    pass


class ApiConfigurationError(LedgerScanError):
    """Raised when the vision API endpoint or credential is not configured."""

    pass


class UpstreamError(LedgerScanError):
    """Raised when the vision API call fails or returns a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(LedgerScanError):
    """Raised when the model returns no textual content."""

    pass


class MalformedResponseError(LedgerScanError):
    """Raised when model content cannot be decoded into the expected JSON shape."""

    pass


class PersistenceError(LedgerScanError):
    """Raised when a storage write fails.

    For batch writes, ``errors`` holds every underlying failure.
    """

    def __init__(self, message: str, errors: list[Exception] | None = None):
        super().__init__(message)
        self.errors = errors or []
