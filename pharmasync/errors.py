"""
Exception hierarchy for pharmasync.

Transient upstream and cache problems are caught at their boundary and
logged; only SyncError (a fatal run error) is expected to reach the
scheduler.
"""


class PharmaSyncError(Exception):
    """Base class for all pharmasync errors."""


class UpstreamError(PharmaSyncError):
    """Business API call failed (network, HTTP status or malformed payload)."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class EnvelopeDecodeError(UpstreamError):
    """No known decoder recognised the response envelope."""


class EmbeddingError(PharmaSyncError):
    """Embedding provider failed or returned an unusable vector."""


class CatalogStoreError(PharmaSyncError):
    """Durable store read/write failed."""


class SyncError(PharmaSyncError):
    """A sync run could not complete."""

    def __init__(self, message: str, sync_type: str = None):
        super().__init__(message)
        self.sync_type = sync_type
