"""Exception types shared across the ingestion pipeline and the query API."""


class BridgeError(Exception):
    """Base class for Orbit Bridge errors."""


class IngestionError(BridgeError):
    """Raised when a webhook update carries no usable message."""


class TranscriptionError(BridgeError):
    """Raised when a voice/audio attachment cannot be fetched or transcribed."""


class PersistenceError(BridgeError):
    """Raised when a store operation fails."""


class NotFoundError(PersistenceError):
    """Raised when an update targets a row that does not exist."""


class ValidationError(BridgeError):
    """Raised when a request is missing required fields or has bad values."""
