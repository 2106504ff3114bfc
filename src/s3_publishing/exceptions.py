"""
Exceptions raised by storage and publishing operations
"""


class PublishingError(Exception):
    """Base exception for s3_publishing errors."""

    pass


class ConfigurationError(PublishingError):
    """Raised when a storage, target or profile option is unknown or invalid."""

    pass


class StorageTransportError(PublishingError):
    """Raised when a single provider operation fails (network, auth or provider side)."""

    def __init__(self, key: str, cause: BaseException | str):
        self.key = key
        self.cause = cause
        super().__init__(f"Storage operation failed for {key}: {cause}")


class TransferTimeoutError(StorageTransportError):
    """Raised when a copy or upload does not finish within its timeout."""

    def __init__(self, key: str, timeout: float):
        self.timeout = timeout
        super().__init__(key, f"transfer timed out after {timeout:.1f}s")


class ConflictError(PublishingError):
    """Raised when the same bucket and key would be both source and destination."""

    pass


class NotFoundError(PublishingError):
    """Raised when a storage object doesn't exist."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")
