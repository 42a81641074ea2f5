"""
Custom exception hierarchy for packstore.

All exceptions inherit from PackStoreError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class PackStoreError(Exception):
    """Base exception for all packstore errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(PackStoreError):
    """Raised when configuration is invalid or missing.

    Examples:
        - settings.toml cannot be parsed
        - server.port outside 0..65535
        - negative request.max_size or cleaner.pack_lifespan
    """

    pass


class StorageError(PackStoreError):
    """Raised when the blob directory cannot be prepared or written.

    Context should include:
        - path: The file or directory involved
        - content_hash: The blob key, when one applies
    """

    pass


class IndexPersistenceError(PackStoreError):
    """Raised when the registry snapshot cannot be read or written.

    Only fatal at startup, where an unreadable snapshot must stop the service.

    Context should include:
        - path: The snapshot path
    """

    pass


class RegistrationError(PackStoreError):
    """Raised when a pack could not be registered.

    The registry is never mutated when this is raised.

    Context should include:
        - content_hash: Hash of the rejected pack
        - origin_id: Uploader-supplied label
        - source_address: Client address
    """

    pass


class UploadValidationError(PackStoreError):
    """Raised by the HTTP layer when an upload is malformed or too large.

    Attributes:
        status_code: HTTP status the transport should answer with.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.status_code = status_code
