# app/core/errors.py
"""
Error taxonomy for the dispatch pipeline.

Adapters, the artifact stager and the conversation repository raise these;
the pipeline lets them propagate and the HTTP layer turns them into
``{"error": message}`` responses using ``status_code``.
"""

from typing import Optional

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred"


class DispatchError(Exception):
    """Base class for every failure a chat turn can end with."""

    status_code: int = 500

    def __init__(self, message: str = UNKNOWN_ERROR_MESSAGE, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ProviderError(DispatchError):
    """A generation service rejected the request (bad prompt, quota, auth...)."""

    def __init__(self, message: str = UNKNOWN_ERROR_MESSAGE, status: Optional[int] = None, provider: str = ""):
        super().__init__(message, status_code=status or 500)
        self.status = status
        self.provider = provider


class TransportError(DispatchError):
    """Network failure or deadline expiry while talking to a remote service."""


class StagingError(DispatchError):
    """A generated artifact could not be made durable."""


class NotFoundError(DispatchError):
    """Referenced conversation does not exist."""

    status_code = 404


class PersistenceError(DispatchError):
    """Conversation store read or write failed."""


class InvalidImageSizeError(DispatchError, ValueError):
    """Image size string is not of the form '<width>x<height>'."""

    status_code = 400
