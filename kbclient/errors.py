"""
Error types raised by the knowledge base client.
"""

from typing import Optional


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base client errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(KnowledgeBaseError):
    """Network failure or timeout. Nothing was applied, safe to retry by hand."""
    pass


class ValidationError(KnowledgeBaseError):
    """Client-side precondition failure. Never reaches the network."""
    pass


class RemoteError(KnowledgeBaseError):
    """The service answered with a non-success status."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class DeletionError(KnowledgeBaseError):
    """Removing a knowledge base failed; the registry was left unchanged."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


def error_message(exc: Exception, fallback: str) -> str:
    """
    Get the user-facing message for an exception.

    Args:
        exc: The exception raised by a remote call
        fallback: Message to use when the exception carries none

    Returns:
        The exception's message, or the fallback
    """
    if isinstance(exc, KnowledgeBaseError) and exc.message:
        return exc.message
    return fallback
