"""
Custom exceptions for repodigest.

Provides the error taxonomy shared by every provider backend and the
ingestion engine, so callers can tell "revision does not exist" apart
from "backend throttled us" or "host is down".
"""

from typing import Optional


class RepoDigestError(Exception):
    """Base exception for all repodigest errors."""

    def __init__(self, message: str, backend: str = None, details: dict = None):
        super().__init__(message)
        self.backend = backend
        self.details = details or {}

    def __str__(self):
        base_msg = super().__str__()
        if self.backend:
            return f"[{self.backend}] {base_msg}"
        return base_msg


class ReferenceNotFound(RepoDigestError):
    """Raised when a repository or revision cannot be resolved."""

    def __init__(self, reference: str, backend: str = None, details: dict = None):
        super().__init__(
            f"Reference not found: {reference}",
            backend=backend,
            details={"reference": reference, **(details or {})},
        )


class AuthRequired(RepoDigestError):
    """Raised when the backend demands credentials that were not supplied."""

    def __init__(self, message: str, backend: str = None, details: dict = None):
        super().__init__(message, backend=backend, details=details)


class RateLimited(RepoDigestError):
    """Raised when the backend throttles a request."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        backend: str = None,
        details: dict = None,
    ):
        super().__init__(message, backend=backend, details=details)
        self.retry_after = retry_after


class BackendUnavailable(RepoDigestError):
    """Raised on transport failures, server errors or unreadable repositories."""

    def __init__(self, message: str, backend: str = None, details: dict = None):
        super().__init__(message, backend=backend, details=details)


class NotFound(RepoDigestError):
    """Raised when a path does not resolve to a file at the given root."""

    def __init__(self, path: str, backend: str = None, details: dict = None):
        super().__init__(
            f"Path not found: {path}",
            backend=backend,
            details={"path": path, **(details or {})},
        )


class Cancelled(RepoDigestError):
    """Raised when an ingestion call is cancelled before completion."""

    def __init__(self, message: str = "Ingestion cancelled", details: dict = None):
        super().__init__(message, details=details)


class InvalidRepositoryError(RepoDigestError):
    """Raised when a repository identifier cannot be parsed."""

    def __init__(self, identifier: str, reason: str):
        super().__init__(
            f"Invalid repository identifier: {reason}",
            details={"identifier": identifier, "reason": reason},
        )


class InvalidArgumentError(RepoDigestError):
    """Raised when a tool argument is missing or malformed."""

    def __init__(self, name: str, reason: str):
        super().__init__(
            f"Invalid argument '{name}': {reason}",
            details={"argument": name, "reason": reason},
        )


class UnknownToolError(RepoDigestError):
    """Raised when the host invokes a tool that is not registered."""

    def __init__(self, name: str, available: list = None):
        super().__init__(
            f"Unknown tool: {name}",
            details={"tool": name, "available": available or []},
        )
