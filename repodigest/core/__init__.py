"""
Core module containing configuration, shared data types and exceptions.
"""

from repodigest.core.config import Config, DigestConfig, IngestionConfig, ProviderConfig
from repodigest.core.exceptions import (
    RepoDigestError,
    ReferenceNotFound,
    AuthRequired,
    RateLimited,
    BackendUnavailable,
    NotFound,
    Cancelled,
    InvalidRepositoryError,
    InvalidArgumentError,
    UnknownToolError,
)
from repodigest.core.models import (
    BackendKind,
    RevisionKind,
    RepositoryReference,
    EntryKind,
    TreeEntry,
    BlobContent,
    FilterConfig,
    FileStatus,
    FileRecord,
    IngestionResult,
    RepositoryMatch,
)

__all__ = [
    "Config",
    "DigestConfig",
    "IngestionConfig",
    "ProviderConfig",
    "RepoDigestError",
    "ReferenceNotFound",
    "AuthRequired",
    "RateLimited",
    "BackendUnavailable",
    "NotFound",
    "Cancelled",
    "InvalidRepositoryError",
    "InvalidArgumentError",
    "UnknownToolError",
    "BackendKind",
    "RevisionKind",
    "RepositoryReference",
    "EntryKind",
    "TreeEntry",
    "BlobContent",
    "FilterConfig",
    "FileStatus",
    "FileRecord",
    "IngestionResult",
    "RepositoryMatch",
]
