"""
Provider contract.

Defines the interface every repository backend implements: resolve a
revision to a stable root, list a tree, fetch a blob.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from repodigest.core.models import BlobContent, RepositoryReference, TreeEntry
from repodigest.ingestion.filters import is_binary

logger = logging.getLogger(__name__)


class GitProvider(ABC):
    """
    Abstract base class for repository backends.

    Implementations hold only transport and auth configuration, so a
    single instance can be shared by concurrent fetch workers.
    """

    name: str = "provider"

    # True when list_tree(recursive=True) is served by one native call
    supports_recursive_listing: bool = False

    def __init__(self, binary_sample_size: int = 8192):
        self.binary_sample_size = binary_sample_size

    @abstractmethod
    async def resolve(self, reference: RepositoryReference) -> str:
        """
        Resolve a reference to a tree root token.

        Raises:
            ReferenceNotFound: If the revision does not exist.
            AuthRequired: If credentials are needed.
            BackendUnavailable: On transport failure.
        """
        pass

    @abstractmethod
    async def list_tree(
        self, root: str, path: str = "", recursive: bool = False
    ) -> List[TreeEntry]:
        """
        List the children of ``path`` under ``root``.

        With ``recursive`` set the whole subtree is returned; callers
        only ask for it when ``supports_recursive_listing`` is true.
        """
        pass

    @abstractmethod
    async def fetch_blob(self, root: str, path: str) -> BlobContent:
        """
        Fetch the content of a file.

        Raises:
            NotFound: If the path is not a file at this root.
            RateLimited: When throttled.
            BackendUnavailable: On transport failure.
        """
        pass

    async def aclose(self) -> None:
        """Release transport resources."""

    async def __aenter__(self) -> "GitProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _make_blob(self, data: bytes) -> BlobContent:
        """Wrap raw bytes with their text/binary classification."""
        return BlobContent(
            data=data,
            is_text=not is_binary(data, self.binary_sample_size),
            size=len(data),
        )
