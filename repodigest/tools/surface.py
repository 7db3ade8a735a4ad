"""
Tool surface for LLM orchestration hosts.

Exposes repository ingestion as named async tools taking a JSON-like
argument mapping and returning plain dictionaries. Protocol framing and
transport belong to the host.
"""

import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Dict, List, Optional

from repodigest.core.config import Config, DigestConfig
from repodigest.core.exceptions import (
    InvalidArgumentError,
    RateLimited,
    RepoDigestError,
    UnknownToolError,
)
from repodigest.core.models import FilterConfig, IngestionResult, RepositoryReference
from repodigest.ingestion.engine import IngestionEngine
from repodigest.ingestion.filters import split_patterns
from repodigest.ingestion.formatter import (
    TextDigestFormatter,
    TreeFormatter,
    fence_content,
    render_tree,
    repository_label,
)
from repodigest.providers import create_provider, create_search_providers
from repodigest.utils.validation import parse_repository_identifier

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., Any]


def error_payload(exc: Exception) -> Dict[str, Any]:
    """
    Render an exception as a structured error for hosts that want data.

    Args:
        exc: Exception raised by a tool call.

    Returns:
        ``{"error": {"type", "message", "details", "retry_after"}}``
    """
    details = exc.details if isinstance(exc, RepoDigestError) else {}
    retry_after = exc.retry_after if isinstance(exc, RateLimited) else None
    return {
        "error": {
            "type": type(exc).__name__,
            "message": str(exc),
            "details": details,
            "retry_after": retry_after,
        }
    }


class ToolSurface:
    """
    Registry of the callable repository tools.

    Each call builds its own reference, filter and provider; the surface
    itself only holds configuration.
    """

    def __init__(
        self,
        config: DigestConfig = None,
        provider_factory: Optional[ProviderFactory] = None,
        search_factory: Optional[ProviderFactory] = None,
    ):
        self.config = config or Config.get()
        self.engine = IngestionEngine(self.config.ingestion)
        self.provider_factory = provider_factory or create_provider
        self.search_factory = search_factory or create_search_providers
        self._tools: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "repository_digest": self.repository_digest,
            "repository_tree_view": self.repository_tree_view,
            "repository_read": self.repository_read,
            "find_repositories": self.find_repositories,
        }

    @property
    def tool_names(self) -> List[str]:
        return sorted(self._tools)

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Invoke a tool by name.

        Raises:
            UnknownToolError: If no tool has that name.
            RepoDigestError: Any error of the taxonomy raised by the tool.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name, self.tool_names)

        logger.debug(f"Tool call: {name}")
        return await tool(dict(arguments or {}))

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def ingest(self, arguments: Dict[str, Any]) -> IngestionResult:
        """Validate digest arguments and run the ingestion, returning the raw result."""
        reference = self._reference(arguments)
        filter_config = self._filter_config(arguments)

        async with self._provider(reference, arguments) as provider:
            return await self.engine.ingest(provider, reference, filter_config)

    async def repository_digest(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Ingest a repository and return its digest, tree and summary."""
        result = await self.ingest(arguments)
        return {
            "digest": TextDigestFormatter().format(result),
            "tree": TreeFormatter().format(result),
            "summary": result.to_dict(),
        }

    async def repository_tree_view(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Return the filtered file tree without fetching any content."""
        reference = self._reference(arguments)
        filter_config = self._filter_config(arguments)

        async with self._provider(reference, arguments) as provider:
            root, paths = await self.engine.list_files(provider, reference, filter_config)

        return {
            "repository": reference.display_name,
            "root": root,
            "file_count": len(paths),
            "tree": render_tree(paths, repository_label(reference)),
        }

    async def repository_read(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Return the content of a single file at a revision."""
        reference = self._reference(arguments)
        path = arguments.get("path") or arguments.get("file_path")
        if not isinstance(path, str) or not path.strip("/ "):
            raise InvalidArgumentError("path", "a file path is required")
        path = path.strip().strip("/")

        async with self._provider(reference, arguments) as provider:
            root, blob = await self.engine.read_file(provider, reference, path)

        return {
            "repository": reference.display_name,
            "root": root,
            "path": path,
            "size": blob.size,
            "binary": not blob.is_text,
            "content": fence_content(path, blob.text) if blob.is_text else None,
        }

    async def find_repositories(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Search the hosted providers for repositories matching a query."""
        query = arguments.get("query")
        if not isinstance(query, str) or not query.strip():
            raise InvalidArgumentError("query", "a search query is required")
        query = query.strip()
        limit = self._int_argument(arguments, "limit", minimum=1)

        providers = self.search_factory(
            self.config,
            github_token=arguments.get("github_token") or None,
            gitlab_token=arguments.get("gitlab_token") or None,
        )
        async with AsyncExitStack() as stack:
            for provider in providers:
                await stack.enter_async_context(provider)
            matches = await self.engine.find_repositories(providers, query, limit)

        if matches:
            lines = [f'Search results for: "{query}"', ""]
            for match in matches:
                lines.append(f"- {match.identifier} ({match.stars} stars)")
                lines.append(f"  {(match.description or '').strip()}")
                lines.append("")
            text = "\n".join(lines)
        else:
            text = f'No repositories found matching query: "{query}"'

        return {
            "query": query,
            "count": len(matches),
            "repositories": [m.to_dict() for m in matches],
            "text": text,
        }

    # ------------------------------------------------------------------
    # Argument handling
    # ------------------------------------------------------------------

    def _reference(self, arguments: Dict[str, Any]) -> RepositoryReference:
        repo = arguments.get("repo")
        if not isinstance(repo, str) or not repo.strip():
            raise InvalidArgumentError("repo", "a repository identifier is required")

        git_ref = arguments.get("git_ref")
        if git_ref is not None and not isinstance(git_ref, str):
            raise InvalidArgumentError("git_ref", "must be a string")

        return parse_repository_identifier(repo, git_ref or None)

    def _filter_config(self, arguments: Dict[str, Any]) -> FilterConfig:
        overrides = {}
        for name in ("include_patterns", "exclude_patterns"):
            value = arguments.get(name)
            if value is not None and not isinstance(value, (str, list, tuple)):
                raise InvalidArgumentError(name, "must be a list or a comma-separated string")
            overrides[name] = split_patterns(value)

        for name in ("max_file_size", "max_total_size"):
            overrides[name] = self._int_argument(arguments, name, minimum=0)

        return self.engine.default_filter(**overrides)

    @staticmethod
    def _int_argument(arguments: Dict[str, Any], name: str, minimum: int) -> Optional[int]:
        """Read an optional integer given as a number or a numeric string."""
        value = arguments.get(name)
        if value is None:
            return None

        reason = f"must be an integer >= {minimum}"
        if isinstance(value, bool):
            raise InvalidArgumentError(name, reason)
        try:
            value = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidArgumentError(name, reason) from e
        if value < minimum:
            raise InvalidArgumentError(name, reason)
        return value

    def _provider(self, reference: RepositoryReference, arguments: Dict[str, Any]):
        return self.provider_factory(
            reference,
            self.config,
            github_token=arguments.get("github_token") or None,
            gitlab_token=arguments.get("gitlab_token") or None,
        )

