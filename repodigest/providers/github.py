"""
GitHub provider.

Implements the provider contract on top of the GitHub REST API:
commit lookup for resolution, the git trees API for recursive listing
and the contents API (raw media type) for blobs.
"""

import asyncio
import base64
import binascii
import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from repodigest.core.exceptions import BackendUnavailable, NotFound, ReferenceNotFound
from repodigest.core.models import (
    BlobContent,
    EntryKind,
    RepositoryMatch,
    RepositoryReference,
    RevisionKind,
    TreeEntry,
)
from repodigest.providers.http import HostedProvider, parse_reset_epoch, parse_retry_after

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
RAW_MEDIA_TYPE = "application/vnd.github.raw+json"
SEARCH_PAGE_LIMIT = 100


class GitHubProvider(HostedProvider):
    """
    Provider backed by the GitHub REST API.

    The repository location is ``owner/name``; the tree root token is a
    commit SHA.
    """

    name = "github"
    supports_recursive_listing = True

    def __init__(
        self,
        repository: str,
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        user_agent: str = "repodigest/1.0",
        listing_concurrency: int = 4,
        client: Optional[httpx.AsyncClient] = None,
        binary_sample_size: int = 8192,
    ):
        super().__init__(
            base_url=api_url,
            token=token,
            timeout=timeout,
            user_agent=user_agent,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
            client=client,
            binary_sample_size=binary_sample_size,
        )
        self.repository = repository.strip("/")
        self.listing_concurrency = max(1, listing_concurrency)

    def auth_headers(self, token: Optional[str]) -> Dict[str, str]:
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    @property
    def repo_url(self) -> str:
        return f"/repos/{self.repository}"

    def rate_limit_hint(self, response: httpx.Response) -> Tuple[bool, Optional[float]]:
        if response.status_code not in (403, 429):
            return False, None

        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        if response.headers.get("x-ratelimit-remaining") == "0":
            reset = parse_reset_epoch(response.headers.get("x-ratelimit-reset"))
            return True, retry_after if retry_after is not None else reset

        if retry_after is not None or response.status_code == 429:
            return True, retry_after

        # Secondary rate limits come back as a bare 403 with an explanatory message
        if "rate limit" in response.text.lower():
            return True, None

        return False, None

    async def resolve(self, reference: RepositoryReference) -> str:
        """Resolve a branch, tag or commit-ish to a commit SHA."""
        revision = reference.revision
        if revision is None:
            repo = await self.get_json(
                self.repo_url,
                not_found=ReferenceNotFound(self.repository, backend=self.name),
            )
            revision = repo.get("default_branch")
            if not revision:
                raise ReferenceNotFound(
                    f"{self.repository} (no default branch)", backend=self.name
                )
            ref = f"heads/{revision}"
        elif reference.revision_kind == RevisionKind.BRANCH:
            ref = f"heads/{revision}"
        elif reference.revision_kind == RevisionKind.TAG:
            ref = f"tags/{revision}"
        else:
            ref = revision

        commit = await self.get_json(
            f"{self.repo_url}/commits/{quote(ref, safe='/')}",
            not_found=ReferenceNotFound(revision, backend=self.name),
        )
        sha = commit.get("sha") if isinstance(commit, dict) else None
        if not sha:
            raise BackendUnavailable(
                f"Commit lookup for {revision} returned no SHA", backend=self.name
            )

        logger.info(f"Resolved {self.repository}@{revision} to {sha}")
        return sha

    async def list_tree(
        self, root: str, path: str = "", recursive: bool = False
    ) -> List[TreeEntry]:
        path = path.strip("/")
        if not recursive:
            return await self._list_contents(root, path)

        if path:
            return await self._walk_contents(root, path)

        entries: List[TreeEntry] = []
        truncated = False
        async for response in self.iter_link_pages(
            f"{self.repo_url}/git/trees/{root}",
            not_found=NotFound(path or "/", backend=self.name),
            params={"recursive": "1"},
        ):
            data = response.json()
            truncated = truncated or bool(data.get("truncated"))
            for item in data.get("tree", []):
                entry = self._tree_entry(item)
                if entry is not None:
                    entries.append(entry)

        if truncated:
            logger.warning(
                f"Recursive tree for {self.repository} was truncated, "
                f"walking directories individually"
            )
            return await self._walk_contents(root, path)

        logger.debug(f"Listed {len(entries)} entries for {self.repository}@{root}")
        return entries

    def _tree_entry(self, item: dict) -> Optional[TreeEntry]:
        item_type = item.get("type")
        if item_type == "blob":
            return TreeEntry(item["path"], EntryKind.FILE, item.get("size"))
        if item_type == "tree":
            return TreeEntry(item["path"], EntryKind.DIRECTORY)
        # Submodule commits have no content in this repository
        return None

    async def _list_contents(self, root: str, path: str) -> List[TreeEntry]:
        url = f"{self.repo_url}/contents/{quote(path)}" if path else f"{self.repo_url}/contents"
        data = await self.get_json(
            url,
            not_found=NotFound(path or "/", backend=self.name),
            params={"ref": root},
        )
        if not isinstance(data, list):
            raise NotFound(path, backend=self.name, details={"reason": "not a directory"})

        entries = []
        for item in data:
            item_type = item.get("type")
            if item_type in ("file", "symlink"):
                entries.append(TreeEntry(item["path"], EntryKind.FILE, item.get("size")))
            elif item_type == "dir":
                entries.append(TreeEntry(item["path"], EntryKind.DIRECTORY))
        return entries

    async def _walk_contents(self, root: str, path: str) -> List[TreeEntry]:
        """Breadth-first walk over the contents API with bounded concurrency."""
        semaphore = asyncio.Semaphore(self.listing_concurrency)

        async def list_one(directory: str) -> List[TreeEntry]:
            async with semaphore:
                return await self._list_contents(root, directory)

        entries: List[TreeEntry] = []
        pending = [path]
        while pending:
            results = await asyncio.gather(*(list_one(d) for d in pending))
            pending = []
            for children in results:
                for child in children:
                    entries.append(child)
                    if child.kind == EntryKind.DIRECTORY:
                        pending.append(child.path)
        return entries

    async def fetch_blob(self, root: str, path: str) -> BlobContent:
        path = path.strip("/")
        response = await self.request(
            "GET",
            f"{self.repo_url}/contents/{quote(path)}",
            not_found=NotFound(path, backend=self.name),
            params={"ref": root},
            headers={"Accept": RAW_MEDIA_TYPE},
        )

        content_type = response.headers.get("Content-Type", "")
        if content_type.startswith("application/json"):
            return self._make_blob(self._decode_envelope(path, response))

        return self._make_blob(response.content)

    def _decode_envelope(self, path: str, response: httpx.Response) -> bytes:
        """Decode the JSON-wrapped form of the contents API."""
        try:
            data = response.json()
        except ValueError as e:
            raise BackendUnavailable(
                f"Malformed contents response for {path}", backend=self.name
            ) from e

        if not isinstance(data, dict) or data.get("type") != "file":
            raise NotFound(path, backend=self.name, details={"reason": "not a file"})

        if data.get("encoding") != "base64":
            raise BackendUnavailable(
                f"Unsupported content encoding for {path}: {data.get('encoding')}",
                backend=self.name,
            )

        try:
            return base64.b64decode(data.get("content", "").replace("\n", ""))
        except (binascii.Error, ValueError) as e:
            raise BackendUnavailable(
                f"Invalid base64 content for {path}", backend=self.name
            ) from e

    async def search_repositories(
        self, query: str, limit: Optional[int] = None
    ) -> List[RepositoryMatch]:
        """Search public repositories with the GitHub search API."""
        params = {"q": query}
        if limit:
            params["per_page"] = min(limit, SEARCH_PAGE_LIMIT)

        data = await self.get_json("/search/repositories", params=params)
        items = data.get("items", []) if isinstance(data, dict) else []

        matches = [
            RepositoryMatch(
                provider=self.name,
                full_name=item["full_name"],
                stars=item.get("stargazers_count") or 0,
                description=item.get("description"),
            )
            for item in items
            if item.get("full_name")
        ]
        logger.debug(f"GitHub search for {query!r} returned {len(matches)} repositories")
        return matches[:limit] if limit else matches
