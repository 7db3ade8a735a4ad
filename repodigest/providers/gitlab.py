"""
GitLab provider.

Implements the provider contract on top of the GitLab REST API (v4):
commit lookup for resolution, the paginated repository tree API for
listing and the raw file endpoint for blobs.
"""

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
    TreeEntry,
)
from repodigest.providers.http import HostedProvider, parse_reset_epoch, parse_retry_after

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class GitLabProvider(HostedProvider):
    """
    Provider backed by the GitLab REST API.

    The repository location is the full project path
    (``group/subgroup/project``); the tree root token is a commit SHA.
    """

    name = "gitlab"
    supports_recursive_listing = True

    def __init__(
        self,
        repository: str,
        token: Optional[str] = None,
        base_url: str = "https://gitlab.com",
        timeout: float = 30.0,
        user_agent: str = "repodigest/1.0",
        client: Optional[httpx.AsyncClient] = None,
        binary_sample_size: int = 8192,
    ):
        super().__init__(
            base_url=f"{base_url.rstrip('/')}/api/v4",
            token=token,
            timeout=timeout,
            user_agent=user_agent,
            headers={"Accept": "application/json"},
            client=client,
            binary_sample_size=binary_sample_size,
        )
        self.repository = repository.strip("/")
        self.project_id = quote(self.repository, safe="")

    def auth_headers(self, token: Optional[str]) -> Dict[str, str]:
        if token:
            return {"PRIVATE-TOKEN": token}
        return {}

    @property
    def project_url(self) -> str:
        return f"/projects/{self.project_id}"

    def rate_limit_hint(self, response: httpx.Response) -> Tuple[bool, Optional[float]]:
        status = response.status_code
        if status == 429 or (
            status == 403 and response.headers.get("RateLimit-Remaining") == "0"
        ):
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            if retry_after is None:
                retry_after = parse_reset_epoch(response.headers.get("RateLimit-Reset"))
            return True, retry_after
        return False, None

    async def resolve(self, reference: RepositoryReference) -> str:
        """Resolve a branch, tag or commit-ish to a commit SHA."""
        revision = reference.revision
        if revision is None:
            project = await self.get_json(
                self.project_url,
                not_found=ReferenceNotFound(self.repository, backend=self.name),
            )
            revision = project.get("default_branch")
            if not revision:
                # Empty projects have no default branch
                raise ReferenceNotFound(
                    f"{self.repository} (no default branch)", backend=self.name
                )

        commit = await self.get_json(
            f"{self.project_url}/repository/commits/{quote(revision, safe='')}",
            not_found=ReferenceNotFound(revision, backend=self.name),
        )
        sha = commit.get("id") if isinstance(commit, dict) else None
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
        params = {"ref": root, "per_page": PAGE_SIZE, "page": 1}
        if path:
            params["path"] = path
        if recursive:
            params["recursive"] = "true"

        entries: List[TreeEntry] = []
        async for response in self.iter_numbered_pages(
            f"{self.project_url}/repository/tree",
            params,
            not_found=NotFound(path or "/", backend=self.name),
        ):
            for item in response.json():
                item_type = item.get("type")
                if item_type == "blob":
                    # The tree API carries no sizes
                    entries.append(TreeEntry(item["path"], EntryKind.FILE))
                elif item_type == "tree":
                    entries.append(TreeEntry(item["path"], EntryKind.DIRECTORY))

        logger.debug(f"Listed {len(entries)} entries for {self.repository}@{root}")
        return entries

    async def fetch_blob(self, root: str, path: str) -> BlobContent:
        path = path.strip("/")
        response = await self.request(
            "GET",
            f"{self.project_url}/repository/files/{quote(path, safe='')}/raw",
            not_found=NotFound(path, backend=self.name),
            params={"ref": root},
        )
        return self._make_blob(response.content)

    async def search_repositories(
        self, query: str, limit: Optional[int] = None
    ) -> List[RepositoryMatch]:
        """Search projects visible to the caller, most starred first."""
        params = {
            "search": query,
            "order_by": "star_count",
            "sort": "desc",
            "per_page": min(limit, PAGE_SIZE) if limit else PAGE_SIZE,
        }
        data = await self.get_json("/projects", params=params)
        if not isinstance(data, list):
            data = []

        matches = [
            RepositoryMatch(
                provider=self.name,
                full_name=item["path_with_namespace"],
                stars=item.get("star_count") or 0,
                description=item.get("description"),
            )
            for item in data
            if item.get("path_with_namespace")
        ]
        logger.debug(f"GitLab search for {query!r} returned {len(matches)} projects")
        return matches[:limit] if limit else matches
