"""
Repository providers.

One implementation of the provider contract per backend kind, selected
from the shape of the repository identifier.
"""

from typing import List, Optional

import httpx

from repodigest.core.config import Config, DigestConfig
from repodigest.core.models import BackendKind, RepositoryReference
from repodigest.providers.base import GitProvider
from repodigest.providers.github import GitHubProvider
from repodigest.providers.gitlab import GitLabProvider
from repodigest.providers.local import LocalGitProvider

__all__ = [
    "GitProvider",
    "GitHubProvider",
    "GitLabProvider",
    "LocalGitProvider",
    "create_provider",
    "create_search_providers",
]


def create_provider(
    reference: RepositoryReference,
    config: DigestConfig = None,
    github_token: Optional[str] = None,
    gitlab_token: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> GitProvider:
    """
    Construct the provider for a reference.

    Args:
        reference: Repository to read.
        config: Configuration; the global one is used if omitted.
        github_token: Per-call token overriding the configured one.
        gitlab_token: Per-call token overriding the configured one.
        client: Optional pre-built HTTP client for hosted providers.

    Returns:
        A provider instance; close it with ``aclose()`` or ``async with``.
    """
    config = config or Config.get()
    settings = config.providers
    sample_size = config.ingestion.binary_sample_size

    if reference.kind == BackendKind.LOCAL:
        return LocalGitProvider(reference.location, binary_sample_size=sample_size)

    if reference.kind == BackendKind.GITHUB:
        return GitHubProvider(
            reference.location,
            token=github_token or settings.github_token,
            api_url=reference.host or settings.github_api_url,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
            listing_concurrency=config.ingestion.listing_concurrency,
            client=client,
            binary_sample_size=sample_size,
        )

    if reference.kind == BackendKind.GITLAB:
        return GitLabProvider(
            reference.location,
            token=gitlab_token or settings.gitlab_token,
            base_url=reference.host or settings.gitlab_url,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
            client=client,
            binary_sample_size=sample_size,
        )

    raise ValueError(f"Unsupported backend: {reference.kind}")


def create_search_providers(
    config: DigestConfig = None,
    github_token: Optional[str] = None,
    gitlab_token: Optional[str] = None,
) -> List[GitProvider]:
    """
    Construct one unbound provider per hosted backend for repository search.

    Returns:
        Providers exposing ``search_repositories``; close each with ``aclose()``.
    """
    config = config or Config.get()
    settings = config.providers

    return [
        GitHubProvider(
            "",
            token=github_token or settings.github_token,
            api_url=settings.github_api_url,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
        ),
        GitLabProvider(
            "",
            token=gitlab_token or settings.gitlab_token,
            base_url=settings.gitlab_url,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
        ),
    ]
