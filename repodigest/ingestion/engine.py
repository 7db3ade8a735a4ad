"""
Repository ingestion engine.

Walks a provider's tree, filters and classifies every file, fetches
eligible blobs with a fixed-size worker pool and assembles the
results in canonical path order.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from repodigest.core.config import Config, IngestionConfig
from repodigest.core.exceptions import (
    BackendUnavailable,
    Cancelled,
    RateLimited,
    RepoDigestError,
)
from repodigest.core.models import (
    BlobContent,
    EntryKind,
    FileRecord,
    FileStatus,
    FilterConfig,
    IngestionResult,
    RepositoryMatch,
    RepositoryReference,
    TreeEntry,
)
from repodigest.ingestion.filters import PathFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _backoff(seconds: float) -> None:
    """Sleep between rate-limited attempts."""
    await asyncio.sleep(seconds)


@dataclass
class FetchOutcome:
    """Result of one blob fetch: content or an error message."""

    blob: Optional[BlobContent] = None
    error: Optional[str] = None

    def counted_size(self, max_file_size: int) -> int:
        """Bytes this outcome adds to the digest if it is admitted."""
        if self.blob is None or not self.blob.is_text or self.blob.size > max_file_size:
            return 0
        return self.blob.size


class IngestionEngine:
    """
    Backend-agnostic ingestion orchestrator.

    A single engine can serve many calls; it keeps no per-call state.
    """

    def __init__(self, config: IngestionConfig = None):
        self.config = config or Config.get().ingestion

    def default_filter(self, **overrides) -> FilterConfig:
        """Build a FilterConfig carrying this engine's size limits."""
        values = {
            "max_file_size": self.config.max_file_size,
            "max_total_size": self.config.max_total_size,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return FilterConfig(**values)

    async def ingest(
        self,
        provider,
        reference: RepositoryReference,
        filter_config: FilterConfig = None,
    ) -> IngestionResult:
        """
        Ingest a repository into an ordered digest.

        Args:
            provider: Provider bound to the repository.
            reference: Repository and revision to ingest.
            filter_config: Patterns and size limits; engine defaults if omitted.

        Returns:
            IngestionResult with one record per file in path order.

        Raises:
            ReferenceNotFound, AuthRequired, RateLimited, BackendUnavailable:
                If the reference cannot be resolved.
            Cancelled: If the call is cancelled.
        """
        filter_config = filter_config or self.default_filter()
        try:
            return await self._ingest(provider, reference, filter_config)
        except asyncio.CancelledError:
            logger.info(f"Ingestion of {reference.display_name} cancelled")
            raise Cancelled(details={"repository": reference.display_name}) from None

    async def list_files(
        self,
        provider,
        reference: RepositoryReference,
        filter_config: FilterConfig = None,
    ) -> Tuple[str, List[str]]:
        """
        Resolve a reference and list the paths that pass the pattern stages.

        Nothing is fetched; size limits are not applied.

        Returns:
            Tuple of (root token, sorted file paths).
        """
        filter_config = filter_config or self.default_filter()
        try:
            root = await self._resolve(provider, reference)
            files, _ = await self._enumerate(provider, root)
        except asyncio.CancelledError:
            raise Cancelled(details={"repository": reference.display_name}) from None

        path_filter = self._path_filter(filter_config)
        paths = sorted(e.path for e in files if path_filter.accepts(e.path))
        logger.debug(f"{len(paths)} of {len(files)} files pass the filters")
        return root, paths

    async def read_file(
        self, provider, reference: RepositoryReference, path: str
    ) -> Tuple[str, BlobContent]:
        """
        Resolve a reference and fetch one file, with the same retry policy as ingest.

        Returns:
            Tuple of (root token, blob).

        Raises:
            NotFound: If the path is missing or is a directory.
            Cancelled: If the call is cancelled.
        """
        try:
            root = await self._resolve(provider, reference)
            blob = await self._call_with_backoff(
                lambda: provider.fetch_blob(root, path),
                path,
                timeout=self.config.fetch_timeout,
            )
        except asyncio.CancelledError:
            raise Cancelled(details={"repository": reference.display_name}) from None
        return root, blob

    async def find_repositories(
        self, providers, query: str, limit: Optional[int] = None
    ) -> List[RepositoryMatch]:
        """
        Search every hosted provider concurrently and merge the matches.

        Providers that fail are dropped with a warning. Matches are sorted
        by star count, most popular first.
        """
        async def search(provider) -> List[RepositoryMatch]:
            try:
                return await self._call_with_backoff(
                    lambda: provider.search_repositories(query, limit),
                    f"search:{provider.name}",
                )
            except RepoDigestError as e:
                logger.warning(f"Repository search failed on {provider.name}: {e}")
                return []

        try:
            results = await asyncio.gather(*(search(p) for p in providers))
        except asyncio.CancelledError:
            raise Cancelled(details={"query": query}) from None

        matches = [match for found in results for match in found]
        matches.sort(key=lambda m: m.stars, reverse=True)
        logger.info(f"Found {len(matches)} repositories matching {query!r}")
        return matches

    async def _resolve(self, provider, reference: RepositoryReference) -> str:
        return await self._call_with_backoff(
            lambda: provider.resolve(reference), f"resolve {reference.display_name}"
        )

    def _path_filter(self, filter_config: FilterConfig) -> PathFilter:
        return PathFilter(
            filter_config,
            default_ignores=(
                self.config.ignore_patterns if self.config.use_default_ignores else None
            ),
        )

    async def _ingest(
        self,
        provider,
        reference: RepositoryReference,
        filter_config: FilterConfig,
    ) -> IngestionResult:
        logger.info(f"Ingesting repository: {reference.display_name}")

        root = await self._resolve(provider, reference)

        files, listing_failures = await self._enumerate(provider, root)
        files.sort(key=lambda e: e.path)

        path_filter = self._path_filter(filter_config)

        pre_status: List[Optional[FileStatus]] = [path_filter.classify(e) for e in files]
        eligible = [(i, e) for i, (e, s) in enumerate(zip(files, pre_status)) if s is None]

        logger.debug(
            f"{len(files)} files found, {len(eligible)} eligible for fetch"
        )

        outcomes = await self._fetch_all(
            provider, root, eligible, len(files), filter_config
        )

        result = self._assemble(reference, root, files, pre_status, outcomes, filter_config)
        for path, error in listing_failures:
            result.add_record(FileRecord(path, FileStatus.SKIPPED_ERROR, detail=error))
        result.records.sort(key=lambda r: r.path)

        logger.info(
            f"Repository ingested: {result.count(FileStatus.INCLUDED)} files, "
            f"{len(result.skipped)} skipped, {result.total_bytes / 1024:.1f} KB"
        )
        return result

    # ------------------------------------------------------------------
    # Tree enumeration
    # ------------------------------------------------------------------

    async def _enumerate(
        self, provider, root: str
    ) -> Tuple[List[TreeEntry], List[Tuple[str, str]]]:
        """
        Collect every file under the root.

        Returns:
            Tuple of (file entries, [(directory, error)] for subdirectories
            that could not be listed).
        """
        if provider.supports_recursive_listing:
            entries = await self._call_with_backoff(
                lambda: provider.list_tree(root, "", recursive=True), "/"
            )
            return self._unique_files(entries), []

        semaphore = asyncio.Semaphore(self.config.listing_concurrency)
        failures: List[Tuple[str, str]] = []

        async def list_directory(path: str) -> List[TreeEntry]:
            async with semaphore:
                try:
                    return await self._call_with_backoff(
                        lambda: provider.list_tree(root, path), path or "/"
                    )
                except RepoDigestError as e:
                    if not path:
                        raise
                    logger.warning(f"Failed to list directory {path}: {e}")
                    failures.append((f"{path}/", str(e)))
                    return []

        entries: List[TreeEntry] = []
        pending = [""]
        while pending:
            listings = await asyncio.gather(*(list_directory(p) for p in pending))
            pending = []
            for children in listings:
                for child in children:
                    if child.kind == EntryKind.DIRECTORY:
                        pending.append(child.path)
                    else:
                        entries.append(child)

        return self._unique_files(entries), failures

    @staticmethod
    def _unique_files(entries: List[TreeEntry]) -> List[TreeEntry]:
        files: Dict[str, TreeEntry] = {}
        for entry in entries:
            if entry.kind == EntryKind.FILE:
                files[entry.path.strip("/")] = entry
        return [
            TreeEntry(path, EntryKind.FILE, entry.size) for path, entry in files.items()
        ]

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_all(
        self,
        provider,
        root: str,
        eligible: List[Tuple[int, TreeEntry]],
        total: int,
        filter_config: FilterConfig,
    ) -> List[Optional[FetchOutcome]]:
        """
        Fetch eligible blobs with a fixed pool of workers, indexed by sorted position.

        The byte budget is tracked over the settled prefix of the sorted
        order. Once it overflows, files after the overflow point are left
        unfetched; assembly marks them digest-full.
        """
        outcomes: List[Optional[FetchOutcome]] = [None] * total
        if not eligible:
            return outcomes

        queue: asyncio.Queue = asyncio.Queue()
        for item in eligible:
            queue.put_nowait(item)

        order = [index for index, _ in eligible]
        settled = 0
        budget_used = 0
        full_at: Optional[int] = None

        def settle() -> None:
            nonlocal settled, budget_used, full_at
            while full_at is None and settled < len(order):
                outcome = outcomes[order[settled]]
                if outcome is None:
                    return
                size = outcome.counted_size(filter_config.max_file_size)
                if budget_used + size > filter_config.max_total_size:
                    full_at = order[settled]
                    logger.debug(f"Digest full at {full_at}, skipping later fetches")
                    return
                budget_used += size
                settled += 1

        async def worker() -> None:
            while True:
                try:
                    index, entry = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if full_at is not None and index > full_at:
                    continue
                outcomes[index] = await self._fetch_one(provider, root, entry)
                settle()

        pool_size = max(1, min(self.config.fetch_concurrency, len(eligible)))
        workers = [asyncio.create_task(worker()) for _ in range(pool_size)]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        return outcomes

    async def _fetch_one(self, provider, root: str, entry: TreeEntry) -> FetchOutcome:
        try:
            blob = await self._call_with_backoff(
                lambda: provider.fetch_blob(root, entry.path),
                entry.path,
                timeout=self.config.fetch_timeout,
            )
            return FetchOutcome(blob=blob)
        except RepoDigestError as e:
            logger.warning(f"Skipping {entry.path}: {e}")
            return FetchOutcome(error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error fetching {entry.path}")
            return FetchOutcome(error=f"{type(e).__name__}: {e}")

    async def _call_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Run a provider call, retrying on RateLimited.

        Timeouts are reported as BackendUnavailable.
        """
        attempt = 1
        while True:
            try:
                if timeout is None:
                    return await operation()
                return await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise BackendUnavailable(
                    f"Timed out after {timeout}s", details={"path": label}
                ) from e
            except RateLimited as e:
                if attempt >= self.config.max_fetch_attempts:
                    raise
                delay = self._backoff_delay(e.retry_after, attempt)
                logger.info(
                    f"Rate limited on {label} (attempt {attempt}/"
                    f"{self.config.max_fetch_attempts}), retrying in {delay:.1f}s"
                )
                await _backoff(delay)
                attempt += 1

    def _backoff_delay(self, hint: Optional[float], attempt: int) -> float:
        if hint is not None:
            return min(max(hint, 0.0), self.config.max_backoff)
        return min(self.config.default_backoff * 2 ** (attempt - 1), self.config.max_backoff)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _assemble(
        self,
        reference: RepositoryReference,
        root: str,
        files: List[TreeEntry],
        pre_status: List[Optional[FileStatus]],
        outcomes: List[Optional[FetchOutcome]],
        filter_config: FilterConfig,
    ) -> IngestionResult:
        result = IngestionResult(reference=reference, root=root)
        digest_full = False

        for entry, status, outcome in zip(files, pre_status, outcomes):
            if status is not None:
                result.add_record(FileRecord(entry.path, status, size=entry.size))
                continue

            if digest_full:
                size = outcome.blob.size if outcome and outcome.blob else entry.size
                result.add_record(FileRecord(entry.path, FileStatus.SKIPPED_DIGEST_FULL, size=size))
                continue

            if outcome is None or outcome.error is not None:
                error = outcome.error if outcome else "not fetched"
                result.add_record(
                    FileRecord(entry.path, FileStatus.SKIPPED_ERROR, size=entry.size, detail=error)
                )
                continue

            blob = outcome.blob
            if not blob.is_text:
                record = FileRecord(entry.path, FileStatus.SKIPPED_BINARY, size=blob.size)
            elif blob.size > filter_config.max_file_size:
                record = FileRecord(entry.path, FileStatus.SKIPPED_TOO_LARGE, size=blob.size)
            elif result.total_bytes + blob.size > filter_config.max_total_size:
                digest_full = True
                record = FileRecord(entry.path, FileStatus.SKIPPED_DIGEST_FULL, size=blob.size)
            else:
                record = FileRecord(
                    entry.path, FileStatus.INCLUDED, content=blob.text, size=blob.size
                )
            result.add_record(record)

        return result


async def ingest_repository(
    identifier: str,
    revision: str = None,
    filter_config: FilterConfig = None,
    config=None,
) -> IngestionResult:
    """
    Convenience function to ingest a single repository.

    Args:
        identifier: Local path, hosted URL or ``github:``/``gitlab:`` name.
        revision: Optional branch, tag or commit.
        filter_config: Optional filter configuration.
        config: Optional DigestConfig.

    Returns:
        IngestionResult for the repository.
    """
    from repodigest.providers import create_provider
    from repodigest.utils.validation import parse_repository_identifier

    if config is None:
        config = Config.get()

    reference = parse_repository_identifier(identifier, revision)
    engine = IngestionEngine(config.ingestion)

    async with create_provider(reference, config) as provider:
        return await engine.ingest(provider, reference, filter_config)
