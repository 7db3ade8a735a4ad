"""
Local repository provider.

Reads refs, trees and blobs straight from an on-disk repository's
object store (working clone or bare) through GitPython's pure-Python
GitDB backend, so no git subprocess is spawned. Directories that are
not git repositories are served from the filesystem as-is.
"""

import asyncio
import functools
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, TypeVar

from git import Repo
from git.db import GitDB
from git.exc import BadName, BadObject, GitError, InvalidGitRepositoryError, NoSuchPathError

from repodigest.core.exceptions import BackendUnavailable, NotFound, ReferenceNotFound
from repodigest.core.models import (
    BlobContent,
    EntryKind,
    RepositoryReference,
    RevisionKind,
    TreeEntry,
)
from repodigest.providers.base import GitProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Root token for directories that are not git repositories
WORKTREE_ROOT = "worktree"


class LocalGitProvider(GitProvider):
    """
    Provider for repositories on the local filesystem.

    Every call opens its own Repo handle inside a worker thread; the
    provider itself only remembers the path.
    """

    name = "local"
    supports_recursive_listing = True

    def __init__(self, path: str, binary_sample_size: int = 8192):
        super().__init__(binary_sample_size=binary_sample_size)
        self.root_path = Path(path).expanduser().resolve()

    async def _run(self, func: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    def _open(self) -> Optional[Repo]:
        """Open the repository, or return None for a plain directory."""
        if not self.root_path.is_dir():
            raise BackendUnavailable(
                f"Directory does not exist or is not accessible: {self.root_path}",
                backend=self.name,
                details={"path": str(self.root_path)},
            )
        try:
            return Repo(self.root_path, odbt=GitDB)
        except InvalidGitRepositoryError:
            return None
        except NoSuchPathError as e:
            raise BackendUnavailable(str(e), backend=self.name) from e

    # ------------------------------------------------------------------
    # resolve
    # ------------------------------------------------------------------

    async def resolve(self, reference: RepositoryReference) -> str:
        return await self._run(self._resolve, reference)

    def _resolve(self, reference: RepositoryReference) -> str:
        repo = self._open()
        if repo is None:
            if reference.revision is not None:
                raise ReferenceNotFound(
                    reference.revision,
                    backend=self.name,
                    details={"reason": "not a git repository"},
                )
            logger.info(f"{self.root_path} is not a git repository, reading the directory")
            return WORKTREE_ROOT

        try:
            rev = self._rev_spec(reference)
            try:
                commit = repo.commit(rev)
            except (BadName, BadObject, ValueError, IndexError) as e:
                raise ReferenceNotFound(
                    reference.revision or "HEAD", backend=self.name
                ) from e
            except (GitError, OSError) as e:
                raise BackendUnavailable(
                    f"Failed to read repository: {e}", backend=self.name
                ) from e

            logger.info(f"Resolved {self.root_path}@{rev} to {commit.hexsha}")
            return commit.hexsha
        finally:
            repo.close()

    @staticmethod
    def _rev_spec(reference: RepositoryReference) -> str:
        if reference.revision is None:
            return "HEAD"
        if reference.revision_kind == RevisionKind.BRANCH:
            return f"refs/heads/{reference.revision}"
        if reference.revision_kind == RevisionKind.TAG:
            return f"refs/tags/{reference.revision}"
        return reference.revision

    # ------------------------------------------------------------------
    # list_tree
    # ------------------------------------------------------------------

    async def list_tree(
        self, root: str, path: str = "", recursive: bool = False
    ) -> List[TreeEntry]:
        path = path.strip("/")
        if root == WORKTREE_ROOT:
            return await self._run(self._list_directory, path, recursive)
        return await self._run(self._list_objects, root, path, recursive)

    def _list_objects(self, root: str, path: str, recursive: bool) -> List[TreeEntry]:
        repo = self._open_git(root)
        try:
            tree = self._lookup(repo, root, path) if path else repo.commit(root).tree
            if tree.type != "tree":
                raise NotFound(path, backend=self.name, details={"reason": "not a directory"})

            entries = []
            for item in tree.traverse() if recursive else tree:
                if item.type == "blob":
                    entries.append(TreeEntry(item.path, EntryKind.FILE, item.size))
                elif item.type == "tree":
                    entries.append(TreeEntry(item.path, EntryKind.DIRECTORY))
            return entries
        except (GitError, OSError, ValueError) as e:
            raise BackendUnavailable(f"Failed to read tree: {e}", backend=self.name) from e
        finally:
            repo.close()

    def _list_directory(self, path: str, recursive: bool) -> List[TreeEntry]:
        base = self._inside_root(path)
        if base is None or not base.is_dir():
            raise NotFound(path or "/", backend=self.name)

        entries = []
        try:
            if recursive:
                for current, dirs, files in os.walk(base):
                    current_path = Path(current)
                    dirs.sort()
                    for d in list(dirs):
                        if (current_path / d).is_symlink():
                            dirs.remove(d)
                            continue
                        entries.append(self._directory_entry(current_path / d))
                    for f in sorted(files):
                        entry = self._file_entry(current_path / f)
                        if entry is not None:
                            entries.append(entry)
            else:
                for child in sorted(base.iterdir()):
                    if child.is_dir() and not child.is_symlink():
                        entries.append(self._directory_entry(child))
                    else:
                        entry = self._file_entry(child)
                        if entry is not None:
                            entries.append(entry)
        except OSError as e:
            raise BackendUnavailable(
                f"Failed to list {base}: {e}", backend=self.name
            ) from e
        return entries

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root_path).as_posix()

    def _directory_entry(self, path: Path) -> TreeEntry:
        return TreeEntry(self._relative(path), EntryKind.DIRECTORY)

    def _file_entry(self, path: Path) -> Optional[TreeEntry]:
        if path.is_symlink() and self._inside_root(self._relative(path)) is None:
            logger.debug(f"Skipping symlink leaving the repository: {path}")
            return None
        if not path.is_file():
            return None
        return TreeEntry(self._relative(path), EntryKind.FILE, path.stat().st_size)

    def _inside_root(self, path: str) -> Optional[Path]:
        """Resolve a relative path, returning None if it escapes the root."""
        candidate = (self.root_path / path).resolve()
        if candidate != self.root_path and self.root_path not in candidate.parents:
            return None
        return candidate

    # ------------------------------------------------------------------
    # fetch_blob
    # ------------------------------------------------------------------

    async def fetch_blob(self, root: str, path: str) -> BlobContent:
        path = path.strip("/")
        if root == WORKTREE_ROOT:
            data = await self._run(self._read_file, path)
        else:
            data = await self._run(self._read_object, root, path)
        return self._make_blob(data)

    def _read_file(self, path: str) -> bytes:
        target = self._inside_root(path)
        if target is None or not target.is_file():
            raise NotFound(path, backend=self.name)
        try:
            return target.read_bytes()
        except OSError as e:
            raise BackendUnavailable(f"Failed to read {path}: {e}", backend=self.name) from e

    def _read_object(self, root: str, path: str) -> bytes:
        repo = self._open_git(root)
        try:
            blob = self._lookup(repo, root, path)
            if blob.type != "blob":
                raise NotFound(path, backend=self.name, details={"reason": "not a file"})
            return blob.data_stream.read()
        except (GitError, OSError, ValueError) as e:
            raise BackendUnavailable(f"Failed to read {path}: {e}", backend=self.name) from e
        finally:
            repo.close()

    def _open_git(self, root: str) -> Repo:
        repo = self._open()
        if repo is None:
            raise BackendUnavailable(
                f"{self.root_path} is not a git repository", backend=self.name
            )
        return repo

    def _lookup(self, repo: Repo, root: str, path: str):
        try:
            return repo.commit(root).tree / path
        except KeyError as e:
            raise NotFound(path, backend=self.name) from e
        except (BadName, BadObject) as e:
            raise BackendUnavailable(
                f"Unknown root {root}", backend=self.name
            ) from e
